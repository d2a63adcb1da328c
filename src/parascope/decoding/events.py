"""Event decoder.

- `decode_event`: one encoded `RuntimeEvent` to `{pallet, variant, data}`
- `decode_event_records`: the `System.Events` storage value
  (`Vec<EventRecord{phase, event, topics}>`) to a list of event JSON, with
  per-record failure containment
- `categorize_events`: split records into `onInitialize`, per-extrinsic and
  `onFinalize` groups and derive each extrinsic's outcome

Records are laid out back to back without per-record length, so a record that
fails to decode also hides every record after it. Those are reported as
error markers rather than silently dropped.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from parascope.core.errors import ScaleDecodeError, TrailingBytes, error_marker
from parascope.core.logging_config import get_logger
from parascope.decoding.decoder import decode_from
from parascope.decoding.projection import Projector
from parascope.decoding.scale import ScaleReader
from parascope.decoding.types import CompositeDef, TypeRegistry, VariantDef
from parascope.decoding.utils import camel_case
from parascope.decoding.values import CompositeValue, DecodedValue, VariantValue, raw_int

log = get_logger(__name__)


# ---------- single event ----------


def runtime_event_type(registry: TypeRegistry) -> int:
    """Type id of the outer `RuntimeEvent` enum, read from `EventRecord.event`."""
    if registry.event_record_type is None:
        raise ScaleDecodeError("registry declares no System.Events record type")
    record = registry.resolve(registry.event_record_type).type_def
    if isinstance(record, CompositeDef):
        for f in record.fields:
            if f.name == "event":
                return f.type_id
    raise ScaleDecodeError("event record type has no `event` field")


def _event_json(event: DecodedValue, projector: Projector, *, with_docs: bool) -> dict[str, Any]:
    if not isinstance(event, VariantValue) or len(event.children) != 1:
        raise ScaleDecodeError("event does not have the outer pallet enum shape")
    inner = event.children[0]
    if not isinstance(inner, VariantValue):
        raise ScaleDecodeError(f"event of pallet {event.name} is not an enum")

    out: dict[str, Any] = {
        "pallet": camel_case(event.name),
        "variant": inner.name,
        "data": [projector.project_contained(c) for c in inner.children],
    }
    if with_docs:
        docs: tuple[str, ...] = ()
        inner_def = projector.registry.resolve(inner.type_id).type_def
        if isinstance(inner_def, VariantDef):
            arm = inner_def.by_index(inner.index)
            docs = arm.docs if arm is not None else ()
        out["docs"] = "\n".join(docs)
    return out


def decode_event(
    data: bytes,
    registry: TypeRegistry,
    *,
    ss58_prefix: int,
    with_docs: bool = False,
) -> dict[str, Any]:
    """Decode one encoded `RuntimeEvent` (pallet index + event index + fields)."""
    r = ScaleReader(data)
    event = decode_from(r, runtime_event_type(registry), registry)
    if r.remaining():
        raise TrailingBytes(r.remaining())
    return _event_json(event, Projector(registry, ss58_prefix), with_docs=with_docs)


# ---------- event records ----------


def _phase_json(phase: DecodedValue) -> dict[str, Any]:
    if isinstance(phase, VariantValue):
        if phase.name == "ApplyExtrinsic" and phase.children:
            index = raw_int(phase.children[0])
            if index is None:
                raise ScaleDecodeError("ApplyExtrinsic phase carries no extrinsic index")
            return {"applyExtrinsic": str(index)}
        return {camel_case(phase.name): None}
    raise ScaleDecodeError("event phase is not an enum")


def decode_event_records(
    data: bytes,
    registry: TypeRegistry,
    *,
    ss58_prefix: int,
    with_docs: bool = False,
    strict: bool = False,
) -> list[dict[str, Any]]:
    """Decode the raw `System.Events` value.

    Each item is `{"phase", "pallet", "variant", "data", "topics"}` or, for a
    record that failed, an error marker with its `index`. In `strict` mode the
    first failure is raised instead. An unreadable record count yields a
    single marker without an index.
    """
    projector = Projector(registry, ss58_prefix)
    record_type = registry.event_record_type
    r = ScaleReader(data)
    try:
        if record_type is None:
            raise ScaleDecodeError("registry declares no System.Events record type")
        count = r.compact()
    except ScaleDecodeError as exc:
        if strict:
            raise
        log.warning("event_count_decode_failed", error=str(exc))
        return [error_marker(exc)]

    out: list[dict[str, Any]] = []
    for i in range(count):
        try:
            record = decode_from(r, record_type, registry)
            phase, event, topics = _record_parts(record)
            item = _event_json(event, projector, with_docs=with_docs)
            item["phase"] = _phase_json(phase)
            item["topics"] = projector.project_contained(topics) if topics is not None else []
            out.append(item)
        except ScaleDecodeError as exc:
            if strict:
                raise
            log.warning("event_decode_failed", index=i, count=count, error=str(exc))
            out.append({"index": i, **error_marker(exc)})
            for j in range(i + 1, count):
                out.append(
                    {
                        "index": j,
                        "error": {
                            "kind": "Unreachable",
                            "message": f"event record {j} follows undecodable record {i}",
                        },
                    }
                )
            break
    return out


def _record_parts(record: DecodedValue) -> tuple[DecodedValue, DecodedValue, DecodedValue | None]:
    if not isinstance(record, CompositeValue):
        raise ScaleDecodeError("event record is not a composite")
    by_name = dict(zip(record.names, record.children))
    if "phase" not in by_name or "event" not in by_name:
        raise ScaleDecodeError("event record lacks phase/event fields")
    return by_name["phase"], by_name["event"], by_name.get("topics")


# ---------- categorization ----------


@dataclass(slots=True)
class ExtrinsicOutcome:
    success: bool = False
    pays_fee: bool | None = None
    weight: Any = None
    dispatch_class: str | None = None


@dataclass(slots=True)
class CategorizedEvents:
    on_initialize: list[dict[str, Any]] = field(default_factory=list)
    per_extrinsic: list[list[dict[str, Any]]] = field(default_factory=list)
    on_finalize: list[dict[str, Any]] = field(default_factory=list)
    outcomes: list[ExtrinsicOutcome] = field(default_factory=list)
    errors: list[dict[str, Any]] = field(default_factory=list)  # markers without a known phase


def _pays_fee(dispatch_info: Any) -> bool | None:
    if not isinstance(dispatch_info, dict):
        return None
    value = dispatch_info.get("pays_fee", dispatch_info.get("paysFee"))
    match value:
        case bool():
            return value
        case "Yes":
            return True
        case "No":
            return False
    return None


def categorize_events(events: list[dict[str, Any]], num_extrinsics: int) -> CategorizedEvents:
    """Group decoded events by phase and read extrinsic outcomes from `System` events.

    `ExtrinsicSuccess` carries `DispatchInfo` as its first field,
    `ExtrinsicFailed` as its second (after the dispatch error).
    """
    result = CategorizedEvents(
        per_extrinsic=[[] for _ in range(num_extrinsics)],
        outcomes=[ExtrinsicOutcome() for _ in range(num_extrinsics)],
    )
    for event in events:
        phase = event.get("phase")
        if phase is None:
            result.errors.append(event)
            continue

        public = {k: v for k, v in event.items() if k != "phase"}
        if "applyExtrinsic" in phase:
            idx = int(phase["applyExtrinsic"])
            if idx >= num_extrinsics:
                log.warning("event_phase_out_of_range", index=idx, extrinsics=num_extrinsics)
                continue
            result.per_extrinsic[idx].append(public)
            if event.get("pallet") == "system" and event.get("variant") in ("ExtrinsicSuccess", "ExtrinsicFailed"):
                ok = event["variant"] == "ExtrinsicSuccess"
                outcome = result.outcomes[idx]
                outcome.success = ok
                data = event.get("data", [])
                info_idx = 0 if ok else 1
                if len(data) > info_idx and isinstance(data[info_idx], dict):
                    info = data[info_idx]
                    outcome.pays_fee = _pays_fee(info)
                    outcome.weight = info.get("weight")
                    cls = info.get("class")
                    outcome.dispatch_class = cls if isinstance(cls, str) else None
        elif "finalization" in phase:
            result.on_finalize.append(public)
        else:
            result.on_initialize.append(public)
    return result


def fee_from_events(events: list[dict[str, Any]]) -> dict[str, Any] | None:
    """`TransactionPayment.TransactionFeePaid(who, actual_fee, tip)` as fee info."""
    for event in events:
        if event.get("pallet") == "transactionPayment" and event.get("variant") == "TransactionFeePaid":
            data = event.get("data", [])
            if len(data) >= 2:
                info: dict[str, Any] = {"partialFee": data[1], "kind": "fromEvent"}
                if len(data) >= 3:
                    info["tip"] = data[2]
                return info
    return None
