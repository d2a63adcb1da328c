"""XCM message extraction from decoded block extrinsics.

- parachain blocks: downward and horizontal messages from
  `parachainSystem.setValidationData`
- relay blocks: upward messages from the backed candidates of
  `paraInherent.enter`

Message payloads are decoded against the registry's `VersionedXcm` type when
the runtime declares one; otherwise they stay hex.
"""

from __future__ import annotations

from typing import Any

from parascope.core.errors import ProjectionError, ScaleDecodeError
from parascope.decoding.decoder import decode
from parascope.decoding.projection import Projector
from parascope.decoding.types import TypeRegistry
from parascope.decoding.utils import from_hex


def _get(obj: Any, *keys: str) -> Any:
    if not isinstance(obj, dict):
        return None
    for key in keys:
        if key in obj:
            return obj[key]
    return None


def versioned_xcm_type(registry: TypeRegistry) -> int | None:
    for type_id, ty in registry.types.items():
        if ty.name == "VersionedXcm":
            return type_id
    return None


class XcmDecoder:
    """Decode raw XCM payloads with one registry, falling back to hex."""

    def __init__(self, registry: TypeRegistry, ss58_prefix: int) -> None:
        self._projector = Projector(registry, ss58_prefix)
        self._registry = registry
        self._xcm_type = versioned_xcm_type(registry)

    def payload(self, value: Any) -> Any:
        if self._xcm_type is None or not isinstance(value, str) or not value.startswith("0x"):
            return value
        try:
            decoded = decode(from_hex(value), self._xcm_type, self._registry)
            return self._projector.project(decoded)
        except (ScaleDecodeError, ProjectionError):
            return value


def _matches(para_id: Any, wanted: int | None) -> bool:
    return wanted is None or str(para_id) == str(wanted)


def extract_xcm_messages(
    extrinsics: list[dict[str, Any]],
    registry: TypeRegistry,
    *,
    ss58_prefix: int,
    para_id: int | None = None,
) -> dict[str, list[dict[str, Any]]]:
    """Collect XCM messages carried by a block's inherents."""
    xcm = XcmDecoder(registry, ss58_prefix)
    out: dict[str, list[dict[str, Any]]] = {
        "horizontalMessages": [],
        "downwardMessages": [],
        "upwardMessages": [],
    }
    for ext in extrinsics:
        pallet, call = ext.get("pallet"), ext.get("call")
        args = ext.get("args") or {}
        if pallet == "parachainSystem" and call == "setValidationData":
            data = _get(args, "data") or {}
            for msg in _get(data, "downward_messages", "downwardMessages") or []:
                out["downwardMessages"].append(
                    {
                        "sentAt": _get(msg, "sent_at", "sentAt"),
                        "msg": xcm.payload(_get(msg, "msg")),
                    }
                )
            # BTreeMap<ParaId, Vec<InboundHrmpMessage>> projects as [[para_id, [msgs]], ...]
            for entry in _get(data, "horizontal_messages", "horizontalMessages") or []:
                if not isinstance(entry, list) or len(entry) != 2:
                    continue
                origin, msgs = entry
                if not _matches(origin, para_id):
                    continue
                for msg in msgs or []:
                    out["horizontalMessages"].append(
                        {
                            "originParaId": origin,
                            "sentAt": _get(msg, "sent_at", "sentAt"),
                            "data": xcm.payload(_get(msg, "data")),
                        }
                    )
        elif pallet == "paraInherent" and call == "enter":
            data = _get(args, "data") or {}
            for backed in _get(data, "backed_candidates", "backedCandidates") or []:
                candidate = _get(backed, "candidate") or {}
                descriptor = _get(candidate, "descriptor") or {}
                origin = _get(descriptor, "para_id", "paraId")
                if not _matches(origin, para_id):
                    continue
                commitments = _get(candidate, "commitments") or {}
                for msg in _get(commitments, "upward_messages", "upwardMessages") or []:
                    out["upwardMessages"].append({"originParaId": origin, "data": xcm.payload(msg)})
    return out
