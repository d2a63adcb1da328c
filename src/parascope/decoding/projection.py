"""Type-aware projection of decoded values into JSON.

A 32-byte account id and a 32-byte hash decode to the same bytes but must be
rendered differently, so rendering is driven by a `SemanticKind` classified
from each type's *declared* path and shape, never from decoded bytes.

Rendering rules
---------------
- AccountId: SS58 with the chain prefix
- Hash32 / RawBytes: "0x" hex
- Era: {"immortal": "0x00"} or {"mortal": {"period": "..", "phase": ".."}}
- MultiAddress: active arm unwrapped (Id/Address32 as SS58, Index as decimal)
- Compact<Balance>: decimal string
- BitVec: {"hex": "0x..", "bitLength": ".."}
- composites keep declared field names; collections are lists
- integers are decimal strings; empty collections are [] / {}
"""

from __future__ import annotations

from typing import Any

from parascope.core.errors import ProjectionError, error_marker
from parascope.decoding.types import (
    ArrayDef,
    BitSequenceDef,
    CompactDef,
    CompositeDef,
    PrimitiveDef,
    SemanticKind,
    SequenceDef,
    TupleDef,
    TypeRegistry,
    VariantDef,
)
from parascope.decoding.utils import lower_first, to_hex, to_ss58
from parascope.decoding.values import (
    BytesValue,
    CompositeValue,
    DecodedValue,
    PrimitiveRunValue,
    PrimitiveValue,
    VariantValue,
    raw_bytes,
    raw_int,
)

__all__ = ["SemanticKind", "Projector", "classify", "classify_all", "project", "era_from_encoded"]

_ACCOUNT_NAMES = frozenset({"AccountId32", "AccountId"})
_HASH_NAMES = frozenset({"H256", "H160", "H512", "Hash"})


# ---------- classification ----------


def classify(type_id: int, registry: TypeRegistry) -> SemanticKind:
    """Classify a type id from its declared path and shape (pure)."""
    ty = registry.resolve(type_id)
    name = ty.name
    type_def = ty.type_def

    if name in _ACCOUNT_NAMES and not isinstance(type_def, VariantDef):
        return SemanticKind.ACCOUNT_ID
    if name == "MultiAddress" and isinstance(type_def, VariantDef):
        return SemanticKind.MULTI_ADDRESS
    if name == "Era" and "era" in ty.path[:-1]:
        return SemanticKind.ERA
    if name in _HASH_NAMES:
        return SemanticKind.HASH32

    match type_def:
        case CompactDef():
            return SemanticKind.COMPACT_BALANCE
        case BitSequenceDef():
            return SemanticKind.BIT_VEC
        case ArrayDef(type_param=elem) | SequenceDef(type_param=elem):
            if _is_byte_primitive(elem, registry):
                return SemanticKind.RAW_BYTES
            return SemanticKind.GENERIC_COMPOSITE
        case CompositeDef() | TupleDef():
            return SemanticKind.GENERIC_COMPOSITE
        case VariantDef():
            return SemanticKind.GENERIC_VARIANT
        case PrimitiveDef():
            return SemanticKind.GENERIC_PRIMITIVE
    raise ProjectionError(f"cannot classify type {type_id}")


def classify_all(registry: TypeRegistry) -> dict[int, SemanticKind]:
    """Precompute kinds for every type id of a registry."""
    return {type_id: classify(type_id, registry) for type_id in registry.types}


def _is_byte_primitive(type_id: int, registry: TypeRegistry) -> bool:
    type_def = registry.resolve(type_id).type_def
    return isinstance(type_def, PrimitiveDef) and type_def.primitive.width == 1


# ---------- era ----------


def era_from_encoded(first: int, second: int | None) -> dict[str, Any]:
    """Render a mortal/immortal era from its two encoded bytes."""
    if first == 0:
        return {"immortal": "0x00"}
    if second is None:
        raise ProjectionError("mortal era requires two bytes")
    encoded = first | (second << 8)
    period = 2 << (encoded % (1 << 4))
    quantize_factor = max(period >> 12, 1)
    phase = (encoded >> 4) * quantize_factor
    return {"mortal": {"period": str(period), "phase": str(phase)}}


# ---------- projector ----------


class Projector:
    """Render `DecodedValue` trees for one registry and SS58 prefix."""

    def __init__(self, registry: TypeRegistry, ss58_prefix: int) -> None:
        self.registry = registry
        self.ss58_prefix = ss58_prefix

    def project(self, value: DecodedValue, kind: SemanticKind | None = None) -> Any:
        if kind is None:
            kind = self.registry.kind_of(value.type_id)
        match kind:
            case SemanticKind.ACCOUNT_ID:
                return self._account(value)
            case SemanticKind.HASH32 | SemanticKind.RAW_BYTES:
                return self._hex(value)
            case SemanticKind.ERA:
                return self._era(value)
            case SemanticKind.MULTI_ADDRESS:
                return self._multi_address(value)
            case SemanticKind.COMPACT_BALANCE:
                n = raw_int(value)
                if n is None:
                    raise ProjectionError(f"compact value of type {value.type_id} is not an integer")
                return str(n)
            case SemanticKind.BIT_VEC:
                if not isinstance(value, BytesValue):
                    raise ProjectionError(f"bit sequence of type {value.type_id} is not a blob")
                return {"hex": to_hex(value.data), "bitLength": str(value.bit_length or 0)}
            case SemanticKind.GENERIC_VARIANT:
                return self._variant(value)
        return self._generic(value)

    # ---- semantic kinds ----

    def _account(self, value: DecodedValue) -> str:
        data = raw_bytes(value)
        if data is None:
            raise ProjectionError(f"account id of type {value.type_id} carries no bytes")
        if len(data) != 32:
            return to_hex(data)
        return to_ss58(data, self.ss58_prefix)

    def _hex(self, value: DecodedValue) -> str:
        data = raw_bytes(value)
        if data is None:
            raise ProjectionError(f"value of type {value.type_id} carries no bytes")
        return to_hex(data)

    def _era(self, value: DecodedValue) -> dict[str, Any]:
        match value:
            case VariantValue(index=index, children=children):
                second = raw_int(children[0]) if children else None
                return era_from_encoded(index, second)
            case BytesValue(data=data) if data:
                return era_from_encoded(data[0], data[1] if len(data) > 1 else None)
        raise ProjectionError(f"era of type {value.type_id} has unexpected shape")

    def _multi_address(self, value: DecodedValue) -> Any:
        if not isinstance(value, VariantValue) or len(value.children) != 1:
            raise ProjectionError(f"multi-address of type {value.type_id} has unexpected shape")
        inner = value.children[0]
        match value.name:
            case "Id" | "Address32":
                data = raw_bytes(inner)
                if data is not None and len(data) == 32:
                    return to_ss58(data, self.ss58_prefix)
                return self.project(inner)
            case "Index":
                n = raw_int(inner)
                return str(n) if n is not None else self.project(inner)
            case "Raw" | "Address20":
                return self._hex(inner)
        return self.project(inner)

    # ---- generic shapes ----

    def _variant(self, value: DecodedValue) -> Any:
        if not isinstance(value, VariantValue):
            return self._generic(value)
        ty = self.registry.resolve(value.type_id)
        if ty.path == ("Option",):
            return self.project(value.children[0]) if value.children else None
        type_def = ty.type_def
        if isinstance(type_def, VariantDef) and all(not v.fields for v in type_def.variants):
            return value.name
        return {lower_first(value.name): self._fields(value.children, value.names) if value.children else None}

    def _generic(self, value: DecodedValue) -> Any:
        match value:
            case PrimitiveValue(value=bool() as b):
                return b
            case PrimitiveValue(value=int() as n):
                return str(n)
            case PrimitiveValue(value=v):
                return v
            case BytesValue(data=data, bit_length=None):
                return to_hex(data)
            case BytesValue(data=data, bit_length=bits):
                return {"hex": to_hex(data), "bitLength": str(bits)}
            case PrimitiveRunValue(values=values):
                return [str(v) for v in values]
            case CompositeValue(children=children, is_collection=True):
                return [self.project_contained(c) for c in children]
            case CompositeValue(children=children, names=names):
                return self._fields(children, names)
            case VariantValue():
                return self._variant(value)
        raise ProjectionError(f"cannot project value of type {value.type_id}")

    def _fields(self, children: tuple[DecodedValue, ...], names: tuple[str | None, ...]) -> Any:
        if not children:
            return {}
        names = names or (None,) * len(children)
        if len(children) == 1 and not names[0]:
            return self.project(children[0])
        out: dict[str, Any] = {}
        for i, (name, child) in enumerate(zip(names, children)):
            out[name or str(i)] = self.project_contained(child)
        return out

    def project_contained(self, child: DecodedValue) -> Any:
        try:
            return self.project(child)
        except ProjectionError as exc:
            return error_marker(exc)


def project(
    value: DecodedValue,
    kind: SemanticKind | None = None,
    *,
    registry: TypeRegistry,
    ss58_prefix: int,
) -> Any:
    """Functional form of `Projector(registry, ss58_prefix).project(value, kind)`."""
    return Projector(registry, ss58_prefix).project(value, kind)
