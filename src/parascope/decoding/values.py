"""Decoded value tree.

Every node keeps the `type_id` it was decoded against so projection can look up
its semantic kind independently of the byte shape.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from parascope.decoding.types import Primitive


@dataclass(frozen=True, slots=True)
class PrimitiveValue:
    type_id: int
    value: Any  # int | bool | str
    primitive: Primitive | None = None  # None for compacts


@dataclass(frozen=True, slots=True)
class BytesValue:
    """Opaque byte blob (byte arrays/sequences and bit sequences)."""

    type_id: int
    data: bytes
    bit_length: int | None = None


@dataclass(frozen=True, slots=True)
class PrimitiveRunValue:
    """Array or sequence of fixed-width integers decoded in one read."""

    type_id: int
    primitive: Primitive
    values: tuple[int, ...]


@dataclass(frozen=True, slots=True)
class CompositeValue:
    """Ordered children of a composite, tuple, array or sequence.

    `names` holds the declared field names (None for unnamed fields) and is
    empty for collections.
    """

    type_id: int
    children: tuple[DecodedValue, ...]
    names: tuple[str | None, ...] = ()
    is_collection: bool = False

    def get(self, name: str) -> DecodedValue | None:
        for n, child in zip(self.names, self.children):
            if n == name:
                return child
        return None


@dataclass(frozen=True, slots=True)
class VariantValue:
    type_id: int
    index: int
    name: str
    children: tuple[DecodedValue, ...] = ()
    names: tuple[str | None, ...] = ()


DecodedValue = PrimitiveValue | BytesValue | PrimitiveRunValue | CompositeValue | VariantValue


def count_nodes(value: DecodedValue) -> int:
    """Number of nodes in a value tree."""
    match value:
        case CompositeValue(children=children) | VariantValue(children=children):
            return 1 + sum(count_nodes(c) for c in children)
        case _:
            return 1


def raw_int(value: DecodedValue) -> int | None:
    """Integer payload of a primitive/compact node, unwrapping single-field wrappers."""
    match value:
        case PrimitiveValue(value=bool()):
            return None
        case PrimitiveValue(value=int() as v):
            return v
        case CompositeValue(children=(child,), is_collection=False):
            return raw_int(child)
        case _:
            return None


def raw_bytes(value: DecodedValue) -> bytes | None:
    """Byte payload of a blob node, unwrapping single-field wrappers (e.g. `AccountId32([u8; 32])`)."""
    match value:
        case BytesValue(data=data):
            return data
        case CompositeValue(children=(child,), is_collection=False):
            return raw_bytes(child)
        case _:
            return None
