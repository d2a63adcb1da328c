"""Generic SCALE decoder driven by a `TypeRegistry`.

`decode` walks the declared `TypeDef` of a type id and produces a
`DecodedValue` tree, consuming exactly the bytes the type needs.

Arrays and sequences whose *declared* element type is a fixed-width integer
primitive are read in one step:
- `u8` / `i8` elements become one `BytesValue` blob
- wider integers become one `PrimitiveRunValue`

They are never unrolled into per-element nodes.
"""

from __future__ import annotations

from parascope.core.errors import ScaleDecodeError, TrailingBytes, UnknownVariant
from parascope.decoding.scale import ScaleReader
from parascope.decoding.types import (
    ArrayDef,
    BitSequenceDef,
    CompactDef,
    CompositeDef,
    Primitive,
    PrimitiveDef,
    SequenceDef,
    TupleDef,
    TypeRegistry,
    VariantDef,
)
from parascope.decoding.values import (
    BytesValue,
    CompositeValue,
    DecodedValue,
    PrimitiveRunValue,
    PrimitiveValue,
    VariantValue,
)

# ---------- public API ----------


def decode(data: bytes, type_id: int, registry: TypeRegistry) -> DecodedValue:
    """Decode `data` as a complete value of `type_id`.

    Raises
    ------
    UnexpectedEof
        Input ended before the value was complete.
    UnknownVariant
        A discriminant selected no declared arm.
    TypeNotFound
        A referenced type id is missing from the registry.
    TrailingBytes
        Input remained after the value was complete.
    """
    reader = ScaleReader(data)
    value = decode_from(reader, type_id, registry)
    if reader.remaining():
        raise TrailingBytes(reader.remaining())
    return value


def decode_from(reader: ScaleReader, type_id: int, registry: TypeRegistry) -> DecodedValue:
    """Decode one value of `type_id` from a shared cursor."""
    ty = registry.resolve(type_id)
    match ty.type_def:
        case PrimitiveDef(primitive=prim):
            return PrimitiveValue(type_id, _read_primitive(reader, prim), prim)
        case CompactDef():
            return PrimitiveValue(type_id, reader.compact())
        case CompositeDef(fields=fields):
            children = tuple(decode_from(reader, f.type_id, registry) for f in fields)
            return CompositeValue(type_id, children, tuple(f.name for f in fields))
        case VariantDef() as vdef:
            index = reader.u8()
            variant = vdef.by_index(index)
            if variant is None:
                raise UnknownVariant(index, type_id, "::".join(ty.path))
            children = tuple(decode_from(reader, f.type_id, registry) for f in variant.fields)
            return VariantValue(type_id, index, variant.name, children, tuple(f.name for f in variant.fields))
        case SequenceDef(type_param=elem):
            return _decode_run(reader, type_id, elem, reader.compact(), registry)
        case ArrayDef(length=length, type_param=elem):
            return _decode_run(reader, type_id, elem, length, registry)
        case TupleDef(fields=elems):
            children = tuple(decode_from(reader, t, registry) for t in elems)
            return CompositeValue(type_id, children, is_collection=True)
        case BitSequenceDef(bit_store_type=store):
            return _decode_bits(reader, type_id, store, registry)
    raise ScaleDecodeError(f"unsupported type definition for type {type_id}")


# ---------- helpers ----------


def fixed_width_element(elem_type: int, registry: TypeRegistry) -> Primitive | None:
    """Return the element primitive when it qualifies for the one-read fast path."""
    elem_def = registry.resolve(elem_type).type_def
    if isinstance(elem_def, PrimitiveDef) and elem_def.primitive.width is not None:
        return elem_def.primitive
    return None


def _decode_run(
    reader: ScaleReader,
    type_id: int,
    elem_type: int,
    count: int,
    registry: TypeRegistry,
) -> DecodedValue:
    prim = fixed_width_element(elem_type, registry)
    if prim is not None:
        width = prim.width or 1
        raw = reader.read(count * width)
        if width == 1:
            return BytesValue(type_id, raw)
        values = tuple(
            int.from_bytes(raw[i : i + width], "little", signed=prim.signed) for i in range(0, len(raw), width)
        )
        return PrimitiveRunValue(type_id, prim, values)

    # Bound the element count by the input so a corrupt length fails fast.
    if count > reader.remaining() and not _is_zero_sized(elem_type, registry):
        reader.read(count)  # raises UnexpectedEof
    children = tuple(decode_from(reader, elem_type, registry) for _ in range(count))
    return CompositeValue(type_id, children, is_collection=True)


def _decode_bits(reader: ScaleReader, type_id: int, store_type: int, registry: TypeRegistry) -> BytesValue:
    bit_length = reader.compact()
    store_def = registry.resolve(store_type).type_def
    store_bytes = 1
    if isinstance(store_def, PrimitiveDef) and store_def.primitive.width is not None:
        store_bytes = store_def.primitive.width
    store_bits = store_bytes * 8
    words = (bit_length + store_bits - 1) // store_bits
    return BytesValue(type_id, reader.read(words * store_bytes), bit_length=bit_length)


def _read_primitive(reader: ScaleReader, prim: Primitive) -> int | bool | str:
    match prim:
        case Primitive.BOOL:
            return reader.boolean()
        case Primitive.STR:
            return reader.text()
        case Primitive.CHAR:
            code = reader.u32()
            try:
                return chr(code)
            except ValueError:
                raise ScaleDecodeError(f"invalid char code point {code:#x}") from None
    width = prim.width
    assert width is not None
    return reader.sint(width) if prim.signed else reader.uint(width)


def _is_zero_sized(type_id: int, registry: TypeRegistry) -> bool:
    match registry.resolve(type_id).type_def:
        case CompositeDef(fields=fields):
            return all(_is_zero_sized(f.type_id, registry) for f in fields)
        case TupleDef(fields=elems):
            return all(_is_zero_sized(t, registry) for t in elems)
        case ArrayDef(length=length, type_param=elem):
            return length == 0 or _is_zero_sized(elem, registry)
        case _:
            return False
