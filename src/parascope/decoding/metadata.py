"""Runtime metadata parser: raw `state_getMetadata` bytes to `TypeRegistry`.

Metadata is versioned; only revisions carrying a portable type registry
(V14 and V15) are supported. Each revision has its own parser, selected by the
version byte following the `meta` magic prefix.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, replace

from parascope.core.errors import MetadataDecodeError, ScaleDecodeError
from parascope.decoding.scale import ScaleReader
from parascope.decoding.types import (
    PRIMITIVES_BY_INDEX,
    ArrayDef,
    BitSequenceDef,
    CompactDef,
    CompositeDef,
    ConstantInfo,
    ExtrinsicMetadata,
    Field,
    PalletInfo,
    PortableType,
    PrimitiveDef,
    SequenceDef,
    SignedExtensionInfo,
    StorageEntry,
    TupleDef,
    TypeDef,
    TypeParam,
    TypeRegistry,
    Variant,
    VariantDef,
)

METADATA_MAGIC = b"meta"

STORAGE_HASHERS = (
    "Blake2_128",
    "Blake2_256",
    "Blake2_128Concat",
    "Twox128",
    "Twox256",
    "Twox64Concat",
    "Identity",
)


@dataclass(frozen=True, slots=True)
class RuntimeApiMethod:
    name: str
    inputs: tuple[tuple[str, int], ...]
    output: int


@dataclass(frozen=True, slots=True)
class ParsedMetadata:
    """Version-independent result of parsing one metadata blob."""

    version: int
    types: dict[int, PortableType]
    pallets: tuple[PalletInfo, ...]
    extrinsic: ExtrinsicMetadata
    runtime_type: int | None
    apis: dict[str, tuple[RuntimeApiMethod, ...]]


# ---- Shared readers ----


def _docs(r: ScaleReader) -> tuple[str, ...]:
    return tuple(r.vec(ScaleReader.text))


def _field(r: ScaleReader) -> Field:
    name = r.option(ScaleReader.text)
    ty = r.compact()
    type_name = r.option(ScaleReader.text)
    return Field(name=name, type_id=ty, type_name=type_name, docs=_docs(r))


def _variant(r: ScaleReader) -> Variant:
    name = r.text()
    fields = tuple(r.vec(_field))
    index = r.u8()
    return Variant(name=name, index=index, fields=fields, docs=_docs(r))


def _type_def(r: ScaleReader) -> TypeDef:
    tag = r.u8()
    match tag:
        case 0:
            return CompositeDef(tuple(r.vec(_field)))
        case 1:
            return VariantDef(tuple(r.vec(_variant)))
        case 2:
            return SequenceDef(r.compact())
        case 3:
            length = r.u32()
            return ArrayDef(length, r.compact())
        case 4:
            return TupleDef(tuple(r.vec(ScaleReader.compact)))
        case 5:
            idx = r.u8()
            if idx >= len(PRIMITIVES_BY_INDEX):
                raise MetadataDecodeError(f"unknown primitive index {idx}")
            return PrimitiveDef(PRIMITIVES_BY_INDEX[idx])
        case 6:
            return CompactDef(r.compact())
        case 7:
            store = r.compact()
            return BitSequenceDef(store, r.compact())
    raise MetadataDecodeError(f"unknown type definition tag {tag}")


def _type_param(r: ScaleReader) -> TypeParam:
    name = r.text()
    return TypeParam(name=name, type_id=r.option(ScaleReader.compact))


def _portable_type(r: ScaleReader) -> PortableType:
    type_id = r.compact()
    path = tuple(r.vec(ScaleReader.text))
    params = tuple(r.vec(_type_param))
    type_def = _type_def(r)
    return PortableType(id=type_id, path=path, type_def=type_def, params=params, docs=_docs(r))


def _registry_types(r: ScaleReader) -> dict[int, PortableType]:
    return {t.id: t for t in r.vec(_portable_type)}


def _storage_entry(r: ScaleReader) -> StorageEntry:
    name = r.text()
    modifier = "Optional" if r.u8() == 0 else "Default"
    kind = r.u8()
    hashers: tuple[str, ...] = ()
    key_type: int | None = None
    if kind == 0:
        value_type = r.compact()
    elif kind == 1:
        hashers = tuple(_hasher(h) for h in r.vec(ScaleReader.u8))
        key_type = r.compact()
        value_type = r.compact()
    else:
        raise MetadataDecodeError(f"unknown storage entry type tag {kind} for {name}")
    default = r.bytes_vec()
    return StorageEntry(
        name=name,
        modifier=modifier,
        hashers=hashers,
        key_type=key_type,
        value_type=value_type,
        default=default,
        docs=_docs(r),
    )


def _hasher(idx: int) -> str:
    if idx >= len(STORAGE_HASHERS):
        raise MetadataDecodeError(f"unknown storage hasher index {idx}")
    return STORAGE_HASHERS[idx]


def _constant(r: ScaleReader) -> ConstantInfo:
    name = r.text()
    ty = r.compact()
    value = r.bytes_vec()
    return ConstantInfo(name=name, type_id=ty, value=value, docs=_docs(r))


def _pallet(r: ScaleReader, *, with_docs: bool) -> PalletInfo:
    name = r.text()
    prefix: str | None = None
    storage: dict[str, StorageEntry] = {}
    if r.u8() == 1:
        prefix = r.text()
        storage = {e.name: e for e in r.vec(_storage_entry)}
    call_type = r.option(ScaleReader.compact)
    event_type = r.option(ScaleReader.compact)
    constants = {c.name: c for c in r.vec(_constant)}
    error_type = r.option(ScaleReader.compact)
    index = r.u8()
    docs = _docs(r) if with_docs else ()
    return PalletInfo(
        name=name,
        index=index,
        storage_prefix=prefix,
        storage=storage,
        call_type=call_type,
        event_type=event_type,
        error_type=error_type,
        constants=constants,
        docs=docs,
    )


def _signed_extension(r: ScaleReader) -> SignedExtensionInfo:
    identifier = r.text()
    ty = r.compact()
    return SignedExtensionInfo(identifier=identifier, type_id=ty, additional_signed=r.compact())


def _unchecked_extrinsic_params(types: dict[int, PortableType], ext_type: int) -> dict[str, int | None]:
    ty = types.get(ext_type)
    if ty is None:
        return {}
    return {p.name: p.type_id for p in ty.params}


# ---- Version parsers ----


def _parse_v14(r: ScaleReader) -> ParsedMetadata:
    types = _registry_types(r)
    pallets = tuple(r.vec(lambda rr: _pallet(rr, with_docs=False)))

    ext_type = r.compact()
    ext_version = r.u8()
    signed_extensions = tuple(r.vec(_signed_extension))
    runtime_type = r.compact()

    # V14 only names the UncheckedExtrinsic type; its generic params carry the parts.
    params = _unchecked_extrinsic_params(types, ext_type)
    extrinsic = ExtrinsicMetadata(
        version=ext_version,
        address_type=params.get("Address"),
        call_type=params.get("Call"),
        signature_type=params.get("Signature"),
        extra_type=params.get("Extra"),
        signed_extensions=signed_extensions,
    )
    return ParsedMetadata(14, types, pallets, extrinsic, runtime_type, {})


def _api_method(r: ScaleReader) -> RuntimeApiMethod:
    name = r.text()

    def _input(rr: ScaleReader) -> tuple[str, int]:
        input_name = rr.text()
        return input_name, rr.compact()

    inputs = tuple(r.vec(_input))
    output = r.compact()
    _docs(r)
    return RuntimeApiMethod(name=name, inputs=inputs, output=output)


def _parse_v15(r: ScaleReader) -> ParsedMetadata:
    types = _registry_types(r)
    pallets = tuple(r.vec(lambda rr: _pallet(rr, with_docs=True)))

    ext_version = r.u8()
    address_type = r.compact()
    call_type = r.compact()
    signature_type = r.compact()
    extra_type = r.compact()
    signed_extensions = tuple(r.vec(_signed_extension))
    runtime_type = r.compact()

    apis: dict[str, tuple[RuntimeApiMethod, ...]] = {}
    for _ in range(r.compact()):
        api_name = r.text()
        apis[api_name] = tuple(r.vec(_api_method))
        _docs(r)
    # outer enums (call, event, error) and custom map are not needed downstream
    r.compact()
    r.compact()
    r.compact()
    for _ in range(r.compact()):
        r.text()
        r.compact()
        r.bytes_vec()

    extrinsic = ExtrinsicMetadata(
        version=ext_version,
        address_type=address_type,
        call_type=call_type,
        signature_type=signature_type,
        extra_type=extra_type,
        signed_extensions=signed_extensions,
    )
    return ParsedMetadata(15, types, pallets, extrinsic, runtime_type, apis)


_PARSERS: dict[int, Callable[[ScaleReader], ParsedMetadata]] = {
    14: _parse_v14,
    15: _parse_v15,
}


# ---- Public API ----


def parse_metadata(raw: bytes) -> ParsedMetadata:
    """Parse a raw metadata blob (`meta` prefix + version byte + payload).

    Raises
    ------
    MetadataDecodeError
        Bad prefix, a version without a portable type registry (< 14), an
        unknown version, or a malformed payload.
    """
    r = ScaleReader(raw)
    try:
        magic = r.read(4)
        if magic != METADATA_MAGIC:
            raise MetadataDecodeError(f"bad metadata magic {magic.hex()}")
        version = r.u8()
        parser = _PARSERS.get(version)
        if parser is None:
            raise MetadataDecodeError(f"unsupported metadata version V{version}")
        return parser(r)
    except ScaleDecodeError as exc:
        raise MetadataDecodeError(f"malformed metadata: {exc}") from exc


def build_registry(raw: bytes, *, chain_id: str, spec_version: int) -> TypeRegistry:
    """Parse `raw` and freeze the result into a `TypeRegistry` with precomputed kinds."""
    from parascope.decoding.projection import classify_all

    parsed = parse_metadata(raw)

    event_record_type: int | None = None
    for pallet in parsed.pallets:
        if pallet.name == "System" and "Events" in pallet.storage:
            seq = parsed.types.get(pallet.storage["Events"].value_type)
            if seq is not None and isinstance(seq.type_def, SequenceDef):
                event_record_type = seq.type_def.type_param

    registry = TypeRegistry(
        chain_id=chain_id,
        spec_version=spec_version,
        metadata_version=parsed.version,
        types=parsed.types,
        pallets=parsed.pallets,
        extrinsic=parsed.extrinsic,
        runtime_type=parsed.runtime_type,
        event_record_type=event_record_type,
    )
    return replace(registry, kinds=classify_all(registry))
