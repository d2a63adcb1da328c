"""Type registry primitives.

Defines the immutable description of a runtime's type system, as published in
its metadata:
- `TypeDef`: closed union of shape descriptions (composite, variant, ...)
- `PortableType`: one type id with its declared path and shape
- `PalletInfo` / `ExtrinsicMetadata`: pallet and extrinsic level metadata
- `TypeRegistry`: everything above, keyed by `(chain_id, spec_version)`
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType

from parascope.core.errors import RegistryMismatchError, TypeNotFound


class Primitive(str, Enum):
    """SCALE primitive types in metadata declaration order."""

    BOOL = "bool"
    CHAR = "char"
    STR = "str"
    U8 = "u8"
    U16 = "u16"
    U32 = "u32"
    U64 = "u64"
    U128 = "u128"
    U256 = "u256"
    I8 = "i8"
    I16 = "i16"
    I32 = "i32"
    I64 = "i64"
    I128 = "i128"
    I256 = "i256"

    @property
    def width(self) -> int | None:
        """Encoded byte width for fixed-width integers, None otherwise."""
        return _INT_WIDTHS.get(self)

    @property
    def signed(self) -> bool:
        return self.value.startswith("i")


_INT_WIDTHS: dict[Primitive, int] = {
    Primitive.U8: 1,
    Primitive.U16: 2,
    Primitive.U32: 4,
    Primitive.U64: 8,
    Primitive.U128: 16,
    Primitive.U256: 32,
    Primitive.I8: 1,
    Primitive.I16: 2,
    Primitive.I32: 4,
    Primitive.I64: 8,
    Primitive.I128: 16,
    Primitive.I256: 32,
}

# Metadata encodes primitives by index into this order.
PRIMITIVES_BY_INDEX: tuple[Primitive, ...] = tuple(Primitive)


class SemanticKind(str, Enum):
    """Rendering role of a type, derived from its declared path and shape."""

    ACCOUNT_ID = "AccountId"
    HASH32 = "Hash32"
    ERA = "Era"
    MULTI_ADDRESS = "MultiAddress"
    COMPACT_BALANCE = "Compact<Balance>"
    BIT_VEC = "BitVec"
    RAW_BYTES = "RawBytes"
    GENERIC_COMPOSITE = "GenericComposite"
    GENERIC_VARIANT = "GenericVariant"
    GENERIC_PRIMITIVE = "GenericPrimitive"


# ---- shapes ----


@dataclass(frozen=True, slots=True)
class Field:
    """One field of a composite or variant arm."""

    name: str | None
    type_id: int
    type_name: str | None = None
    docs: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class Variant:
    """One arm of a variant type."""

    name: str
    index: int
    fields: tuple[Field, ...] = ()
    docs: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class CompositeDef:
    fields: tuple[Field, ...]


@dataclass(frozen=True, slots=True)
class VariantDef:
    variants: tuple[Variant, ...]

    def by_index(self, index: int) -> Variant | None:
        for v in self.variants:
            if v.index == index:
                return v
        return None


@dataclass(frozen=True, slots=True)
class SequenceDef:
    type_param: int


@dataclass(frozen=True, slots=True)
class ArrayDef:
    length: int
    type_param: int


@dataclass(frozen=True, slots=True)
class TupleDef:
    fields: tuple[int, ...]


@dataclass(frozen=True, slots=True)
class PrimitiveDef:
    primitive: Primitive


@dataclass(frozen=True, slots=True)
class CompactDef:
    type_param: int


@dataclass(frozen=True, slots=True)
class BitSequenceDef:
    bit_store_type: int
    bit_order_type: int


TypeDef = CompositeDef | VariantDef | SequenceDef | ArrayDef | TupleDef | PrimitiveDef | CompactDef | BitSequenceDef


@dataclass(frozen=True, slots=True)
class TypeParam:
    name: str
    type_id: int | None


@dataclass(frozen=True, slots=True)
class PortableType:
    """A registry entry: declared path (module chain + name) and shape."""

    id: int
    path: tuple[str, ...]
    type_def: TypeDef
    params: tuple[TypeParam, ...] = ()
    docs: tuple[str, ...] = ()

    @property
    def name(self) -> str | None:
        return self.path[-1] if self.path else None

    def param(self, name: str) -> int | None:
        for p in self.params:
            if p.name == name:
                return p.type_id
        return None


# ---- pallet / extrinsic metadata ----


@dataclass(frozen=True, slots=True)
class StorageEntry:
    name: str
    modifier: str  # "Optional" | "Default"
    hashers: tuple[str, ...]
    key_type: int | None
    value_type: int
    default: bytes = b""
    docs: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class ConstantInfo:
    name: str
    type_id: int
    value: bytes
    docs: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class PalletInfo:
    name: str
    index: int
    storage_prefix: str | None = None
    storage: Mapping[str, StorageEntry] = field(default_factory=dict)
    call_type: int | None = None
    event_type: int | None = None
    error_type: int | None = None
    constants: Mapping[str, ConstantInfo] = field(default_factory=dict)
    docs: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class SignedExtensionInfo:
    identifier: str
    type_id: int
    additional_signed: int


@dataclass(frozen=True, slots=True)
class ExtrinsicMetadata:
    version: int
    address_type: int | None
    call_type: int | None
    signature_type: int | None
    extra_type: int | None
    signed_extensions: tuple[SignedExtensionInfo, ...] = ()


# ---- registry ----


@dataclass(frozen=True)
class TypeRegistry:
    """Immutable type registry for one `(chain_id, spec_version)`.

    Safe to share across concurrent decodes: every mapping is read-only.
    """

    chain_id: str
    spec_version: int
    metadata_version: int
    types: Mapping[int, PortableType]
    pallets: tuple[PalletInfo, ...]
    extrinsic: ExtrinsicMetadata
    kinds: Mapping[int, SemanticKind] = field(default_factory=dict)
    runtime_type: int | None = None
    event_record_type: int | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "types", MappingProxyType(dict(self.types)))
        object.__setattr__(self, "kinds", MappingProxyType(dict(self.kinds)))
        by_index = {p.index: p for p in self.pallets}
        by_name = {p.name: p for p in self.pallets}
        object.__setattr__(self, "_pallets_by_index", MappingProxyType(by_index))
        object.__setattr__(self, "_pallets_by_name", MappingProxyType(by_name))

    def resolve(self, type_id: int) -> PortableType:
        try:
            return self.types[type_id]
        except KeyError:
            raise TypeNotFound(type_id) from None

    def kind_of(self, type_id: int) -> SemanticKind:
        kind = self.kinds.get(type_id)
        if kind is None:
            # lazily classified registries (tests, hand-built) fall back to the pure classifier
            from parascope.decoding.projection import classify

            kind = classify(type_id, self)
        return kind

    def pallet_by_index(self, index: int) -> PalletInfo | None:
        return self._pallets_by_index.get(index)  # type: ignore[attr-defined]

    def pallet(self, name: str) -> PalletInfo | None:
        return self._pallets_by_name.get(name)  # type: ignore[attr-defined]

    def storage_entry(self, pallet: str, entry: str) -> StorageEntry | None:
        p = self.pallet(pallet)
        if p is None:
            return None
        return p.storage.get(entry)

    def constant(self, pallet: str, name: str) -> ConstantInfo | None:
        p = self.pallet(pallet)
        if p is None:
            return None
        return p.constants.get(name)

    def ss58_prefix(self, default: int = 42) -> int:
        """SS58 prefix declared by the `System.SS58Prefix` constant."""
        const = self.constant("System", "SS58Prefix")
        if const is None or not const.value:
            return default
        return int.from_bytes(const.value, "little")

    def ensure_matches(self, chain_id: str, spec_version: int) -> None:
        """Guard against decoding a block with another runtime's registry."""
        if (self.chain_id, self.spec_version) != (chain_id, spec_version):
            raise RegistryMismatchError(
                f"registry {self.chain_id}@{self.spec_version} used for block of {chain_id}@{spec_version}"
            )
