"""Extrinsic decoder.

Turns one encoded extrinsic (with its compact length prefix, as found in a
block body) into JSON:

    {
      "pallet", "call", "args",
      "signature": {"signer", "signature"} | None,
      "signedExtensions": {identifier: value},
      "nonce", "tip", "era", "hash", "isSigned", "version",
    }

Supported formats: v4 (signed / unsigned) and v5 (bare / general).
Signed extensions are decoded by name from the registry's declared list for
its spec version; nonce, tip and era are read from `CheckNonce`,
`ChargeTransactionPayment` / `ChargeAssetTxPayment` and `CheckMortality` /
`CheckEra` when present.
"""

from __future__ import annotations

from typing import Any

from parascope.core.errors import ScaleDecodeError, TrailingBytes
from parascope.decoding.decoder import decode_from
from parascope.decoding.projection import Projector
from parascope.decoding.scale import ScaleReader
from parascope.decoding.types import SemanticKind, TypeRegistry, VariantDef
from parascope.decoding.utils import blake2_256, camel_case, to_hex
from parascope.decoding.values import CompositeValue, DecodedValue, PrimitiveValue, VariantValue, raw_bytes

# ---- format constants ----

SIGNED_BIT = 0b1000_0000
GENERAL_BIT = 0b0100_0000
VERSION_MASK = 0b0011_1111

NONCE_EXTENSIONS = frozenset({"CheckNonce"})
TIP_EXTENSIONS = frozenset({"ChargeTransactionPayment", "ChargeAssetTxPayment"})
ERA_EXTENSIONS = frozenset({"CheckMortality", "CheckEra"})

IMMORTAL = {"immortal": "0x00"}


def decode_extrinsic(
    data: bytes,
    registry: TypeRegistry,
    *,
    ss58_prefix: int,
    with_docs: bool = False,
) -> dict[str, Any]:
    """Decode one length-prefixed extrinsic into JSON.

    Raises
    ------
    ScaleDecodeError
        Malformed bytes or an unsupported format version.
    """
    projector = Projector(registry, ss58_prefix)
    meta = registry.extrinsic
    r = ScaleReader(data)

    length = r.compact()
    if length != r.remaining():
        raise ScaleDecodeError(f"extrinsic length prefix {length} does not match {r.remaining()} bytes")

    version_byte = r.u8()
    version = version_byte & VERSION_MASK
    if version not in (4, 5):
        raise ScaleDecodeError(f"unsupported extrinsic format version {version}")

    is_signed = bool(version_byte & SIGNED_BIT)
    is_general = version == 5 and bool(version_byte & GENERAL_BIT) and not is_signed

    signature: dict[str, Any] | None = None
    extensions: dict[str, Any] = {}
    raw_extensions: dict[str, DecodedValue] = {}

    if is_signed:
        if meta.address_type is None or meta.signature_type is None:
            raise ScaleDecodeError("registry declares no address/signature types for signed extrinsics")
        address = decode_from(r, meta.address_type, registry)
        sig = decode_from(r, meta.signature_type, registry)
        signature = {
            "signer": projector.project(address),
            "signature": _signature_hex(sig),
        }
        raw_extensions = _read_extensions(r, registry)
    elif is_general:
        r.u8()  # extension version
        raw_extensions = _read_extensions(r, registry)

    for name, value in raw_extensions.items():
        extensions[name] = projector.project_contained(value)

    if meta.call_type is None:
        raise ScaleDecodeError("registry declares no call type")
    call = decode_from(r, meta.call_type, registry)
    if r.remaining():
        raise TrailingBytes(r.remaining())

    pallet_name, call_name, args, docs = _call_parts(call, projector, registry)

    out: dict[str, Any] = {
        "pallet": camel_case(pallet_name),
        "call": camel_case(call_name),
        "args": args,
        "signature": signature,
        "signedExtensions": extensions,
        "nonce": _nonce(raw_extensions),
        "tip": _tip(raw_extensions),
        "era": _era(raw_extensions, projector),
        "hash": to_hex(blake2_256(data)),
        "isSigned": is_signed,
        "version": version,
    }
    if with_docs:
        out["docs"] = "\n".join(docs)
    return out


# ---- signed part ----


def _signature_hex(sig: DecodedValue) -> str:
    # MultiSignature: drop the scheme discriminant, keep the signature bytes
    if isinstance(sig, VariantValue) and sig.children:
        data = raw_bytes(sig.children[0])
        if data is not None:
            return to_hex(data)
    data = raw_bytes(sig)
    if data is None:
        raise ScaleDecodeError(f"signature of type {sig.type_id} carries no bytes")
    return to_hex(data)


def _read_extensions(r: ScaleReader, registry: TypeRegistry) -> dict[str, DecodedValue]:
    return {ext.identifier: decode_from(r, ext.type_id, registry) for ext in registry.extrinsic.signed_extensions}


def _first_int(value: DecodedValue) -> int | None:
    """Depth-first first integer (nonce / tip wrappers nest compacts in composites)."""
    match value:
        case PrimitiveValue(value=bool()):
            return None
        case PrimitiveValue(value=int() as n):
            return n
        case CompositeValue(children=children) | VariantValue(children=children):
            for child in children:
                n = _first_int(child)
                if n is not None:
                    return n
    return None


def _nonce(extensions: dict[str, DecodedValue]) -> str | None:
    for name in NONCE_EXTENSIONS & extensions.keys():
        n = _first_int(extensions[name])
        return str(n) if n is not None else None
    return None


def _tip(extensions: dict[str, DecodedValue]) -> str | None:
    for name in TIP_EXTENSIONS & extensions.keys():
        n = _first_int(extensions[name])
        return str(n) if n is not None else None
    return None


def _era(extensions: dict[str, DecodedValue], projector: Projector) -> dict[str, Any]:
    for name in ERA_EXTENSIONS & extensions.keys():
        value = extensions[name]
        # CheckMortality(Era) wraps the era in a one-field composite
        while isinstance(value, CompositeValue) and len(value.children) == 1:
            value = value.children[0]
        return projector.project(value, SemanticKind.ERA)
    return dict(IMMORTAL)


# ---- call ----


def _call_parts(
    call: DecodedValue,
    projector: Projector,
    registry: TypeRegistry,
) -> tuple[str, str, dict[str, Any], tuple[str, ...]]:
    """Split `RuntimeCall::Pallet(PalletCall::name { .. })` into names, args and docs."""
    if not isinstance(call, VariantValue) or len(call.children) != 1:
        raise ScaleDecodeError("call does not have the outer pallet enum shape")
    inner = call.children[0]
    if not isinstance(inner, VariantValue):
        raise ScaleDecodeError(f"call of pallet {call.name} is not an enum")

    args: dict[str, Any] = {}
    for i, (name, child) in enumerate(zip(inner.names, inner.children)):
        args[name or str(i)] = projector.project_contained(child)

    docs: tuple[str, ...] = ()
    call_def = registry.resolve(inner.type_id).type_def
    if isinstance(call_def, VariantDef):
        arm = call_def.by_index(inner.index)
        if arm is not None:
            docs = arm.docs
    return call.name, inner.name, args, docs
