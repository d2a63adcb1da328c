"""Decoding utilities: hex, hashing, storage keys and SS58 addresses."""

from __future__ import annotations

from hashlib import blake2b

import xxhash
from eth_utils import decode_hex, encode_hex
from scalecodec.utils.ss58 import ss58_decode, ss58_encode


def to_hex(data: bytes) -> str:
    """Render bytes as a `0x`-prefixed lowercase hex string."""
    return encode_hex(data)


def from_hex(value: str) -> bytes:
    """Parse a hex string, with or without `0x` prefix."""
    return bytes(decode_hex(value))


def lower_first(name: str) -> str:
    """`TransferKeepAlive` -> `transferKeepAlive`."""
    return name[:1].lower() + name[1:] if name else name


def camel_case(name: str) -> str:
    """`transfer_keep_alive` -> `transferKeepAlive`; camel input is returned lower-first."""
    if "_" not in name:
        return lower_first(name)
    parts = [p for p in name.split("_") if p]
    if not parts:
        return name
    return parts[0].lower() + "".join(p[:1].upper() + p[1:] for p in parts[1:])


# ---- hashing ----


def blake2_256(data: bytes) -> bytes:
    return blake2b(data, digest_size=32).digest()


def blake2_128(data: bytes) -> bytes:
    return blake2b(data, digest_size=16).digest()


def twox64(data: bytes, seed: int = 0) -> bytes:
    # xxhash digests are big-endian; storage keys use the little-endian value
    return xxhash.xxh64(data, seed=seed).digest()[::-1]


def twox128(data: bytes) -> bytes:
    return twox64(data, 0) + twox64(data, 1)


def twox256(data: bytes) -> bytes:
    return twox128(data) + twox64(data, 2) + twox64(data, 3)


def storage_key(pallet: str, entry: str, *keys: bytes, hashers: tuple[str, ...] = ()) -> str:
    """Build a hex storage key: `twox128(pallet) ++ twox128(entry) ++ hashed keys`."""
    out = twox128(pallet.encode()) + twox128(entry.encode())
    for key, hasher in zip(keys, hashers):
        out += hash_key(key, hasher)
    return to_hex(out)


def hash_key(key: bytes, hasher: str) -> bytes:
    match hasher:
        case "Blake2_128":
            return blake2_128(key)
        case "Blake2_256":
            return blake2_256(key)
        case "Blake2_128Concat":
            return blake2_128(key) + key
        case "Twox128":
            return twox128(key)
        case "Twox256":
            return twox256(key)
        case "Twox64Concat":
            return twox64(key) + key
        case "Identity":
            return key
    raise ValueError(f"unsupported storage hasher {hasher!r}")


# ---- SS58 ----


def to_ss58(account: bytes, prefix: int) -> str:
    """SS58-encode a 32-byte public key / account id."""
    return ss58_encode(account, ss58_format=prefix)


def from_ss58(address: str) -> bytes:
    """Decode an SS58 address back to its raw account bytes."""
    return bytes.fromhex(ss58_decode(address))
