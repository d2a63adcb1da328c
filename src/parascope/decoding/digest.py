"""Header digest logs and block author derivation.

Digest items are decoded structurally (their layout is fixed, not runtime
defined). The author is derived from the first pre-runtime item whose engine
is known:
- BABE: the authority index in the pre-digest selects from `Session.Validators`
- Aura: the slot modulo the authority count selects from `Aura.Authorities`
  (falling back to `Session.Validators`)
- PoW: the consensus payload is the author account itself
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from parascope.core.errors import ScaleDecodeError
from parascope.core.interfaces import IStateProvider
from parascope.core.logging_config import get_logger
from parascope.decoding.scale import ScaleReader
from parascope.decoding.utils import from_hex, storage_key, to_hex, to_ss58

log = get_logger(__name__)

DIGEST_ITEM_TYPES = {
    0: "Other",
    4: "Consensus",
    5: "Seal",
    6: "PreRuntime",
    8: "RuntimeEnvironmentUpdated",
}
_ENGINE_ITEMS = frozenset({4, 5, 6})

BABE_ENGINE = b"BABE"
AURA_ENGINE = b"aura"
POW_ENGINE = b"pow_"


def _engine_name(engine: bytes) -> str:
    try:
        text = engine.decode("ascii")
    except UnicodeDecodeError:
        return to_hex(engine)
    return text if text.isprintable() else to_hex(engine)


def decode_digest_log(item: bytes | str) -> dict[str, Any]:
    """Decode one encoded digest item into `{type, index, engine, data}`.

    Raises
    ------
    ScaleDecodeError
        Unknown item discriminant or truncated payload.
    """
    raw = from_hex(item) if isinstance(item, str) else item
    r = ScaleReader(raw)
    index = r.u8()
    kind = DIGEST_ITEM_TYPES.get(index)
    if kind is None:
        raise ScaleDecodeError(f"unknown digest item discriminant {index}")

    engine: str | None = None
    data: str | None = None
    if index in _ENGINE_ITEMS:
        engine = _engine_name(r.read(4))
        data = to_hex(r.bytes_vec())
    elif index == 0:
        data = to_hex(r.bytes_vec())
    return {"type": kind, "index": str(index), "engine": engine, "data": data}


def _engine_payload(item: bytes) -> tuple[int, bytes, bytes] | None:
    r = ScaleReader(item)
    try:
        index = r.u8()
        if index not in _ENGINE_ITEMS:
            return None
        return index, r.read(4), r.bytes_vec()
    except ScaleDecodeError:
        return None


def _decode_accounts(raw: bytes) -> list[bytes]:
    r = ScaleReader(raw)
    return r.vec(lambda rr: rr.read(32))


async def _read_accounts(provider: IStateProvider, block_hash: str, pallet: str, entry: str) -> list[bytes]:
    raw = await provider.get_storage(storage_key(pallet, entry), block_hash)
    if not raw:
        return []
    try:
        return _decode_accounts(raw)
    except ScaleDecodeError as exc:
        log.warning("authority_set_decode_failed", pallet=pallet, entry=entry, error=str(exc))
        return []


def babe_authority_index(payload: bytes) -> int | None:
    """Authority index of a BABE pre-digest (primary, secondary plain or VRF)."""
    r = ScaleReader(payload)
    try:
        kind = r.u8()
        if kind not in (1, 2, 3):
            return None
        return r.u32()
    except ScaleDecodeError:
        return None


def aura_slot(payload: bytes) -> int | None:
    if len(payload) >= 8:
        return int.from_bytes(payload[:8], "little")
    try:
        return ScaleReader(payload).compact()
    except ScaleDecodeError:
        return None


async def derive_author(
    logs: Sequence[bytes | str],
    provider: IStateProvider,
    block_hash: str,
    ss58_prefix: int,
) -> str | None:
    """Return the block author's SS58 address, or None when not derivable."""
    items = [from_hex(x) if isinstance(x, str) else x for x in logs]
    parsed = [p for p in (_engine_payload(i) for i in items) if p is not None]

    for index, engine, payload in parsed:
        if index != 6:
            continue
        if engine == BABE_ENGINE:
            authority = babe_authority_index(payload)
            if authority is None:
                return None
            validators = await _read_accounts(provider, block_hash, "Session", "Validators")
            if authority < len(validators):
                return to_ss58(validators[authority], ss58_prefix)
            return None
        if engine == AURA_ENGINE:
            slot = aura_slot(payload)
            if slot is None:
                return None
            authorities = await _read_accounts(provider, block_hash, "Aura", "Authorities")
            if not authorities:
                authorities = await _read_accounts(provider, block_hash, "Session", "Validators")
            if not authorities:
                return None
            return to_ss58(authorities[slot % len(authorities)], ss58_prefix)

    for index, engine, payload in parsed:
        if index == 4 and engine == POW_ENGINE and len(payload) >= 32:
            return to_ss58(payload[:32], ss58_prefix)
    return None
