from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from parascope.core.config import MapperConfig
from parascope.core.errors import BlockNotFound, ScaleDecodeError
from parascope.core.interfaces import ChainHandle
from parascope.core.logging_config import get_logger
from parascope.core.models import BlockHash, BlockNumber, BlockSnapshot, ChainBlockIdentifier, RcCorrelation
from parascope.core.use_cases.resolve_block import BlockResolver
from parascope.decoding.events import decode_event_records
from parascope.decoding.registry import MetadataRegistryCache
from parascope.decoding.scale import ScaleReader
from parascope.decoding.utils import blake2_256, from_hex, storage_key, to_hex

log = get_logger(__name__)


# ---------------------------------------------------------------------------
# Attested parachain heads
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class AttestedHead:
    """A parachain head included by a relay block."""

    block_hash: str
    number_hint: int | None  # decoded from the head data; None if unreadable


def head_from_head_data(head_data: bytes) -> AttestedHead:
    """Hash the included header and read its number (compact after the parent hash)."""
    number: int | None
    try:
        r = ScaleReader(head_data)
        r.read(32)
        number = r.compact()
    except ScaleDecodeError:
        number = None
    return AttestedHead(block_hash=to_hex(blake2_256(head_data)), number_hint=number)


def _para_id_of(receipt: Any) -> str | None:
    if not isinstance(receipt, dict):
        return None
    descriptor = receipt.get("descriptor")
    if not isinstance(descriptor, dict):
        return None
    para_id = descriptor.get("para_id", descriptor.get("paraId"))
    return None if para_id is None else str(para_id)


def attested_heads(events: list[dict[str, Any]], para_id: int) -> list[AttestedHead]:
    """`ParaInclusion.CandidateIncluded(receipt, head_data, core, group)` heads for `para_id`."""
    heads: list[AttestedHead] = []
    for event in events:
        if event.get("pallet") != "paraInclusion" or event.get("variant") != "CandidateIncluded":
            continue
        data = event.get("data", [])
        if len(data) < 2 or _para_id_of(data[0]) != str(para_id):
            continue
        head_data = data[1]
        if isinstance(head_data, str) and head_data.startswith("0x"):
            heads.append(head_from_head_data(from_hex(head_data)))
    return heads


# ---------------------------------------------------------------------------
# Use case
# ---------------------------------------------------------------------------


async def read_timestamp(chain: ChainHandle, block_hash: str) -> int | None:
    """`Timestamp.Now` (ms) at `block_hash`, or None when unset."""
    raw = await chain.provider.get_storage(storage_key("Timestamp", "Now"), block_hash)
    if not raw or len(raw) < 8:
        return None
    return int.from_bytes(raw[:8], "little")


async def _scan_window(
    parachain: ChainHandle,
    head: AttestedHead,
    window: int,
) -> BlockSnapshot | None:
    """Find the canonical parachain block whose hash equals `head.block_hash`.

    With a number hint only that height can match (the header commits to its
    number). Without one, `window` heights ending at the best head are scanned.
    """
    provider = parachain.provider
    if head.number_hint is not None:
        heights = [head.number_hint]
    else:
        best = await provider.get_header(None)
        if best is None:
            return None
        heights = list(range(best.number, max(best.number - window, -1), -1))

    for height in heights[:window]:
        canonical = await provider.get_block_hash(height)
        if canonical is not None and canonical.lower() == head.block_hash:
            return await BlockResolver(parachain.chain_id, provider).resolve(BlockHash(head.block_hash))
    return None


async def correlate_relay_block(
    relay_block: int | ChainBlockIdentifier,
    *,
    relay: ChainHandle,
    parachain: ChainHandle,
    registries: MetadataRegistryCache,
    config: MapperConfig = MapperConfig(),
) -> RcCorrelation:
    """
    Correlate a relay block with the parachain blocks it attests.

    Raises
    ------
    BlockResolveError
        The relay block itself cannot be resolved. No other chain's block is
        ever substituted.
    ScaleDecodeError
        A relay event record cannot be decoded.
    """
    ident = BlockNumber(relay_block) if isinstance(relay_block, int) else relay_block
    relay_snapshot = await BlockResolver(relay.chain_id, relay.provider).resolve(ident)

    registry = await registries.get_or_build(
        relay.chain_id, relay_snapshot.spec_version, at=relay_snapshot.block_hash
    )
    registry.ensure_matches(relay.chain_id, relay_snapshot.spec_version)

    timestamp = await read_timestamp(relay, relay_snapshot.block_hash)
    raw_events = await relay.provider.get_storage(storage_key("System", "Events"), relay_snapshot.block_hash)
    # undecodable relay events raise; they never map to an empty result
    events = (
        decode_event_records(raw_events, registry, ss58_prefix=relay.ss58_for(registry), strict=True)
        if raw_events
        else []
    )

    found: dict[str, BlockSnapshot] = {}
    for head in attested_heads(events, config.para_id):
        try:
            snapshot = await _scan_window(parachain, head, config.window)
        except BlockNotFound:
            snapshot = None
        if snapshot is not None:
            found[snapshot.block_hash] = snapshot

    blocks = tuple(sorted(found.values(), key=lambda s: s.block_number))
    log.info(
        "relay_block_mapped",
        relay_chain=relay.chain_id,
        relay_block=relay_snapshot.block_number,
        para_id=config.para_id,
        parachain_blocks=[s.block_number for s in blocks],
    )
    return RcCorrelation(relay=relay_snapshot, parachain_blocks=blocks, relay_timestamp=timestamp)


async def map_relay_to_parachain(
    relay_block: int | ChainBlockIdentifier,
    *,
    relay: ChainHandle,
    parachain: ChainHandle,
    registries: MetadataRegistryCache,
    config: MapperConfig = MapperConfig(),
) -> list[BlockSnapshot]:
    """Ordered, possibly empty list of parachain blocks attested by a relay block."""
    correlation = await correlate_relay_block(
        relay_block, relay=relay, parachain=parachain, registries=registries, config=config
    )
    return list(correlation.parachain_blocks)
