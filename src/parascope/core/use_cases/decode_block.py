from __future__ import annotations

import asyncio
from typing import Any

from parascope.core.config import DecodeConfig
from parascope.core.errors import BlockNotFound, ProjectionError, ScaleDecodeError, error_marker
from parascope.core.interfaces import ChainHandle
from parascope.core.logging_config import get_logger
from parascope.core.models import BlockQueryParams, BlockSnapshot, RcCorrelation
from parascope.core.use_cases.map_relay import read_timestamp
from parascope.decoding.digest import decode_digest_log, derive_author
from parascope.decoding.events import categorize_events, decode_event_records, fee_from_events
from parascope.decoding.evm import apply_evm_format
from parascope.decoding.extrinsics import decode_extrinsic
from parascope.decoding.registry import MetadataRegistryCache
from parascope.decoding.types import TypeRegistry
from parascope.decoding.utils import from_hex, storage_key
from parascope.decoding.xcm import extract_xcm_messages

log = get_logger(__name__)

# Per-item failures that are contained as error markers in non-strict mode.
ContainedErrors = (ScaleDecodeError, ProjectionError)


# ---------------------------------------------------------------------------
# Per-item workers
# ---------------------------------------------------------------------------


async def _decode_extrinsics(
    raw_extrinsics: list[str],
    registry: TypeRegistry,
    *,
    ss58_prefix: int,
    with_docs: bool,
    config: DecodeConfig,
) -> list[dict[str, Any]]:
    """Decode extrinsics concurrently (bounded), preserving block order."""
    sem = asyncio.Semaphore(config.concurrency)

    async def _one(index: int, ext_hex: str) -> dict[str, Any]:
        async with sem:
            try:
                return await asyncio.to_thread(
                    decode_extrinsic,
                    from_hex(ext_hex),
                    registry,
                    ss58_prefix=ss58_prefix,
                    with_docs=with_docs,
                )
            except ContainedErrors as exc:
                if config.strict:
                    raise
                log.warning(
                    "extrinsic_decode_failed",
                    chain_id=registry.chain_id,
                    spec_version=registry.spec_version,
                    index=index,
                    error=str(exc),
                )
                return {"index": index, **error_marker(exc)}

    tasks = [asyncio.create_task(_one(i, x)) for i, x in enumerate(raw_extrinsics)]
    return list(await asyncio.gather(*tasks))


def _decode_logs(logs: list[str], *, strict: bool) -> list[dict[str, Any]]:
    out: list[dict[str, Any]] = []
    for i, item in enumerate(logs):
        try:
            out.append(decode_digest_log(item))
        except ScaleDecodeError as exc:
            if strict:
                raise
            log.warning("digest_log_decode_failed", index=i, error=str(exc))
            out.append({"index": i, **error_marker(exc)})
    return out


async def _is_finalized(chain: ChainHandle, snapshot: BlockSnapshot) -> bool:
    provider = chain.provider
    finalized_hash = await provider.get_finalized_head()
    finalized = await provider.get_header(finalized_hash)
    if finalized is None or snapshot.block_number > finalized.number:
        return False
    canonical = await provider.get_block_hash(snapshot.block_number)
    return canonical is not None and canonical.lower() == snapshot.block_hash


# ---------------------------------------------------------------------------
# Use case
# ---------------------------------------------------------------------------


async def decode_block(
    snapshot: BlockSnapshot,
    *,
    chain: ChainHandle,
    registries: MetadataRegistryCache,
    params: BlockQueryParams | None = None,
    config: DecodeConfig | None = None,
) -> dict[str, Any]:
    """
    Decode one resolved block into JSON.

    The registry is selected by the snapshot's spec version. Extrinsics fan
    out as bounded tasks; a malformed extrinsic, event or log becomes an
    error marker in place unless `config.strict` is set.

    Raises
    ------
    BlockNotFound
        The provider no longer knows the block body.
    MetadataFetchError / MetadataDecodeError
        The registry for the snapshot's runtime cannot be built.
    ProviderError
        Transport failures.
    """
    params = params or BlockQueryParams()
    config = config or DecodeConfig()
    provider = chain.provider

    registry = await registries.get_or_build(chain.chain_id, snapshot.spec_version, at=snapshot.block_hash)
    registry.ensure_matches(snapshot.chain_id, snapshot.spec_version)
    ss58_prefix = chain.ss58_for(registry)

    signed = await provider.get_block(snapshot.block_hash)
    if signed is None:
        raise BlockNotFound(f"block body {snapshot.block_hash} not found on {chain.chain_id}")
    header = signed.block.header

    extrinsics = await _decode_extrinsics(
        signed.block.extrinsics,
        registry,
        ss58_prefix=ss58_prefix,
        with_docs=params.extrinsicDocs,
        config=config,
    )

    raw_events = await provider.get_storage(storage_key("System", "Events"), snapshot.block_hash)
    events: list[dict[str, Any]] = []
    if raw_events:
        events = await asyncio.to_thread(
            decode_event_records,
            raw_events,
            registry,
            ss58_prefix=ss58_prefix,
            with_docs=params.eventDocs,
            strict=config.strict,
        )
    grouped = categorize_events(events, len(extrinsics))

    for i, ext in enumerate(extrinsics):
        ext_events = grouped.per_extrinsic[i]
        outcome = grouped.outcomes[i]
        ext["events"] = ext_events
        if "error" in ext:
            continue
        ext["success"] = outcome.success
        ext["paysFee"] = outcome.pays_fee if ext.get("isSigned") else False
        info: dict[str, Any] = {}
        if not params.noFees and ext.get("isSigned"):
            info = fee_from_events(ext_events) or {}
        ext["info"] = info

    if params.useEvmFormat and registry.pallet("Revive") is not None:
        apply_evm_format(extrinsics)

    block: dict[str, Any] = {
        "number": str(snapshot.block_number),
        "hash": snapshot.block_hash,
        "parentHash": snapshot.parent_hash,
        "stateRoot": header.stateRoot,
        "extrinsicsRoot": header.extrinsicsRoot,
        "specVersion": str(snapshot.spec_version),
        "logs": _decode_logs(header.digest.logs, strict=config.strict),
        "onInitialize": {"events": grouped.on_initialize},
        "extrinsics": extrinsics,
        "onFinalize": {"events": grouped.on_finalize},
        "eventDecodeErrors": grouped.errors,
    }

    author = await derive_author(header.digest.logs, provider, snapshot.block_hash, ss58_prefix)
    if author is not None:
        block["authorId"] = author
    if params.finalized:
        block["finalized"] = await _is_finalized(chain, snapshot)
    if params.decodeXcmMsgs:
        block["decodedXcmMsgs"] = extract_xcm_messages(
            extrinsics, registry, ss58_prefix=ss58_prefix, para_id=params.paraId
        )

    log.info(
        "block_decoded",
        chain_id=chain.chain_id,
        number=snapshot.block_number,
        spec_version=snapshot.spec_version,
        extrinsics=len(extrinsics),
        events=len(events),
    )
    return block


async def decode_rc_blocks(
    correlation: RcCorrelation,
    *,
    chain: ChainHandle,
    registries: MetadataRegistryCache,
    params: BlockQueryParams | None = None,
    config: DecodeConfig | None = None,
) -> list[dict[str, Any]]:
    """Decode every parachain block of a relay correlation, tagged with relay fields."""
    out: list[dict[str, Any]] = []
    for snapshot in correlation.parachain_blocks:
        block = await decode_block(snapshot, chain=chain, registries=registries, params=params, config=config)
        timestamp = await read_timestamp(chain, snapshot.block_hash)
        block["rcBlockHash"] = correlation.relay.block_hash
        block["rcBlockNumber"] = str(correlation.relay.block_number)
        block["ahTimestamp"] = str(timestamp) if timestamp is not None else None
        out.append(block)
    return out
