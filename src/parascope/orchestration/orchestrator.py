"""Wiring layer: configuration -> providers, registry cache and use cases.

This module provides two layers:

1) `CoreServices` plus the request functions (`fetch_block`,
   `resolve_identifier`, `correlate`):
   - Depend ONLY on `IStateProvider` handles and the registry cache.
   - Do NOT instantiate transports or manage their lifecycle.

2) `open_services(...)` (convenience wrapper):
   - Wires concrete `SubstrateRPC` clients from a `CoreConfig` for typical
     CLI / script usage and closes them on exit.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any

from parascope.clients.rpc import SubstrateRPC
from parascope.core.config import ChainConfig, CoreConfig
from parascope.core.errors import BlockIdentifierError
from parascope.core.interfaces import ChainHandle, IStateProvider
from parascope.core.models import BlockQueryParams, BlockSnapshot, RelayBlockRef
from parascope.core.use_cases.decode_block import decode_block, decode_rc_blocks
from parascope.core.use_cases.map_relay import correlate_relay_block
from parascope.core.use_cases.resolve_block import parse_block_identifier, resolve_block, resolve_single
from parascope.decoding.registry import MetadataRegistryCache


# ---------------------------------------------------------------------------
# Services container
# ---------------------------------------------------------------------------


@dataclass
class CoreServices:
    """Chain handles plus the process-wide registry cache."""

    config: CoreConfig
    relay: ChainHandle
    asset_hub: ChainHandle | None
    registries: MetadataRegistryCache

    def chain(self, chain_id: str | None = None) -> ChainHandle:
        """Handle for `chain_id`; the default is Asset Hub when configured, else the relay."""
        if chain_id is None:
            return self.asset_hub or self.relay
        for handle in (self.relay, self.asset_hub):
            if handle is not None and handle.chain_id == chain_id:
                return handle
        raise BlockIdentifierError(f"unknown chain {chain_id!r}")

    def require_asset_hub(self) -> ChainHandle:
        if self.asset_hub is None:
            raise BlockIdentifierError("relay block references need an Asset Hub chain configured")
        return self.asset_hub


def build_services(config: CoreConfig, providers: Mapping[str, IStateProvider]) -> CoreServices:
    """Bind already-constructed providers to the configured chains."""

    def _handle(chain: ChainConfig) -> ChainHandle:
        return ChainHandle(chain.chain_id, providers[chain.chain_id], ss58_prefix=chain.ss58_prefix)

    relay = _handle(config.relay)
    asset_hub = _handle(config.asset_hub) if config.asset_hub is not None else None
    registries = MetadataRegistryCache(providers, max_entries=config.cache.max_entries)
    return CoreServices(config=config, relay=relay, asset_hub=asset_hub, registries=registries)


@asynccontextmanager
async def open_services(config: CoreConfig) -> AsyncIterator[CoreServices]:
    """Create one `SubstrateRPC` per configured chain and close them on exit."""
    chains = [c for c in (config.relay, config.asset_hub) if c is not None]
    clients = {
        c.chain_id: SubstrateRPC(c.rpc_url, timeout_s=c.timeout_s, max_connections=c.max_connections)
        for c in chains
    }
    try:
        yield build_services(config, clients)
    finally:
        for client in clients.values():
            await client.aclose()


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


def snapshot_json(snapshot: BlockSnapshot) -> dict[str, Any]:
    return {
        "chainId": snapshot.chain_id,
        "number": str(snapshot.block_number),
        "hash": snapshot.block_hash,
        "parentHash": snapshot.parent_hash,
        "specVersion": str(snapshot.spec_version),
    }


async def fetch_block(
    services: CoreServices,
    params: BlockQueryParams,
    *,
    chain_id: str | None = None,
) -> dict[str, Any] | list[dict[str, Any]]:
    """
    Decode the block named by `params.at`.

    With `useRcBlock` the identifier names a relay block and the result is the
    (possibly empty) list of Asset Hub blocks it attests, each tagged with the
    relay fields. Otherwise a single block JSON object is returned.
    """
    identifier = parse_block_identifier(params.at, use_rc_block=params.useRcBlock)
    if isinstance(identifier, RelayBlockRef):
        correlation = await correlate_relay_block(
            identifier.relay,
            relay=services.relay,
            parachain=services.require_asset_hub(),
            registries=services.registries,
            config=services.config.mapper,
        )
        return await decode_rc_blocks(
            correlation,
            chain=services.require_asset_hub(),
            registries=services.registries,
            params=params,
            config=services.config.decode,
        )

    chain = services.chain(chain_id)
    snapshot = await resolve_single(identifier, chain=chain)
    return await decode_block(
        snapshot,
        chain=chain,
        registries=services.registries,
        params=params,
        config=services.config.decode,
    )


async def resolve_identifier(
    services: CoreServices,
    raw: str | None,
    *,
    use_rc_block: bool = False,
    chain_id: str | None = None,
) -> list[dict[str, Any]]:
    """Resolve user input to snapshot JSON objects without decoding bodies."""
    identifier = parse_block_identifier(raw, use_rc_block=use_rc_block)
    if isinstance(identifier, RelayBlockRef):
        chain = services.require_asset_hub()
    else:
        chain = services.chain(chain_id)
    snapshots = await resolve_block(
        identifier,
        chain=chain,
        relay=services.relay,
        registries=services.registries,
        mapper=services.config.mapper,
    )
    return [snapshot_json(s) for s in snapshots]


async def correlate(services: CoreServices, raw: str | None) -> dict[str, Any]:
    """Relay block summary with the Asset Hub blocks it attests."""
    identifier = parse_block_identifier(raw)
    correlation = await correlate_relay_block(
        identifier,
        relay=services.relay,
        parachain=services.require_asset_hub(),
        registries=services.registries,
        config=services.config.mapper,
    )
    return {
        "relay": snapshot_json(correlation.relay),
        "relayTimestamp": None if correlation.relay_timestamp is None else str(correlation.relay_timestamp),
        "paraId": str(services.config.mapper.para_id),
        "parachainBlocks": [snapshot_json(s) for s in correlation.parachain_blocks],
    }
