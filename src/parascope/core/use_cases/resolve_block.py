from __future__ import annotations

import re

from parascope.core.config import MapperConfig
from parascope.core.errors import BlockAmbiguous, BlockIdentifierError, BlockNotFound
from parascope.core.interfaces import ChainHandle, IStateProvider
from parascope.core.logging_config import get_logger
from parascope.core.models import (
    BlockHash,
    BlockIdentifier,
    BlockNumber,
    BlockSnapshot,
    ChainBlockIdentifier,
    HeadBlock,
    LatestBlock,
    RelayBlockRef,
    ResolutionState,
    RpcHeader,
)
from parascope.decoding.registry import MetadataRegistryCache

log = get_logger(__name__)

_HASH_RE = re.compile(r"^0x[0-9a-fA-F]{64}$")


# ---------------------------------------------------------------------------
# Identifier parsing
# ---------------------------------------------------------------------------


def parse_block_identifier(raw: str | int | None, *, use_rc_block: bool = False) -> BlockIdentifier:
    """
    Parse user input into a `BlockIdentifier`.

    Accepted forms: unsigned integer, `0x`-prefixed 32-byte hash, `head`
    (finalized head, also the default) and `latest` (best head). With
    `use_rc_block` the identifier names a relay chain block.
    """
    ident: ChainBlockIdentifier
    if raw is None:
        ident = HeadBlock()
    elif isinstance(raw, int) and not isinstance(raw, bool):
        if raw < 0:
            raise BlockIdentifierError(f"block number must be non-negative, got {raw}")
        ident = BlockNumber(raw)
    elif isinstance(raw, str):
        s = raw.strip()
        if s.lower() == "head":
            ident = HeadBlock()
        elif s.lower() == "latest":
            ident = LatestBlock()
        elif s.isdigit():
            ident = BlockNumber(int(s))
        elif _HASH_RE.match(s):
            ident = BlockHash(s.lower())
        else:
            raise BlockIdentifierError(
                f"cannot parse block identifier {raw!r}: expected a block number, a 0x-prefixed 32-byte hash or 'head'"
            )
    else:
        raise BlockIdentifierError(f"unsupported block identifier type {type(raw).__name__}")
    return RelayBlockRef(ident) if use_rc_block else ident


# ---------------------------------------------------------------------------
# BlockResolver
# ---------------------------------------------------------------------------


class BlockResolver:
    """
    Resolve one chain-level identifier to a `BlockSnapshot`.

    States: UNRESOLVED -> RESOLVING_IDENTIFIER -> RESOLVED | NOT_FOUND.
    Head and latest are each captured once per resolution; every snapshot
    carries the spec version in force at its block.
    """

    def __init__(self, chain_id: str, provider: IStateProvider) -> None:
        self.chain_id = chain_id
        self.provider = provider
        self.state = ResolutionState.UNRESOLVED

    async def resolve(self, identifier: ChainBlockIdentifier) -> BlockSnapshot:
        self.state = ResolutionState.RESOLVING_IDENTIFIER
        try:
            block_hash, header = await self._locate(identifier)
        except BlockNotFound:
            self.state = ResolutionState.NOT_FOUND
            log.info("block_not_found", chain_id=self.chain_id, identifier=repr(identifier))
            raise
        except BaseException:
            self.state = ResolutionState.UNRESOLVED
            raise

        version = await self.provider.get_runtime_version(block_hash)
        self.state = ResolutionState.RESOLVED
        return BlockSnapshot(
            chain_id=self.chain_id,
            block_number=header.number,
            block_hash=block_hash,
            spec_version=version.specVersion,
            parent_hash=header.parentHash.lower(),
        )

    async def _locate(self, identifier: ChainBlockIdentifier) -> tuple[str, RpcHeader]:
        match identifier:
            case BlockNumber(number=number):
                block_hash = await self.provider.get_block_hash(number)
                if block_hash is None:
                    raise BlockNotFound(
                        f"block {number} is above the chain tip of {self.chain_id}", identifier=identifier
                    )
                return block_hash.lower(), await self._header(block_hash, identifier)
            case BlockHash(hash=block_hash):
                return block_hash.lower(), await self._header(block_hash, identifier)
            case HeadBlock():
                block_hash = await self.provider.get_finalized_head()
                return block_hash.lower(), await self._header(block_hash, identifier)
            case LatestBlock():
                header = await self.provider.get_header(None)
                if header is None:
                    raise BlockNotFound(f"{self.chain_id} has no best head", identifier=identifier)
                block_hash = await self.provider.get_block_hash(header.number)
                if block_hash is None:
                    raise BlockNotFound(f"best head {header.number} of {self.chain_id} vanished", identifier=identifier)
                # the best head may move between calls; every field comes from the hash
                return block_hash.lower(), await self._header(block_hash, identifier)
        raise BlockIdentifierError(f"unsupported identifier {identifier!r}")

    async def _header(self, block_hash: str, identifier: ChainBlockIdentifier) -> RpcHeader:
        header = await self.provider.get_header(block_hash)
        if header is None:
            raise BlockNotFound(f"block {block_hash} not found on {self.chain_id}", identifier=identifier)
        return header


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


async def resolve_block(
    identifier: BlockIdentifier,
    *,
    chain: ChainHandle,
    relay: ChainHandle | None = None,
    registries: MetadataRegistryCache | None = None,
    mapper: MapperConfig | None = None,
) -> list[BlockSnapshot]:
    """
    Resolve an identifier to one or more snapshots of `chain`.

    `RelayBlockRef` identifiers are mapped through `relay` (and need the
    registry cache to read relay events); the result may then be empty or
    hold several parachain blocks.
    """
    if isinstance(identifier, RelayBlockRef):
        from parascope.core.use_cases.map_relay import map_relay_to_parachain

        if relay is None or registries is None:
            raise BlockIdentifierError(f"{chain.chain_id} has no relay chain configured for relay block references")
        return await map_relay_to_parachain(
            identifier.relay,
            relay=relay,
            parachain=chain,
            registries=registries,
            config=mapper or MapperConfig(),
        )
    return [await BlockResolver(chain.chain_id, chain.provider).resolve(identifier)]


async def resolve_single(
    identifier: BlockIdentifier,
    *,
    chain: ChainHandle,
    relay: ChainHandle | None = None,
    registries: MetadataRegistryCache | None = None,
    mapper: MapperConfig | None = None,
) -> BlockSnapshot:
    """Resolve to exactly one snapshot; several is `BlockAmbiguous`, none `BlockNotFound`."""
    snapshots = await resolve_block(identifier, chain=chain, relay=relay, registries=registries, mapper=mapper)
    if not snapshots:
        raise BlockNotFound(f"{identifier!r} names no block of {chain.chain_id}", identifier=identifier)
    if len(snapshots) > 1:
        raise BlockAmbiguous(
            f"{identifier!r} resolves to {len(snapshots)} blocks of {chain.chain_id}", identifier=identifier
        )
    return snapshots[0]
