from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from parascope.core.models import RpcHeader, RpcSignedBlock, RuntimeVersion
from parascope.decoding.types import TypeRegistry


# ---------------------------------------------------------------------------
# IStateProvider
# ---------------------------------------------------------------------------

@runtime_checkable
class IStateProvider(Protocol):
    """
    Chain-scoped source of raw chain data.

    Domain expectations:
    - Everything is addressed by block hash (lowercase `0x` hex).
    - It returns raw bytes / node JSON only; decoding is never delegated to it.
    - Retries, reconnection and pooling are the implementation's concern.
    - Failures surface as `ProviderError`.
    """

    async def get_header(self, block_hash: str | None = None) -> RpcHeader | None:
        """
        Return the header at `block_hash`, or the best head when None.

        Returns None when the node does not know the hash.
        """
        ...

    async def get_block(self, block_hash: str) -> RpcSignedBlock | None:
        """Return header plus raw extrinsic hex strings, or None if unknown."""
        ...

    async def get_block_hash(self, number: int) -> str | None:
        """Return the canonical hash at `number`, or None above the chain tip."""
        ...

    async def get_finalized_head(self) -> str:
        """Return the hash of the latest finalized block."""
        ...

    async def get_storage(self, key: str, block_hash: str) -> bytes | None:
        """Return the raw storage value at `key`, or None when unset."""
        ...

    async def get_metadata(self, block_hash: str) -> bytes:
        """
        Return raw runtime metadata bytes at `block_hash`.

        Implementations:
        - JSON-RPC `state_getMetadata`
        - Fixture files for testing
        """
        ...

    async def get_runtime_version(self, block_hash: str) -> RuntimeVersion:
        """Return the runtime version (spec version) in force at `block_hash`."""
        ...

    def subscribe_new_heads(self) -> AsyncIterator[RpcHeader]:
        """Yield best-head headers as they change."""
        ...

    def subscribe_finalized_heads(self) -> AsyncIterator[RpcHeader]:
        """Yield finalized headers as they change."""
        ...


@dataclass(frozen=True)
class ChainHandle:
    """A provider bound to the chain it serves."""

    chain_id: str
    provider: IStateProvider
    ss58_prefix: int | None = None  # None: read System.SS58Prefix from metadata

    def ss58_for(self, registry: TypeRegistry) -> int:
        """Configured SS58 prefix, else the runtime's `System.SS58Prefix`."""
        if self.ss58_prefix is not None:
            return self.ss58_prefix
        return registry.ss58_prefix()
