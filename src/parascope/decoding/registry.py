"""Process-wide cache of type registries keyed by `(chain_id, spec_version)`.

This module exposes:
- `MetadataRegistryCache.get_or_build(chain_id, spec_version, at=...)`:
  return the cached registry or build it from the chain's raw metadata
- single-flight per key: concurrent callers share one in-flight build
- optional LRU bound on the number of cached registries

The cache is the only mutable state shared across requests. Built registries
are immutable and handed out without locking.
"""

from __future__ import annotations

import asyncio
from collections import OrderedDict
from collections.abc import Mapping

from parascope.core.errors import MetadataFetchError, ProviderError
from parascope.core.interfaces import IStateProvider
from parascope.core.logging_config import get_logger
from parascope.decoding.metadata import build_registry
from parascope.decoding.types import TypeRegistry

log = get_logger(__name__)

RegistryKey = tuple[str, int]


class MetadataRegistryCache:
    """Lazily populated, single-flight registry cache.

    Parameters
    ----------
    providers : Mapping[str, IStateProvider]
        Chain-scoped providers keyed by chain id, used to fetch raw metadata.
    max_entries : int | None
        LRU bound; None keeps every registry for the process lifetime.
    """

    def __init__(self, providers: Mapping[str, IStateProvider], *, max_entries: int | None = 32) -> None:
        self._providers = dict(providers)
        self._max_entries = max_entries
        self._entries: OrderedDict[RegistryKey, TypeRegistry] = OrderedDict()
        self._inflight: dict[RegistryKey, asyncio.Task[TypeRegistry]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def get(self, chain_id: str, spec_version: int) -> TypeRegistry | None:
        """Return a cached registry without building it."""
        key = (chain_id, spec_version)
        registry = self._entries.get(key)
        if registry is not None:
            self._entries.move_to_end(key)
        return registry

    async def get_or_build(self, chain_id: str, spec_version: int, *, at: str) -> TypeRegistry:
        """Return the registry for `(chain_id, spec_version)`, building it on miss.

        `at` is a block hash at which `spec_version` is in force; metadata is
        fetched there. A caller being cancelled never cancels a shared build.

        Raises
        ------
        MetadataFetchError
            The provider failed to return metadata.
        MetadataDecodeError
            The metadata is malformed or of an unsupported version.
        """
        registry = self.get(chain_id, spec_version)
        if registry is not None:
            return registry

        key = (chain_id, spec_version)
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.create_task(self._build(chain_id, spec_version, at))
            self._inflight[key] = task
            task.add_done_callback(lambda t, k=key: self._finish(k, t))
        return await asyncio.shield(task)

    def _finish(self, key: RegistryKey, task: asyncio.Task[TypeRegistry]) -> None:
        self._inflight.pop(key, None)
        if not task.cancelled() and task.exception() is not None:
            # failed builds are not cached; the next caller retries
            log.warning("registry_build_failed", chain_id=key[0], spec_version=key[1], error=str(task.exception()))

    async def _build(self, chain_id: str, spec_version: int, at: str) -> TypeRegistry:
        provider = self._providers.get(chain_id)
        if provider is None:
            raise MetadataFetchError(chain_id, spec_version, "no provider configured for chain")
        try:
            raw = await provider.get_metadata(at)
        except ProviderError as exc:
            raise MetadataFetchError(chain_id, spec_version, str(exc)) from exc

        registry = await asyncio.to_thread(build_registry, raw, chain_id=chain_id, spec_version=spec_version)
        self._store((chain_id, spec_version), registry)
        log.info(
            "registry_built",
            chain_id=chain_id,
            spec_version=spec_version,
            metadata_version=registry.metadata_version,
            types=len(registry.types),
            pallets=len(registry.pallets),
        )
        return registry

    def _store(self, key: RegistryKey, registry: TypeRegistry) -> None:
        self._entries[key] = registry
        self._entries.move_to_end(key)
        if self._max_entries is not None:
            while len(self._entries) > self._max_entries:
                evicted, _ = self._entries.popitem(last=False)
                log.info("registry_evicted", chain_id=evicted[0], spec_version=evicted[1])
