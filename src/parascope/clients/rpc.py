"""Lightweight JSON-RPC client for Substrate nodes.

This module provides:
- `SubstrateRPC`: an async client with sane timeouts/connection limits that
  implements `IStateProvider`
- Polling head iterators standing in for `chain_subscribe*Heads`

It returns raw bytes and node JSON; all decoding happens downstream.
"""

from __future__ import annotations

import asyncio
import itertools
from collections.abc import AsyncIterator
from typing import Any

import httpx

from parascope.core.errors import ProviderError
from parascope.core.logging_config import get_logger
from parascope.core.models import RpcHeader, RpcSignedBlock, RuntimeVersion
from parascope.decoding.utils import from_hex

log = get_logger(__name__)


class SubstrateRPC:
    """Minimal async Substrate RPC client.

    Parameters
    ----------
    url : str
        RPC endpoint URL.
    timeout_s : int
        Per-operation timeout in seconds (connect/read/write).
    max_connections : int
        Maximum concurrent connections to keep in the pool.
    poll_interval_s : float
        Delay between head polls in the subscription iterators.
    """

    def __init__(
        self,
        url: str,
        *,
        timeout_s: int = 20,
        max_connections: int = 64,
        poll_interval_s: float = 2.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.url = url
        self.poll_interval_s = poll_interval_s
        self._ids = itertools.count(1)
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(
                connect=timeout_s,
                read=timeout_s,
                write=timeout_s,
                pool=max(30, timeout_s * 3),
            ),
            limits=httpx.Limits(
                max_connections=max_connections,
                max_keepalive_connections=max(1, max_connections // 2),
            ),
            http2=True,
        )

    async def call(self, method: str, params: list[Any] | None = None) -> Any:
        """Issue one JSON-RPC request and return its `result`."""
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params or []}
        try:
            r = await self.client.post(self.url, json=payload)
            r.raise_for_status()
            data = r.json()
        except httpx.HTTPError as e:
            raise ProviderError(f"{method} failed: {type(e).__name__}: {e}") from e
        except ValueError as e:
            raise ProviderError(f"{method} returned invalid JSON: {e}") from e

        if "error" in data:
            err = data["error"]
            msg = f"{err.get('code')} {err.get('message')}" if isinstance(err, dict) else str(err)
            raise ProviderError(f"RPC error in {method}: {msg}")
        return data.get("result")

    # ---- IStateProvider ----

    async def get_header(self, block_hash: str | None = None) -> RpcHeader | None:
        result = await self.call("chain_getHeader", [block_hash] if block_hash else [])
        return None if result is None else RpcHeader.model_validate(result)

    async def get_block(self, block_hash: str) -> RpcSignedBlock | None:
        result = await self.call("chain_getBlock", [block_hash])
        return None if result is None else RpcSignedBlock.model_validate(result)

    async def get_block_hash(self, number: int) -> str | None:
        result = await self.call("chain_getBlockHash", [number])
        return result.lower() if isinstance(result, str) else None

    async def get_finalized_head(self) -> str:
        result = await self.call("chain_getFinalizedHead")
        if not isinstance(result, str):
            raise ProviderError(f"chain_getFinalizedHead returned {result!r}")
        return result.lower()

    async def get_storage(self, key: str, block_hash: str) -> bytes | None:
        result = await self.call("state_getStorage", [key, block_hash])
        return None if result is None else from_hex(result)

    async def get_metadata(self, block_hash: str) -> bytes:
        result = await self.call("state_getMetadata", [block_hash])
        if not isinstance(result, str):
            raise ProviderError(f"state_getMetadata returned {type(result).__name__}")
        return from_hex(result)

    async def get_runtime_version(self, block_hash: str) -> RuntimeVersion:
        result = await self.call("state_getRuntimeVersion", [block_hash])
        if result is None:
            raise ProviderError(f"state_getRuntimeVersion returned nothing for {block_hash}")
        return RuntimeVersion.model_validate(result)

    async def subscribe_new_heads(self) -> AsyncIterator[RpcHeader]:
        """Poll the best head and yield each new header once."""
        last: int | None = None
        while True:
            header = await self.get_header(None)
            if header is not None and header.number != last:
                last = header.number
                yield header
            await asyncio.sleep(self.poll_interval_s)

    async def subscribe_finalized_heads(self) -> AsyncIterator[RpcHeader]:
        """Poll the finalized head and yield each new header once."""
        last: str | None = None
        while True:
            block_hash = await self.get_finalized_head()
            if block_hash != last:
                header = await self.get_header(block_hash)
                if header is not None:
                    last = block_hash
                    yield header
            await asyncio.sleep(self.poll_interval_s)

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self.client.aclose()
