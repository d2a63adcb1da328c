from unittest.mock import AsyncMock

import pytest
from fake_chain import ZERO_HASH, FakeChain
from scale_builder import hand_registry, runtime_metadata_v14

from parascope.core.interfaces import ChainHandle
from parascope.decoding.registry import MetadataRegistryCache
from parascope.decoding.types import TypeRegistry


@pytest.fixture
def mock_rpc():
    rpc = AsyncMock()
    rpc.get_header = AsyncMock(return_value=None)
    rpc.get_block_hash = AsyncMock(return_value=None)
    rpc.get_finalized_head = AsyncMock(return_value=ZERO_HASH)
    rpc.get_storage = AsyncMock(return_value=None)
    rpc.get_metadata = AsyncMock(return_value=runtime_metadata_v14())
    rpc.aclose = AsyncMock()
    return rpc


@pytest.fixture
def registry() -> TypeRegistry:
    return hand_registry()


@pytest.fixture
def relay_chain() -> FakeChain:
    return FakeChain("polkadot", metadata=runtime_metadata_v14(ss58_prefix=0))


@pytest.fixture
def asset_hub_chain() -> FakeChain:
    return FakeChain("asset-hub-polkadot", metadata=runtime_metadata_v14(ss58_prefix=0))


@pytest.fixture
def registries(relay_chain: FakeChain, asset_hub_chain: FakeChain) -> MetadataRegistryCache:
    return MetadataRegistryCache({"polkadot": relay_chain, "asset-hub-polkadot": asset_hub_chain})


@pytest.fixture
def relay(relay_chain: FakeChain) -> ChainHandle:
    return ChainHandle("polkadot", relay_chain)


@pytest.fixture
def asset_hub(asset_hub_chain: FakeChain) -> ChainHandle:
    return ChainHandle("asset-hub-polkadot", asset_hub_chain)
