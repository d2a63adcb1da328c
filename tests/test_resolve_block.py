import pytest
from fake_chain import FakeChain

from parascope.core.errors import BlockIdentifierError, BlockNotFound
from parascope.core.interfaces import ChainHandle
from parascope.core.models import (
    BlockHash,
    BlockNumber,
    HeadBlock,
    LatestBlock,
    RelayBlockRef,
    ResolutionState,
)
from parascope.core.use_cases.resolve_block import BlockResolver, parse_block_identifier, resolve_block, resolve_single

HASH = "0x" + "Ab" * 32


# ---- identifier parsing ----


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        (None, HeadBlock()),
        ("head", HeadBlock()),
        ("latest", LatestBlock()),
        ("1000000", BlockNumber(1_000_000)),
        (0, BlockNumber(0)),
        (HASH, BlockHash(HASH.lower())),
    ],
)
def test_parse_block_identifier(raw, expected) -> None:
    assert parse_block_identifier(raw) == expected


def test_parse_relay_reference() -> None:
    assert parse_block_identifier("42", use_rc_block=True) == RelayBlockRef(BlockNumber(42))
    assert RelayBlockRef.at_number(42) == RelayBlockRef(BlockNumber(42))


@pytest.mark.parametrize("raw", ["abc", "-1", "0x1234", -1, "1.5"])
def test_parse_rejects_malformed_input(raw) -> None:
    with pytest.raises(BlockIdentifierError):
        parse_block_identifier(raw)


def test_identifier_error_is_a_value_error() -> None:
    with pytest.raises(ValueError):
        parse_block_identifier("nope")


# ---- resolver ----


def _chain(blocks: int = 4) -> FakeChain:
    chain = FakeChain("polkadot", metadata=b"")
    for number in range(blocks):
        chain.add_block(number)
    return chain


@pytest.mark.asyncio
async def test_resolve_number() -> None:
    chain = _chain()
    resolver = BlockResolver("polkadot", chain)

    snapshot = await resolver.resolve(BlockNumber(2))

    assert snapshot.block_number == 2
    assert snapshot.block_hash == chain.canonical[2]
    assert snapshot.parent_hash == chain.canonical[1]
    assert snapshot.spec_version == 1
    assert snapshot.chain_id == "polkadot"
    assert resolver.state is ResolutionState.RESOLVED


@pytest.mark.asyncio
async def test_resolve_hash_reports_runtime_in_force() -> None:
    chain = _chain()
    upgraded = chain.add_block(4, spec_version=2)

    snapshot = await BlockResolver("polkadot", chain).resolve(BlockHash(upgraded))

    assert snapshot.block_number == 4
    assert snapshot.spec_version == 2


@pytest.mark.asyncio
async def test_number_above_tip_is_not_found() -> None:
    resolver = BlockResolver("polkadot", _chain())

    with pytest.raises(BlockNotFound) as exc_info:
        await resolver.resolve(BlockNumber(99))

    assert exc_info.value.identifier == BlockNumber(99)
    assert resolver.state is ResolutionState.NOT_FOUND


@pytest.mark.asyncio
async def test_unknown_hash_is_not_found() -> None:
    with pytest.raises(BlockNotFound):
        await BlockResolver("polkadot", _chain()).resolve(BlockHash("0x" + "ee" * 32))


@pytest.mark.asyncio
async def test_head_is_non_decreasing() -> None:
    chain = _chain()
    handle = ChainHandle("polkadot", chain)

    first = await resolve_single(HeadBlock(), chain=handle)
    chain.add_block(4)
    second = await resolve_single(HeadBlock(), chain=handle)

    assert second.block_number >= first.block_number
    assert second.block_number == 4


@pytest.mark.asyncio
async def test_head_is_finalized_and_latest_is_best() -> None:
    chain = _chain()
    chain.add_block(4, finalize=False)
    handle = ChainHandle("polkadot", chain)

    head = await resolve_single(HeadBlock(), chain=handle)
    latest = await resolve_single(LatestBlock(), chain=handle)

    assert head.block_number == 3
    assert latest.block_number == 4


@pytest.mark.asyncio
async def test_relay_reference_needs_relay_chain() -> None:
    handle = ChainHandle("asset-hub-polkadot", _chain())

    with pytest.raises(BlockIdentifierError):
        await resolve_block(RelayBlockRef.at_number(1), chain=handle)


class _ReorgingChain(FakeChain):
    """Replaces the top two blocks right after the best header is read."""

    def __init__(self) -> None:
        super().__init__("polkadot", metadata=b"")
        self.reorged = False

    async def get_header(self, block_hash: str | None = None):
        header = await super().get_header(block_hash)
        if block_hash is None and not self.reorged:
            self.reorged = True
            self.add_block(3, logs=[b"\x00\x04\x01\x02"])
            self.add_block(4, spec_version=2)
        return header


@pytest.mark.asyncio
async def test_latest_snapshot_is_taken_from_one_block() -> None:
    chain = _ReorgingChain()
    for number in range(5):
        chain.add_block(number)

    snapshot = await BlockResolver("polkadot", chain).resolve(LatestBlock())

    assert snapshot.block_hash == chain.canonical[4]
    assert snapshot.parent_hash == chain.headers[snapshot.block_hash].parentHash
    assert snapshot.parent_hash == chain.canonical[3]
    assert snapshot.spec_version == 2
