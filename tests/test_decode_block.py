import pytest
from fake_chain import FakeChain
from scale_builder import (
    ALICE,
    BOB,
    PHASE_FINALIZATION,
    PHASE_INITIALIZATION,
    bytes_vec,
    candidate_included,
    event_record,
    events_blob,
    extrinsic_failed,
    extrinsic_success,
    fee_paid_event,
    phase_apply,
    pre_runtime,
    remark_call,
    signed_extrinsic,
    timestamp_call,
    transfer_call,
    transfer_event,
    u8,
    u32,
    u64,
    unsigned_extrinsic,
    vec,
)

from parascope.core.config import DecodeConfig
from parascope.core.errors import BlockNotFound, UnknownVariant
from parascope.core.interfaces import ChainHandle
from parascope.core.models import BlockNumber, BlockQueryParams, BlockSnapshot
from parascope.core.use_cases.decode_block import decode_block, decode_rc_blocks
from parascope.core.use_cases.map_relay import correlate_relay_block
from parascope.core.use_cases.resolve_block import resolve_single
from parascope.decoding.registry import MetadataRegistryCache
from parascope.decoding.utils import storage_key, to_ss58

TIMESTAMP_KEY = storage_key("Timestamp", "Now")
VALIDATORS_KEY = storage_key("Session", "Validators")
BAD_EXTRINSIC = bytes_vec(b"\x04" + u8(99) + u8(0))


def _populate(chain: FakeChain, *, extrinsics=None, events=None, **kwargs) -> str:
    chain.add_block(0)
    if extrinsics is None:
        extrinsics = [
            unsigned_extrinsic(timestamp_call(1_700_000_000_000)),
            signed_extrinsic(transfer_call(BOB, 10**12), nonce=1, tip=1),
            signed_extrinsic(remark_call(b"hi"), nonce=2),
        ]
    if events is None:
        events = events_blob(
            event_record(PHASE_INITIALIZATION, transfer_event(BOB, ALICE, 1)),
            event_record(phase_apply(0), extrinsic_success(cls=2, pays=1)),
            event_record(phase_apply(1), transfer_event(ALICE, BOB, 10**12)),
            event_record(phase_apply(1), fee_paid_event(ALICE, 150, 1)),
            event_record(phase_apply(1), extrinsic_success()),
            event_record(phase_apply(2), fee_paid_event(ALICE, 90)),
            event_record(phase_apply(2), extrinsic_failed()),
            event_record(PHASE_FINALIZATION, transfer_event(BOB, ALICE, 2)),
        )
    return chain.add_block(1, extrinsics=extrinsics, events=events, **kwargs)


async def _snapshot(handle: ChainHandle, number: int = 1) -> BlockSnapshot:
    return await resolve_single(BlockNumber(number), chain=handle)


# ---- block shape ----


@pytest.mark.asyncio
async def test_decode_full_block(relay_chain: FakeChain, relay: ChainHandle, registries: MetadataRegistryCache) -> None:
    block_hash = _populate(relay_chain)

    block = await decode_block(await _snapshot(relay), chain=relay, registries=registries)

    assert block["number"] == "1"
    assert block["hash"] == block_hash
    assert block["parentHash"] == relay_chain.canonical[0]
    assert block["specVersion"] == "1"
    assert block["logs"] == []
    assert block["finalized"] is True
    assert block["eventDecodeErrors"] == []
    assert "authorId" not in block
    assert "decodedXcmMsgs" not in block
    assert len(block["onInitialize"]["events"]) == 1
    assert len(block["onFinalize"]["events"]) == 1

    inherent, transfer, remark = block["extrinsics"]
    assert (inherent["pallet"], inherent["call"]) == ("timestamp", "set")
    assert inherent["success"] is True
    assert inherent["paysFee"] is False
    assert inherent["info"] == {}

    assert transfer["args"] == {"dest": to_ss58(BOB, 0), "value": "1000000000000"}
    assert transfer["signature"]["signer"] == to_ss58(ALICE, 0)
    assert transfer["success"] is True
    assert transfer["paysFee"] is True
    assert transfer["info"] == {"partialFee": "150", "kind": "fromEvent", "tip": "1"}
    assert [e["variant"] for e in transfer["events"]] == ["Transfer", "TransactionFeePaid", "ExtrinsicSuccess"]

    assert remark["success"] is False
    assert remark["info"] == {"partialFee": "90", "kind": "fromEvent", "tip": "0"}


@pytest.mark.asyncio
async def test_block_without_events(relay_chain: FakeChain, relay: ChainHandle, registries: MetadataRegistryCache) -> None:
    relay_chain.add_block(0)
    relay_chain.add_block(1, extrinsics=[unsigned_extrinsic(timestamp_call(5))])

    block = await decode_block(await _snapshot(relay), chain=relay, registries=registries)

    assert block["extrinsics"][0]["events"] == []
    assert block["onInitialize"] == {"events": []}
    assert block["onFinalize"] == {"events": []}


@pytest.mark.asyncio
async def test_flags_toggle_field_sets(relay_chain: FakeChain, relay: ChainHandle, registries: MetadataRegistryCache) -> None:
    _populate(relay_chain)
    params = BlockQueryParams(noFees=True, extrinsicDocs=True, finalized=False, decodeXcmMsgs=True)

    block = await decode_block(await _snapshot(relay), chain=relay, registries=registries, params=params)

    assert "finalized" not in block
    assert block["extrinsics"][1]["info"] == {}
    assert block["extrinsics"][0]["docs"] == "Set the current time."
    assert block["decodedXcmMsgs"] == {"horizontalMessages": [], "downwardMessages": [], "upwardMessages": []}


@pytest.mark.asyncio
async def test_unfinalized_block(relay_chain: FakeChain, relay: ChainHandle, registries: MetadataRegistryCache) -> None:
    _populate(relay_chain)
    relay_chain.add_block(2, finalize=False)

    block = await decode_block(await _snapshot(relay, 2), chain=relay, registries=registries)

    assert block["finalized"] is False


@pytest.mark.asyncio
async def test_author_from_babe_digest(relay_chain: FakeChain, relay: ChainHandle, registries: MetadataRegistryCache) -> None:
    _populate(
        relay_chain,
        logs=[pre_runtime(b"BABE", u8(1) + u32(1) + u64(7))],
        storage={VALIDATORS_KEY: vec([ALICE, BOB], lambda a: a)},
    )

    block = await decode_block(await _snapshot(relay), chain=relay, registries=registries)

    assert block["authorId"] == to_ss58(BOB, 0)
    assert block["logs"][0]["type"] == "PreRuntime"
    assert block["logs"][0]["engine"] == "BABE"


@pytest.mark.asyncio
async def test_configured_ss58_prefix_wins(relay_chain: FakeChain, registries: MetadataRegistryCache) -> None:
    _populate(relay_chain)
    handle = ChainHandle("polkadot", relay_chain, ss58_prefix=42)

    block = await decode_block(await _snapshot(handle), chain=handle, registries=registries)

    assert block["extrinsics"][1]["args"]["dest"] == to_ss58(BOB, 42)


# ---- failure containment ----


@pytest.mark.asyncio
async def test_bad_extrinsic_becomes_error_marker(
    relay_chain: FakeChain, relay: ChainHandle, registries: MetadataRegistryCache
) -> None:
    _populate(
        relay_chain,
        extrinsics=[unsigned_extrinsic(timestamp_call(1)), BAD_EXTRINSIC],
        events=events_blob(
            event_record(phase_apply(0), extrinsic_success()),
            event_record(phase_apply(1), extrinsic_failed()),
        ),
    )

    block = await decode_block(await _snapshot(relay), chain=relay, registries=registries)

    good, bad = block["extrinsics"]
    assert good["success"] is True
    assert bad["index"] == 1
    assert bad["error"]["kind"] == "UnknownVariant"
    assert len(bad["events"]) == 1
    assert "success" not in bad


@pytest.mark.asyncio
async def test_strict_mode_raises(relay_chain: FakeChain, relay: ChainHandle, registries: MetadataRegistryCache) -> None:
    _populate(relay_chain, extrinsics=[BAD_EXTRINSIC], events=events_blob())

    with pytest.raises(UnknownVariant):
        await decode_block(
            await _snapshot(relay), chain=relay, registries=registries, config=DecodeConfig(strict=True)
        )


@pytest.mark.asyncio
async def test_undecodable_event_is_reported(
    relay_chain: FakeChain, relay: ChainHandle, registries: MetadataRegistryCache
) -> None:
    _populate(
        relay_chain,
        extrinsics=[unsigned_extrinsic(timestamp_call(1))],
        events=events_blob(
            event_record(phase_apply(0), extrinsic_success()),
            event_record(phase_apply(0), u8(77) + u8(0)),
        ),
    )

    block = await decode_block(await _snapshot(relay), chain=relay, registries=registries)

    assert [e["variant"] for e in block["extrinsics"][0]["events"]] == ["ExtrinsicSuccess"]
    assert len(block["eventDecodeErrors"]) == 1
    assert block["eventDecodeErrors"][0]["error"]["kind"] == "UnknownVariant"


@pytest.mark.asyncio
async def test_missing_body_is_not_found(relay_chain: FakeChain, relay: ChainHandle, registries: MetadataRegistryCache) -> None:
    _populate(relay_chain)
    snapshot = await _snapshot(relay)
    del relay_chain.headers[snapshot.block_hash]

    with pytest.raises(BlockNotFound):
        await decode_block(snapshot, chain=relay, registries=registries)


# ---- relay-tagged blocks ----


@pytest.mark.asyncio
async def test_decode_rc_blocks_adds_relay_fields(
    relay_chain: FakeChain,
    asset_hub_chain: FakeChain,
    relay: ChainHandle,
    asset_hub: ChainHandle,
    registries: MetadataRegistryCache,
) -> None:
    asset_hub_chain.add_block(0)
    included = asset_hub_chain.add_block(
        1,
        extrinsics=[unsigned_extrinsic(timestamp_call(1_700_000_012_000))],
        storage={TIMESTAMP_KEY: u64(1_700_000_012_000)},
    )
    relay_hash = relay_chain.add_block(
        0,
        events=events_blob(
            event_record(phase_apply(0), candidate_included(1000, asset_hub_chain.header_bytes[included]))
        ),
    )
    correlation = await correlate_relay_block(0, relay=relay, parachain=asset_hub, registries=registries)

    blocks = await decode_rc_blocks(correlation, chain=asset_hub, registries=registries)

    assert len(blocks) == 1
    assert blocks[0]["hash"] == included
    assert blocks[0]["rcBlockHash"] == relay_hash
    assert blocks[0]["rcBlockNumber"] == "0"
    assert blocks[0]["ahTimestamp"] == "1700000012000"


@pytest.mark.asyncio
async def test_unreadable_events_keep_the_block(
    relay_chain: FakeChain, relay: ChainHandle, registries: MetadataRegistryCache
) -> None:
    _populate(relay_chain, extrinsics=[unsigned_extrinsic(timestamp_call(1))], events=b"\x03")

    block = await decode_block(await _snapshot(relay), chain=relay, registries=registries)

    assert block["extrinsics"][0]["args"] == {"now": "1"}
    assert block["extrinsics"][0]["events"] == []
    assert [e["error"]["kind"] for e in block["eventDecodeErrors"]] == ["UnexpectedEof"]
