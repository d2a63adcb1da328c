import pytest
from eth_utils import keccak
from scale_builder import ALICE, ALICE_SS58_GENERIC

from parascope.decoding.evm import account_to_evm, apply_evm_format, convert_to_evm
from parascope.decoding.types import TypeRegistry
from parascope.decoding.utils import (
    camel_case,
    from_hex,
    from_ss58,
    hash_key,
    lower_first,
    storage_key,
    to_hex,
    to_ss58,
    twox128,
)
from parascope.decoding.xcm import extract_xcm_messages

# ---- storage keys ----


def test_well_known_storage_keys() -> None:
    assert storage_key("System", "Events") == "0x26aa394eea5630e07c48ae0c9558cef780d41e5e16056765bc8461851072c9d7"
    assert to_hex(twox128(b"Timestamp")) == "0xf0c365c3cf59d671eb72da0e7a4113c4"


def test_map_key_hashers() -> None:
    key = b"\x01\x02"
    base = storage_key("Session", "NextKeys")

    assert storage_key("Session", "NextKeys", key, hashers=("Identity",)) == base + "0102"
    assert hash_key(key, "Twox64Concat").endswith(key)
    assert len(hash_key(key, "Blake2_128Concat")) == 16 + 2
    with pytest.raises(ValueError):
        hash_key(key, "Sha3")


# ---- names and encodings ----


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("transfer_keep_alive", "transferKeepAlive"),
        ("TransferKeepAlive", "transferKeepAlive"),
        ("set", "set"),
        ("_", "_"),
    ],
)
def test_camel_case(name: str, expected: str) -> None:
    assert camel_case(name) == expected


def test_lower_first() -> None:
    assert lower_first("ParaInclusion") == "paraInclusion"
    assert lower_first("") == ""


def test_hex_helpers() -> None:
    assert to_hex(b"") == "0x"
    assert from_hex("0x0aFF") == b"\x0a\xff"
    assert from_hex("0aff") == b"\x0a\xff"


def test_ss58() -> None:
    assert to_ss58(ALICE, 42) == ALICE_SS58_GENERIC
    assert from_ss58(ALICE_SS58_GENERIC) == ALICE
    assert from_ss58(to_ss58(ALICE, 0)) == ALICE


# ---- EVM addresses ----


def test_eth_derived_account_keeps_address() -> None:
    address = bytes.fromhex("f24ff3a9cf04c71dbc94d0b566f7a27b94566cac")

    assert account_to_evm(address + b"\xee" * 12) == "0x" + address.hex()


def test_native_account_hashes_to_address() -> None:
    assert account_to_evm(ALICE) == to_hex(keccak(ALICE)[12:])


def test_account_length_is_checked() -> None:
    with pytest.raises(ValueError):
        account_to_evm(b"\x01" * 20)


def test_convert_leaves_non_accounts() -> None:
    data = {"who": ALICE_SS58_GENERIC, "amount": "5", "hash": "0x" + "00" * 32, "nested": [ALICE_SS58_GENERIC]}

    out = convert_to_evm(data)

    evm = account_to_evm(ALICE)
    assert out == {"who": evm, "amount": "5", "hash": "0x" + "00" * 32, "nested": [evm]}


def test_apply_evm_format_only_touches_revive() -> None:
    revive_event = {"pallet": "revive", "variant": "ContractEmitted", "data": [ALICE_SS58_GENERIC]}
    other_event = {"pallet": "balances", "variant": "Withdraw", "data": [ALICE_SS58_GENERIC]}
    extrinsics = [
        {"pallet": "revive", "call": "call", "events": [revive_event, other_event]},
        {"pallet": "balances", "call": "transferKeepAlive", "events": [{**revive_event}]},
    ]

    apply_evm_format(extrinsics)

    assert extrinsics[0]["events"][0]["data"] == [account_to_evm(ALICE)]
    assert extrinsics[0]["events"][1]["data"] == [ALICE_SS58_GENERIC]
    assert extrinsics[1]["events"][0]["data"] == [ALICE_SS58_GENERIC]


# ---- XCM ----


def _validation_data() -> dict:
    return {
        "pallet": "parachainSystem",
        "call": "setValidationData",
        "args": {
            "data": {
                "downward_messages": [{"sent_at": "5", "msg": "0x0102"}],
                "horizontal_messages": [
                    ["2000", [{"sent_at": "4", "data": "0x03"}]],
                    ["2034", [{"sent_at": "4", "data": "0x04"}]],
                ],
            }
        },
    }


def _para_inherent() -> dict:
    return {
        "pallet": "paraInherent",
        "call": "enter",
        "args": {
            "data": {
                "backed_candidates": [
                    {
                        "candidate": {
                            "descriptor": {"para_id": "1000"},
                            "commitments": {"upward_messages": ["0x05", "0x06"]},
                        }
                    },
                    {"candidate": {"descriptor": {"para_id": "2000"}, "commitments": {"upward_messages": ["0x07"]}}},
                ]
            }
        },
    }


def test_extract_parachain_messages(registry: TypeRegistry) -> None:
    messages = extract_xcm_messages([_validation_data()], registry, ss58_prefix=0)

    assert messages["downwardMessages"] == [{"sentAt": "5", "msg": "0x0102"}]
    assert [m["originParaId"] for m in messages["horizontalMessages"]] == ["2000", "2034"]
    assert messages["upwardMessages"] == []


def test_extract_relay_messages_filtered_by_para(registry: TypeRegistry) -> None:
    messages = extract_xcm_messages([_para_inherent(), _validation_data()], registry, ss58_prefix=0, para_id=1000)

    assert messages["upwardMessages"] == [
        {"originParaId": "1000", "data": "0x05"},
        {"originParaId": "1000", "data": "0x06"},
    ]
    assert messages["horizontalMessages"] == []
    assert len(messages["downwardMessages"]) == 1


def test_no_inherents_no_messages(registry: TypeRegistry) -> None:
    extrinsics = [{"pallet": "balances", "call": "transferKeepAlive", "args": {}}, {"index": 0, "error": {}}]

    assert extract_xcm_messages(extrinsics, registry, ss58_prefix=0) == {
        "horizontalMessages": [],
        "downwardMessages": [],
        "upwardMessages": [],
    }
