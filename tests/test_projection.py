import pytest
from scale_builder import (
    ALICE,
    ALICE_SS58_GENERIC,
    T_ACCOUNT,
    T_BIT_VEC,
    T_BYTES,
    T_COMPACT_U128,
    T_DISPATCH_CLASS,
    T_DISPATCH_INFO,
    T_ERA,
    T_EXTRA,
    T_H256,
    T_LSB0,
    T_MULTI_ADDRESS,
    T_MULTI_SIGNATURE,
    T_OPTION_U32,
    T_U128,
    T_VEC_H256,
    T_VEC_U32,
    compact,
    era_bytes,
    u8,
    u32,
    u128,
)

from parascope.core.errors import ProjectionError
from parascope.decoding.decoder import decode
from parascope.decoding.projection import Projector, SemanticKind, classify, era_from_encoded, project
from parascope.decoding.types import TypeRegistry
from parascope.decoding.values import PrimitiveValue


@pytest.fixture
def projector(registry: TypeRegistry) -> Projector:
    return Projector(registry, ss58_prefix=42)


def _project(projector: Projector, data: bytes, type_id: int):
    return projector.project(decode(data, type_id, projector.registry))


# ---- classification ----


@pytest.mark.parametrize(
    ("type_id", "kind"),
    [
        (T_ACCOUNT, SemanticKind.ACCOUNT_ID),
        (T_H256, SemanticKind.HASH32),
        (T_MULTI_ADDRESS, SemanticKind.MULTI_ADDRESS),
        (T_ERA, SemanticKind.ERA),
        (T_COMPACT_U128, SemanticKind.COMPACT_BALANCE),
        (T_BIT_VEC, SemanticKind.BIT_VEC),
        (T_BYTES, SemanticKind.RAW_BYTES),
        (T_VEC_U32, SemanticKind.GENERIC_COMPOSITE),
        (T_DISPATCH_CLASS, SemanticKind.GENERIC_VARIANT),
        (T_U128, SemanticKind.GENERIC_PRIMITIVE),
    ],
)
def test_classify_uses_declared_path_and_shape(registry: TypeRegistry, type_id: int, kind: SemanticKind) -> None:
    assert classify(type_id, registry) is kind


def test_same_bytes_render_by_declared_kind(projector: Projector) -> None:
    assert _project(projector, ALICE, T_ACCOUNT) == ALICE_SS58_GENERIC
    assert _project(projector, ALICE, T_H256) == "0x" + ALICE.hex()


# ---- MultiAddress ----


def test_multi_address_id_is_plain_ss58(projector: Projector) -> None:
    assert _project(projector, b"\x00" + ALICE, T_MULTI_ADDRESS) == ALICE_SS58_GENERIC


def test_multi_address_other_arms(projector: Projector) -> None:
    assert _project(projector, b"\x01" + compact(7), T_MULTI_ADDRESS) == "7"
    assert _project(projector, b"\x02" + compact(3) + b"abc", T_MULTI_ADDRESS) == "0x616263"
    assert _project(projector, b"\x03" + ALICE, T_MULTI_ADDRESS) == ALICE_SS58_GENERIC
    assert _project(projector, b"\x04" + b"\x01" * 20, T_MULTI_ADDRESS) == "0x" + "01" * 20


def test_ss58_prefix_follows_the_chain(registry: TypeRegistry) -> None:
    polkadot = project(decode(ALICE, T_ACCOUNT, registry), registry=registry, ss58_prefix=0)

    assert polkadot == "15oF4uVJwmo4TdGW7VfQxNLavjCXviqxT9S1MgbjMNHr6Sp5"


# ---- Era ----


def test_immortal_era(projector: Projector) -> None:
    assert _project(projector, b"\x00", T_ERA) == {"immortal": "0x00"}


def test_mortal_era(projector: Projector) -> None:
    assert _project(projector, era_bytes(64, 42), T_ERA) == {"mortal": {"period": "64", "phase": "42"}}


def test_era_from_encoded_requires_second_byte() -> None:
    with pytest.raises(ProjectionError):
        era_from_encoded(0xA5, None)


# ---- generic shapes ----


def test_option(projector: Projector) -> None:
    assert _project(projector, b"\x00", T_OPTION_U32) is None
    assert _project(projector, b"\x01" + u32(5), T_OPTION_U32) == "5"


def test_basic_enum_is_its_arm_name(projector: Projector) -> None:
    assert _project(projector, u8(1), T_DISPATCH_CLASS) == "Operational"


def test_enum_with_data_is_keyed_by_arm(projector: Projector) -> None:
    value = _project(projector, b"\x01" + b"\x22" * 64, T_MULTI_SIGNATURE)

    assert value == {"sr25519": "0x" + "22" * 64}


def test_named_composite(projector: Projector) -> None:
    value = _project(projector, compact(1_000) + compact(12) + u8(0) + u8(1), T_DISPATCH_INFO)

    assert value == {
        "weight": {"ref_time": "1000", "proof_size": "12"},
        "class": "Normal",
        "pays_fee": "No",
    }


def test_tuple_is_a_list(projector: Projector) -> None:
    value = _project(projector, b"\x00" + compact(5) + compact(0), T_EXTRA)

    assert value == [{"immortal": "0x00"}, "5", "0"]


def test_integers_are_decimal_strings(projector: Projector) -> None:
    assert _project(projector, u128(2**128 - 1), T_U128) == str(2**128 - 1)
    assert _project(projector, compact(10**20), T_COMPACT_U128) == str(10**20)


def test_bit_vec(projector: Projector) -> None:
    assert _project(projector, compact(10) + b"\xff\x03", T_BIT_VEC) == {"hex": "0xff03", "bitLength": "10"}


def test_empty_collections(projector: Projector) -> None:
    assert _project(projector, compact(0), T_VEC_U32) == []
    assert _project(projector, compact(0), T_VEC_H256) == []
    assert _project(projector, compact(0), T_BYTES) == "0x"
    assert _project(projector, b"", T_LSB0) == {}


# ---- failures ----


def test_projection_error_is_contained(projector: Projector) -> None:
    bogus = PrimitiveValue(T_ACCOUNT, 5)

    with pytest.raises(ProjectionError):
        projector.project(bogus)
    marker = projector.project_contained(bogus)

    assert marker["error"]["kind"] == "ProjectionError"
    assert "account id" in marker["error"]["message"]
