"""EVM address rendering for `Revive` pallet events.

An SS58 account is shown as a 20-byte EVM address:
- eth-derived accounts (20 address bytes + 12 x 0xEE padding) keep their first 20 bytes
- any other account maps to the last 20 bytes of keccak256(account)
"""

from __future__ import annotations

from typing import Any

from eth_utils import keccak

from parascope.decoding.utils import from_ss58, to_hex

REVIVE_PALLET = "revive"
ETH_PADDING = b"\xee" * 12


def account_to_evm(account: bytes) -> str:
    if len(account) != 32:
        raise ValueError(f"expected a 32-byte account, got {len(account)} bytes")
    if account[20:] == ETH_PADDING:
        return to_hex(account[:20])
    return to_hex(keccak(account)[12:])


def _maybe_evm(value: str) -> str:
    # SS58 addresses of 32-byte accounts are 47-50 characters long
    if not 46 <= len(value) <= 50 or value.startswith("0x"):
        return value
    try:
        account = from_ss58(value)
    except ValueError:
        return value
    if len(account) != 32:
        return value
    return account_to_evm(account)


def convert_to_evm(data: Any) -> Any:
    """Recursively rewrite SS58 account strings in projected JSON to EVM addresses."""
    match data:
        case str():
            return _maybe_evm(data)
        case list():
            return [convert_to_evm(v) for v in data]
        case dict():
            return {k: convert_to_evm(v) for k, v in data.items()}
    return data


def apply_evm_format(extrinsics: list[dict[str, Any]]) -> None:
    """Rewrite `Revive` event data in place for extrinsics of the `Revive` pallet."""
    for ext in extrinsics:
        if str(ext.get("pallet", "")).lower() != REVIVE_PALLET:
            continue
        for event in ext.get("events", []):
            if str(event.get("pallet", "")).lower() == REVIVE_PALLET:
                event["data"] = convert_to_evm(event.get("data", []))
