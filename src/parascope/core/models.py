"""Core data models.

This module defines:
- `BlockSnapshot`: one concrete, resolved block with its runtime spec version.
- `BlockIdentifier`: user-facing block selectors (number, hash, head, latest,
  relay block reference).
- `RcCorrelation`: a relay block with the Asset Hub blocks it attests.
- pydantic models for node JSON (`RpcHeader`, `RpcSignedBlock`,
  `RuntimeVersion`) and for the block query flags (`BlockQueryParams`).

Design notes
------------
- Node JSON is parsed with pydantic using the node's own camelCase keys.
- Hashes are kept as lowercase `0x` hex strings throughout.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, ConfigDict, field_validator

# === Block snapshot ===


@dataclass(slots=True, frozen=True)
class BlockSnapshot:
    """A resolved block: number, hash and the runtime in force at it."""

    chain_id: str
    block_number: int
    block_hash: str  # lowercased 0x...
    spec_version: int
    parent_hash: str  # lowercased 0x...


# === Block identifiers ===


@dataclass(slots=True, frozen=True)
class BlockNumber:
    number: int


@dataclass(slots=True, frozen=True)
class BlockHash:
    hash: str  # lowercased 0x + 64 hex chars


@dataclass(slots=True, frozen=True)
class HeadBlock:
    """Finalized head."""


@dataclass(slots=True, frozen=True)
class LatestBlock:
    """Best (possibly unfinalized) head."""


ChainBlockIdentifier = BlockNumber | BlockHash | HeadBlock | LatestBlock


@dataclass(slots=True, frozen=True)
class RelayBlockRef:
    """A relay chain block whose attested parachain blocks are wanted."""

    relay: ChainBlockIdentifier

    @classmethod
    def at_number(cls, number: int) -> RelayBlockRef:
        return cls(BlockNumber(number))


BlockIdentifier = ChainBlockIdentifier | RelayBlockRef


class ResolutionState(str, Enum):
    UNRESOLVED = "unresolved"
    RESOLVING_IDENTIFIER = "resolving_identifier"
    RESOLVED = "resolved"
    NOT_FOUND = "not_found"
    AMBIGUOUS = "ambiguous"


# === Cross-chain correlation ===


@dataclass(slots=True, frozen=True)
class RcCorrelation:
    """Relay block and the ordered (possibly empty) parachain blocks it attests."""

    relay: BlockSnapshot
    parachain_blocks: tuple[BlockSnapshot, ...] = ()
    relay_timestamp: int | None = None  # ms, from Timestamp.Now


# === Node JSON ===


class RpcDigest(BaseModel):
    logs: list[str] = []


class RpcHeader(BaseModel):
    """`chain_getHeader` result."""

    parentHash: str
    number: int
    stateRoot: str
    extrinsicsRoot: str
    digest: RpcDigest = RpcDigest()

    @field_validator("number", mode="before")
    @classmethod
    def _hex_number(cls, v: object) -> object:
        if isinstance(v, str):
            return int(v, 16) if v.startswith("0x") else int(v)
        return v


class RpcBlockBody(BaseModel):
    header: RpcHeader
    extrinsics: list[str] = []


class RpcSignedBlock(BaseModel):
    """`chain_getBlock` result."""

    block: RpcBlockBody


class RuntimeVersion(BaseModel):
    """`state_getRuntimeVersion` result (fields used by the core)."""

    model_config = ConfigDict(extra="ignore")

    specName: str
    specVersion: int
    transactionVersion: int = 0
    implName: str = ""


# === Query flags ===


class BlockQueryParams(BaseModel):
    """Independent flags toggling block JSON field sets."""

    model_config = ConfigDict(extra="forbid")

    at: str | None = None
    useRcBlock: bool = False
    decodeXcmMsgs: bool = False
    paraId: int | None = None
    useEvmFormat: bool = False
    noFees: bool = False
    extrinsicDocs: bool = False
    eventDocs: bool = False
    finalized: bool = True
