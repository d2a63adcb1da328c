from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class ChainConfig:
    """Connection settings for one chain's JSON-RPC node."""

    chain_id: str
    rpc_url: str
    ss58_prefix: int | None = None  # None: read System.SS58Prefix from metadata
    timeout_s: int = 20
    max_connections: int = 64


@dataclass(frozen=True)
class DecodeConfig:
    """Block decoding fan-out and failure policy."""

    concurrency: int = 16
    strict: bool = False  # raise instead of embedding per-item error markers


@dataclass(frozen=True)
class RegistryCacheConfig:
    max_entries: int | None = 32  # None: unbounded


@dataclass(frozen=True)
class MapperConfig:
    """Relay to parachain correlation settings."""

    para_id: int = 1000
    window: int = 16  # parachain heights scanned per attested head


@dataclass(frozen=True)
class CoreConfig:
    """Top-level configuration for the relay chain + Asset Hub pair."""

    relay: ChainConfig
    asset_hub: ChainConfig | None = None
    decode: DecodeConfig = field(default_factory=DecodeConfig)
    cache: RegistryCacheConfig = field(default_factory=RegistryCacheConfig)
    mapper: MapperConfig = field(default_factory=MapperConfig)
