"""parascope: relay chain + Asset Hub block reading core."""

from __future__ import annotations

from .core.errors import ParascopeError
from .core.models import BlockQueryParams, BlockSnapshot
from .core.use_cases.decode_block import decode_block
from .core.use_cases.map_relay import map_relay_to_parachain
from .core.use_cases.resolve_block import parse_block_identifier, resolve_block
from .decoding.registry import MetadataRegistryCache

__version__ = "0.1.0"

__all__ = [
    "ParascopeError",
    "BlockQueryParams",
    "BlockSnapshot",
    "MetadataRegistryCache",
    "decode_block",
    "map_relay_to_parachain",
    "parse_block_identifier",
    "resolve_block",
]
