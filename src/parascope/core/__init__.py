"""Core data models, configuration and errors.

This package provides:
- Data models (BlockSnapshot, block identifiers, node JSON, query flags)
- Configuration classes (ChainConfig, CoreConfig, ...)
- The ParascopeError hierarchy
"""

from parascope.core.config import ChainConfig, CoreConfig, DecodeConfig, MapperConfig, RegistryCacheConfig
from parascope.core.errors import ParascopeError, ProviderError, error_marker
from parascope.core.models import BlockQueryParams, BlockSnapshot, RcCorrelation

__all__ = [
    "ChainConfig",
    "CoreConfig",
    "DecodeConfig",
    "MapperConfig",
    "RegistryCacheConfig",
    "ParascopeError",
    "ProviderError",
    "error_marker",
    "BlockQueryParams",
    "BlockSnapshot",
    "RcCorrelation",
]
