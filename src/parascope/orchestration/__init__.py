"""Wiring of configuration, providers and the registry cache.

This package provides:
- `open_services` / `build_services` to bind chains to providers
- Request functions used by the CLI (`fetch_block`, `resolve_identifier`, `correlate`)
"""

from parascope.orchestration.orchestrator import (
    CoreServices,
    build_services,
    correlate,
    fetch_block,
    open_services,
    resolve_identifier,
)

__all__ = [
    "CoreServices",
    "build_services",
    "correlate",
    "fetch_block",
    "open_services",
    "resolve_identifier",
]
