"""Parascope exception hierarchy.

Each layer raises its own error type so callers at the request boundary can
tell "not found" apart from "provider broke" apart from "could not decode":

- `ProviderError`: transport / JSON-RPC failures from the state provider
- `MetadataFetchError` / `MetadataDecodeError`: registry cache failures
- `ScaleDecodeError` and subclasses: generic binary decoder failures
- `BlockResolveError` and subclasses: identifier resolution outcomes
- `ProjectionError`: non-fatal, contained per field / item
"""

from __future__ import annotations

from typing import Any


class ParascopeError(Exception):
    """Base exception for all parascope failures."""


class ProviderError(ParascopeError):
    """Raised when the state provider (node transport) fails."""


class MetadataFetchError(ParascopeError):
    """Raised when raw metadata cannot be fetched from the provider."""

    def __init__(self, chain_id: str, spec_version: int, message: str) -> None:
        super().__init__(f"metadata fetch failed for {chain_id}@{spec_version}: {message}")
        self.chain_id = chain_id
        self.spec_version = spec_version


class MetadataDecodeError(ParascopeError):
    """Raised for malformed or unsupported metadata blobs."""


class RegistryMismatchError(ParascopeError):
    """Raised when a registry is used against a block of another runtime."""


# ---- SCALE decoding ----


class ScaleDecodeError(ParascopeError):
    """Base class for generic decoder failures."""


class UnexpectedEof(ScaleDecodeError):
    """Raised when fewer bytes remain than the type requires."""

    def __init__(self, needed: int, remaining: int) -> None:
        super().__init__(f"unexpected end of input: needed {needed} bytes, {remaining} remaining")
        self.needed = needed
        self.remaining = remaining


class UnknownVariant(ScaleDecodeError):
    """Raised when a discriminant selects no declared variant arm."""

    def __init__(self, index: int, type_id: int | None = None, path: str = "") -> None:
        where = f" of type {type_id}" if type_id is not None else ""
        if path:
            where += f" ({path})"
        super().__init__(f"unknown variant index {index}{where}")
        self.index = index
        self.type_id = type_id


class TypeNotFound(ScaleDecodeError):
    """Raised when a type id is not present in the registry."""

    def __init__(self, type_id: int) -> None:
        super().__init__(f"type id {type_id} not found in registry")
        self.type_id = type_id


class TrailingBytes(ScaleDecodeError):
    """Raised when input remains after a complete value was decoded."""

    def __init__(self, remaining: int) -> None:
        super().__init__(f"{remaining} trailing bytes after decoded value")
        self.remaining = remaining


# ---- block resolution ----


class BlockIdentifierError(ParascopeError, ValueError):
    """Raised for block identifiers that cannot be parsed."""


class BlockResolveError(ParascopeError):
    """Base class for identifier resolution failures."""

    def __init__(self, message: str, *, identifier: Any = None) -> None:
        super().__init__(message)
        self.identifier = identifier


class BlockNotFound(BlockResolveError):
    """Raised when the identifier names no block on the chain."""


class BlockAmbiguous(BlockResolveError):
    """Raised when an identifier resolves to more than one block where one is required."""


# ---- projection ----


class ProjectionError(ParascopeError):
    """Raised when a decoded value cannot be rendered for its semantic kind."""


def error_marker(exc: BaseException) -> dict[str, Any]:
    """Render an exception as the embedded per-item error marker."""
    return {"error": {"kind": type(exc).__name__, "message": str(exc)}}
