"""Metadata-driven SCALE decoding.

This package provides:
- Metadata parsing into an immutable `TypeRegistry` (V14 / V15)
- The generic decoder producing `DecodedValue` trees
- Type-aware projection of decoded values into JSON
- Extrinsic, event, digest and XCM decoders plus the registry cache
"""

from parascope.decoding.decoder import decode, decode_from
from parascope.decoding.metadata import build_registry, parse_metadata
from parascope.decoding.projection import Projector, SemanticKind, classify, project
from parascope.decoding.types import TypeRegistry

__all__ = [
    "decode",
    "decode_from",
    "build_registry",
    "parse_metadata",
    "Projector",
    "SemanticKind",
    "classify",
    "project",
    "TypeRegistry",
]
