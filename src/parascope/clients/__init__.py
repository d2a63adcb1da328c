"""Node transport adapters."""

from parascope.clients.rpc import SubstrateRPC

__all__ = ["SubstrateRPC"]
