"""Application use cases: block resolution, relay mapping and block decoding."""
