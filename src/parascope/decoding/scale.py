"""SCALE byte cursor: fixed-width integers, compact integers, length-prefixed data.

`ScaleReader` is the only place that slices raw input. Every read checks the
remaining length first and raises `UnexpectedEof` instead of returning short
data.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TypeVar

from parascope.core.errors import ScaleDecodeError, UnexpectedEof

T = TypeVar("T")


class ScaleReader:
    """Forward-only cursor over SCALE-encoded bytes."""

    __slots__ = ("data", "offset")

    def __init__(self, data: bytes, offset: int = 0) -> None:
        self.data = bytes(data)
        self.offset = offset

    def remaining(self) -> int:
        return len(self.data) - self.offset

    def read(self, n: int) -> bytes:
        """Read exactly `n` bytes."""
        if n < 0 or n > self.remaining():
            raise UnexpectedEof(n, self.remaining())
        start = self.offset
        self.offset += n
        return self.data[start : self.offset]

    def peek(self) -> int:
        if self.remaining() < 1:
            raise UnexpectedEof(1, 0)
        return self.data[self.offset]

    # ---- integers ----

    def uint(self, width: int) -> int:
        return int.from_bytes(self.read(width), "little", signed=False)

    def sint(self, width: int) -> int:
        return int.from_bytes(self.read(width), "little", signed=True)

    def u8(self) -> int:
        return self.uint(1)

    def u16(self) -> int:
        return self.uint(2)

    def u32(self) -> int:
        return self.uint(4)

    def u64(self) -> int:
        return self.uint(8)

    def boolean(self) -> bool:
        b = self.u8()
        if b > 1:
            raise ScaleDecodeError(f"invalid bool byte {b:#x} at offset {self.offset - 1}")
        return b == 1

    def compact(self) -> int:
        """Read a SCALE compact integer (single, two, four byte or big-integer mode)."""
        b0 = self.peek()
        mode = b0 & 0b11
        if mode == 0:
            return self.u8() >> 2
        if mode == 1:
            return self.u16() >> 2
        if mode == 2:
            return self.u32() >> 2
        self.offset += 1
        return self.uint((b0 >> 2) + 4)

    # ---- composite helpers ----

    def bytes_vec(self) -> bytes:
        """Read compact-length-prefixed bytes (`Vec<u8>`)."""
        return self.read(self.compact())

    def text(self) -> str:
        raw = self.bytes_vec()
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ScaleDecodeError(f"invalid UTF-8 string at offset {self.offset - len(raw)}: {e.reason}") from e

    def option(self, read_item: Callable[[ScaleReader], T]) -> T | None:
        flag = self.u8()
        if flag == 0:
            return None
        if flag == 1:
            return read_item(self)
        raise ScaleDecodeError(f"invalid Option discriminant {flag:#x} at offset {self.offset - 1}")

    def vec(self, read_item: Callable[[ScaleReader], T]) -> list[T]:
        return [read_item(self) for _ in range(self.compact())]


def encode_compact(value: int) -> bytes:
    """Encode an unsigned integer as a SCALE compact."""
    if value < 0:
        raise ValueError("compact integers are unsigned")
    if value < 1 << 6:
        return bytes([value << 2])
    if value < 1 << 14:
        return ((value << 2) | 0b01).to_bytes(2, "little")
    if value < 1 << 30:
        return ((value << 2) | 0b10).to_bytes(4, "little")
    raw = value.to_bytes((value.bit_length() + 7) // 8, "little")
    return bytes([((len(raw) - 4) << 2) | 0b11]) + raw
