"""Memory snapshots, wildcard pattern search and small encoding helpers."""

from __future__ import annotations

import re
from typing import Optional

from hookscan.types import WILDCARD_BYTE

_DWORD_MAX = 0xFFFFFFFF


class MemoryImage:
    """A contiguous block of bytes mapped at a base address."""

    def __init__(self, base: int, data: bytes) -> None:
        if base < 0:
            raise ValueError("base address must not be negative")
        self._base = base
        self._data = bytes(data)

    def __repr__(self) -> str:
        return f"MemoryImage(base=0x{self._base:x}, size=0x{len(self._data):x})"

    def __len__(self) -> int:
        return len(self._data)

    @property
    def base(self) -> int:
        return self._base

    @property
    def data(self) -> bytes:
        return self._data

    @property
    def end(self) -> int:
        """Address one past the last mapped byte."""
        return self._base + len(self._data)

    def contains(self, address: int, size: int = 1) -> bool:
        return self._base <= address and address + size <= self.end

    def _offset(self, address: int, size: int) -> int:
        if size < 0 or not self.contains(address, size):
            raise IndexError(f"read of {size} bytes at 0x{address:x} is outside the image")
        return address - self._base

    def read_bytes(self, address: int, size: int) -> bytes:
        start = self._offset(address, size)
        return self._data[start: start + size]

    def read_byte(self, address: int) -> int:
        return self._data[self._offset(address, 1)]

    def read_word(self, address: int) -> int:
        return int.from_bytes(self.read_bytes(address, 2), "little")

    def read_dword(self, address: int) -> int:
        return int.from_bytes(self.read_bytes(address, 4), "little")


def _compile_pattern(pattern: bytes) -> "re.Pattern[bytes]":
    parts = (b"." if b == WILDCARD_BYTE else re.escape(bytes([b])) for b in pattern)
    return re.compile(b"".join(parts), re.DOTALL)


def search_pattern(data: bytes, pattern: bytes) -> Optional[int]:
    """Offset of the first match of ``pattern`` in ``data``, or ``None``.

    The wildcard byte matches anything. A match must end before the last
    byte of ``data``.
    """
    data = bytes(data)
    pattern = bytes(pattern)
    if len(data) <= len(pattern):
        return None
    found = _compile_pattern(pattern).search(data, 0, len(data) - 1)
    return None if found is None else found.start()


def sig_mask(sig: int) -> int:
    """Mask covering the significant bytes of a 32-bit signature."""
    if not 0 <= sig <= _DWORD_MAX:
        raise ValueError("signature must fit in 32 bits")
    count = (sig.bit_length() + 7) // 8
    return _DWORD_MAX >> ((4 - count) * 8)


def lead_byte_length(byte: int) -> int:
    """Character width in Shift-JIS for a character starting with ``byte``."""
    if not 0 <= byte <= 0xFF:
        raise ValueError("byte must be in range 0..255")
    return 2 if 0x81 <= byte <= 0xA0 or 0xE0 <= byte <= 0xFC else 1