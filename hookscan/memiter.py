"""Generators over every call, jump, pattern match and caller in a memory image.

These are the iterating counterparts of :mod:`hookscan.memsearch`: rather
than stopping at the first hit, each function yields every hit in address
order. Stop iterating to end a search early.
"""

from __future__ import annotations

from typing import Iterator, Optional, Tuple

from hookscan.memory import MemoryImage
from hookscan.memsearch import (
    MAXIMUM_FUNCTION_SIZE,
    MEMORY_PADDING_OFFSET,
    _BYTE_CALL,
    _BYTE_JMP,
    _WORD_2INT3,
    _WORD_CALL,
    _WORD_JMP,
    _byte_calls,
    _caller_entries,
    _effective_range,
    _skip_int3,
    _word_calls,
    find_bytes,
    find_enclosing_aligned_function,
)


def iter_find_bytes(image: MemoryImage, pattern: bytes, lower_bound: int,
                    upper_bound: int) -> Iterator[int]:
    """Addresses of successive, non-overlapping matches of ``pattern`` in the bounds."""
    pattern = bytes(pattern)
    if not pattern:
        raise ValueError("pattern must not be empty")
    addr = lower_bound
    while addr < upper_bound - len(pattern):
        found = find_bytes(image, pattern, addr, upper_bound)
        if found is None:
            return
        yield found
        addr = found + len(pattern)


def iter_caller_addresses(image: MemoryImage, func_addr: int, sig: int, lower_bound: int,
                          upper_bound: int, caller_search_size: int = MAXIMUM_FUNCTION_SIZE,
                          offset: int = MEMORY_PADDING_OFFSET) -> Iterator[Tuple[int, int]]:
    """Pairs ``(caller entry, call address)`` for every far call to ``func_addr``.

    The entry is the nearest address at or before the call whose leading
    bytes match ``sig``.
    """
    yield from _caller_entries(image, func_addr, [sig], lower_bound, upper_bound,
                               caller_search_size, offset)


def iter_caller_addresses_after_int3(image: MemoryImage, func_addr: int, lower_bound: int,
                                     upper_bound: int,
                                     caller_search_size: int = MAXIMUM_FUNCTION_SIZE,
                                     offset: int = MEMORY_PADDING_OFFSET
                                     ) -> Iterator[Tuple[int, int]]:
    """Like :func:`iter_caller_addresses`, for entries following ``int3`` padding."""
    for entry, call in iter_caller_addresses(image, func_addr, _WORD_2INT3, lower_bound,
                                             upper_bound, caller_search_size, offset):
        yield _skip_int3(image, entry), call


def iter_unique_caller_addresses(image: MemoryImage, func_addr: int, sig: int,
                                 lower_bound: int, upper_bound: int,
                                 caller_search_size: int = MAXIMUM_FUNCTION_SIZE,
                                 offset: int = MEMORY_PADDING_OFFSET) -> Iterator[int]:
    """Caller entries of ``func_addr``, skipping repeats of the previous entry."""
    previous: Optional[int] = None
    for entry, _call in iter_caller_addresses(image, func_addr, sig, lower_bound,
                                              upper_bound, caller_search_size, offset):
        if entry != previous:
            previous = entry
            yield entry


def iter_unique_caller_addresses_after_int3(image: MemoryImage, func_addr: int,
                                            lower_bound: int, upper_bound: int,
                                            caller_search_size: int = MAXIMUM_FUNCTION_SIZE,
                                            offset: int = MEMORY_PADDING_OFFSET
                                            ) -> Iterator[int]:
    """Unique caller entries following ``int3`` padding, with the padding skipped."""
    for entry in iter_unique_caller_addresses(image, func_addr, _WORD_2INT3, lower_bound,
                                              upper_bound, caller_search_size, offset):
        yield _skip_int3(image, entry)


def iter_long_jump_addresses(image: MemoryImage, func_addr: int, lower_bound: int,
                             upper_bound: int, offset: int = MEMORY_PADDING_OFFSET,
                             range_: int = 0) -> Iterator[int]:
    """Every ``jmp dword ptr [p]`` with ``*p == func_addr``."""
    span = _effective_range(lower_bound, upper_bound, offset, range_)
    yield from _word_calls(image, _WORD_JMP, func_addr, lower_bound, upper_bound, offset, span)


def iter_short_jump_addresses(image: MemoryImage, func_addr: int, lower_bound: int,
                              upper_bound: int, offset: int = MEMORY_PADDING_OFFSET,
                              range_: int = 0) -> Iterator[int]:
    """Every relative ``jmp`` to ``func_addr``."""
    span = _effective_range(lower_bound, upper_bound, offset, range_)
    yield from _byte_calls(image, _BYTE_JMP, func_addr, lower_bound, offset, span)


def iter_far_call_addresses(image: MemoryImage, func_addr: int, lower_bound: int,
                            upper_bound: int, offset: int = MEMORY_PADDING_OFFSET,
                            range_: int = 0) -> Iterator[int]:
    """Every ``call dword ptr [p]`` with ``*p == func_addr``."""
    span = _effective_range(lower_bound, upper_bound, offset, range_)
    yield from _word_calls(image, _WORD_CALL, func_addr, lower_bound, upper_bound, offset, span)


def iter_near_call_addresses(image: MemoryImage, func_addr: int, lower_bound: int,
                             upper_bound: int, offset: int = MEMORY_PADDING_OFFSET,
                             range_: int = 0) -> Iterator[int]:
    """Every relative ``call`` to ``func_addr``."""
    span = _effective_range(lower_bound, upper_bound, offset, range_)
    yield from _byte_calls(image, _BYTE_CALL, func_addr, lower_bound, offset, span)


def iter_aligned_near_caller_addresses(image: MemoryImage, func_addr: int, lower_bound: int,
                                       upper_bound: int,
                                       caller_search_size: int = MAXIMUM_FUNCTION_SIZE,
                                       offset: int = MEMORY_PADDING_OFFSET) -> Iterator[int]:
    """Aligned starts of functions near-calling ``func_addr``, skipping repeats."""
    previous: Optional[int] = None
    for call in iter_near_call_addresses(image, func_addr, lower_bound, upper_bound, offset):
        entry = find_enclosing_aligned_function(image, call, caller_search_size)
        if entry is not None and entry != previous:
            previous = entry
            yield entry