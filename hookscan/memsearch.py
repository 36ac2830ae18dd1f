"""Searches for calls, jumps, pushes and function entries in a memory image.

All searches work on a :class:`~hookscan.memory.MemoryImage`. Addresses are
absolute; a search that finds nothing returns ``None``. Bytes that the image
does not hold never match, so a search running off the end of the image
simply stops finding anything.
"""

from __future__ import annotations

from collections import deque
from typing import Iterable, Iterator, Optional, Sequence, Tuple

from hookscan.memory import MemoryImage, search_pattern, sig_mask

#: Estimated maximum size of a caller function.
MAXIMUM_FUNCTION_SIZE = 0x800
#: Offset added to the lower bound before a search starts.
MEMORY_PADDING_OFFSET = 0x1000
#: Step used when walking back over aligned function starts.
MEMORY_ALIGNED_STEP = 0x10
#: Largest number of signatures accepted by :func:`find_multi_caller_address`.
MAX_SIG_COUNT = 0x10

USER_MEMORY_START_ADDRESS = 0
USER_MEMORY_STOP_ADDRESS = 0x7FFEFFFF
KERNEL_MEMORY_START_ADDRESS = 0x80000000
KERNEL_MEMORY_STOP_ADDRESS = 0xFFFFFFFF
MAPPED_MEMORY_START_ADDRESS = 0x01000000
MEMORY_START_ADDRESS = USER_MEMORY_START_ADDRESS
MEMORY_STOP_ADDRESS = USER_MEMORY_STOP_ADDRESS

_MASK32 = 0xFFFFFFFF
_PATTERN_SIZE = 4

_WORD_JMP = 0x25FF  # jmp dword ptr [addr]
_WORD_CALL = 0x15FF  # call dword ptr [addr]
_BYTE_JMP = 0xE9  # jmp rel32
_BYTE_CALL = 0xE8  # call rel32
_BYTE_PUSH_SMALL = 0x6A
_BYTE_PUSH_LARGE = 0x68
_BYTE_INT3 = 0xCC
_WORD_2INT3 = 0xCCCC


def _read(image: MemoryImage, address: int, size: int) -> Optional[int]:
    if not image.contains(address, size):
        return None
    return int.from_bytes(image.read_bytes(address, size), "little")


def _byte(image: MemoryImage, address: int) -> Optional[int]:
    return _read(image, address, 1)


def _word(image: MemoryImage, address: int) -> Optional[int]:
    return _read(image, address, 2)


def _dword(image: MemoryImage, address: int) -> Optional[int]:
    return _read(image, address, 4)


def _last(values: Iterable) -> Optional[object]:
    tail = deque(values, maxlen=1)
    return tail[0] if tail else None


def _effective_range(lower_bound: int, upper_bound: int, offset: int, range_: int) -> int:
    return range_ if range_ else upper_bound - lower_bound - offset


def _word_calls(image: MemoryImage, op: int, arg1: int, start: int, stop: int,
                offset: int, range_: int) -> Iterator[int]:
    """Instructions ``op [ptr]`` whose pointer lies in (start, stop) and holds ``arg1``."""
    for i in range(offset, offset + range_ - 4):
        here = start + i
        if _word(image, here) != op:
            continue
        target = _dword(image, here + 2)
        if target is not None and start < target < stop and _dword(image, target) == arg1:
            yield here


def _byte_calls(image: MemoryImage, op: int, arg1: int, start: int,
                offset: int, range_: int) -> Iterator[int]:
    """Instructions ``op rel32`` whose destination is ``arg1``."""
    for i in range(offset, offset + range_ - 4):
        here = start + i
        if _byte(image, here) != op:
            continue
        rel = _dword(image, here + 1)
        if rel is not None and arg1 == (rel + here + 5) & _MASK32:
            yield here


def _caller_entries(image: MemoryImage, func_addr: int, sigs: Sequence[int],
                    lower_bound: int, upper_bound: int, reverse_length: int,
                    offset: int) -> Iterator[Tuple[int, int]]:
    """Pairs of (caller entry, call address) for far calls through a pointer to ``func_addr``."""
    checks = [(sig, sig_mask(sig)) for sig in sigs]
    size = upper_bound - lower_bound - _PATTERN_SIZE
    i = offset
    while i < size:
        call = lower_bound + i
        if _word(image, call) == _WORD_CALL:
            target = _dword(image, call + 2)
            if target is not None and lower_bound <= target <= upper_bound - _PATTERN_SIZE:
                if _dword(image, target) == func_addr:
                    # The bound wraps like an unsigned value: near the start nothing is scanned.
                    stop = (i - reverse_length) & _MASK32
                    for j in range(i, stop, -1):
                        inst = _dword(image, lower_bound + j)
                        if inst is not None and any(inst & mask == sig for sig, mask in checks):
                            yield lower_bound + j, call
                            break
            else:
                i += 6
        i += 1


def _skip_int3(image: MemoryImage, address: int) -> int:
    address += 1
    while _byte(image, address) == _BYTE_INT3:
        address += 1
    return address


def find_bytes(image: MemoryImage, pattern: bytes, lower_bound: int,
               upper_bound: int) -> Optional[int]:
    """Address of the first match of ``pattern`` (wildcards allowed) in the bounds."""
    start = max(lower_bound, image.base)
    stop = min(upper_bound, image.end)
    if stop <= start:
        return None
    found = search_pattern(image.read_bytes(start, stop - start), pattern)
    return None if found is None else start + found


def find_long_jump_address(image: MemoryImage, func_addr: int, lower_bound: int,
                           upper_bound: int, offset: int = MEMORY_PADDING_OFFSET,
                           range_: int = 0) -> Optional[int]:
    """First ``jmp dword ptr [p]`` with ``*p == func_addr``."""
    span = _effective_range(lower_bound, upper_bound, offset, range_)
    return next(_word_calls(image, _WORD_JMP, func_addr, lower_bound, upper_bound, offset, span), None)


def find_short_jump_address(image: MemoryImage, func_addr: int, lower_bound: int,
                            upper_bound: int, offset: int = MEMORY_PADDING_OFFSET,
                            range_: int = 0) -> Optional[int]:
    """First relative ``jmp`` to ``func_addr``."""
    span = _effective_range(lower_bound, upper_bound, offset, range_)
    return next(_byte_calls(image, _BYTE_JMP, func_addr, lower_bound, offset, span), None)


def find_far_call_address(image: MemoryImage, func_addr: int, lower_bound: int,
                          upper_bound: int, offset: int = MEMORY_PADDING_OFFSET,
                          range_: int = 0) -> Optional[int]:
    """First ``call dword ptr [p]`` with ``*p == func_addr``."""
    span = _effective_range(lower_bound, upper_bound, offset, range_)
    return next(_word_calls(image, _WORD_CALL, func_addr, lower_bound, upper_bound, offset, span), None)


def find_near_call_address(image: MemoryImage, func_addr: int, lower_bound: int,
                           upper_bound: int, offset: int = MEMORY_PADDING_OFFSET,
                           range_: int = 0) -> Optional[int]:
    """First relative ``call`` to ``func_addr``."""
    span = _effective_range(lower_bound, upper_bound, offset, range_)
    return next(_byte_calls(image, _BYTE_CALL, func_addr, lower_bound, offset, span), None)


def find_last_long_jump_address(image: MemoryImage, func_addr: int, lower_bound: int,
                                upper_bound: int, offset: int = MEMORY_PADDING_OFFSET,
                                range_: int = 0) -> Optional[int]:
    """Last ``jmp dword ptr [p]`` with ``*p == func_addr``."""
    span = _effective_range(lower_bound, upper_bound, offset, range_)
    return _last(_word_calls(image, _WORD_JMP, func_addr, lower_bound, upper_bound, offset, span))


def find_last_short_jump_address(image: MemoryImage, func_addr: int, lower_bound: int,
                                 upper_bound: int, offset: int = MEMORY_PADDING_OFFSET,
                                 range_: int = 0) -> Optional[int]:
    """Last relative ``jmp`` to ``func_addr``."""
    span = _effective_range(lower_bound, upper_bound, offset, range_)
    return _last(_byte_calls(image, _BYTE_JMP, func_addr, lower_bound, offset, span))


def find_last_far_call_address(image: MemoryImage, func_addr: int, lower_bound: int,
                               upper_bound: int, offset: int = MEMORY_PADDING_OFFSET,
                               range_: int = 0) -> Optional[int]:
    """Last ``call dword ptr [p]`` with ``*p == func_addr``."""
    span = _effective_range(lower_bound, upper_bound, offset, range_)
    return _last(_word_calls(image, _WORD_CALL, func_addr, lower_bound, upper_bound, offset, span))


def find_last_near_call_address(image: MemoryImage, func_addr: int, lower_bound: int,
                                upper_bound: int, offset: int = MEMORY_PADDING_OFFSET,
                                range_: int = 0) -> Optional[int]:
    """Last relative ``call`` to ``func_addr``."""
    span = _effective_range(lower_bound, upper_bound, offset, range_)
    return _last(_byte_calls(image, _BYTE_CALL, func_addr, lower_bound, offset, span))


def find_push_dword_address(image: MemoryImage, value: int, lower_bound: int,
                            upper_bound: int) -> Optional[int]:
    """First ``push imm32`` of ``value``."""
    if not 0 <= value <= _MASK32:
        raise ValueError("value must fit in 32 bits")
    pattern = bytes([_BYTE_PUSH_LARGE]) + value.to_bytes(4, "little")
    return find_bytes(image, pattern, lower_bound, upper_bound)


def find_push_byte_address(image: MemoryImage, value: int, lower_bound: int,
                           upper_bound: int) -> Optional[int]:
    """First ``push imm8`` of ``value``."""
    if not 0 <= value <= 0xFF:
        raise ValueError("value must fit in 8 bits")
    return find_bytes(image, bytes([_BYTE_PUSH_SMALL, value]), lower_bound, upper_bound)


def find_caller_address(image: MemoryImage, func_addr: int, sig: int, lower_bound: int,
                        upper_bound: int, caller_search_size: int = MAXIMUM_FUNCTION_SIZE,
                        offset: int = MEMORY_PADDING_OFFSET) -> Optional[int]:
    """Entry, marked by ``sig``, of the first function far-calling ``func_addr``."""
    found = next(_caller_entries(image, func_addr, [sig], lower_bound, upper_bound,
                                 caller_search_size, offset), None)
    return None if found is None else found[0]


def find_multi_caller_address(image: MemoryImage, func_addr: int, sigs: Sequence[int],
                              lower_bound: int, upper_bound: int,
                              caller_search_size: int = MAXIMUM_FUNCTION_SIZE,
                              offset: int = MEMORY_PADDING_OFFSET) -> Optional[int]:
    """Like :func:`find_caller_address`, with any of several entry signatures."""
    sigs = list(sigs)
    if len(sigs) > MAX_SIG_COUNT:
        raise ValueError(f"at most {MAX_SIG_COUNT} signatures are supported")
    found = next(_caller_entries(image, func_addr, sigs, lower_bound, upper_bound,
                                 caller_search_size, offset), None)
    return None if found is None else found[0]


def find_last_caller_address(image: MemoryImage, func_addr: int, sig: int, lower_bound: int,
                             upper_bound: int, caller_search_size: int = MAXIMUM_FUNCTION_SIZE,
                             offset: int = MEMORY_PADDING_OFFSET) -> Optional[int]:
    """Entry, marked by ``sig``, of the last function far-calling ``func_addr``."""
    found = _last(_caller_entries(image, func_addr, [sig], lower_bound, upper_bound,
                                  caller_search_size, offset))
    return None if found is None else found[0]


def find_caller_address_after_int3(image: MemoryImage, func_addr: int, lower_bound: int,
                                   upper_bound: int,
                                   caller_search_size: int = MAXIMUM_FUNCTION_SIZE,
                                   offset: int = MEMORY_PADDING_OFFSET) -> Optional[int]:
    """First caller of ``func_addr`` whose entry follows ``int3`` padding."""
    addr = find_caller_address(image, func_addr, _WORD_2INT3, lower_bound, upper_bound,
                               caller_search_size, offset)
    return None if addr is None else _skip_int3(image, addr)


def find_last_caller_address_after_int3(image: MemoryImage, func_addr: int, lower_bound: int,
                                        upper_bound: int,
                                        caller_search_size: int = MAXIMUM_FUNCTION_SIZE,
                                        offset: int = MEMORY_PADDING_OFFSET) -> Optional[int]:
    """Last caller of ``func_addr`` whose entry follows ``int3`` padding."""
    addr = find_last_caller_address(image, func_addr, _WORD_2INT3, lower_bound, upper_bound,
                                    caller_search_size, offset)
    return None if addr is None else _skip_int3(image, addr)


def find_aligned_near_caller_address(image: MemoryImage, func_addr: int, lower_bound: int,
                                     upper_bound: int,
                                     caller_search_size: int = MAXIMUM_FUNCTION_SIZE,
                                     offset: int = MEMORY_PADDING_OFFSET) -> Optional[int]:
    """Aligned start of the function holding the first near call to ``func_addr``."""
    addr = find_near_call_address(image, func_addr, lower_bound, upper_bound, offset)
    if addr is None:
        return None
    return find_enclosing_aligned_function(image, addr, caller_search_size)


def find_last_aligned_near_caller_address(image: MemoryImage, func_addr: int, lower_bound: int,
                                          upper_bound: int,
                                          caller_search_size: int = MAXIMUM_FUNCTION_SIZE,
                                          offset: int = MEMORY_PADDING_OFFSET) -> Optional[int]:
    """Aligned start enclosing the last ``int3``-padded caller of ``func_addr``."""
    addr = find_last_caller_address_after_int3(image, func_addr, lower_bound, upper_bound,
                                               caller_search_size, offset)
    if addr is None:
        return None
    return find_enclosing_aligned_function(image, addr, caller_search_size)


def _ends_function(k: int) -> bool:
    """Whether the dword before an aligned address looks like a function tail."""
    if k in (0xCCCCCCCC, 0x90909090, 0xCCCCCCC3, 0x909090C3):
        return True
    if k & 0xFF0000FF in (0xCC0000C2, 0x900000C2):
        return True
    k >>= 8
    if k in (0xCCCCC3, 0x9090C3) or k & 0xFF == 0xC2:
        return True
    k >>= 8
    if k in (0xCCC3, 0x90C3):
        return True
    return k >> 8 == 0xC3


def find_enclosing_aligned_function(image: MemoryImage, start: int,
                                    back_range: int = MAXIMUM_FUNCTION_SIZE) -> Optional[int]:
    """Nearest 16-byte aligned address at or below ``start`` that follows padding or a return."""
    start &= ~0xF
    if start < back_range:
        return None
    for i in range(start, start - back_range, -MEMORY_ALIGNED_STEP):
        k = _dword(image, i - 4)
        if k is not None and _ends_function(k):
            return i
    return None


def find_enclosing_function_after_dword(image: MemoryImage, sig: int, start: int,
                                        back_range: int = MAXIMUM_FUNCTION_SIZE,
                                        step: int = MEMORY_ALIGNED_STEP) -> Optional[int]:
    """Nearest address at or below ``start`` that directly follows the dword ``sig``."""
    if step <= 0:
        raise ValueError("step must be positive")
    start &= ~0xF
    if start < back_range:
        return None
    for i in range(start, start - back_range, -step):
        if _dword(image, i - 4) == sig:
            return i
    return None


def find_enclosing_function_before_dword(image: MemoryImage, sig: int, start: int,
                                         back_range: int = MAXIMUM_FUNCTION_SIZE,
                                         step: int = MEMORY_ALIGNED_STEP) -> Optional[int]:
    """Address of the dword ``sig`` found by :func:`find_enclosing_function_after_dword`."""
    addr = find_enclosing_function_after_dword(image, sig, start, back_range, step)
    return None if addr is None else addr - 4


def find_enclosing_function_after_int3(image: MemoryImage, start: int,
                                       back_range: int = MAXIMUM_FUNCTION_SIZE,
                                       step: int = MEMORY_ALIGNED_STEP) -> Optional[int]:
    """Nearest address at or below ``start`` following four ``int3`` bytes."""
    return find_enclosing_function_after_dword(image, 0xCCCCCCCC, start, back_range, step)


def find_enclosing_function_after_nop(image: MemoryImage, start: int,
                                      back_range: int = MAXIMUM_FUNCTION_SIZE,
                                      step: int = MEMORY_ALIGNED_STEP) -> Optional[int]:
    """Nearest address at or below ``start`` following four ``nop`` bytes."""
    return find_enclosing_function_after_dword(image, 0x90909090, start, back_range, step)