"""Call, jump and entry searches over a loaded module, plus PE header helpers.

The searches start 0x1000 bytes past ``pt`` and cover ``size`` bytes from
``pt``. A search that finds nothing returns ``None``. Bytes that the image
does not hold never match.
"""

from __future__ import annotations

import glob
import os
import sys
from typing import Optional, Tuple, Union

from hookscan.memory import MemoryImage, search_pattern, sig_mask
from hookscan.memsearch import (
    _byte,
    _caller_entries,
    _dword,
    _word,
    find_enclosing_aligned_function,
)

_MASK32 = 0xFFFFFFFF
_REVERSE_LENGTH = 0x800
_SEARCH_START = 0x1000

_IMAGE_DOS_SIGNATURE = 0x5A4D  # "MZ"
_IMAGE_NT_SIGNATURE = 0x00004550  # "PE\0\0"
_IMAGE_SCN_CNT_CODE = 0x00000020
_IMAGE_DIRECTORY_ENTRY_RESOURCE = 2
_IMAGE_DIRECTORY_ENTRY_IAT = 12

_E_LFANEW_OFFSET = 0x3C
_FILE_HEADER_SIZE_OF_OPTIONAL = 4 + 16
_OPTIONAL_HEADER_OFFSET = 4 + 20
_DATA_DIRECTORY_OFFSET = _OPTIONAL_HEADER_OFFSET + 96
_SECTION_HEADER_SIZE = 40


def _nt_headers(image: MemoryImage, module: int) -> Optional[int]:
    """Address of the NT headers of the module at ``module``, if it is a PE image."""
    if _word(image, module) != _IMAGE_DOS_SIGNATURE:
        return None
    lfanew = _dword(image, module + _E_LFANEW_OFFSET)
    if lfanew is None:
        return None
    nt = module + lfanew
    if _dword(image, nt) != _IMAGE_NT_SIGNATURE:
        return None
    return nt


def _data_directory(image: MemoryImage, module: int, index: int) -> Optional[Tuple[int, int]]:
    nt = _nt_headers(image, module)
    if nt is None:
        return None
    entry = nt + _DATA_DIRECTORY_OFFSET + 8 * index
    address = _dword(image, entry)
    size = _dword(image, entry + 4)
    if address is None or size is None:
        return None
    return address, size


def get_code_range(image: MemoryImage, module: int) -> Optional[Tuple[int, int]]:
    """Bounds ``(low, high)`` of the first code section of the module at ``module``."""
    nt = _nt_headers(image, module)
    if nt is None:
        return None
    optional_size = _word(image, nt + _FILE_HEADER_SIZE_OF_OPTIONAL)
    if optional_size is None:
        return None
    header = nt + _OPTIONAL_HEADER_OFFSET + optional_size
    while image.contains(header, _SECTION_HEADER_SIZE):
        characteristics = image.read_dword(header + 36)
        if characteristics & _IMAGE_SCN_CNT_CODE:
            virtual_size = image.read_dword(header + 8)
            low = (module + image.read_dword(header + 12)) & _MASK32
            high = (low + (virtual_size & 0xFFFFF000) + 0x1000) & _MASK32
            return low, high
        header += _SECTION_HEADER_SIZE
    return None


def find_call_and_entry_both(image: MemoryImage, fun: int, size: int, pt: int,
                             sig: int) -> Optional[int]:
    """Entry marked by the 16-bit ``sig`` before the first call (relative or absolute) to ``fun``."""
    wanted = sig & sig_mask(sig)
    i = _SEARCH_START
    while i < size - 4:
        here = pt + i
        relative: Optional[bool] = None
        target: Optional[int] = None
        if _byte(image, here) == 0xE8:
            relative, target = True, _dword(image, here + 1)
        elif _word(image, here) == 0x15FF:
            relative, target = False, _dword(image, here + 2)
        if relative is not None and target is not None:
            step = 5 if relative else 6
            if relative:
                hit = (here + 5 + target) & _MASK32 == fun
            elif pt <= target <= pt + size - 4:
                hit = _dword(image, target) == fun
            else:
                hit = False
            if hit:
                j = i
                while j > i - _REVERSE_LENGTH:
                    if _word(image, pt + j) == wanted:
                        return pt + j
                    # Each miss in the backward scan also advances the forward scan.
                    i += step
                    j -= 1
        i += 1
    return None


def find_call_or_jmp_rel(image: MemoryImage, fun: int, size: int, pt: int,
                         jmp: bool) -> Optional[int]:
    """Address of the first relative ``call`` (or ``jmp``) to ``fun``."""
    opcode = 0xE9 if jmp else 0xE8
    i = _SEARCH_START
    while i < size - 4:
        here = pt + i
        if _byte(image, here) == opcode:
            rel = _dword(image, here + 1)
            if rel is not None and fun == (here + 5 + rel) & _MASK32:
                return here
            i += 5
        i += 1
    return None


def find_call_or_jmp_abs(image: MemoryImage, fun: int, size: int, pt: int,
                         jmp: bool) -> Optional[int]:
    """Address of the first ``call``/``jmp dword ptr [p]`` with ``*p == fun``."""
    opcode = 0x25FF if jmp else 0x15FF
    i = _SEARCH_START
    while i < size - 4:
        here = pt + i
        if _word(image, here) == opcode:
            target = _dword(image, here + 2)
            if target is not None and pt < target < pt + size:
                if _dword(image, target) == fun:
                    return here
                i += 5
        i += 1
    return None


def find_call_both(image: MemoryImage, fun: int, size: int, pt: int) -> Optional[int]:
    """Offset from ``pt`` of the first relative or absolute call to ``fun``."""
    i = _SEARCH_START
    while i < size - 4:
        here = pt + i
        if _byte(image, here) == 0xE8:
            rel = _dword(image, here + 1)
            if rel is not None and (rel + here + 5) & _MASK32 == fun:
                return i
        if _word(image, here) == 0x15FF:
            target = _dword(image, here + 2)
            if target is not None and pt <= target <= pt + size - 4:
                if _dword(image, target) == fun:
                    return i
                i += 6
        i += 1
    return None


def find_call_and_entry_abs(image: MemoryImage, fun: int, size: int, pt: int,
                            sig: int) -> Optional[int]:
    """Entry marked by ``sig`` before the first absolute call to ``fun``."""
    found = next(_caller_entries(image, fun, [sig], pt, pt + size,
                                 _REVERSE_LENGTH, _SEARCH_START), None)
    return None if found is None else found[0]


def find_call_and_entry_rel(image: MemoryImage, fun: int, size: int, pt: int,
                            sig: int) -> Optional[int]:
    """Entry marked by ``sig`` before the first relative call to ``fun``."""
    call = find_call_or_jmp_rel(image, fun, size, pt, False)
    if call is None:
        return None
    mask = sig_mask(sig)
    for j in range(call, call - _REVERSE_LENGTH, -1):
        inst = _dword(image, j)
        if inst is not None and inst & mask == sig:
            return j
    return None


def find_entry_aligned(image: MemoryImage, start: int,
                       back_range: int = _REVERSE_LENGTH) -> Optional[int]:
    """Aligned start of the function that holds ``start``."""
    return find_enclosing_aligned_function(image, start, back_range)


def find_import_entry(image: MemoryImage, module: int, fun: int) -> Optional[int]:
    """Address of the import address table slot that holds ``fun``."""
    directory = _data_directory(image, module, _IMAGE_DIRECTORY_ENTRY_IAT)
    if directory is None:
        return None
    iat = module + directory[0]
    for slot in range(iat, iat + directory[1], 4):
        if _dword(image, slot) == fun:
            return slot
    return None


def search_resource_string(image: MemoryImage, module: int, text: str) -> bool:
    """Whether ``text`` (UTF-16LE) occurs in the memory holding the module's resources."""
    directory = _data_directory(image, module, _IMAGE_DIRECTORY_ENTRY_RESOURCE)
    if directory is None or not directory[0] or not text:
        return False
    if not image.contains(module + directory[0]):
        return False
    region = image.data[: max(len(image) - 4, 0)]
    return search_pattern(region, text.encode("utf-16-le")) is not None


def _wildcard_pattern(name: str) -> str:
    # Only "*" and "?" act as wildcards; everything else is literal.
    return glob.escape(name).replace("[*]", "*").replace("[?]", "?")


def check_file(name: str,
               executable_dir: Union[str, "os.PathLike[str]", None] = None) -> bool:
    """Whether ``name`` (wildcards allowed) exists here or next to the executable."""
    pattern = _wildcard_pattern(name)
    if glob.glob(pattern):
        return True
    if executable_dir is None:
        executable_dir = os.path.dirname(os.path.abspath(sys.argv[0]))
    return bool(glob.glob(os.path.join(glob.escape(os.fspath(executable_dir)), pattern)))