"""Length decoder for 32-bit x86 instructions."""

from __future__ import annotations

from typing import Union

Code = Union[bytes, bytearray, memoryview]


class DisassemblyError(ValueError):
    """Raised when an instruction cannot be decoded."""


def _r(lo: int, hi: int) -> set:
    return set(range(lo, hi + 1))


_PREFIXES = {
    0x26: "seg", 0x2E: "seg", 0x36: "seg", 0x3E: "seg", 0x64: "seg", 0x65: "seg",
    0xF0: "lock", 0xF2: "rep", 0xF3: "rep", 0x66: "opsize", 0x67: "addrsize",
}

_MODRM_ONLY = frozenset(
    set().union(*(_r(b, b + 3) for b in range(0x00, 0x40, 8)))
    | {0x62, 0x63, 0xC4, 0xC5, 0xFE, 0xFF}
    | _r(0x84, 0x8F) | _r(0xD0, 0xD3) | _r(0xD8, 0xDF)
)
_IMM_ACCUMULATOR = frozenset({b + k for b in range(0x00, 0x40, 8) for k in (4, 5)})
_IMM8 = frozenset(
    {0x6A, 0xA8, 0xD4, 0xD5, 0xEB}
    | _r(0xB0, 0xB7) | _r(0xE4, 0xE7) | _r(0x70, 0x7F) | _r(0xE0, 0xE3)
)
_MODRM_IMM8 = frozenset({0x6B, 0x80, 0x82, 0x83, 0xC0, 0xC1, 0xC6})
_MODRM_IMM_DEF = frozenset({0x69, 0x81, 0xC7})
_FAR_POINTER = frozenset({0x9A, 0xEA})
_MEM_OFFSET = frozenset(_r(0xA0, 0xA3))
_IMM_DEF = frozenset({0x68, 0xA9, 0xE8, 0xE9} | _r(0xB8, 0xBF))
_IMM16 = frozenset({0xC2, 0xCA})

_0F_MODRM = frozenset(
    {0x00, 0x01, 0x02, 0x03, 0xA3, 0xA5, 0xAB, 0xAD, 0xAF, 0xBB, 0xC0, 0xC1, 0x12, 0x13}
    | _r(0x90, 0x9F) | _r(0xB0, 0xB7) | _r(0xBC, 0xBF)
)
_0F_PLAIN = frozenset(
    {0x06, 0xA0, 0xA1, 0xA2, 0xA8, 0xA9, 0xAA} | _r(0x08, 0x0B) | _r(0xC8, 0xCF)
)
_0F_IMM_DEF = frozenset(_r(0x80, 0x8F))


def instruction_length(code: Code, offset: int = 0) -> int:
    """Length in bytes of the instruction starting at ``code[offset]``."""
    if not 0 <= offset <= len(code):
        raise ValueError("offset is outside the code buffer")
    pos = offset

    def peek() -> int:
        if pos >= len(code):
            raise DisassemblyError(f"instruction at offset {offset} is truncated")
        return code[pos]

    def fetch() -> int:
        nonlocal pos
        value = peek()
        pos += 1
        return value

    seen = set()
    def_data = def_mem = 4
    mem_size = data_size = 0
    has_modrm = False

    while True:
        op = fetch()
        kind = _PREFIXES.get(op)
        if kind is None:
            break
        if kind in seen:
            raise DisassemblyError(f"repeated prefix 0x{op:02x}")
        seen.add(kind)
        if op == 0x66:
            def_data = 2
        elif op == 0x67:
            def_mem = 2

    if op in _MODRM_ONLY:
        has_modrm = True
    elif op == 0xCD:
        data_size += 5 if peek() == 0x20 else 1
    elif op in (0xF6, 0xF7):
        has_modrm = True
        if not peek() & 0x38:  # TEST r/m, imm
            data_size += def_data if op & 1 else 1
    elif op in _IMM_ACCUMULATOR:
        data_size += def_data if op & 1 else 1
    elif op in _IMM8:
        data_size += 1
    elif op in _MODRM_IMM8:
        data_size += 1
        has_modrm = True
    elif op in _MODRM_IMM_DEF:
        data_size += def_data
        has_modrm = True
    elif op in _FAR_POINTER:
        data_size += 2 + def_data
    elif op in _MEM_OFFSET:
        mem_size += def_mem
    elif op in _IMM_DEF:
        data_size += def_data
    elif op in _IMM16:
        data_size += 2
    elif op == 0xC8:
        data_size += 3
    elif op == 0xF1:
        raise DisassemblyError("unsupported opcode 0xf1")
    elif op == 0x0F:
        op2 = fetch()
        if op2 in _0F_MODRM:
            has_modrm = True
        elif op2 in _0F_IMM_DEF:
            data_size += def_data
        elif op2 not in _0F_PLAIN:
            raise DisassemblyError(f"unsupported opcode 0x0f 0x{op2:02x}")

    if has_modrm:
        modrm = fetch()
        mod = modrm & 0xC0
        rm = modrm & 0x07
        if mod != 0xC0:
            if mod == 0x40:
                mem_size += 1
            elif mod == 0x80:
                mem_size += def_mem
            if def_mem == 2:
                if mod == 0x00 and rm == 0x06:
                    mem_size += 2
            else:
                if rm == 0x04:
                    rm = fetch() & 0x07
                if rm == 0x05 and mod == 0x00:
                    mem_size += 4

    end = pos + mem_size + data_size
    if end > len(code):
        raise DisassemblyError(f"instruction at offset {offset} is truncated")
    return end - offset