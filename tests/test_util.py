import struct

import pytest

from hookscan.memory import MemoryImage
from hookscan.memsearch import find_enclosing_aligned_function
from hookscan.util import (
    check_file,
    find_call_and_entry_abs,
    find_call_and_entry_both,
    find_call_and_entry_rel,
    find_call_both,
    find_call_or_jmp_abs,
    find_call_or_jmp_rel,
    find_entry_aligned,
    find_import_entry,
    get_code_range,
    search_resource_string,
)

PT = 0x400000
SIZE = 0x2000
FUN = 0x12345678
CALL_OFF = 0x1100
PTR_OFF = 0x1800


def _blank():
    return bytearray(SIZE)


def _put(buf, off, fmt, value):
    struct.pack_into(fmt, buf, off, value)


def _rel_call_image(opcode=0xE8, rel=0x100):
    buf = _blank()
    buf[CALL_OFF] = opcode
    _put(buf, CALL_OFF + 1, "<I", rel)
    return buf, PT + CALL_OFF + 5 + rel


def _abs_call_image(opcode=0x15FF):
    buf = _blank()
    _put(buf, CALL_OFF, "<H", opcode)
    _put(buf, CALL_OFF + 2, "<I", PT + PTR_OFF)
    _put(buf, PTR_OFF, "<I", FUN)
    return buf


def test_rel_call_found():
    buf, fun = _rel_call_image()
    image = MemoryImage(PT, buf)
    assert find_call_or_jmp_rel(image, fun, SIZE, PT, False) == PT + CALL_OFF
    assert find_call_or_jmp_rel(image, fun, SIZE, PT, True) is None


def test_rel_jmp_found():
    buf, fun = _rel_call_image(opcode=0xE9)
    image = MemoryImage(PT, buf)
    assert find_call_or_jmp_rel(image, fun, SIZE, PT, True) == PT + CALL_OFF


def test_rel_call_wrong_target():
    buf, fun = _rel_call_image()
    image = MemoryImage(PT, buf)
    assert find_call_or_jmp_rel(image, fun + 1, SIZE, PT, False) is None


def test_abs_call_and_jmp():
    image = MemoryImage(PT, _abs_call_image())
    assert find_call_or_jmp_abs(image, FUN, SIZE, PT, False) == PT + CALL_OFF
    assert find_call_or_jmp_abs(image, FUN, SIZE, PT, True) is None
    jmp_image = MemoryImage(PT, _abs_call_image(0x25FF))
    assert find_call_or_jmp_abs(jmp_image, FUN, SIZE, PT, True) == PT + CALL_OFF


def test_abs_call_pointer_outside_module():
    buf = _abs_call_image()
    _put(buf, CALL_OFF + 2, "<I", PT + SIZE + 0x100)
    image = MemoryImage(PT, buf)
    assert find_call_or_jmp_abs(image, FUN, SIZE, PT, False) is None


def test_call_both_returns_offset():
    image = MemoryImage(PT, _abs_call_image())
    assert find_call_both(image, FUN, SIZE, PT) == CALL_OFF
    buf, fun = _rel_call_image()
    assert find_call_both(MemoryImage(PT, buf), fun, SIZE, PT) == CALL_OFF


def test_call_both_missing():
    image = MemoryImage(PT, _blank())
    assert find_call_both(image, FUN, SIZE, PT) is None


def test_call_and_entry_abs():
    buf = _abs_call_image()
    buf[0x1080] = 0x55
    image = MemoryImage(PT, buf)
    assert find_call_and_entry_abs(image, FUN, SIZE, PT, 0x55) == PT + 0x1080


def test_call_and_entry_abs_without_entry():
    image = MemoryImage(PT, _abs_call_image())
    assert find_call_and_entry_abs(image, FUN, SIZE, PT, 0x55) is None


def test_call_and_entry_rel():
    buf, fun = _rel_call_image()
    buf[0x1080] = 0x55
    image = MemoryImage(PT, buf)
    assert find_call_and_entry_rel(image, fun, SIZE, PT, 0x55) == PT + 0x1080
    assert find_call_and_entry_rel(image, fun + 1, SIZE, PT, 0x55) is None


def test_call_and_entry_both_rel_and_abs():
    buf, fun = _rel_call_image()
    _put(buf, 0x10F0, "<H", 0x8B55)
    image = MemoryImage(PT, buf)
    assert find_call_and_entry_both(image, fun, SIZE, PT, 0x8B55) == PT + 0x10F0

    buf = _abs_call_image()
    _put(buf, 0x10F0, "<H", 0x8B55)
    image = MemoryImage(PT, buf)
    assert find_call_and_entry_both(image, FUN, SIZE, PT, 0x8B55) == PT + 0x10F0


def test_call_and_entry_both_no_entry():
    buf, fun = _rel_call_image()
    image = MemoryImage(PT, buf)
    assert find_call_and_entry_both(image, fun, SIZE, PT, 0x8B55) is None


def test_entry_aligned_after_int3():
    buf = _blank()
    buf[0x10FC:0x1100] = b"\xcc" * 4
    image = MemoryImage(PT, buf)
    start = PT + 0x1123
    assert find_entry_aligned(image, start, 0x800) == PT + 0x1100
    assert find_entry_aligned(image, start, 0x800) == find_enclosing_aligned_function(
        image, start, 0x800
    )


def test_entry_aligned_none_without_padding():
    image = MemoryImage(PT, _blank())
    assert find_entry_aligned(image, PT + 0x1123, 0x100) is None


def _pe_image():
    buf = _blank()
    _put(buf, 0, "<H", 0x5A4D)
    _put(buf, 0x3C, "<I", 0x80)
    _put(buf, 0x80, "<I", 0x00004550)
    _put(buf, 0x80 + 20, "<H", 0xE0)
    sections = 0x80 + 24 + 0xE0
    _put(buf, sections + 36, "<I", 0x40000040)
    code = sections + 40
    _put(buf, code + 8, "<I", 0x1234)
    _put(buf, code + 12, "<I", 0x1000)
    _put(buf, code + 36, "<I", 0x60000020)
    return buf


def test_get_code_range():
    image = MemoryImage(PT, _pe_image())
    low, high = get_code_range(image, PT)
    assert low == PT + 0x1000
    assert high == 0x403000


def test_get_code_range_not_pe():
    buf = _pe_image()
    buf[0:2] = b"XX"
    assert get_code_range(MemoryImage(PT, buf), PT) is None
    buf = _pe_image()
    buf[0x80:0x84] = b"NOPE"
    assert get_code_range(MemoryImage(PT, buf), PT) is None


def test_find_import_entry():
    buf = _pe_image()
    iat_dir = 0x80 + 24 + 96 + 8 * 12
    _put(buf, iat_dir, "<I", 0x1800)
    _put(buf, iat_dir + 4, "<I", 0x10)
    _put(buf, 0x1808, "<I", FUN)
    image = MemoryImage(PT, buf)
    assert find_import_entry(image, PT, FUN) == PT + 0x1808
    assert find_import_entry(image, PT, FUN + 1) is None


def _resource_image(rsrc_va=0x1000):
    buf = _pe_image()
    rsrc_dir = 0x80 + 24 + 96 + 8 * 2
    _put(buf, rsrc_dir, "<I", rsrc_va)
    _put(buf, rsrc_dir + 4, "<I", 0x100)
    text = "Hello".encode("utf-16-le")
    buf[0x1200:0x1200 + len(text)] = text
    return MemoryImage(PT, buf)


def test_search_resource_string():
    image = _resource_image()
    assert search_resource_string(image, PT, "Hello") is True
    assert search_resource_string(image, PT, "Absent") is False


def test_search_resource_string_without_resources():
    image = _resource_image(rsrc_va=0)
    assert search_resource_string(image, PT, "Hello") is False


def test_check_file_next_to_executable(tmp_path, monkeypatch):
    exe_dir = tmp_path / "exe"
    exe_dir.mkdir()
    (exe_dir / "game.xp3").write_bytes(b"data")
    elsewhere = tmp_path / "cwd"
    elsewhere.mkdir()
    monkeypatch.chdir(elsewhere)
    assert check_file("game.xp3", exe_dir) is True
    assert check_file("*.xp3", exe_dir) is True
    assert check_file("missing.dat", exe_dir) is False


def test_check_file_in_working_directory(tmp_path, monkeypatch):
    (tmp_path / "data.arc").write_bytes(b"x")
    empty = tmp_path / "empty"
    empty.mkdir()
    monkeypatch.chdir(tmp_path)
    assert check_file("data.arc", empty) is True
    assert check_file("data.?rc", empty) is True
    assert check_file("[d]ata.arc", empty) is False