import pytest

from hookscan.cstring import strnchr, strnlen, strnpbrk, strnstr


def test_strnlen_stops_at_nul():
    assert strnlen("abc\0def", 10) == len("abc")
    assert strnlen(b"abc\0def", 10) == len(b"abc")


def test_strnlen_bounded_by_n():
    assert strnlen("abcdef", 2) == 2
    assert strnlen("", 5) == 0


def test_strnlen_negative_n():
    with pytest.raises(ValueError):
        strnlen("abc", -1)


def test_strnchr_finds_first():
    s = "hello"
    idx = strnchr(s, "l", len(s))
    assert s[idx] == "l"
    assert "l" not in s[:idx]


def test_strnchr_respects_bound_and_nul():
    assert strnchr("hello", "o", 3) is None
    assert strnchr("ab\0c", "c", 10) is None
    assert strnchr("ab", "\0", 10) is None


def test_strnchr_bytes_with_int():
    data = b"xyz"
    idx = strnchr(data, ord("z"), 3)
    assert data[idx] == ord("z")


def test_strnchr_rejects_multichar():
    with pytest.raises(ValueError):
        strnchr("abc", "ab", 3)


def test_strnstr_finds_substring():
    s = "hello world"
    idx = strnstr(s, "world", len(s))
    assert s[idx: idx + len("world")] == "world"


def test_strnstr_needs_whole_match_within_n():
    assert strnstr("hello world", "world", 8) is None
    assert strnstr("hello\0world", "world", 20) is None


def test_strnstr_empty_needle():
    assert strnstr("a", "", 1) == 0
    assert strnstr("", "", 5) is None


def test_strnstr_bytes():
    data = b"\x01\x02\x03\x04"
    idx = strnstr(data, b"\x03\x04", len(data))
    assert data[idx:] == b"\x03\x04"


def test_strnpbrk_first_of_set():
    s = "abcdef"
    idx = strnpbrk(s, "fd", len(s))
    assert s[idx] == "d"


def test_strnpbrk_stops_at_nul_and_bound():
    assert strnpbrk(b"abc\0xyz", b"x", 7) is None
    assert strnpbrk("abcdef", "f", 3) is None