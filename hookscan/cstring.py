"""Length-bounded searches over NUL-terminated character sequences.

Each function accepts ``str`` or ``bytes``; the sequence ends at the first
NUL character or after ``n`` elements, whichever comes first. Found
positions are returned as indices, ``None`` when nothing matches.
"""

from __future__ import annotations

from typing import Optional, Union

Text = Union[str, bytes, bytearray]


def _terminated(s: Text) -> Text:
    nul = "\0" if isinstance(s, str) else b"\0"
    end = s.find(nul)
    return s if end < 0 else s[:end]


def _check_n(n: int) -> None:
    if n < 0:
        raise ValueError("n must not be negative")


def strnlen(s: Text, n: int) -> int:
    """Length of ``s`` up to its terminator, at most ``n``."""
    _check_n(n)
    return min(len(_terminated(s)), n)


def strnchr(s: Text, c: Union[str, int, bytes], n: int) -> Optional[int]:
    """Index of the first ``c`` among the first ``n`` characters of ``s``."""
    _check_n(n)
    if isinstance(c, (str, bytes, bytearray)) and len(c) != 1:
        raise ValueError("c must be a single character")
    idx = _terminated(s)[:n].find(c)
    return None if idx < 0 else idx


def strnstr(s: Text, r: Text, n: int) -> Optional[int]:
    """Index of the first occurrence of ``r`` that lies within ``n`` characters of ``s``."""
    _check_n(n)
    st = _terminated(s)
    if not st:
        return None
    idx = st.find(_terminated(r), 0, min(len(st), n))
    return None if idx < 0 else idx


def strnpbrk(s: Text, breakset: Text, n: int) -> Optional[int]:
    """Index of the first character of ``s`` (within ``n``) found in ``breakset``."""
    _check_n(n)
    stops = _terminated(breakset)
    return next(
        (i for i, ch in enumerate(_terminated(s)[:n]) if ch in stops),
        None,
    )