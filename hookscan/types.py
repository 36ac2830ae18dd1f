"""Hook, search and host/hook message records shared across the package."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from enum import IntEnum, IntFlag
from typing import Callable, Optional

X64 = struct.calcsize("P") == 8
UINTPTR_MAX = (1 << (8 * struct.calcsize("P"))) - 1

STRING = 12
MESSAGE_SIZE = 500
PIPE_BUFFER_SIZE = 50000
SHIFT_JIS = 932
MAX_MODULE_SIZE = 120
PATTERN_SIZE = 30
HOOK_NAME_SIZE = 60
FIXED_SPLIT_VALUE = 0x10001

#: Byte value that matches any byte in a search pattern.
WILDCARD_BYTE = 0x11


class HostCommandType(IntEnum):
    """Commands sent from the host to the hooked process."""

    NEW_HOOK = 0
    REMOVE_HOOK = 1
    FIND_HOOK = 2
    MODIFY_HOOK = 3
    HIJACK_PROCESS = 4
    DETACH = 5


class HostNotificationType(IntEnum):
    """Notifications sent from the hooked process to the host."""

    TEXT = 0
    NEW_HOOK = 1
    FOUND_HOOK = 2
    REMOVED_HOOK = 3


class HookParamType(IntFlag):
    """Flags describing how a hook reads its text."""

    USING_STRING = 0x1
    USING_UNICODE = 0x2
    BIG_ENDIAN = 0x4
    DATA_INDIRECT = 0x8
    USING_SPLIT = 0x10
    SPLIT_INDIRECT = 0x20
    MODULE_OFFSET = 0x40
    FUNCTION_OFFSET = 0x80
    USING_UTF8 = 0x100
    NO_CONTEXT = 0x200
    HOOK_EMPTY = 0x400
    FIXING_SPLIT = 0x800
    DIRECT_READ = 0x1000
    FULL_STRING = 0x2000
    HEX_DUMP = 0x4000
    HOOK_ENGINE = 0x8000
    HOOK_ADDITIONAL = 0x10000
    KNOWN_UNSTABLE = 0x20000


def _check_size(label: str, value: str, limit: int) -> None:
    # Fixed-size fields keep one slot for the terminator.
    if len(value) >= limit:
        raise ValueError(f"{label} must be shorter than {limit} characters")


@dataclass
class HookParam:
    """Description of a single text hook."""

    address: int = 0
    offset: int = 0
    index: int = 0
    split: int = 0
    split_index: int = 0
    null_length: int = 0
    module: str = ""
    function: str = ""
    type: HookParamType = HookParamType(0)
    codepage: int = 0
    length_offset: int = 0
    padding: int = 0
    user_value: int = 0
    text_fun: Optional[Callable[..., object]] = None
    filter_fun: Optional[Callable[..., bool]] = None
    hook_fun: Optional[Callable[..., bool]] = None
    length_fun: Optional[Callable[[int, int], int]] = None
    name: str = ""

    def __post_init__(self) -> None:
        _check_size("module", self.module, MAX_MODULE_SIZE)
        _check_size("function", self.function, MAX_MODULE_SIZE)
        _check_size("name", self.name, HOOK_NAME_SIZE)
        self.type = HookParamType(self.type)


@dataclass(frozen=True)
class ThreadParam:
    """Identity of a text thread: process, hook address and contexts."""

    process_id: int
    addr: int
    ctx: int = 0
    ctx2: int = 0


def _default_pattern() -> bytes:
    return bytes([0xCC, 0xCC, 0x48, 0x89]) if X64 else bytes([0x55, 0x8B, 0xEC, 0x89])


@dataclass
class SearchParam:
    """Parameters for searching memory for hookable functions."""

    pattern: bytes = field(default_factory=_default_pattern)
    length: int = 4 if X64 else 3
    offset: int = 2 if X64 else 0
    search_time: int = 30000
    max_records: int = 100000
    codepage: int = SHIFT_JIS
    padding: int = 0
    min_address: int = 0
    max_address: int = UINTPTR_MAX
    boundary_module: str = ""
    export_module: str = ""
    text: str = ""
    hook_post_processor: Optional[Callable[[HookParam], None]] = None

    def __post_init__(self) -> None:
        self.pattern = bytes(self.pattern)
        if len(self.pattern) > PATTERN_SIZE:
            raise ValueError(f"pattern must be at most {PATTERN_SIZE} bytes")
        _check_size("boundary_module", self.boundary_module, MAX_MODULE_SIZE)
        _check_size("export_module", self.export_module, MAX_MODULE_SIZE)
        _check_size("text", self.text, PATTERN_SIZE)

    def is_valid(self) -> bool:
        """A zero pattern length marks the parameters as unusable."""
        return self.length != 0


@dataclass
class InsertHookCmd:
    hp: HookParam
    command: HostCommandType = field(default=HostCommandType.NEW_HOOK, init=False)


@dataclass
class RemoveHookCmd:
    address: int
    command: HostCommandType = field(default=HostCommandType.REMOVE_HOOK, init=False)


@dataclass
class FindHookCmd:
    sp: SearchParam
    command: HostCommandType = field(default=HostCommandType.FIND_HOOK, init=False)


@dataclass
class ConsoleOutputNotif:
    message: str = ""
    command: HostNotificationType = field(default=HostNotificationType.TEXT, init=False)

    def __post_init__(self) -> None:
        self.message = self.message[: MESSAGE_SIZE - 1]


@dataclass
class HookFoundNotif:
    hp: HookParam
    text: str = ""
    command: HostNotificationType = field(
        default=HostNotificationType.FOUND_HOOK, init=False
    )

    def __post_init__(self) -> None:
        self.text = self.text[: MESSAGE_SIZE - 1]


@dataclass
class HookRemovedNotif:
    address: int
    command: HostNotificationType = field(
        default=HostNotificationType.REMOVED_HOOK, init=False
    )