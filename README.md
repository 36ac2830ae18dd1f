# hookscan

Tools for finding interesting places in 32-bit x86 machine code: call and jump
sites that target a given function, the entry points of the functions that
contain them, byte patterns with wildcards, and the length of single
instructions.

Everything works on a `MemoryImage`, a block of bytes together with the address
it is loaded at, so code can be examined from a file, a memory dump or a test
fixture.

## Installing

```
pip install .
```

Python 3.10 or later. There are no runtime dependencies.

## Modules

- `hookscan.memory`: `MemoryImage` (with `base`, `end`, `contains` and
  bounds-checked little-endian `read_byte`, `read_word`, `read_dword`,
  `read_bytes`; reads outside the image raise `IndexError`),
  `search_pattern` (byte search where `0x11` in the pattern matches any byte;
  returns an offset or `None`), `sig_mask`, and `lead_byte_length` for
  Shift-JIS lead bytes.
- `hookscan.disasm`: `instruction_length(code, offset)` returns the size of the
  instruction at `offset` and raises `DisassemblyError` for opcodes it cannot
  size or for truncated input.
- `hookscan.memsearch`: single-result searches such as `find_bytes`,
  `find_far_call_address`, `find_near_call_address`,
  `find_last_long_jump_address`, `find_push_dword_address`,
  `find_caller_address`, `find_multi_caller_address`,
  `find_caller_address_after_int3` and `find_enclosing_aligned_function`.
  A search that finds nothing returns `None`. Bytes the image does not hold
  never match.
- `hookscan.memiter`: generator versions such as `iter_find_bytes`,
  `iter_caller_addresses` (yielding `(entry, call)` pairs),
  `iter_unique_caller_addresses`, `iter_near_call_addresses` and
  `iter_aligned_near_caller_addresses`, yielding every match in address order.
- `hookscan.util`: helpers over PE images loaded in a `MemoryImage`:
  `get_code_range`, `find_import_entry`, `search_resource_string`,
  `find_call_and_entry_abs`, `find_call_and_entry_rel`,
  `find_call_or_jmp_rel`, `find_call_or_jmp_abs`, `find_call_both`,
  `find_entry_aligned`, plus `check_file`, which looks for a file name
  (with `*` and `?` wildcards) in the current directory or next to the
  running script.
- `hookscan.cstring`: `strnlen`, `strnchr`, `strnstr` and `strnpbrk` over
  NUL-terminated `str` or `bytes`, returning indices or `None`.
- `hookscan.types`: the hook and search parameter records and the command and
  notification messages (`HookParam`, `ThreadParam`, `SearchParam`,
  `InsertHookCmd`, `RemoveHookCmd`, `FindHookCmd`, `ConsoleOutputNotif`,
  `HookFoundNotif`, `HookRemovedNotif`), with the `HookParamType` flags and the
  `HostCommandType` and `HostNotificationType` enums.

## Example

```python
from hookscan.memory import MemoryImage
from hookscan.disasm import instruction_length
from hookscan.memsearch import find_near_call_address

base = 0x400000
code = bytearray(0x2000)
# call rel32 at base + 0x1000 to base + 0x1800
code[0x1000:0x1005] = bytes([0xE8]) + (0x1800 - 0x1005).to_bytes(4, "little")
image = MemoryImage(base, bytes(code))

print(hex(find_near_call_address(image, base + 0x1800, base, base + len(code), 0x1000, 0)))  # 0x401000
print(instruction_length(code, 0x1000))  # 5
```

## What it does not do

hookscan works only on bytes you hand it. It does not attach to running
processes, read or write their memory, install hooks, or talk to a host
program; the records in `hookscan.types` describe such messages but nothing
here sends them. There is no command-line tool.

## Running the tests

```
pip install .[test]
pytest
```