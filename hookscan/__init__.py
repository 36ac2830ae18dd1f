"""Search x86 machine-code images for calls, jumps, function entries and byte patterns."""

__version__ = "0.1.0"