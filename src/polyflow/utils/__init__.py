"""Shared utility functions for polyflow."""

from .atomic_io import atomic_write_text
from .json_extract import extract_json, find_balanced, find_json_block, parse_json_lenient
from .subprocess_utils import ShellResult, check_command_exists, run_shell

__all__ = [
    # Atomic I/O
    "atomic_write_text",
    # JSON extraction
    "extract_json",
    "find_balanced",
    "find_json_block",
    "parse_json_lenient",
    # Subprocess
    "ShellResult",
    "check_command_exists",
    "run_shell",
]
