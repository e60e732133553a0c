"""Subprocess helpers for shell steps and tool detection."""

import asyncio
import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass
class ShellResult:
    """Exit status and combined stdout+stderr of a shell command."""
    returncode: int
    output: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


async def run_shell(command: str, cwd: Path) -> ShellResult:
    """
    Run a command line through the OS shell without blocking the event loop.

    stderr is merged into stdout so the output reads as it would in a
    terminal. Never raises for a non-zero exit; a command that cannot be
    spawned is reported as exit code 127.
    """
    try:
        process = await asyncio.create_subprocess_shell(
            command,
            cwd=str(cwd),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )
    except OSError as e:
        return ShellResult(returncode=127, output=f"Failed to execute command: {e}")

    stdout, _ = await process.communicate()
    return ShellResult(
        returncode=process.returncode,
        output=stdout.decode("utf-8", errors="replace"),
    )


def check_command_exists(command: str) -> bool:
    """
    Check if a command exists in PATH.

    Args:
        command: Command name to check

    Returns:
        True if command exists, False otherwise
    """
    try:
        result = subprocess.run(
            ["which", command],
            capture_output=True,
            text=True,
            check=False,
        )
        return result.returncode == 0
    except OSError:
        return False
