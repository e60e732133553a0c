"""Tests for subprocess_utils."""

import pytest

from polyflow.utils.subprocess_utils import check_command_exists, run_shell


@pytest.mark.asyncio
async def test_run_shell_success(tmp_path):
    """run_shell returns exit code and stdout."""
    result = await run_shell("echo hello", tmp_path)
    assert result.ok
    assert result.returncode == 0
    assert result.output == "hello\n"


@pytest.mark.asyncio
async def test_run_shell_merges_stderr(tmp_path):
    """stderr is interleaved into the output."""
    result = await run_shell("echo one; echo two >&2; exit 4", tmp_path)
    assert not result.ok
    assert result.returncode == 4
    assert "one" in result.output and "two" in result.output


@pytest.mark.asyncio
async def test_run_shell_uses_cwd(tmp_path):
    """Commands run in the given directory."""
    (tmp_path / "file.txt").write_text("content")
    result = await run_shell("ls", tmp_path)
    assert "file.txt" in result.output


@pytest.mark.asyncio
async def test_run_shell_missing_directory(tmp_path):
    """A directory that doesn't exist is reported, not raised."""
    result = await run_shell("echo hi", tmp_path / "missing")
    assert result.returncode == 127
    assert "Failed to execute" in result.output


def test_check_command_exists():
    """Test check_command_exists."""
    assert check_command_exists("sh") is True
    assert check_command_exists("nonexistent_command_xyz") is False
