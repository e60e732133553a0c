"""Subprocess backends for coding-assistant CLIs (claude, codex, gemini)."""

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import List, Optional

from .base import Backend, BackendError
from ..utils.subprocess_utils import check_command_exists

logger = logging.getLogger(__name__)


class SubprocessBackend(Backend):
    """Runs ``<command> <args...> <prompt>`` and returns parsed stdout.

    Subclasses supply the backend name, default command line and output
    parsing.
    """

    backend_name = ""
    default_command = ""
    default_args: List[str] = []

    # Default timeout for a single query (5 minutes)
    DEFAULT_TIMEOUT = 300

    def __init__(
        self,
        command: Optional[str] = None,
        args: Optional[List[str]] = None,
        model: Optional[str] = None,
        timeout: Optional[int] = None,
        skip_lines: int = 0,
        parse: str = "raw",
        env: Optional[dict] = None,
    ):
        self.command = command or self.default_command
        self.args = list(args) if args else list(self.default_args)
        self.model = model
        self.timeout = timeout or self.DEFAULT_TIMEOUT
        self.skip_lines = skip_lines
        self.parse = parse
        self.env = env or {}

    def name(self) -> str:
        return self.backend_name

    def is_available(self) -> bool:
        return check_command_exists(self.command)

    def build_command(self, prompt: str) -> List[str]:
        return [self.command, *self.args, prompt]

    def parse_output(self, stdout: str) -> str:
        lines = stdout.splitlines()[self.skip_lines:]
        return "\n".join(lines).strip()

    async def query(self, prompt: str, working_dir: Path) -> str:
        cmd = self.build_command(prompt)
        env = os.environ.copy()
        env.update(self.env)

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                cwd=str(working_dir),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
            )
        except OSError as e:
            raise BackendError(f"Failed to execute {self.command}: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise BackendError(f"Timeout ({self.timeout}s)")

        out_text = stdout.decode("utf-8", errors="replace")
        err_text = stderr.decode("utf-8", errors="replace")

        if process.returncode != 0:
            logger.debug(f"{self.backend_name} exited {process.returncode}: {err_text.strip()}")
            raise BackendError(
                f"{self.backend_name} failed (exit {process.returncode}): {err_text.strip() or out_text.strip()}"
            )

        return self.parse_output(out_text)


class ClaudeCLIBackend(SubprocessBackend):
    """Claude CLI in non-interactive print mode."""

    backend_name = "claude"
    default_command = "claude"
    default_args = ["-p", "--output-format", "text"]

    def build_command(self, prompt: str) -> List[str]:
        cmd = [self.command, *self.args]
        if self.model:
            cmd.extend(["--model", self.model])
        # "--" keeps prompts starting with "-" from being read as flags
        cmd.extend(["--", prompt])
        return cmd


class CodexBackend(SubprocessBackend):
    """Codex CLI; ``--json`` emits one event per line."""

    backend_name = "codex"
    default_command = "codex"
    default_args = ["exec", "--json", "-s", "read-only"]

    def __init__(self, *args, parse: str = "json", **kwargs):
        super().__init__(*args, parse=parse, **kwargs)

    def build_command(self, prompt: str) -> List[str]:
        return [self.command, *self.args, "--", prompt]

    def parse_output(self, stdout: str) -> str:
        """Return the last agent message from the event stream, else raw stdout."""
        if self.parse != "json":
            return super().parse_output(stdout)
        message = None
        for line in stdout.splitlines():
            line = line.strip()
            if not line:
                continue
            try:
                event = json.loads(line)
            except (json.JSONDecodeError, ValueError):
                continue
            if not isinstance(event, dict) or event.get("type") != "item.completed":
                continue
            item = event.get("item") or {}
            if item.get("type", "agent_message") == "agent_message" and isinstance(item.get("text"), str):
                message = item["text"]
        return message if message is not None else stdout.strip()


class GeminiBackend(SubprocessBackend):
    """Gemini CLI via npx. The first output line is a banner by default."""

    backend_name = "gemini"
    default_command = "npx"
    default_args = ["@google/gemini-cli"]

    def __init__(self, *args, skip_lines: int = 1, **kwargs):
        super().__init__(*args, skip_lines=skip_lines, **kwargs)
