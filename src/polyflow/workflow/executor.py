"""Execution of a single workflow step.

A step goes through: dispatch (shell command or backend query), optional
edit-apply, optional format, optional verify. Every failure along the way is
reported through the returned StepResult; nothing here raises for a failing
step.
"""

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from ..core.context import CodebaseContext, is_verify_token
from ..llm.base import Backend
from ..utils.subprocess_utils import run_shell
from .dag import StepResult, WorkflowStep
from .edits import EditError, apply_edits, parse_edits

logger = logging.getLogger(__name__)

# Returns None for unknown names; may raise if the backend can't be created
BackendFactory = Callable[[str], Optional[Backend]]


@dataclass(frozen=True)
class PreparedStep:
    """A step with its templates already resolved against prior results."""
    step: WorkflowStep
    prompt: str = ""
    shell: Optional[str] = None
    verify: Optional[str] = None


@dataclass(frozen=True)
class VerifyPlan:
    verify_command: Optional[str] = None
    format_command: Optional[str] = None


class StepExecutor:
    """Runs prepared steps in a working directory.

    Codebase detection only happens the first time a step asks for an
    automatic verify command.
    """

    def __init__(
        self,
        backend_factory: BackendFactory,
        working_dir: Path,
        context: Optional[CodebaseContext] = None,
    ):
        self.backend_factory = backend_factory
        self.working_dir = Path(working_dir)
        self._context = context

    @property
    def context(self) -> CodebaseContext:
        if self._context is None:
            self._context = CodebaseContext.detect(self.working_dir)
        return self._context

    def plan_verify(self, verify: Optional[str]) -> VerifyPlan:
        """Turn a resolved verify value into the commands to run."""
        if verify is None or not verify.strip():
            return VerifyPlan()
        if is_verify_token(verify):
            token = verify.strip()
            return VerifyPlan(
                verify_command=self.context.derive_verify_command(token),
                format_command=self.context.derive_format_command(token),
            )
        return VerifyPlan(verify_command=verify)

    async def execute(self, prepared: PreparedStep) -> StepResult:
        """Run one step. Never raises: unexpected errors become a failed result."""
        step = prepared.step
        logger.info("started", extra={"step": step.name})
        start = time.monotonic()
        try:
            return await self._execute(prepared, start)
        except Exception as e:
            elapsed_ms = int((time.monotonic() - start) * 1000)
            logger.exception(f"Unexpected error ({elapsed_ms / 1000:.1f}s)", extra={"step": step.name})
            return StepResult(
                name=step.name,
                output=f"Error: {e}",
                success=False,
                elapsed_ms=elapsed_ms,
                backend=None if step.is_shell else step.backend,
            )

    async def _execute(self, prepared: PreparedStep, start: float) -> StepResult:
        step = prepared.step

        if step.is_shell:
            success, output = await self._run_shell_step(prepared.shell or "")
            backend_name = None
        else:
            backend_name = step.backend
            backend, error = self._lookup_backend(step.backend)
            if backend is None:
                logger.warning(error, extra={"step": step.name})
                return StepResult(name=step.name, output=error, success=False, elapsed_ms=0)
            success, output = await self._query_backend(backend, prepared.prompt)

        if success and step.apply_edits:
            success, output = self._apply_edits(output)

        if success:
            plan = self.plan_verify(prepared.verify)
            if plan.format_command:
                await self._run_format(plan.format_command)
            if plan.verify_command:
                success, output = await self._run_verify(plan.verify_command, output)

        elapsed_ms = int((time.monotonic() - start) * 1000)
        if success:
            logger.info(f"done ({elapsed_ms / 1000:.1f}s)", extra={"step": step.name})
        else:
            logger.warning(f"failed ({elapsed_ms / 1000:.1f}s)", extra={"step": step.name})

        return StepResult(
            name=step.name,
            output=output,
            success=success,
            elapsed_ms=elapsed_ms,
            backend=backend_name,
        )

    def _lookup_backend(self, name: str):
        try:
            backend = self.backend_factory(name)
        except Exception as e:
            return None, f"Failed to create backend: {e}"
        if backend is None:
            return None, f"Backend not found: {name}"
        if not backend.is_available():
            return None, f"Backend {name} not available"
        return backend, None

    async def _run_shell_step(self, command: str):
        result = await run_shell(command, self.working_dir)
        if not result.ok:
            logger.debug(f"Shell command exited {result.returncode}: {command}")
        return result.ok, result.output

    async def _query_backend(self, backend: Backend, prompt: str):
        try:
            return True, await backend.query(prompt, self.working_dir)
        except Exception as e:
            return False, f"Error: {e}"

    def _apply_edits(self, output: str):
        try:
            edits = parse_edits(output)
            count = apply_edits(edits, self.working_dir)
        except (EditError, OSError, UnicodeDecodeError) as e:
            logger.warning(f"Edits not applied: {e}")
            return False, f"{output}\n\nFailed to apply edits: {e}"
        logger.info(f"Applied {count} edit(s)")
        return True, f"{output}\n\nApplied {count} edit(s)"

    async def _run_format(self, command: str) -> None:
        result = await run_shell(command, self.working_dir)
        if not result.ok:
            logger.warning(f"Format command failed ({command}): {result.output.strip()}")

    async def _run_verify(self, command: str, output: str):
        result = await run_shell(command, self.working_dir)
        if result.ok:
            return True, output
        logger.warning(f"Verification failed: {command}")
        return False, (
            f"{output}\n\nVerification failed ({command}, exit {result.returncode}):\n"
            f"{result.output.strip()}"
        )
