"""Shared workflow builders and fakes for unit tests."""

from pathlib import Path
from typing import Dict, List, Optional

from polyflow.llm.base import Backend, BackendError
from polyflow.workflow.dag import ResultStore, StepResult, Workflow, WorkflowStep


def make_workflow(*steps: WorkflowStep, name: str = "test") -> Workflow:
    return Workflow(name=name, steps=tuple(steps))


def step(name: str, *depends_on: str, **kwargs) -> WorkflowStep:
    """Backend step on the fake backend unless overridden."""
    kwargs.setdefault("backend", "fake")
    return WorkflowStep(name=name, depends_on=tuple(depends_on), **kwargs)


def store_with(**outputs: str) -> ResultStore:
    results = ResultStore()
    for name, output in outputs.items():
        results.record(StepResult(name=name, output=output, success=True))
    return results


class FakeBackend(Backend):
    """In-memory backend recording every prompt it receives.

    ``responses`` maps a substring of the prompt to the answer returned for it.
    """

    def __init__(self, name: str = "fake", responses: Optional[Dict[str, str]] = None,
                 default: str = "ok", available: bool = True, error: Optional[str] = None):
        self._name = name
        self.responses = responses or {}
        self.default = default
        self.available = available
        self.error = error
        self.prompts: List[str] = []

    def name(self) -> str:
        return self._name

    def is_available(self) -> bool:
        return self.available

    async def query(self, prompt: str, working_dir: Path) -> str:
        self.prompts.append(prompt)
        if self.error:
            raise BackendError(self.error)
        for marker, response in self.responses.items():
            if marker in prompt:
                return response
        return self.default
