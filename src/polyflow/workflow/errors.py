"""Errors raised while loading, validating or resolving workflows.

Every error here is fatal for a run: it is raised before the affected step
executes and aborts the whole workflow. Step-level failures (shell exit
codes, backend errors, edit/verify failures) are never raised; they are
recorded as failed StepResults instead.
"""

from typing import List, Optional


class WorkflowError(Exception):
    """Base class for fatal workflow errors."""


class WorkflowLoadError(WorkflowError):
    """A workflow document could not be read, parsed or validated."""

    def __init__(self, path, message: str):
        self.path = path
        super().__init__(f"Failed to load workflow {path}: {message}")


class WorkflowNotFound(WorkflowError):
    """No workflow file matched a name in any search location."""

    def __init__(self, name: str, searched: List[str]):
        self.name = name
        self.searched = searched
        locations = "\n".join(f"  - {s}" for s in searched)
        super().__init__(f"Workflow '{name}' not found. Searched:\n{locations}")


class ExtendsDepthExceeded(WorkflowError):
    """The extends chain is deeper than allowed (usually a cycle)."""

    def __init__(self, name: str, max_depth: int):
        self.name = name
        self.max_depth = max_depth
        super().__init__(
            f"Workflow '{name}' exceeds maximum extends depth of {max_depth} "
            "(circular extends?)"
        )


class DuplicateStep(WorkflowError):
    def __init__(self, workflow: str, step: str):
        self.workflow = workflow
        self.step = step
        super().__init__(f"Workflow '{workflow}' defines step '{step}' more than once")


class MissingDependency(WorkflowError):
    """A step depends on a step name that does not exist in the workflow."""

    def __init__(self, workflow: str, step: str, missing: str):
        self.workflow = workflow
        self.step = step
        self.missing = missing
        super().__init__(
            f"Workflow '{workflow}': step '{step}' depends on unknown step '{missing}'"
        )


class CircularDependency(WorkflowError):
    """The dependency graph contains a cycle.

    ``chain`` runs from the first occurrence of the repeated step through its
    repeat, e.g. ``["a", "b", "c", "a"]``.
    """

    def __init__(self, chain: List[str]):
        self.chain = list(chain)
        super().__init__(f"Circular dependency detected: {' -> '.join(self.chain)}")


class MissingStepOutput(WorkflowError):
    """A template references a step that has no recorded result."""

    def __init__(self, step: str, referenced_by: Optional[str] = None):
        self.step = step
        self.referenced_by = referenced_by
        where = f" (referenced by step '{referenced_by}')" if referenced_by else ""
        super().__init__(f"No output available for step '{step}'{where}")


class UnknownVariable(WorkflowError):
    """A ``{{ ... }}`` placeholder matched none of the known namespaces."""

    def __init__(self, token: str, referenced_by: Optional[str] = None):
        self.token = token
        self.referenced_by = referenced_by
        where = f" in step '{referenced_by}'" if referenced_by else ""
        super().__init__(f"Unknown template variable {token}{where}")
