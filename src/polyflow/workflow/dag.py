"""Workflow graph representation and dependency grading."""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

from .errors import CircularDependency, DuplicateStep, MissingDependency


@dataclass(frozen=True)
class WorkflowStep:
    """A step in the workflow (node in the DAG).

    An empty ``backend`` marks a shell step; its ``prompt`` is ignored.
    """
    name: str
    backend: str = ""
    prompt: str = ""
    shell: Optional[str] = None
    depends_on: Tuple[str, ...] = ()
    when: Optional[str] = None  # Condition gating execution
    apply_edits: bool = False
    verify: Optional[str] = None  # Verify command template or auto-detect token

    @property
    def is_shell(self) -> bool:
        return bool(self.shell) or not self.backend


@dataclass(frozen=True)
class Workflow:
    """A workflow after extends-merge. Immutable once loaded."""
    name: str
    description: str = ""
    steps: Tuple[WorkflowStep, ...] = ()
    extends: Optional[str] = None

    def step_names(self) -> List[str]:
        return [s.name for s in self.steps]


@dataclass(frozen=True)
class StepResult:
    """Outcome of one executed step.

    A failed step keeps its slot in the results mapping; its failure text is
    its output so dependents can still reference it.
    """
    name: str
    output: str
    success: bool
    elapsed_ms: int = 0
    backend: Optional[str] = None


class ResultStore:
    """Run-scoped, write-once mapping of step name to StepResult."""

    def __init__(self):
        self._results: Dict[str, StepResult] = {}

    def record(self, result: StepResult) -> None:
        if result.name in self._results:
            raise ValueError(f"Result for step '{result.name}' already recorded")
        self._results[result.name] = result

    def get(self, name: str) -> Optional[StepResult]:
        return self._results.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self._results

    def __len__(self) -> int:
        return len(self._results)

    def backends_used(self) -> List[str]:
        return [r.backend for r in self._results.values() if r.backend]


def build_index(workflow: Workflow) -> Dict[str, WorkflowStep]:
    """Map step names to steps, rejecting duplicates."""
    index: Dict[str, WorkflowStep] = {}
    for step in workflow.steps:
        if step.name in index:
            raise DuplicateStep(workflow.name, step.name)
        index[step.name] = step
    return index


def validate_dependencies(workflow: Workflow) -> Dict[str, WorkflowStep]:
    """Check every dependency names an existing step. Returns the name index."""
    index = build_index(workflow)
    for step in workflow.steps:
        for dep in step.depends_on:
            if dep not in index:
                raise MissingDependency(workflow.name, step.name, dep)
    return index


def upstream_steps(index: Dict[str, WorkflowStep], name: str) -> Set[str]:
    """Every step reachable through ``depends_on`` from ``name``, transitively.

    Unknown names are ignored; a cycle terminates because visited steps are
    not expanded twice.
    """
    seen: Set[str] = set()
    pending = list(index[name].depends_on)
    while pending:
        dep = pending.pop()
        if dep in seen or dep not in index:
            continue
        seen.add(dep)
        pending.extend(index[dep].depends_on)
    return seen


def compute_depths(workflow: Workflow) -> Dict[str, int]:
    """Compute the depth of every step.

    depth = 0 without dependencies, else 1 + max(depth of dependencies).

    Uses an explicit stack instead of recursion so pathological graphs raise
    CircularDependency rather than RecursionError. ``path`` mirrors the
    active visiting chain, which gives the exact cycle when one is found.
    """
    index = validate_dependencies(workflow)
    depths: Dict[str, int] = {}

    for root in workflow.steps:
        if root.name in depths:
            continue

        path: List[str] = []
        visiting = set()
        # Frames are (step name, index of the next dependency to visit)
        stack: List[List] = [[root.name, 0]]
        path.append(root.name)
        visiting.add(root.name)

        while stack:
            frame = stack[-1]
            name, next_dep = frame
            deps = index[name].depends_on

            if next_dep < len(deps):
                frame[1] += 1
                dep = deps[next_dep]
                if dep in depths:
                    continue
                if dep in visiting:
                    start = path.index(dep)
                    raise CircularDependency(path[start:] + [dep])
                # A simple path can never be longer than the step count
                if len(stack) > len(index):
                    raise CircularDependency(path + [dep])
                stack.append([dep, 0])
                path.append(dep)
                visiting.add(dep)
                continue

            depths[name] = 1 + max(depths[d] for d in deps) if deps else 0
            stack.pop()
            path.pop()
            visiting.discard(name)

    return depths


def group_by_depth(workflow: Workflow) -> List[List[str]]:
    """Group step names into depth levels.

    Level N holds every step whose dependencies all sit in levels < N, so
    the steps of one level can run concurrently. Declaration order is kept
    within a level.
    """
    depths = compute_depths(workflow)
    if not depths:
        return []

    levels: List[List[str]] = [[] for _ in range(max(depths.values()) + 1)]
    for step in workflow.steps:
        levels[depths[step.name]].append(step.name)
    return levels
