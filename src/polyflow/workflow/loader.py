"""Workflow file loading, inheritance and discovery.

Workflow files are TOML or YAML::

    name = "review"
    extends = "base-review"      # optional

    [[steps]]
    name = "scan"
    shell = "git diff HEAD~1"

    [[steps]]
    name = "critique"
    backend = "claude"
    depends_on = ["scan"]
    prompt = "Review this diff:\n{{ steps.scan.output }}"

Files are looked up next to the referring file (for ``extends``), in
``.polyflow/workflows/`` under the working directory, in
``~/.config/polyflow/workflows/`` and finally among the workflows bundled
with the package.
"""

import logging
import tomllib
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator

from .dag import Workflow, WorkflowStep, build_index
from .errors import ExtendsDepthExceeded, WorkflowError, WorkflowLoadError, WorkflowNotFound

logger = logging.getLogger(__name__)

MAX_EXTENDS_DEPTH = 10
WORKFLOW_EXTENSIONS = (".toml", ".yaml", ".yml")

LOCAL_WORKFLOWS_DIR = Path(".polyflow") / "workflows"
GLOBAL_WORKFLOWS_DIR = Path.home() / ".config" / "polyflow" / "workflows"
BUILTIN_WORKFLOWS_DIR = Path(__file__).resolve().parent.parent / "workflows"


class StepDefinition(BaseModel):
    """A step as written in a workflow file."""
    name: str
    backend: str = ""
    prompt: str = ""
    shell: Optional[str] = None
    depends_on: List[str] = Field(default_factory=list)
    when: Optional[str] = None
    apply_edits: bool = False
    verify: Optional[Union[bool, str]] = None  # true == "auto"

    @model_validator(mode='after')
    def validate_step(self) -> 'StepDefinition':
        if not self.name.strip():
            raise ValueError("Step name must not be empty")
        if not self.backend and not self.shell:
            raise ValueError(f"Step '{self.name}' needs either 'backend' or 'shell'")
        return self

    def to_step(self) -> WorkflowStep:
        verify = self.verify
        if verify is True:
            verify = "auto"
        elif verify is False:
            verify = None
        return WorkflowStep(
            name=self.name,
            backend=self.backend,
            prompt=self.prompt,
            shell=self.shell,
            depends_on=tuple(self.depends_on),
            when=self.when,
            apply_edits=self.apply_edits,
            verify=verify,
        )


class WorkflowDefinition(BaseModel):
    """A workflow file before inheritance is resolved."""
    name: str = ""
    description: str = ""
    extends: Optional[str] = None
    steps: List[StepDefinition] = Field(default_factory=list)

    def to_workflow(self, default_name: str) -> Workflow:
        return Workflow(
            name=self.name or default_name,
            description=self.description,
            steps=tuple(s.to_step() for s in self.steps),
            extends=self.extends,
        )


def _read_document(path: Path) -> dict:
    suffix = path.suffix.lower()
    try:
        if suffix == ".toml":
            with open(path, "rb") as f:
                data = tomllib.load(f)
        elif suffix in (".yaml", ".yml"):
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        else:
            raise WorkflowLoadError(path, f"unsupported file type '{suffix}'")
    except (OSError, tomllib.TOMLDecodeError, yaml.YAMLError) as e:
        raise WorkflowLoadError(path, str(e)) from e

    if not isinstance(data, dict):
        raise WorkflowLoadError(path, "top level must be a mapping")
    return data


def parse_workflow(path: Path) -> Workflow:
    """Parse one file without resolving ``extends``."""
    data = _read_document(path)
    try:
        definition = WorkflowDefinition(**data)
    except ValidationError as e:
        raise WorkflowLoadError(path, str(e)) from e
    workflow = definition.to_workflow(default_name=path.stem)
    build_index(workflow)
    return workflow


def merge_workflows(parent: Workflow, child: Workflow) -> Workflow:
    """Flatten a child onto its parent.

    Parent steps keep their positions; a child step with the same name
    replaces the parent's in place, other child steps are appended in order.
    """
    child_by_name: Dict[str, WorkflowStep] = {s.name: s for s in child.steps}
    merged = [child_by_name.pop(s.name, s) for s in parent.steps]
    merged.extend(s for s in child.steps if s.name in child_by_name)

    return Workflow(
        name=child.name or parent.name,
        description=child.description or parent.description,
        steps=tuple(merged),
        extends=None,
    )


def load_workflow(path: Path, cwd: Optional[Path] = None, _depth: int = 0) -> Workflow:
    """
    Load a workflow file and resolve its ``extends`` chain.

    Parents are looked up next to the file first, then in the usual
    locations relative to ``cwd`` (the process working directory if unset).

    Raises:
        WorkflowLoadError: The file (or a parent) can't be read or is invalid.
        WorkflowNotFound: A parent named in ``extends`` can't be found.
        ExtendsDepthExceeded: The chain is longer than MAX_EXTENDS_DEPTH.
        DuplicateStep: The merged workflow repeats a step name.
    """
    path = Path(path)
    workflow = parse_workflow(path)

    if workflow.extends:
        if _depth >= MAX_EXTENDS_DEPTH:
            raise ExtendsDepthExceeded(workflow.name, MAX_EXTENDS_DEPTH)
        parent_path = find_workflow(workflow.extends, base_dir=path.parent, cwd=cwd)
        logger.debug(f"{workflow.name} extends {workflow.extends} ({parent_path})")
        parent = load_workflow(parent_path, cwd=cwd, _depth=_depth + 1)
        workflow = merge_workflows(parent, workflow)

    return workflow


def search_dirs(base_dir: Optional[Path] = None, cwd: Optional[Path] = None) -> List[Path]:
    """Directories searched for workflow files, in priority order."""
    dirs = []
    if base_dir is not None:
        dirs.append(Path(base_dir))
    dirs.extend([
        (cwd or Path.cwd()) / LOCAL_WORKFLOWS_DIR,
        GLOBAL_WORKFLOWS_DIR,
        BUILTIN_WORKFLOWS_DIR,
    ])
    # Keep order, drop repeats (base_dir is often the local dir)
    unique: List[Path] = []
    for d in dirs:
        if d not in unique:
            unique.append(d)
    return unique


def _candidate_names(name: str) -> List[str]:
    if name.lower().endswith(WORKFLOW_EXTENSIONS):
        return [name]
    return [f"{name}{ext}" for ext in WORKFLOW_EXTENSIONS]


def find_workflow(name: str, base_dir: Optional[Path] = None, cwd: Optional[Path] = None) -> Path:
    """
    Resolve a workflow name or path to a file.

    Raises:
        WorkflowNotFound: Listing every location that was searched.
    """
    literal = Path(name).expanduser()
    if literal.is_file():
        return literal

    searched = []
    for directory in search_dirs(base_dir, cwd):
        searched.append(str(directory))
        for candidate in _candidate_names(name):
            path = directory / candidate
            if path.is_file():
                return path

    raise WorkflowNotFound(name, searched)


def list_workflows(cwd: Optional[Path] = None) -> List[Tuple[Path, Workflow]]:
    """
    Every loadable workflow, local first, then global, then bundled.

    A name defined in more than one place is listed once, from the location
    ``find_workflow`` would pick. Files that fail to load are skipped with a
    warning.
    """
    found: List[Tuple[Path, Workflow]] = []
    seen = set()

    for directory in search_dirs(cwd=cwd):
        if not directory.is_dir():
            continue
        for path in sorted(directory.iterdir()):
            if path.suffix.lower() not in WORKFLOW_EXTENSIONS or path.stem in seen:
                continue
            try:
                workflow = load_workflow(path, cwd=cwd)
            except WorkflowError as e:
                logger.warning(f"Skipping {path}: {e}")
                continue
            seen.add(path.stem)
            found.append((path, workflow))

    return found
