"""Template interpolation for step prompts, shell commands and verify commands.

Placeholders use ``{{ namespace.key }}`` syntax and are resolved against the
results of steps that have already run. Five namespaces are tried in order:

    {{ steps.NAME.output }}   raw output of a completed step
    {{ steps.NAME.FIELD }}    a field of the JSON found in that output
    {{ env.NAME }}            process environment variable
    {{ arg.N }}               1-indexed positional run argument
    {{ workflow.backends }}   backends used so far, e.g. "Claude+Codex"

Missing steps are fatal (MissingStepOutput). Missing fields, env vars and
args are not: they substitute a bracketed marker so whoever reads the prompt
sees the gap. A placeholder matching no namespace raises UnknownVariable, so
a prompt is never dispatched with a dangling placeholder.

Only placeholders written in the template are resolved. Text substituted in
from a step's output is inserted verbatim and never re-scanned.
"""

import json
import os
import re
from typing import Mapping, Optional, Sequence

from ..utils.json_extract import extract_json
from .dag import ResultStore, Workflow, build_index, upstream_steps
from .errors import MissingStepOutput, UnknownVariable

PLACEHOLDER_PATTERN = re.compile(r"\{\{(.*?)\}\}", re.DOTALL)

STEP_OUTPUT_PATTERN = re.compile(r"steps\.([A-Za-z0-9_-]+)\.output")
STEP_FIELD_PATTERN = re.compile(r"steps\.([A-Za-z0-9_-]+)\.([A-Za-z0-9_-]+)")
ENV_PATTERN = re.compile(r"env\.([A-Za-z_][A-Za-z0-9_]*)")
ARG_PATTERN = re.compile(r"arg\.(\d+)")
BACKENDS_PATTERN = re.compile(r"workflow\.backends")

DEFAULT_BACKENDS_LABEL = "Polyflow"


def backends_label(backend_names: Sequence[str]) -> str:
    """Sorted, de-duplicated, capitalized, '+'-joined backend names."""
    names = sorted({n.strip().lower() for n in backend_names if n and n.strip()})
    if not names:
        return DEFAULT_BACKENDS_LABEL
    return "+".join(n[:1].upper() + n[1:] for n in names)


def referenced_steps(template: str) -> Sequence[str]:
    """Step names referenced by ``steps.*`` placeholders in a template."""
    names = []
    for match in PLACEHOLDER_PATTERN.finditer(template or ""):
        inner = match.group(1).strip()
        step_match = STEP_OUTPUT_PATTERN.fullmatch(inner) or STEP_FIELD_PATTERN.fullmatch(inner)
        if step_match and step_match.group(1) not in names:
            names.append(step_match.group(1))
    return names


def is_known_placeholder(inner: str) -> bool:
    return any(
        pattern.fullmatch(inner)
        for pattern in (STEP_OUTPUT_PATTERN, STEP_FIELD_PATTERN, ENV_PATTERN, ARG_PATTERN, BACKENDS_PATTERN)
    )


class TemplateResolver:
    """Resolves placeholders for one run.

    Holds the run's positional arguments and environment; the results store
    is passed per call because it grows as levels complete.
    """

    def __init__(self, args: Sequence[str] = (), env: Optional[Mapping[str, str]] = None):
        self.args = list(args)
        self.env = env if env is not None else os.environ

    def resolve(self, template: Optional[str], results: ResultStore, step_name: Optional[str] = None) -> Optional[str]:
        if not template:
            return template

        def replace(match):
            return self._resolve_placeholder(match.group(0), match.group(1).strip(), results, step_name)

        return PLACEHOLDER_PATTERN.sub(replace, template)

    def _resolve_placeholder(self, token: str, inner: str, results: ResultStore, step_name: Optional[str]) -> str:
        match = STEP_OUTPUT_PATTERN.fullmatch(inner)
        if match:
            return self._step_result(match.group(1), results, step_name).output

        match = STEP_FIELD_PATTERN.fullmatch(inner)
        if match:
            name, field_name = match.groups()
            return self._step_field(name, field_name, results, step_name)

        match = ENV_PATTERN.fullmatch(inner)
        if match:
            value = self.env.get(match.group(1))
            return value if value is not None else f"[env var '{match.group(1)}' not set]"

        match = ARG_PATTERN.fullmatch(inner)
        if match:
            position = int(match.group(1))
            if 1 <= position <= len(self.args):
                return self.args[position - 1]
            return f"[arg {position} not provided]"

        if BACKENDS_PATTERN.fullmatch(inner):
            return backends_label(results.backends_used())

        raise UnknownVariable(token, referenced_by=step_name)

    @staticmethod
    def _step_result(name: str, results: ResultStore, step_name: Optional[str]):
        result = results.get(name)
        if result is None:
            raise MissingStepOutput(name, referenced_by=step_name)
        return result

    def _step_field(self, name: str, field_name: str, results: ResultStore, step_name: Optional[str]) -> str:
        data = extract_json(self._step_result(name, results, step_name).output)
        if isinstance(data, dict) and field_name in data:
            value = data[field_name]
            return value if isinstance(value, str) else json.dumps(value)
        return f"[field '{field_name}' not found in step '{name}']"


def validate_templates(workflow: Workflow) -> None:
    """Reject templates that can never resolve, before any step runs.

    Raises MissingStepOutput for a reference to a step that is not upstream
    of the referring step (undefined, a sibling, a later step or itself),
    since its output can never exist when the referring step is prepared.
    Raises UnknownVariable for placeholders outside the five namespaces.
    A reference to an upstream step skipped by ``when`` is only caught at
    run time.
    """
    index = build_index(workflow)
    for step in workflow.steps:
        upstream = upstream_steps(index, step.name)
        templates = [step.shell, step.verify]
        if not step.is_shell:
            templates.append(step.prompt)
        for template in templates:
            if not template:
                continue
            for match in PLACEHOLDER_PATTERN.finditer(template):
                inner = match.group(1).strip()
                if not is_known_placeholder(inner):
                    raise UnknownVariable(match.group(0), referenced_by=step.name)
            for name in referenced_steps(template):
                if name not in upstream:
                    raise MissingStepOutput(name, referenced_by=step.name)
