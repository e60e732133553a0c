"""Workflow engine: loading, dependency grading, templating and execution."""

from .dag import ResultStore, StepResult, Workflow, WorkflowStep, group_by_depth
from .errors import WorkflowError
from .executor import PreparedStep, StepExecutor
from .loader import find_workflow, list_workflows, load_workflow
from .report import format_results
from .runner import WorkflowRunner

__all__ = [
    "ResultStore",
    "StepResult",
    "Workflow",
    "WorkflowStep",
    "group_by_depth",
    "WorkflowError",
    "PreparedStep",
    "StepExecutor",
    "find_workflow",
    "list_workflows",
    "load_workflow",
    "format_results",
    "WorkflowRunner",
]
