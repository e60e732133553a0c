"""Plain-text rendering of step results."""

from typing import Iterable

from .dag import StepResult


def _indent(text: str, prefix: str = "  ") -> str:
    return "\n".join(f"{prefix}{line}" if line else "" for line in text.splitlines())


def format_result(result: StepResult) -> str:
    status = "[OK]" if result.success else "[FAIL]"
    return f"{status} {result.name} ({result.elapsed_ms / 1000:.1f}s)\n\n{_indent(result.output)}\n"


def format_results(results: Iterable[StepResult]) -> str:
    """Render results for the console or a report file.

    Each result is a status line, a blank line, the output indented by two
    spaces, and a blank line.
    """
    return "".join(f"{format_result(r)}\n" for r in results)
