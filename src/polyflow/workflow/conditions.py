"""Condition evaluation for gating workflow steps."""

import logging
import re
from typing import Optional

from .dag import ResultStore

logger = logging.getLogger(__name__)

# steps.NAME.output contains 'TEXT'  (single or double quotes)
CONDITION_PATTERN = re.compile(
    r"""^\s*steps\.([A-Za-z0-9_-]+)\.output\s+contains\s+(['"])(.*)\2\s*$""",
    re.DOTALL,
)


def evaluate_condition(condition: Optional[str], results: ResultStore) -> bool:
    """Decide whether a step should run.

    Only ``steps.NAME.output contains '...'`` is understood. A missing step
    evaluates to False. Anything unrecognised evaluates to True so an
    unsupported expression never silently blocks a pipeline.
    """
    if not condition or not condition.strip():
        return True

    match = CONDITION_PATTERN.match(condition)
    if not match:
        logger.debug(f"Unrecognised condition, running step anyway: {condition!r}")
        return True

    step_name, _quote, needle = match.groups()
    result = results.get(step_name)
    if result is None:
        return False
    return needle in result.output
