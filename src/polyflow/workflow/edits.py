"""Structured file edits parsed from step output.

A step with ``apply_edits = true`` is expected to answer with JSON such as::

    {"edits": [{"file": "src/app.py", "old": "retries = 1", "new": "retries = 3"}]}

or a bare list of the same objects. Edits are exact find/replace operations:
``old`` must appear verbatim in the current file content.

Application is all-or-nothing. Every edit is validated and applied in memory
first (in listed order, so later edits see earlier ones), and files are only
written once the whole batch succeeded.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List

from ..utils.atomic_io import atomic_write_text
from ..utils.json_extract import extract_json

logger = logging.getLogger(__name__)


class EditError(Exception):
    """Edits could not be parsed or applied."""


@dataclass(frozen=True)
class FileEdit:
    path: str  # Relative to the working directory
    old: str
    new: str


def _edit_items(output: str):
    data = extract_json(output, "{")
    if isinstance(data, dict) and isinstance(data.get("edits"), list):
        return data["edits"]
    if isinstance(data, list):
        return data
    data = extract_json(output, "[")
    if isinstance(data, list):
        return data
    return None


def parse_edits(output: str) -> List[FileEdit]:
    """Parse the edit list out of a step's output."""
    items = _edit_items(output)
    if not items:
        raise EditError("No edits found in output (expected a JSON list of {file, old, new})")

    edits = []
    for i, item in enumerate(items):
        if not isinstance(item, dict):
            raise EditError(f"Edit #{i + 1} is not an object")
        path = item.get("file", item.get("path"))
        old = item.get("old")
        new = item.get("new")
        if not isinstance(path, str) or not path:
            raise EditError(f"Edit #{i + 1} is missing 'file'")
        if not isinstance(old, str) or not old:
            raise EditError(f"Edit #{i + 1} ({path}) is missing 'old'")
        if not isinstance(new, str):
            raise EditError(f"Edit #{i + 1} ({path}) is missing 'new'")
        edits.append(FileEdit(path=path, old=old, new=new))
    return edits


def _resolve_target(working_dir: Path, relative: str) -> Path:
    root = working_dir.resolve()
    try:
        target = (root / relative).resolve()
    except (OSError, ValueError) as e:
        raise EditError(f"Invalid edit target {relative!r}: {e}") from e
    if target != root and root not in target.parents:
        raise EditError(f"Edit target escapes working directory: {relative}")
    return target


def apply_edits(edits: List[FileEdit], working_dir: Path) -> int:
    """Apply edits atomically as a batch. Returns the number applied.

    Raises EditError without touching any file if a target is missing or an
    ``old`` string is not present verbatim.
    """
    staged: Dict[Path, str] = {}

    for i, edit in enumerate(edits):
        target = _resolve_target(working_dir, edit.path)
        if target not in staged:
            if not target.is_file():
                raise EditError(f"Edit #{i + 1}: file not found: {edit.path}")
            with open(target, encoding="utf-8", newline="") as f:
                staged[target] = f.read()

        content = staged[target]
        if edit.old not in content:
            raise EditError(f"Edit #{i + 1}: text to replace not found in {edit.path}")
        staged[target] = content.replace(edit.old, edit.new, 1)

    for target, content in staged.items():
        atomic_write_text(target, content)
        logger.debug(f"Applied edits to {target}")

    return len(edits)
