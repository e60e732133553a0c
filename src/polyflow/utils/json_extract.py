"""Locate and parse JSON embedded in free-form backend output.

Backends rarely return bare JSON. They wrap it in Markdown fences, prefix it
with prose, or emit string values containing raw newlines. Everything here is
a pure function over text so callers never depend on a particular parser's
error types: a miss is ``None``, never an exception.
"""

import json
import re
from typing import Any, Optional

_JSON_FENCE_PATTERN = re.compile(r"```json[ \t]*\n(.*?)\n?[ \t]*```", re.DOTALL)
# Any fenced block whose first line is a bare language tag (```js, ```text, ...)
_TAGGED_FENCE_PATTERN = re.compile(r"```[A-Za-z0-9_+-]+[ \t]*\n(.*?)\n?[ \t]*```", re.DOTALL)

_CLOSERS = {"{": "}", "[": "]"}


def find_balanced(text: str, opener: str = "{") -> Optional[str]:
    """Return the first balanced top-level ``{...}`` (or ``[...]``) in text.

    Brackets inside JSON string literals are ignored.
    """
    closer = _CLOSERS[opener]
    start = text.find(opener)
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == opener:
                depth += 1
            elif ch == closer:
                depth -= 1
                if depth == 0:
                    return text[start:i + 1]
        # Unbalanced from this opener; try the next one
        start = text.find(opener, start + 1)
    return None


def find_json_block(text: str, opener: str = "{") -> Optional[str]:
    """Find the most likely JSON payload in text.

    Order: a ```json fence, then any fence tagged with a language, then the
    first balanced top-level structure.
    """
    match = _JSON_FENCE_PATTERN.search(text)
    if match and match.group(1).strip():
        return match.group(1).strip()

    for match in _TAGGED_FENCE_PATTERN.finditer(text):
        body = match.group(1).strip()
        if body.startswith(opener):
            return body

    return find_balanced(text, opener)


def sanitize_json_strings(text: str) -> str:
    """Escape raw control characters that appear inside JSON string literals.

    LLMs often emit multi-line string values with literal newlines, which
    strict JSON rejects. Characters outside strings are left untouched.
    """
    out = []
    in_string = False
    escaped = False
    for ch in text:
        if in_string:
            if escaped:
                escaped = False
                out.append(ch)
                continue
            if ch == "\\":
                escaped = True
                out.append(ch)
                continue
            if ch == '"':
                in_string = False
                out.append(ch)
                continue
            if ch == "\n":
                out.append("\\n")
            elif ch == "\r":
                out.append("\\r")
            elif ch == "\t":
                out.append("\\t")
            elif ord(ch) < 0x20:
                out.append(f"\\u{ord(ch):04x}")
            else:
                out.append(ch)
        else:
            if ch == '"':
                in_string = True
            out.append(ch)
    return "".join(out)


def parse_json_lenient(text: str) -> Optional[Any]:
    """Parse strictly, then retry once after sanitizing string literals."""
    try:
        return json.loads(text)
    except (json.JSONDecodeError, ValueError):
        pass
    try:
        return json.loads(sanitize_json_strings(text))
    except (json.JSONDecodeError, ValueError):
        return None


def extract_json(text: str, opener: str = "{") -> Optional[Any]:
    """Find and parse the JSON payload in text, or return None."""
    block = find_json_block(text, opener)
    if block is None:
        return None
    return parse_json_lenient(block)
