"""Helpers for JSON-with-comments configuration files."""

import json
from pathlib import Path
from typing import Any


def strip_json_comments(text: str) -> str:
    """Remove ``//`` line comments and ``/* */`` block comments.

    Comment markers inside string literals are preserved, so values such as
    ``"http://example.com"`` survive untouched.

    Args:
        text: Raw JSONC document

    Returns:
        The document with comments removed
    """
    out: list[str] = []
    i = 0
    length = len(text)
    in_string = False

    while i < length:
        ch = text[i]

        if in_string:
            out.append(ch)
            if ch == "\\" and i + 1 < length:
                out.append(text[i + 1])
                i += 2
                continue
            if ch == '"':
                in_string = False
            i += 1
            continue

        if ch == '"':
            in_string = True
            out.append(ch)
            i += 1
        elif text.startswith("//", i):
            newline = text.find("\n", i)
            i = length if newline == -1 else newline
        elif text.startswith("/*", i):
            end = text.find("*/", i + 2)
            i = length if end == -1 else end + 2
        else:
            out.append(ch)
            i += 1

    return "".join(out)


def loads_jsonc(text: str) -> Any:
    """Parse a JSONC document."""
    return json.loads(strip_json_comments(text))


def read_jsonc(path: Path) -> Any:
    """Read and parse a JSONC file.

    Raises:
        OSError: If the file cannot be read
        json.JSONDecodeError: If the content is not valid JSON after stripping
    """
    return loads_jsonc(path.read_text(encoding="utf-8"))
