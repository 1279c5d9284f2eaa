"""JSON-with-comments reader for redox.jsonc configuration files."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any


def strip_comments(text: str) -> str:
    out: list[str] = []
    in_string = False
    escaped = False
    i = 0
    size = len(text)
    while i < size:
        ch = text[i]
        nxt = text[i + 1] if i + 1 < size else ""
        if in_string:
            out.append(ch)
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            i += 1
            continue

        if ch == '"':
            in_string = True
            out.append(ch)
            i += 1
        elif ch == "/" and nxt == "/":
            end = text.find("\n", i)
            i = size if end == -1 else end
        elif ch == "/" and nxt == "*":
            end = text.find("*/", i + 2)
            if end == -1:
                raise ValueError("unterminated block comment")
            # keep line numbers stable for json error positions
            out.append("\n" * text.count("\n", i, end))
            i = end + 2
        else:
            out.append(ch)
            i += 1

    return "".join(out)


def read_jsonc(path: Path) -> dict[str, Any]:
    payload = json.loads(strip_comments(path.read_text(encoding="utf-8")))
    if not isinstance(payload, dict):
        raise ValueError(f"JSONC root must be an object: {path}")
    return payload
