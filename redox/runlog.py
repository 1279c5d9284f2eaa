"""Append-only run log shared by every stage of a run."""

from __future__ import annotations

import sys
from pathlib import Path

from .framework import utc_now

LEVELS = ("debug", "info", "warn", "error")


def _format_fields(fields: dict[str, object]) -> str:
    parts = []
    for key in sorted(fields):
        value = fields[key]
        if value is None or value == "":
            continue
        text = str(value)
        if " " in text:
            text = '"' + text.replace('"', '\\"') + '"'
        parts.append(f"{key}={text}")
    return " ".join(parts)


class RunLog:
    def __init__(self, path: Path | None, *, echo: bool = True, verbose: bool = False) -> None:
        self.path = path
        self.echo = echo
        self.verbose = verbose

    def echo_only(self) -> "RunLog":
        return RunLog(None, echo=self.echo, verbose=self.verbose)

    def _write(self, level: str, message: str, fields: dict[str, object]) -> None:
        suffix = _format_fields(fields)
        line = f"{level} {message}" + (f" {suffix}" if suffix else "")
        if self.path is not None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as handle:
                handle.write(f"[{utc_now()}] {line}\n")
        if not self.echo:
            return
        if level == "debug" and not self.verbose:
            return
        stream = sys.stderr if level in {"warn", "error"} else sys.stdout
        print(f"[redox] {line}", file=stream)

    def debug(self, message: str, **fields: object) -> None:
        self._write("debug", message, fields)

    def info(self, message: str, **fields: object) -> None:
        self._write("info", message, fields)

    def warn(self, message: str, **fields: object) -> None:
        self._write("warn", message, fields)

    def error(self, message: str, **fields: object) -> None:
        self._write("error", message, fields)
