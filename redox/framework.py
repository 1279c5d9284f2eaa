"""Shared primitives for pipeline stages and gates."""

from __future__ import annotations

import datetime as dt
import hashlib
import json
import os
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Mapping

if TYPE_CHECKING:
    from .runlog import RunLog


def utc_now() -> str:
    return dt.datetime.now(dt.timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def sha256_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def write_json(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")


def read_json(path: Path) -> Any:
    return json.loads(path.read_text(encoding="utf-8"))


SCHEMA_DIR = Path(__file__).resolve().parent / "schemas"


def load_schema(name: str) -> dict[str, Any]:
    return read_json(SCHEMA_DIR / name)


@dataclass(frozen=True)
class BestEffort:
    """Outcome of an operation whose failure must not mask the primary result."""

    label: str
    ok: bool
    error: str = ""


def best_effort(label: str, action: Callable[[], object], log: "RunLog | None" = None) -> BestEffort:
    try:
        action()
    except Exception as exc:
        if log is not None:
            log.warn(f"best-effort step failed: {label}", error=str(exc))
        return BestEffort(label=label, ok=False, error=str(exc))
    return BestEffort(label=label, ok=True)


class CommandError(RuntimeError):
    """Raised when an external command is missing or exits non-zero."""

    def __init__(self, args: list[str], message: str) -> None:
        super().__init__(f"{args[0]}: {message}")
        self.command = args
        self.message = message


def run_command(
    args: list[str],
    *,
    cwd: Path | None = None,
    timeout: float | None = None,
    env: Mapping[str, str] | None = None,
) -> str:
    try:
        completed = subprocess.run(
            args,
            cwd=str(cwd) if cwd is not None else None,
            check=True,
            capture_output=True,
            text=True,
            timeout=timeout,
            env={**os.environ, **env} if env else None,
        )
    except FileNotFoundError as exc:
        raise CommandError(args, "command not found") from exc
    except subprocess.CalledProcessError as exc:
        detail = (exc.stderr or exc.stdout or "").strip()
        raise CommandError(args, detail or f"exit status {exc.returncode}") from exc
    except subprocess.TimeoutExpired as exc:
        raise CommandError(args, f"timed out after {timeout}s") from exc
    return completed.stdout
