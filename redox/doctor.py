"""Environment check for the optional external tools the pipeline can use."""

from __future__ import annotations

import os
import shutil
from dataclasses import dataclass
from typing import Callable, Mapping

TOOLS = (
    ("mmdc", "render diagrams/erd.mmd in the build gate"),
    ("psql", "apply database.sql in the build gate"),
    ("pg_dump", "dump the schema after migrations in the render stage"),
    ("docker", "provision a disposable PostgreSQL for render and build"),
)
API_KEY_VARS = ("OPENAI_API_KEY", "REDOX_API_KEY")


@dataclass(frozen=True)
class ToolStatus:
    name: str
    purpose: str
    found: bool
    location: str = ""


def check_tools(which: Callable[[str], str | None] = shutil.which) -> list[ToolStatus]:
    statuses = []
    for name, purpose in TOOLS:
        location = which(name)
        statuses.append(ToolStatus(name=name, purpose=purpose, found=location is not None, location=location or ""))
    return statuses


def api_key_present(env: Mapping[str, str] | None = None) -> bool:
    env = os.environ if env is None else env
    return any(env.get(name) for name in API_KEY_VARS)


def doctor_report(
    env: Mapping[str, str] | None = None,
    which: Callable[[str], str | None] = shutil.which,
) -> list[str]:
    lines = ["redox doctor"]
    for status in check_tools(which):
        if status.found:
            lines.append(f"  ok       {status.name} ({status.location})")
        else:
            lines.append(f"  missing  {status.name}: needed to {status.purpose}")
    if api_key_present(env):
        lines.append("  ok       text-generation API key")
    else:
        lines.append(f"  missing  text-generation API key (set one of {', '.join(API_KEY_VARS)})")
    lines.append("Optional tools only degrade the gates and renderers that use them.")
    return lines
