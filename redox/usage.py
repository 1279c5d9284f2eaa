"""Per-run accounting of external text-generation calls."""

from __future__ import annotations

import datetime as dt
import json
import os
import secrets
import threading
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Mapping

from .framework import utc_now


def new_run_id(env: Mapping[str, str] | None = None) -> str:
    env = os.environ if env is None else env
    pinned = env.get("REDOX_RUN_ID", "")
    if pinned:
        return pinned
    stamp = dt.datetime.now(dt.timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    return f"{stamp}-{secrets.token_hex(3)}"


@dataclass(frozen=True)
class UsageEntry:
    timestamp: str
    run_id: str
    model: str
    stage: str | None = None
    profile: str | None = None
    agent: str | None = None
    input_tokens: int | None = None
    output_tokens: int | None = None
    total_tokens: int | None = None
    meta: dict[str, Any] | None = None

    @property
    def effective_total(self) -> int:
        if self.total_tokens is not None:
            return self.total_tokens
        return (self.input_tokens or 0) + (self.output_tokens or 0)

    def to_dict(self) -> dict[str, Any]:
        keys = {
            "timestamp": "timestamp",
            "run_id": "runId",
            "model": "model",
            "stage": "stage",
            "profile": "profile",
            "agent": "agent",
            "input_tokens": "inputTokens",
            "output_tokens": "outputTokens",
            "total_tokens": "totalTokens",
            "meta": "meta",
        }
        return {keys[name]: value for name, value in asdict(self).items() if value is not None}

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "UsageEntry":
        def _int(key: str) -> int | None:
            value = payload.get(key)
            return int(value) if value is not None else None

        return cls(
            timestamp=str(payload.get("timestamp", "")),
            run_id=str(payload.get("runId", "")),
            model=str(payload.get("model") or "unknown"),
            stage=payload.get("stage"),
            profile=payload.get("profile"),
            agent=payload.get("agent"),
            input_tokens=_int("inputTokens"),
            output_tokens=_int("outputTokens"),
            total_tokens=_int("totalTokens"),
            meta=payload.get("meta"),
        )


@dataclass
class UsageBucket:
    calls: int = 0
    input: int = 0
    output: int = 0
    total: int = 0

    def add(self, entry: UsageEntry) -> None:
        self.calls += 1
        self.input += entry.input_tokens or 0
        self.output += entry.output_tokens or 0
        self.total += entry.effective_total


@dataclass
class UsageSummary:
    entries: int = 0
    runs: int = 0
    total_input: int = 0
    total_output: int = 0
    total_tokens: int = 0
    by_model: dict[str, UsageBucket] = field(default_factory=dict)
    by_agent: dict[str, UsageBucket] = field(default_factory=dict)


class UsageLedger:
    def __init__(self, path: Path, run_id: str) -> None:
        self.path = path
        self.run_id = run_id
        self._lock = threading.Lock()

    def record(
        self,
        *,
        model: str,
        stage: str | None = None,
        profile: str | None = None,
        agent: str | None = None,
        input_tokens: int | None = None,
        output_tokens: int | None = None,
        total_tokens: int | None = None,
        meta: dict[str, Any] | None = None,
    ) -> UsageEntry:
        entry = UsageEntry(
            timestamp=utc_now(),
            run_id=self.run_id,
            model=model,
            stage=stage,
            profile=profile,
            agent=agent,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            total_tokens=total_tokens,
            meta=meta,
        )
        line = json.dumps(entry.to_dict(), sort_keys=True) + "\n"
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as handle:
                handle.write(line)
        return entry

    def read_entries(self) -> list[UsageEntry]:
        if not self.path.exists():
            return []
        entries: list[UsageEntry] = []
        for raw in self.path.read_text(encoding="utf-8").splitlines():
            if not raw.strip():
                continue
            # torn or foreign lines are skipped
            try:
                payload = json.loads(raw)
                if isinstance(payload, dict):
                    entries.append(UsageEntry.from_dict(payload))
            except (TypeError, ValueError):
                continue
        return entries

    def summarize(self) -> UsageSummary:
        summary = UsageSummary()
        run_ids: set[str] = set()
        for entry in self.read_entries():
            run_ids.add(entry.run_id)
            summary.entries += 1
            summary.total_input += entry.input_tokens or 0
            summary.total_output += entry.output_tokens or 0
            summary.total_tokens += entry.effective_total
            summary.by_model.setdefault(entry.model or "unknown", UsageBucket()).add(entry)
            summary.by_agent.setdefault(entry.agent or "unknown", UsageBucket()).add(entry)
        summary.runs = len(run_ids)
        return summary


def format_usage_report(summary: UsageSummary, ledger_path: Path) -> list[str]:
    if not summary.entries:
        return [f"No usage data recorded yet ({ledger_path} is empty or missing)."]
    lines = [
        "Token usage summary:",
        f"  Runs:          {summary.runs}",
        f"  Calls:         {summary.entries}",
        f"  Input tokens:  {summary.total_input}",
        f"  Output tokens: {summary.total_output}",
        f"  Total tokens:  {summary.total_tokens}",
        "",
        "By model:",
    ]
    for model, bucket in sorted(summary.by_model.items()):
        lines.append(
            f"  {model}: calls={bucket.calls} input={bucket.input} output={bucket.output} total={bucket.total}"
        )
    lines.extend(["", "By agent:"])
    for agent, bucket in sorted(summary.by_agent.items()):
        lines.append(
            f"  {agent}: calls={bucket.calls} input={bucket.input} output={bucket.output} total={bucket.total}"
        )
    return lines
