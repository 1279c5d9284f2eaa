"""Append-only, content-hashed provenance ledger.

Each line of ``evidence.jsonl`` is one JSON object::

    {"path": "app/User.php", "startLine": 10, "endLine": 20, "sha256": "...", "note": "..."}

``sha256`` is taken over the raw bytes of lines ``startLine..endLine``
(1-indexed, inclusive, CRLF read as LF) joined with ``\\n``. Verification
recomputes the digest against the current file so that source drift after
capture is detected.
"""

from __future__ import annotations

import json
import re
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .framework import sha256_bytes

LINE_SPLIT_RE = re.compile(rb"\r?\n")


class EvidenceFormatError(ValueError):
    """Raised for malformed evidence records or ledger lines."""


@dataclass(frozen=True)
class EvidenceRecord:
    path: str
    start_line: int
    end_line: int
    sha256: str
    note: str | None = None

    def __post_init__(self) -> None:
        if self.start_line < 1:
            raise EvidenceFormatError(f"startLine must be >= 1: {self.path}:{self.start_line}")
        if self.end_line < self.start_line:
            raise EvidenceFormatError(
                f"endLine must be >= startLine: {self.path}:{self.start_line}-{self.end_line}"
            )

    @property
    def location(self) -> str:
        return f"{self.path}:{self.start_line}-{self.end_line}"

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "path": self.path,
            "startLine": self.start_line,
            "endLine": self.end_line,
            "sha256": self.sha256,
        }
        if self.note:
            payload["note"] = self.note
        return payload

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "EvidenceRecord":
        try:
            path = str(payload["path"])
            start_line = int(payload["startLine"])
            end_line = int(payload["endLine"])
        except (KeyError, TypeError, ValueError) as exc:
            raise EvidenceFormatError(f"invalid evidence record {payload!r}: {exc}") from exc
        return cls(
            path=path,
            start_line=start_line,
            end_line=end_line,
            sha256=str(payload.get("sha256") or ""),
            note=payload.get("note"),
        )


def split_lines(content: bytes) -> list[bytes]:
    return LINE_SPLIT_RE.split(content)


def hash_span(content: str | bytes, start_line: int, end_line: int) -> str:
    if isinstance(content, str):
        content = content.encode("utf-8")
    lines = split_lines(content)
    return sha256_bytes(b"\n".join(lines[start_line - 1 : end_line]))


@dataclass(frozen=True)
class EvidenceIssue:
    record: EvidenceRecord
    message: str

    def __str__(self) -> str:
        return self.message


def verify_record(root: Path, record: EvidenceRecord) -> EvidenceIssue | None:
    target = (root / record.path).resolve()
    if not target.is_file():
        return EvidenceIssue(record, f"missing evidence file: {record.path}")

    lines = split_lines(target.read_bytes())
    if record.end_line > len(lines):
        return EvidenceIssue(
            record,
            f"invalid line span for {record.path}: {record.start_line}-{record.end_line} "
            f"(file has {len(lines)} lines)",
        )
    if not record.sha256:
        return EvidenceIssue(record, f"missing sha256 for {record.location}")

    observed = sha256_bytes(b"\n".join(lines[record.start_line - 1 : record.end_line]))
    if observed != record.sha256:
        return EvidenceIssue(record, f"sha256 mismatch for {record.location}")
    return None


class EvidenceLedger:
    def __init__(self, path: Path) -> None:
        self.path = path
        self._lock = threading.Lock()

    def append(self, record: EvidenceRecord) -> None:
        line = json.dumps(record.to_dict(), sort_keys=True) + "\n"
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as handle:
                handle.write(line)

    def capture(self, root: Path, path: str, start_line: int, end_line: int, note: str | None = None) -> EvidenceRecord:
        """Hash the current content of a source span and append it."""
        source = root / path
        if not source.is_file():
            raise EvidenceFormatError(f"cannot capture evidence from missing file: {path}")
        content = source.read_bytes()
        if end_line > len(split_lines(content)):
            raise EvidenceFormatError(f"line span out of bounds for {path}: {start_line}-{end_line}")
        record = EvidenceRecord(
            path=path,
            start_line=start_line,
            end_line=end_line,
            sha256=hash_span(content, start_line, end_line),
            note=note,
        )
        self.append(record)
        return record

    def iter_lines(self) -> list[tuple[int, str]]:
        if not self.path.exists():
            return []
        rows: list[tuple[int, str]] = []
        for number, raw in enumerate(self.path.read_text(encoding="utf-8").splitlines(), start=1):
            if raw.strip():
                rows.append((number, raw.strip()))
        return rows

    def read_all(self) -> list[EvidenceRecord]:
        records: list[EvidenceRecord] = []
        for number, line in self.iter_lines():
            try:
                payload = json.loads(line)
            except json.JSONDecodeError as exc:
                raise EvidenceFormatError(f"{self.path.name}:{number}: invalid JSON ({exc})") from exc
            if not isinstance(payload, dict):
                raise EvidenceFormatError(f"{self.path.name}:{number}: record must be an object")
            records.append(EvidenceRecord.from_dict(payload))
        return records
