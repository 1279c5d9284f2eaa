"""Every ledger record still matches the source it cites."""

from __future__ import annotations

import json
from pathlib import Path

from ..evidence import EvidenceFormatError, EvidenceLedger, EvidenceRecord, verify_record
from .common import Gate, GateContext, GateFailure

NAME = "evidence"


def check_ledger(root: Path, ledger: EvidenceLedger) -> list[str]:
    """One error per failing line; a bad line does not hide the others."""
    errors: list[str] = []
    for number, line in ledger.iter_lines():
        try:
            payload = json.loads(line)
        except json.JSONDecodeError as exc:
            errors.append(f"{ledger.path.name}:{number}: invalid JSON ({exc.msg})")
            continue
        if not isinstance(payload, dict):
            errors.append(f"{ledger.path.name}:{number}: record must be an object")
            continue
        try:
            record = EvidenceRecord.from_dict(payload)
        except EvidenceFormatError as exc:
            errors.append(f"{ledger.path.name}:{number}: {exc}")
            continue
        issue = verify_record(root, record)
        if issue is not None:
            errors.append(issue.message)
    return errors


def _precondition(ctx: GateContext) -> bool:
    return ctx.store.paths.evidence_ledger.is_file()


def _check(ctx: GateContext) -> None:
    errors = check_ledger(ctx.root, EvidenceLedger(ctx.store.paths.evidence_ledger))
    if errors:
        raise GateFailure(NAME, errors)


GATE = Gate(
    name=NAME,
    description="re-hash every evidence.jsonl span against the current source",
    precondition=_precondition,
    check=_check,
)
