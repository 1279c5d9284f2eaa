"""Each mapped personal-data field has a legal basis and a retention period."""

from __future__ import annotations

from typing import Any

from .common import Gate, GateContext, GateFailure

NAME = "compliance"


def map_entries(document: Any) -> list[dict[str, Any]]:
    if isinstance(document, dict):
        document = document.get("fields")
    if not isinstance(document, list):
        return []
    return [entry for entry in document if isinstance(entry, dict)]


def _filled(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def check_compliance(entries: list[dict[str, Any]]) -> list[str]:
    incomplete = [
        entry for entry in entries if not (_filled(entry.get("legalBasis")) and _filled(entry.get("retention")))
    ]
    if not incomplete:
        return []
    errors = [f"data-protection map incomplete for {len(incomplete)} fields"]
    errors.extend(
        f"incomplete field: {entry.get('table', '?')}.{entry.get('field', '?')}" for entry in incomplete
    )
    return errors


def _precondition(ctx: GateContext) -> bool:
    if not ctx.store.has_fact("lgpd-map"):
        return False
    return bool(map_entries(ctx.read_fact("lgpd-map")))


def _check(ctx: GateContext) -> None:
    errors = check_compliance(map_entries(ctx.read_fact("lgpd-map")))
    if errors:
        raise GateFailure(NAME, errors)


GATE = Gate(
    name=NAME,
    description="verify every lgpd-map.json field has legalBasis and retention",
    precondition=_precondition,
    check=_check,
    skip_reason="data-protection map absent or empty",
)
