"""Unmapped lists are empty and stats agree with array lengths."""

from __future__ import annotations

from typing import Any

from .common import Gate, GateContext, GateFailure

NAME = "traceability"

STAT_FIELDS = (
    ("routeCount", "routes"),
    ("endpointCount", "endpoints"),
    ("useCaseCount", "useCases"),
    ("linkCount", "links"),
)


def check_traceability(matrix: dict[str, Any]) -> list[str]:
    errors: list[str] = []
    unmapped = matrix.get("unmapped") or {}
    unmapped_routes = unmapped.get("routes") or []
    unmapped_endpoints = unmapped.get("endpoints") or []
    if unmapped_routes or unmapped_endpoints:
        errors.append(f"unmapped routes={len(unmapped_routes)} endpoints={len(unmapped_endpoints)}")

    stats = matrix.get("stats") or {}
    for stat_key, array_key in STAT_FIELDS:
        if stat_key not in stats:
            continue
        array = matrix.get(array_key)
        if not isinstance(array, list):
            errors.append(f"stats mismatch: {stat_key}={stats[stat_key]} but {array_key} is missing")
            continue
        if stats[stat_key] != len(array):
            errors.append(f"stats mismatch: {stat_key}={stats[stat_key]} {array_key}.length={len(array)}")
    return errors


def _precondition(ctx: GateContext) -> bool:
    return ctx.store.has_fact("coverage-matrix")


def _check(ctx: GateContext) -> None:
    errors = check_traceability(ctx.read_fact("coverage-matrix"))
    if errors:
        raise GateFailure(NAME, errors)


GATE = Gate(
    name=NAME,
    description="verify coverage-matrix.json has no unmapped ids and consistent stats",
    precondition=_precondition,
    check=_check,
)
