"""Every route and endpoint in the matrix appears in at least one link."""

from __future__ import annotations

from typing import Any

from .common import Gate, GateContext, GateFailure

NAME = "coverage"


def uncovered(matrix: dict[str, Any]) -> tuple[list[str], list[str]]:
    links = [link for link in matrix.get("links") or [] if isinstance(link, dict)]
    covered_routes = {link.get("routeId") for link in links}
    covered_endpoints = {link.get("endpointId") for link in links}
    routes = [rid for rid in matrix.get("routes") or [] if rid not in covered_routes]
    endpoints = [eid for eid in matrix.get("endpoints") or [] if eid not in covered_endpoints]
    return routes, endpoints


def check_coverage(matrix: dict[str, Any]) -> list[str]:
    routes, endpoints = uncovered(matrix)
    if not routes and not endpoints:
        return []
    errors = [f"uncovered routes={len(routes)} endpoints={len(endpoints)}"]
    errors.extend(f"route without link: {rid}" for rid in routes)
    errors.extend(f"endpoint without link: {eid}" for eid in endpoints)
    return errors


def _precondition(ctx: GateContext) -> bool:
    return ctx.store.has_fact("coverage-matrix")


def _check(ctx: GateContext) -> None:
    errors = check_coverage(ctx.read_fact("coverage-matrix"))
    if errors:
        raise GateFailure(NAME, errors)


GATE = Gate(
    name=NAME,
    description="verify every route and endpoint in coverage-matrix.json is linked to a use case",
    precondition=_precondition,
    check=_check,
)
