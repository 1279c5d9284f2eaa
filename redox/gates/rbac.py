"""Every role/permission binding cites evidence."""

from __future__ import annotations

from typing import Any

from .common import Gate, GateContext, GateFailure

NAME = "rbac"


def binding_rows(document: dict[str, Any]) -> list[tuple[str, str, list[Any]]]:
    rows: list[tuple[str, str, list[Any]]] = []
    for binding in document.get("roleBindings") or []:
        if not isinstance(binding, dict):
            continue
        evidence = binding.get("evidence")
        rows.append(
            (
                str(binding.get("roleId", "?")),
                str(binding.get("permissionId", "?")),
                evidence if isinstance(evidence, list) else [],
            )
        )
    return rows


def check_rbac(document: dict[str, Any]) -> list[str]:
    rows = binding_rows(document)
    if not rows:
        return ["RBAC matrix is empty"]
    return [
        f"RBAC binding missing evidence: {role}/{permission}"
        for role, permission, evidence in rows
        if not evidence
    ]


def _precondition(ctx: GateContext) -> bool:
    return ctx.store.has_fact("rbac")


def _check(ctx: GateContext) -> None:
    errors = check_rbac(ctx.read_fact("rbac"))
    if errors:
        raise GateFailure(NAME, errors)


GATE = Gate(
    name=NAME,
    description="verify every roleBindings entry in rbac.json carries evidence",
    precondition=_precondition,
    check=_check,
)
