"""Structured fact artifacts conform to their shipped JSON schemas."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from jsonschema import Draft202012Validator

from ..framework import load_schema, read_json
from .common import Gate, GateContext, GateFailure

NAME = "schema"

SCHEMA_FOR_FACT = {
    "api-map": "api-map.schema.json",
    "use-cases": "use-cases.schema.json",
    "coverage-matrix": "coverage-matrix.schema.json",
    "rbac": "rbac.schema.json",
    "fp-appendix": "fp-appendix.schema.json",
}
ROUTES_SCHEMA = "routes.schema.json"


def schema_targets(ctx: GateContext) -> list[tuple[Path, str]]:
    targets = [
        (ctx.store.fact_path(family), schema)
        for family, schema in SCHEMA_FOR_FACT.items()
        if ctx.store.has_fact(family)
    ]
    targets.extend((path, ROUTES_SCHEMA) for path in ctx.store.route_artifacts().values())
    return targets


def validate_document(document: Any, schema: dict[str, Any], label: str) -> list[str]:
    validator = Draft202012Validator(schema)
    errors = sorted(validator.iter_errors(document), key=lambda err: list(err.absolute_path))
    return [
        f"{label}: {'/'.join(str(p) for p in err.absolute_path) or '<root>'}: {err.message}"
        for err in errors
    ]


def _precondition(ctx: GateContext) -> bool:
    return bool(schema_targets(ctx))


def _check(ctx: GateContext) -> None:
    errors: list[str] = []
    for path, schema_name in schema_targets(ctx):
        try:
            document = read_json(path)
        except json.JSONDecodeError as exc:
            errors.append(f"{path.name}: invalid JSON ({exc.msg} at line {exc.lineno})")
            continue
        errors.extend(validate_document(document, load_schema(schema_name), path.name))
    if errors:
        raise GateFailure(NAME, errors)


GATE = Gate(
    name=NAME,
    description="validate fact artifacts against their JSON schemas",
    precondition=_precondition,
    check=_check,
)
