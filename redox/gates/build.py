"""DDL applies to a throwaway database and the ER diagram renders."""

from __future__ import annotations

from ..ephemeral import EphemeralDatabase, ProvisioningError, apply_ddl
from ..framework import CommandError, best_effort, run_command
from .common import Gate, GateContext, GateFailure

NAME = "build"


def _check_ddl(ctx: GateContext) -> str | None:
    ddl = ctx.store.paths.ddl
    try:
        if ctx.config.build_dsn:
            apply_ddl(ctx.config.build_dsn, ddl)
        else:
            with EphemeralDatabase(
                image=ctx.config.postgres_image,
                ready_timeout_seconds=ctx.config.ready_timeout_seconds,
                log=ctx.log,
            ) as database:
                apply_ddl(database.dsn, ddl)
    except CommandError as exc:
        return f"DDL validation failed (psql): {exc.message}"
    except ProvisioningError as exc:
        return f"DDL validation failed (database): {exc}"
    return None


def _check_erd(ctx: GateContext) -> str | None:
    erd = ctx.store.paths.erd
    scratch = erd.parent / ".erd-build.png"
    try:
        run_command(["mmdc", "-i", str(erd), "-o", str(scratch)], cwd=ctx.root)
    except CommandError as exc:
        return f"ERD render failed (mmdc): {exc.message}"
    finally:
        best_effort(f"remove {scratch}", lambda: scratch.unlink(missing_ok=True), ctx.log)
    return None


def _has_entities(ctx: GateContext) -> bool:
    erd = ctx.store.paths.erd
    return ctx.store.exists(erd) and erd.read_text(encoding="utf-8").strip() != "erDiagram"


def _precondition(ctx: GateContext) -> bool:
    return ctx.store.exists(ctx.store.paths.ddl) or _has_entities(ctx)


def _check(ctx: GateContext) -> None:
    errors: list[str] = []
    if ctx.store.exists(ctx.store.paths.ddl):
        error = _check_ddl(ctx)
        if error:
            errors.append(error)
    if _has_entities(ctx):
        error = _check_erd(ctx)
        if error:
            errors.append(error)
    if errors:
        raise GateFailure(NAME, errors)


GATE = Gate(
    name=NAME,
    description="apply database.sql with psql and render diagrams/erd.mmd with mmdc",
    precondition=_precondition,
    check=_check,
)
