"""Gate registry and the continue-on-error runner used by the check stage."""

from __future__ import annotations

from typing import TYPE_CHECKING

from ..constants import GATES
from . import build, compliance, coverage, evidence, rbac, schema, traceability
from .common import FAILED, PASSED, PLANNED, SKIPPED, Gate, GateContext, GateFailure, GateResult

if TYPE_CHECKING:
    from ..events import EventBus

REGISTRY: dict[str, Gate] = {
    gate.name: gate
    for gate in (
        schema.GATE,
        coverage.GATE,
        traceability.GATE,
        evidence.GATE,
        build.GATE,
        rbac.GATE,
        compliance.GATE,
    )
}


def _run_one(gate: Gate, ctx: GateContext) -> GateResult:
    try:
        if not gate.precondition(ctx):
            if ctx.dry_run:
                return GateResult.planned(gate.name, f"skip {gate.name}: {gate.skip_reason}")
            return GateResult.skipped(gate.name, gate.skip_reason)
        if ctx.dry_run:
            return GateResult.planned(gate.name, gate.description)
        gate.check(ctx)
    except GateFailure as exc:
        return GateResult.failed(gate.name, exc.errors)
    except Exception as exc:
        return GateResult.failed(gate.name, [f"{type(exc).__name__}: {exc}"])
    return GateResult.passed(gate.name)


def run_gates(
    ctx: GateContext,
    selected: tuple[str, ...] = GATES,
    events: "EventBus | None" = None,
    stage: str = "check",
) -> list[GateResult]:
    """Run every selected gate in registry order; one failure never stops the rest."""
    results: list[GateResult] = []
    for name in GATES:
        if name not in selected:
            continue
        gate = REGISTRY[name]
        if events is not None:
            events.emit("gate-start", stage=stage, gate=name)
        result = _run_one(gate, ctx)
        results.append(result)

        if result.status == FAILED:
            ctx.log.error("gate failed", gate=name, errors=len(result.errors))
            for message in result.errors:
                ctx.log.error(f"  {message}", gate=name)
        elif result.status == SKIPPED:
            ctx.log.info("gate skipped", gate=name, reason=result.detail)
        elif result.status == PLANNED:
            ctx.log.info(f"[dry-run] would {result.detail}", gate=name)
        else:
            ctx.log.info("gate passed", gate=name)

        if events is not None:
            events.emit(
                "gate-end",
                stage=stage,
                gate=name,
                success=result.success,
                data={"status": result.status, "errors": list(result.errors)},
            )
    return results


__all__ = [
    "FAILED",
    "PASSED",
    "PLANNED",
    "REGISTRY",
    "SKIPPED",
    "Gate",
    "GateContext",
    "GateFailure",
    "GateResult",
    "run_gates",
]
