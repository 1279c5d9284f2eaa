"""Gate contract: the shared context, per-gate results and the failure that carries an error list."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable

if TYPE_CHECKING:
    from ..artifacts import ArtifactStore
    from ..config import RedoxConfig
    from ..runlog import RunLog

PASSED = "passed"
FAILED = "failed"
SKIPPED = "skipped"
PLANNED = "planned"


class GateFailure(RuntimeError):
    """Raised by a gate check; carries one entry per actionable problem."""

    def __init__(self, gate: str, errors: list[str]) -> None:
        super().__init__(f"{gate} gate failed:\n- " + "\n- ".join(errors))
        self.gate = gate
        self.errors = errors


@dataclass
class GateContext:
    store: "ArtifactStore"
    config: "RedoxConfig"
    log: "RunLog"
    dry_run: bool = False

    @property
    def root(self) -> Path:
        return self.store.paths.root

    def read_fact(self, family: str) -> Any:
        return self.store.read_fact(family)


@dataclass(frozen=True)
class GateResult:
    gate: str
    status: str
    errors: tuple[str, ...] = ()
    detail: str = ""

    @property
    def success(self) -> bool:
        return self.status != FAILED

    @classmethod
    def passed(cls, gate: str) -> "GateResult":
        return cls(gate=gate, status=PASSED)

    @classmethod
    def failed(cls, gate: str, errors: list[str]) -> "GateResult":
        return cls(gate=gate, status=FAILED, errors=tuple(errors))

    @classmethod
    def skipped(cls, gate: str, reason: str) -> "GateResult":
        return cls(gate=gate, status=SKIPPED, detail=reason)

    @classmethod
    def planned(cls, gate: str, description: str) -> "GateResult":
        return cls(gate=gate, status=PLANNED, detail=description)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"gate": self.gate, "status": self.status, "success": self.success}
        if self.errors:
            payload["errors"] = list(self.errors)
        if self.detail:
            payload["detail"] = self.detail
        return payload


@dataclass(frozen=True)
class Gate:
    name: str
    description: str
    precondition: Callable[[GateContext], bool]
    check: Callable[[GateContext], None]
    skip_reason: str = "precondition artifact not present"
