"""Structured start/end notifications for progress consumers."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable

from .framework import utc_now

if TYPE_CHECKING:
    from .runlog import RunLog


@dataclass(frozen=True)
class RunEvent:
    type: str
    timestamp: str
    stage: str | None = None
    profile: str | None = None
    gate: str | None = None
    agent: str | None = None
    file: str | None = None
    success: bool | None = None
    data: dict[str, Any] = field(default_factory=dict)


Listener = Callable[[RunEvent], None]


class EventBus:
    """In-process fan-out of run events; events are never persisted here."""

    def __init__(self, log: "RunLog | None" = None) -> None:
        self._listeners: list[Listener] = []
        self.log = log
        self.history: list[RunEvent] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def emit(self, type: str, **fields: Any) -> RunEvent:
        event = RunEvent(type=type, timestamp=utc_now(), **fields)
        self.history.append(event)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as exc:
                if self.log is not None:
                    self.log.warn("event listener failed", event=type, error=str(exc))
        return event


class ProgressTracker:
    """Folds stage/gate events into a progress snapshot."""

    def __init__(self, stages: list[str], clock: Callable[[], float] = time.monotonic) -> None:
        self.stages = stages
        self.completed: list[str] = []
        self.current_stage: str | None = None
        self.current_gate: str | None = None
        self._clock = clock
        self._started = clock()

    def __call__(self, event: RunEvent) -> None:
        if event.type == "stage-start" and event.stage:
            self.current_stage = event.stage
        elif event.type in {"stage-end", "stage-skipped"} and event.stage:
            self.completed.append(event.stage)
            self.current_stage = None
        elif event.type == "gate-start" and event.gate:
            self.current_gate = event.gate
        elif event.type == "gate-end":
            self.current_gate = None

    @property
    def progress(self) -> float:
        if not self.stages:
            return 0.0
        return min(1.0, len(self.completed) / len(self.stages))

    def eta_seconds(self) -> int | None:
        progress = self.progress
        if progress <= 0:
            return None
        elapsed = self._clock() - self._started
        return max(0, round(elapsed * (1 / progress - 1)))

    def describe(self) -> str:
        elapsed = round(self._clock() - self._started)
        parts = [
            f"stage={self.current_stage or 'idle'}",
            f"time={elapsed}s",
            f"progress={round(self.progress * 100)}%",
        ]
        eta = self.eta_seconds()
        if eta is not None and self.progress < 1:
            parts.append(f"eta~{eta}s")
        if self.current_gate:
            parts.append(f"gate={self.current_gate}")
        return " ".join(parts)
