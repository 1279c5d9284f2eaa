"""Per-run state threaded through every stage of one ``Orchestrator.run`` call."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .artifacts import ArtifactStore
from .config import RedoxConfig
from .constants import GATES
from .coverage import FactSources, load_fact_sources
from .events import EventBus
from .evidence import EvidenceLedger
from .runlog import RunLog
from .usage import UsageLedger


@dataclass(frozen=True)
class RunOptions:
    gates: tuple[str, ...] = GATES
    dry_run: bool = False
    resume: bool = False
    profile: str = "dev"


@dataclass
class RunContext:
    """Shared services plus the in-memory fact cache for a single run.

    The cache starts empty; ``extract`` fills it and later stages of the same
    run read from it before falling back to persisted artifacts.
    """

    store: ArtifactStore
    config: RedoxConfig
    options: RunOptions
    log: RunLog
    events: EventBus
    evidence: EvidenceLedger
    usage: UsageLedger
    run_id: str
    facts: dict[str, Any] = field(default_factory=dict)

    @property
    def root(self) -> Path:
        return self.store.paths.root

    @property
    def dry_run(self) -> bool:
        return self.options.dry_run

    @property
    def extra_route_paths(self) -> list[Path]:
        paths = []
        for raw in self.config.extra_route_sources:
            path = Path(raw)
            paths.append(path if path.is_absolute() else self.root / path)
        return paths

    def remember(self, key: str, payload: Any) -> None:
        self.facts[key] = payload

    def fact(self, family: str) -> Any | None:
        if family in self.facts:
            return self.facts[family]
        if self.store.has_fact(family):
            payload = self.store.read_fact(family)
            self.facts[family] = payload
            return payload
        return None

    def fact_sources(self) -> FactSources:
        sources = load_fact_sources(self.store, self.extra_route_paths)
        if isinstance(self.facts.get("api-map"), dict):
            sources.api_map = self.facts["api-map"]
        if isinstance(self.facts.get("use-cases"), dict):
            sources.use_cases = self.facts["use-cases"]
        for key, payload in self.facts.items():
            if key.startswith("routes-") and isinstance(payload, dict):
                sources.routes[key.removeprefix("routes-")] = payload
        return sources
