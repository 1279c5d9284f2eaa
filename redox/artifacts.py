"""Artifact layout under the output root and existence probes used for resume."""

from __future__ import annotations

import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

from .constants import (
    DDL_FILE,
    ERD_FILE,
    EVIDENCE_LEDGER,
    FACT_FILES,
    NARRATIVE_DOCUMENTS,
    ROUTE_FRAMEWORKS,
    RUN_LOG,
    USAGE_LEDGER,
)
from .framework import BestEffort, best_effort, read_json, write_json

if TYPE_CHECKING:
    from .runlog import RunLog


@dataclass(frozen=True)
class ArtifactPaths:
    root: Path
    out_dir: Path

    @classmethod
    def for_target(cls, root: Path, out_dir: str | Path = "") -> "ArtifactPaths":
        root = Path(root).resolve()
        if not out_dir:
            resolved = root / "redox"
        else:
            resolved = Path(out_dir)
            if not resolved.is_absolute():
                resolved = root / resolved
        return cls(root=root, out_dir=resolved.resolve())

    @property
    def docs_dir(self) -> Path:
        return self.out_dir

    @property
    def facts_dir(self) -> Path:
        return self.out_dir / "facts"

    @property
    def diagrams_dir(self) -> Path:
        return self.out_dir / "diagrams"

    @property
    def evidence_ledger(self) -> Path:
        return self.facts_dir / EVIDENCE_LEDGER

    @property
    def usage_ledger(self) -> Path:
        return self.facts_dir / USAGE_LEDGER

    @property
    def run_log(self) -> Path:
        return self.out_dir / RUN_LOG

    @property
    def ddl(self) -> Path:
        return self.out_dir / DDL_FILE

    @property
    def erd(self) -> Path:
        return self.diagrams_dir / ERD_FILE


class ArtifactStore:
    """Path convention for pipeline outputs.

    Every artifact is identified by its absolute path and written by exactly
    one producer. Existence is the only signal consulted for resume; contents
    are never compared.
    """

    def __init__(self, paths: ArtifactPaths) -> None:
        self.paths = paths

    def fact_path(self, family: str) -> Path:
        try:
            return self.paths.facts_dir / FACT_FILES[family]
        except KeyError:
            raise KeyError(f"unknown fact family: {family}") from None

    def routes_path(self, framework: str) -> Path:
        return self.paths.facts_dir / f"routes-{framework}.json"

    def document_path(self, name: str) -> Path:
        return self.paths.docs_dir / name

    def exists(self, path: Path) -> bool:
        return path.is_file()

    def has_fact(self, family: str) -> bool:
        return self.exists(self.fact_path(family))

    def read_fact(self, family: str) -> Any:
        return read_json(self.fact_path(family))

    def read_fact_file(self, path: Path) -> Any:
        return read_json(path)

    def write_fact(self, family: str, payload: Any) -> Path:
        path = self.fact_path(family)
        write_json(path, payload)
        return path

    def route_artifacts(self) -> dict[str, Path]:
        return {
            framework: self.routes_path(framework)
            for framework in ROUTE_FRAMEWORKS
            if self.exists(self.routes_path(framework))
        }

    def primary_document(self, profile: str) -> Path:
        return self.document_path(NARRATIVE_DOCUMENTS[profile][0])

    def signature_artifact(self, stage: str, profile: str = "") -> Path | None:
        if stage == "extract":
            return self.fact_path("stack-profile")
        if stage == "synthesize" and profile in NARRATIVE_DOCUMENTS:
            return self.primary_document(profile)
        if stage == "render":
            return self.paths.erd
        return None

    def signature_present(self, stage: str, profile: str = "") -> bool:
        path = self.signature_artifact(stage, profile)
        return path is not None and self.exists(path)

    def ensure_facts_dir(self, log: "RunLog | None" = None) -> BestEffort:
        return best_effort(
            f"create {self.paths.facts_dir}",
            lambda: self.paths.facts_dir.mkdir(parents=True, exist_ok=True),
            log,
        )

    def clean(self, *, include_facts: bool = False, log: "RunLog | None" = None) -> list[BestEffort]:
        """Remove generated narrative output; facts survive unless asked."""
        out_dir = self.paths.out_dir
        if not out_dir.exists():
            return []
        results: list[BestEffort] = []
        for entry in sorted(out_dir.iterdir()):
            if entry == self.paths.facts_dir and not include_facts:
                continue
            if entry == self.paths.run_log:
                continue
            if entry.is_dir():
                results.append(best_effort(f"remove {entry}", lambda p=entry: shutil.rmtree(p), log))
            else:
                results.append(best_effort(f"remove {entry}", entry.unlink, log))
        return results
