"""Collaborator contracts for the producer stages and their default implementations.

Extraction, text generation and review are external capabilities. The
orchestrator only depends on the protocols below; the defaults work purely
from artifacts already on disk so the pipeline runs end to end without any
network service.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

from .constants import FACT_FILES, NARRATIVE_DOCUMENTS, REVIEW_INPUTS
from .ephemeral import EphemeralDatabase, ProvisioningError, dump_schema, run_migrations
from .evidence import EvidenceFormatError
from .framework import CommandError, utc_now

if TYPE_CHECKING:
    from .context import RunContext

DERIVED_FACTS = ("coverage-matrix", "reviews", "stack-profile")


class Extractor(Protocol):
    def extract(self, ctx: "RunContext") -> list[Path]: ...

    def describe(self, ctx: "RunContext") -> list[str]: ...


class Synthesizer(Protocol):
    def synthesize(self, ctx: "RunContext", profile: str) -> list[Path]: ...

    def describe(self, ctx: "RunContext", profile: str) -> list[str]: ...


class Renderer(Protocol):
    def render(self, ctx: "RunContext") -> list[Path]: ...

    def describe(self, ctx: "RunContext") -> list[str]: ...


class Reviewer(Protocol):
    def review(self, ctx: "RunContext", area: str) -> dict[str, Any]: ...


class ArtifactExtractor:
    """Loads materialised fact artifacts into the run cache and profiles them."""

    def extract(self, ctx: "RunContext") -> list[Path]:
        present: list[str] = []
        for family in FACT_FILES:
            if family in DERIVED_FACTS or not ctx.store.has_fact(family):
                continue
            ctx.remember(family, ctx.store.read_fact(family))
            present.append(family)

        frameworks: list[str] = []
        for framework, path in ctx.store.route_artifacts().items():
            ctx.remember(f"routes-{framework}", ctx.store.read_fact_file(path))
            frameworks.append(framework)

        profile = {
            "schemaVersion": "1.0",
            "generatedAt": utc_now(),
            "root": str(ctx.root),
            "facts": present,
            "routeFrameworks": frameworks,
        }
        ctx.remember("stack-profile", profile)
        path = ctx.store.write_fact("stack-profile", profile)
        ctx.events.emit("artifact-written", stage="extract", file=str(path))
        ctx.log.info("facts loaded", facts=len(present), route_frameworks=len(frameworks))
        return [path]

    def describe(self, ctx: "RunContext") -> list[str]:
        return [
            f"load fact artifacts from {ctx.store.paths.facts_dir}",
            f"write {ctx.store.fact_path('stack-profile')}",
        ]


def _evidence_refs(items: Any) -> list[dict[str, Any]]:
    refs: list[dict[str, Any]] = []
    if not isinstance(items, list):
        return refs
    for item in items:
        if not isinstance(item, dict):
            continue
        for ref in item.get("evidence") or []:
            if isinstance(ref, dict) and ref.get("path") and ref.get("startLine") and ref.get("endLine"):
                refs.append(ref)
    return refs


class OutlineSynthesizer:
    """Writes one outline document per narrative document of a profile.

    Generating prose is the job of an external text-generation service; the
    outline marks where each document belongs, lists the facts it draws on,
    and cites source spans that can be re-verified by the evidence gate.
    """

    model = "redox-outline"

    def synthesize(self, ctx: "RunContext", profile: str) -> list[Path]:
        written: list[Path] = []
        for name in NARRATIVE_DOCUMENTS[profile]:
            ctx.events.emit("phase-start", stage="synthesize", profile=profile, file=name)
            citations = self._capture_citations(ctx, name)
            path = ctx.store.document_path(name)
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(self._outline(ctx, name, profile, citations), encoding="utf-8")
            written.append(path)
            ctx.usage.record(
                model=self.model,
                stage="synthesize",
                profile=profile,
                agent=f"{profile}-writer",
                meta={"document": name, "citations": len(citations)},
            )
            ctx.events.emit("doc-written", stage="synthesize", profile=profile, file=str(path))
            ctx.events.emit("phase-end", stage="synthesize", profile=profile, file=name, success=True)
        ctx.log.info("outlines written", profile=profile, documents=len(written))
        return written

    def describe(self, ctx: "RunContext", profile: str) -> list[str]:
        return [f"write {ctx.store.document_path(name)}" for name in NARRATIVE_DOCUMENTS[profile]]

    def _sources_for(self, ctx: "RunContext", name: str) -> list[dict[str, Any]]:
        if name == "API Map.md":
            api_map = ctx.fact("api-map") or {}
            return _evidence_refs(api_map.get("endpoints"))
        if name == "Frontend Routes Map.md":
            refs: list[dict[str, Any]] = []
            for key, payload in sorted(ctx.facts.items()):
                if key.startswith("routes-") and isinstance(payload, dict):
                    refs.extend(_evidence_refs(payload.get("routes")))
            return refs
        return []

    def _capture_citations(self, ctx: "RunContext", name: str) -> list[str]:
        citations: list[str] = []
        for ref in self._sources_for(ctx, name):
            try:
                record = ctx.evidence.capture(
                    ctx.root,
                    str(ref["path"]),
                    int(ref["startLine"]),
                    int(ref["endLine"]),
                    note=name,
                )
            except (EvidenceFormatError, TypeError, ValueError) as exc:
                ctx.log.warn("citation skipped", document=name, error=str(exc))
                continue
            citations.append(record.location)
        return citations

    def _outline(self, ctx: "RunContext", name: str, profile: str, citations: list[str]) -> str:
        available = sorted(key for key in ctx.facts if key != "stack-profile")
        lines = [f"# {name.removesuffix('.md')}", "", f"_Profile: {profile}. Generated {utc_now()}._", ""]
        lines.append("## Sources")
        lines.append("")
        if available:
            lines.extend(f"- `{key}`" for key in available)
        else:
            lines.append("_No fact artifacts were available for this run._")
        if citations:
            lines.extend(["", "## Evidence", ""])
            lines.extend(f"- `{location}`" for location in citations)
        lines.append("")
        return "\n".join(lines)


def _mermaid_name(*parts: str) -> str:
    return re.sub(r"[^\w]", "_", "_".join(part for part in parts if part))


def build_mermaid(model: dict[str, Any]) -> str:
    lines = ["erDiagram"]
    for table in model.get("tables") or []:
        lines.append(f"  {_mermaid_name(table.get('schema', ''), table.get('name', ''))} {{")
        for column in table.get("columns") or []:
            column_type = re.sub(r"\s+", "_", str(column.get("type") or "unknown"))
            lines.append(f"    {column_type} {column.get('name', '')}")
        lines.append("  }")
    for fk in model.get("fks") or []:
        source = fk.get("from") or {}
        target = fk.get("to") or {}
        lines.append(
            f"  {_mermaid_name(source.get('schema', ''), source.get('table', ''))} }}o--|| "
            f'{_mermaid_name(target.get("schema", ""), target.get("table", ""))} : "FK"'
        )
    return "\n".join(lines) + "\n"


class ErdRenderer:
    """ER diagram source from the db-model fact; DDL through a disposable database."""

    def render(self, ctx: "RunContext") -> list[Path]:
        written: list[Path] = []
        if ctx.config.migrations_command:
            ddl = self._dump_ddl(ctx)
            if ddl is not None:
                written.append(ddl)

        model = ctx.fact("db-model")
        if not isinstance(model, dict):
            ctx.log.info("no db-model fact; writing an empty ER diagram")
            model = {}
        erd = ctx.store.paths.erd
        erd.parent.mkdir(parents=True, exist_ok=True)
        erd.write_text(build_mermaid(model), encoding="utf-8")
        ctx.events.emit("artifact-written", stage="render", file=str(erd))
        written.append(erd)
        return written

    def describe(self, ctx: "RunContext") -> list[str]:
        actions = [f"write {ctx.store.paths.erd} from db-model"]
        if ctx.config.migrations_command:
            actions.insert(
                0,
                f"start {ctx.config.postgres_image}, run {' '.join(ctx.config.migrations_command)}, "
                f"dump schema to {ctx.store.paths.ddl}",
            )
        return actions

    def _dump_ddl(self, ctx: "RunContext") -> Path | None:
        try:
            with EphemeralDatabase(
                image=ctx.config.postgres_image,
                ready_timeout_seconds=ctx.config.ready_timeout_seconds,
                log=ctx.log,
            ) as database:
                run_migrations(list(ctx.config.migrations_command), database.dsn, ctx.root)
                ddl = dump_schema(database.dsn)
        except (CommandError, ProvisioningError) as exc:
            ctx.log.warn("schema dump unavailable; database.sql not written", error=str(exc))
            return None
        path = ctx.store.paths.ddl
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(ddl, encoding="utf-8")
        ctx.events.emit("artifact-written", stage="render", file=str(path))
        return path


@dataclass
class ArtifactReviewer:
    """Checks that each review area's inputs exist and reports what is missing."""

    severity: str = "medium"
    model: str = "redox-review"

    def review(self, ctx: "RunContext", area: str) -> dict[str, Any]:
        findings: list[dict[str, str]] = []
        present = 0
        for index, name in enumerate(REVIEW_INPUTS[area], start=1):
            if name in FACT_FILES:
                exists = ctx.store.has_fact(name)
                label = FACT_FILES[name]
            else:
                exists = ctx.store.exists(ctx.store.document_path(name))
                label = name
            if exists:
                present += 1
                continue
            findings.append(
                {
                    "id": f"{area}-{index}",
                    "severity": self.severity,
                    "area": area,
                    "text": f"missing input: {label}",
                }
            )
        total = len(REVIEW_INPUTS[area])
        ctx.usage.record(model=self.model, stage="review", agent=f"{area}-review", meta={"findings": len(findings)})
        return {
            "area": area,
            "summary": f"{area} review: {present}/{total} inputs present",
            "findings": findings,
        }


@dataclass
class Collaborators:
    extractor: Extractor = field(default_factory=ArtifactExtractor)
    synthesizer: Synthesizer = field(default_factory=OutlineSynthesizer)
    renderer: Renderer = field(default_factory=ErdRenderer)
    reviewer: Reviewer = field(default_factory=ArtifactReviewer)
