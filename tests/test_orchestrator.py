from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import pytest

from redox.config import RedoxConfig
from redox.constants import NARRATIVE_DOCUMENTS
from redox.context import RunContext, RunOptions
from redox.events import EventBus
from redox.evidence import EvidenceLedger, EvidenceRecord
from redox.gates import FAILED, PASSED, PLANNED
from redox.orchestrator import (
    Orchestrator,
    StageFailedError,
    UnknownStageError,
    expand_stage,
)
from redox.producers import ArtifactReviewer, Collaborators
from redox.runlog import RunLog
from redox.usage import UsageLedger


@dataclass
class CountingExtractor:
    calls: int = 0
    fail: bool = False

    def extract(self, ctx: RunContext) -> list[Path]:
        self.calls += 1
        if self.fail:
            raise RuntimeError("scanner crashed")
        ctx.remember("api-map", {"endpoints": []})
        return [ctx.store.write_fact("stack-profile", {"facts": []})]

    def describe(self, ctx: RunContext) -> list[str]:
        return ["scan sources"]


@dataclass
class CountingSynthesizer:
    profiles: list[str] = field(default_factory=list)

    def synthesize(self, ctx: RunContext, profile: str) -> list[Path]:
        self.profiles.append(profile)
        path = ctx.store.primary_document(profile)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("# doc\n", encoding="utf-8")
        return [path]

    def describe(self, ctx: RunContext, profile: str) -> list[str]:
        return [f"write {profile} docs"]


@dataclass
class CountingRenderer:
    calls: int = 0

    def render(self, ctx: RunContext) -> list[Path]:
        self.calls += 1
        ctx.store.paths.erd.parent.mkdir(parents=True, exist_ok=True)
        ctx.store.paths.erd.write_text("erDiagram\n", encoding="utf-8")
        return [ctx.store.paths.erd]

    def describe(self, ctx: RunContext) -> list[str]:
        return ["render erd"]


@pytest.fixture
def fakes():
    return Collaborators(
        extractor=CountingExtractor(),
        synthesizer=CountingSynthesizer(),
        renderer=CountingRenderer(),
        reviewer=ArtifactReviewer(),
    )


@pytest.fixture
def orchestrator(target, fakes):
    return Orchestrator(target, RedoxConfig(), collaborators=fakes, log=RunLog(None, echo=False), env={})


def _snapshot(root: Path) -> set[str]:
    return {str(p.relative_to(root)) for p in root.rglob("*")}


def test_expand_stage():
    assert expand_stage("check", "dev") == [("check", "")]
    assert expand_stage("synthesize", "all") == [("synthesize", "dev"), ("synthesize", "user"), ("synthesize", "audit")]
    assert [name for name, _ in expand_stage("all", "dev")] == [
        "extract",
        "synthesize",
        "synthesize",
        "synthesize",
        "render",
        "check",
    ]
    with pytest.raises(UnknownStageError):
        expand_stage("deploy", "dev")


def test_composite_runs_in_order(orchestrator, fakes):
    outcome = orchestrator.run("user", RunOptions(gates=("coverage",)))

    assert outcome.success
    assert [r.label for r in outcome.results] == ["extract", "synthesize:user", "render", "check"]
    assert fakes.synthesizer.profiles == ["user"]


def test_resume_skips_producers_but_still_checks(orchestrator, fakes):
    options = RunOptions(gates=("coverage",), resume=True)
    orchestrator.run("dev", options)

    second = orchestrator.run("dev", options)

    assert fakes.extractor.calls == 1
    assert fakes.synthesizer.profiles == ["dev"]
    assert fakes.renderer.calls == 1
    assert [r.status for r in second.results] == ["skipped", "skipped", "skipped", "succeeded"]


def test_resume_reruns_stage_whose_signature_is_missing(orchestrator, fakes):
    options = RunOptions(gates=("coverage",), resume=True)
    orchestrator.run("dev", options)
    orchestrator.store.paths.erd.unlink()

    orchestrator.run("dev", options)

    assert fakes.extractor.calls == 1
    assert fakes.renderer.calls == 2


def test_dry_run_writes_nothing(target, fakes):
    orchestrator = Orchestrator(target, RedoxConfig(), collaborators=fakes, env={})

    def broken(event):
        raise RuntimeError("listener crashed")

    orchestrator.events.subscribe(broken)
    before = _snapshot(target)

    outcome = orchestrator.run("all", RunOptions(dry_run=True))

    assert _snapshot(target) == before
    assert fakes.extractor.calls == 0
    assert fakes.synthesizer.profiles == []
    assert outcome.success
    assert {r.status for r in outcome.results} == {"planned"}
    assert {g.status for g in outcome.gate_results} == {PLANNED}
    assert outcome.results[0].actions == ["scan sources"]


def test_producer_failure_stops_composite(orchestrator, fakes):
    fakes.extractor.fail = True

    outcome = orchestrator.run("audit", RunOptions())

    assert not outcome.success
    assert outcome.producer_failed
    assert [r.label for r in outcome.results] == ["extract"]
    assert "RuntimeError: scanner crashed" in outcome.results[0].errors[0]
    assert fakes.synthesizer.profiles == []
    with pytest.raises(StageFailedError, match="stage extract failed"):
        outcome.raise_for_status()


def test_gate_independence_reports_both(orchestrator, store, target, dump_json):
    dump_json(store.fact_path("api-map"), {"endpoints": [{"method": "GET", "path": "/users"}]})
    dump_json(store.routes_path("react"), {"routes": [{"id": "users"}]})
    dump_json(
        store.fact_path("use-cases"),
        {"cases": [{"id": "UC1", "mainFlow": [{"refs": {"routeIds": ["users"], "endpointIds": ["GET /users"]}}]}]},
    )
    (target / "a.txt").write_text("hello\n", encoding="utf-8")
    EvidenceLedger(store.paths.evidence_ledger).append(EvidenceRecord("a.txt", 1, 1, "0" * 64))

    outcome = orchestrator.run("check", RunOptions(gates=("coverage", "evidence")))

    results = {g.gate: g for g in outcome.gate_results}
    assert results["coverage"].status == PASSED
    assert results["evidence"].status == FAILED
    assert results["evidence"].errors == ("sha256 mismatch for a.txt:1-1",)
    assert not outcome.success
    assert not outcome.producer_failed


def test_check_uses_existing_matrix_when_no_sources(orchestrator, store, dump_json, scenario_matrix):
    dump_json(store.fact_path("coverage-matrix"), scenario_matrix)

    outcome = orchestrator.run("check", RunOptions(gates=("coverage", "traceability")))

    coverage, traceability = outcome.gate_results
    assert coverage.errors[0] == "uncovered routes=1 endpoints=0"
    assert traceability.errors == ("unmapped routes=1 endpoints=0",)


def test_invalid_fact_fails_check_but_gates_still_run(orchestrator, store):
    store.fact_path("api-map").parent.mkdir(parents=True, exist_ok=True)
    store.fact_path("api-map").write_text("[1, 2]", encoding="utf-8")

    outcome = orchestrator.run("check", RunOptions(gates=("rbac",)))

    (check,) = outcome.results
    assert check.status == "failed"
    assert check.errors[0].startswith("coverage matrix build failed")
    assert [g.gate for g in check.gate_results] == ["rbac"]


def test_events_are_emitted_in_order(target, fakes):
    bus = EventBus()
    orchestrator = Orchestrator(target, collaborators=fakes, log=RunLog(None, echo=False), events=bus, env={})

    orchestrator.run("check", RunOptions(gates=("coverage", "rbac")))

    assert [e.type for e in bus.history] == [
        "stage-start",
        "gate-start",
        "gate-end",
        "gate-start",
        "gate-end",
        "stage-end",
    ]
    assert bus.history[-1].success is True


def test_review_writes_findings(orchestrator, store):
    store.document_path("Overview.md").parent.mkdir(parents=True, exist_ok=True)
    store.document_path("Overview.md").write_text("# Overview\n", encoding="utf-8")

    outcome = orchestrator.run("review", RunOptions())

    assert outcome.success
    reviews = {r["area"]: r for r in store.read_fact("reviews")["reviews"]}
    assert set(reviews) == {"architecture", "qa", "ops", "security", "docs"}
    assert reviews["docs"]["summary"] == "docs review: 1/3 inputs present"
    assert {f["text"] for f in reviews["docs"]["findings"]} == {
        "missing input: User Guide.md",
        "missing input: Use Cases.md",
    }


def test_run_id_is_pinned_from_environment(target, fakes):
    orchestrator = Orchestrator(target, collaborators=fakes, log=RunLog(None, echo=False), env={"REDOX_RUN_ID": "run-42"})

    assert orchestrator.run("check", RunOptions(gates=())).run_id == "run-42"


def test_default_collaborators_end_to_end(target, store, dump_json):
    (target / "app").mkdir()
    (target / "app" / "routes.php").write_text("<?php\nRoute::get('/users', 'UserController@index');\n", encoding="utf-8")
    dump_json(
        store.fact_path("api-map"),
        {
            "endpoints": [
                {
                    "method": "GET",
                    "path": "/users",
                    "evidence": [{"path": "app/routes.php", "startLine": 2, "endLine": 2}],
                }
            ]
        },
    )
    dump_json(store.routes_path("blade"), {"framework": "blade", "routes": [{"id": "users.index", "path": "/users"}]})
    dump_json(
        store.fact_path("use-cases"),
        {
            "cases": [
                {
                    "id": "UC1",
                    "title": "Browse users",
                    "mainFlow": [{"action": "open", "refs": {"routeIds": ["users.index"], "endpointIds": ["GET /users"]}}],
                }
            ]
        },
    )
    dump_json(
        store.fact_path("db-model"),
        {
            "tables": [{"schema": "public", "name": "users", "columns": [{"name": "id", "type": "big int"}]}],
            "fks": [],
        },
    )
    orchestrator = Orchestrator(target, log=RunLog(store.paths.run_log, echo=False), env={})

    outcome = orchestrator.run("dev", RunOptions(gates=("schema", "coverage", "traceability", "evidence")))

    assert outcome.success, outcome.results[-1].errors
    assert store.has_fact("stack-profile")
    assert store.read_fact("stack-profile")["routeFrameworks"] == ["blade"]
    assert store.document_path("Overview.md").is_file()
    assert "app/routes.php:2-2" in store.document_path("API Map.md").read_text(encoding="utf-8")
    assert store.paths.erd.read_text(encoding="utf-8").startswith("erDiagram\n  public_users {\n    big_int id")
    assert store.read_fact("coverage-matrix")["stats"]["linkCount"] == 1
    assert [g.status for g in outcome.gate_results] == [PASSED] * 4


def test_default_collaborators_resume_without_producer_work(target, store, dump_json, monkeypatch):
    dump_json(store.fact_path("api-map"), {"endpoints": []})
    commands = []

    def fake(args, **kwargs):
        commands.append(args)
        if args[:2] == ["docker", "port"]:
            return "127.0.0.1:6000\n"
        return ""

    monkeypatch.setattr("redox.ephemeral.run_command", fake)
    config = RedoxConfig(migrations_command=("php", "artisan", "migrate"))
    orchestrator = Orchestrator(target, config, log=RunLog(None, echo=False), env={})
    options = RunOptions(gates=(), resume=True)

    first = orchestrator.run("dev", options)
    second = orchestrator.run("dev", options)

    assert first.success
    assert [r.status for r in second.results] == ["skipped", "skipped", "skipped", "succeeded"]
    assert sum(1 for args in commands if args[:2] == ["docker", "run"]) == 1
    entries = UsageLedger(store.paths.usage_ledger, "").read_entries()
    assert len(entries) == len(NARRATIVE_DOCUMENTS["dev"])
    assert {e.run_id for e in entries} == {first.run_id}
    assert {e.agent for e in entries} == {"dev-writer"}
