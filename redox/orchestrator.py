"""Stage orchestration: composite expansion, resume, dry-run and result aggregation."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

from .artifacts import ArtifactPaths, ArtifactStore
from .config import RedoxConfig
from .constants import COMPOSITE_STAGES, PRIMITIVE_STAGES, PROFILES, RESUMABLE_STAGES, REVIEW_INPUTS, STAGES
from .context import RunContext, RunOptions
from .coverage import build_coverage_matrix, write_coverage_matrix
from .events import EventBus
from .evidence import EvidenceLedger
from .framework import utc_now
from .gates import FAILED, GateContext, GateResult, run_gates
from .producers import Collaborators
from .runlog import RunLog
from .usage import UsageLedger, new_run_id

SUCCEEDED = "succeeded"
STAGE_FAILED = "failed"
STAGE_SKIPPED = "skipped"
STAGE_PLANNED = "planned"


class UnknownStageError(ValueError):
    """Raised when a stage name is not in the stage table."""


class ProducerError(RuntimeError):
    """A collaborator failed inside extract, synthesize, render or review."""

    def __init__(self, stage: str, cause: BaseException) -> None:
        super().__init__(f"{stage} failed: {type(cause).__name__}: {cause}")
        self.stage = stage
        self.cause = cause


class StageFailedError(RuntimeError):
    """Raised by ``RunOutcome.raise_for_status`` for an unsuccessful run."""


@dataclass
class StageResult:
    stage: str
    profile: str = ""
    status: str = SUCCEEDED
    errors: list[str] = field(default_factory=list)
    actions: list[str] = field(default_factory=list)
    outputs: list[Path] = field(default_factory=list)
    gate_results: list[GateResult] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.status != STAGE_FAILED

    @property
    def label(self) -> str:
        return f"{self.stage}:{self.profile}" if self.profile else self.stage


@dataclass
class RunOutcome:
    stage: str
    run_id: str
    results: list[StageResult] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return all(result.success for result in self.results)

    @property
    def failed_stage(self) -> StageResult | None:
        for result in self.results:
            if not result.success:
                return result
        return None

    @property
    def gate_results(self) -> list[GateResult]:
        return [gate for result in self.results for gate in result.gate_results]

    @property
    def producer_failed(self) -> bool:
        failed = self.failed_stage
        return failed is not None and failed.stage != "check"

    def raise_for_status(self) -> None:
        failed = self.failed_stage
        if failed is None:
            return
        details = "\n- ".join(failed.errors) or "no details"
        raise StageFailedError(f"{self.stage}: stage {failed.label} failed:\n- {details}")


def expand_stage(stage: str, profile: str) -> list[tuple[str, str]]:
    """Primitive (stage, profile) pairs a stage name runs, in order."""
    if stage in COMPOSITE_STAGES:
        return list(COMPOSITE_STAGES[stage])
    if stage == "synthesize":
        if profile == "all":
            return [("synthesize", name) for name in PROFILES if name != "all"]
        return [("synthesize", profile)]
    if stage in PRIMITIVE_STAGES:
        return [(stage, "")]
    raise UnknownStageError(f"unknown stage: {stage} (expected one of {', '.join(STAGES)})")


class Orchestrator:
    def __init__(
        self,
        root: Path,
        config: RedoxConfig | None = None,
        *,
        collaborators: Collaborators | None = None,
        log: RunLog | None = None,
        events: EventBus | None = None,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self.config = config or RedoxConfig()
        self.store = ArtifactStore(ArtifactPaths.for_target(root, self.config.out_dir))
        self.collaborators = collaborators or Collaborators()
        self.log = log or RunLog(self.store.paths.run_log)
        self.events = events or EventBus(self.log)
        self.env = env

    def new_context(self, options: RunOptions) -> RunContext:
        paths = self.store.paths
        run_id = new_run_id(self.env)
        log = self.log.echo_only() if options.dry_run else self.log
        self.events.log = log
        return RunContext(
            store=self.store,
            config=self.config,
            options=options,
            log=log,
            events=self.events,
            evidence=EvidenceLedger(paths.evidence_ledger),
            usage=UsageLedger(paths.usage_ledger, run_id),
            run_id=run_id,
        )

    def run(self, stage: str, options: RunOptions | None = None) -> RunOutcome:
        options = options or RunOptions()
        plan = expand_stage(stage, options.profile)
        ctx = self.new_context(options)
        outcome = RunOutcome(stage=stage, run_id=ctx.run_id)
        composite = stage in COMPOSITE_STAGES

        ctx.log.info(
            "run started",
            stage=stage,
            run_id=ctx.run_id,
            dry_run=options.dry_run,
            resume=options.resume,
            gates=",".join(options.gates),
        )
        if not options.dry_run:
            self.store.ensure_facts_dir(ctx.log)

        for name, profile in plan:
            if composite and options.resume and name in RESUMABLE_STAGES and self.store.signature_present(name, profile):
                result = StageResult(stage=name, profile=profile, status=STAGE_SKIPPED)
                signature = self.store.signature_artifact(name, profile)
                result.actions.append(f"resume: {signature} exists")
                ctx.log.info("stage skipped (resume)", stage=name, profile=profile, signature=signature)
                self.events.emit("stage-skipped", stage=name, profile=profile, data={"signature": str(signature)})
                outcome.results.append(result)
                continue

            result = self._run_primitive(ctx, name, profile)
            outcome.results.append(result)
            if not result.success:
                break

        ctx.log.info("run finished", stage=stage, run_id=ctx.run_id, success=outcome.success)
        return outcome

    def _run_primitive(self, ctx: RunContext, stage: str, profile: str) -> StageResult:
        self.events.emit("stage-start", stage=stage, profile=profile or None)
        ctx.log.info("stage started", stage=stage, profile=profile)
        if stage == "check":
            result = self._check(ctx)
        else:
            result = StageResult(stage=stage, profile=profile)
            try:
                if ctx.dry_run:
                    result.status = STAGE_PLANNED
                    result.actions = self._describe(ctx, stage, profile)
                    for action in result.actions:
                        ctx.log.info(f"[dry-run] would {action}", stage=stage)
                else:
                    result.outputs = self._produce(ctx, stage, profile)
            except Exception as exc:
                error = ProducerError(stage, exc)
                result.status = STAGE_FAILED
                result.errors.append(str(error))
                ctx.log.error("stage failed", stage=stage, profile=profile, error=str(error))

        self.events.emit(
            "stage-end",
            stage=stage,
            profile=profile or None,
            success=result.success,
            data={"status": result.status, "errors": list(result.errors)},
        )
        ctx.log.info("stage finished", stage=stage, profile=profile, status=result.status)
        return result

    def _produce(self, ctx: RunContext, stage: str, profile: str) -> list[Path]:
        if stage == "extract":
            return self.collaborators.extractor.extract(ctx)
        if stage == "synthesize":
            return self.collaborators.synthesizer.synthesize(ctx, profile)
        if stage == "render":
            return self.collaborators.renderer.render(ctx)
        if stage == "review":
            return [self._review(ctx)]
        raise UnknownStageError(f"unknown stage: {stage}")

    def _describe(self, ctx: RunContext, stage: str, profile: str) -> list[str]:
        if stage == "extract":
            return self.collaborators.extractor.describe(ctx)
        if stage == "synthesize":
            return self.collaborators.synthesizer.describe(ctx, profile)
        if stage == "render":
            return self.collaborators.renderer.describe(ctx)
        if stage == "review":
            actions = [f"run {area} review" for area in REVIEW_INPUTS]
            actions.append(f"write {ctx.store.fact_path('reviews')}")
            return actions
        raise UnknownStageError(f"unknown stage: {stage}")

    def _review(self, ctx: RunContext) -> Path:
        reviews = []
        for area in REVIEW_INPUTS:
            self.events.emit("phase-start", stage="review", agent=f"{area}-review")
            review = self.collaborators.reviewer.review(ctx, area)
            reviews.append(review)
            self.events.emit("phase-end", stage="review", agent=f"{area}-review", success=True)
        path = ctx.store.write_fact(
            "reviews",
            {"schemaVersion": "1.0", "generatedAt": utc_now(), "reviews": reviews},
        )
        self.events.emit("artifact-written", stage="review", file=str(path))
        return path

    def _check(self, ctx: RunContext) -> StageResult:
        result = StageResult(stage="check")
        if ctx.dry_run:
            result.actions.append(f"build {ctx.store.fact_path('coverage-matrix')} from fact artifacts")
        else:
            try:
                sources = ctx.fact_sources()
                if sources.empty:
                    ctx.log.info("no route, endpoint or use-case facts; coverage matrix not built")
                else:
                    matrix = build_coverage_matrix(sources)
                    path = write_coverage_matrix(ctx.store, matrix)
                    ctx.remember("coverage-matrix", matrix.to_dict())
                    result.outputs.append(path)
                    self.events.emit("artifact-written", stage="check", file=str(path))
                    ctx.log.info("coverage matrix written", **matrix.stats)
            except (OSError, ValueError) as exc:
                result.errors.append(f"coverage matrix build failed: {exc}")
                ctx.log.error("coverage matrix build failed", error=str(exc))

        gate_ctx = GateContext(store=ctx.store, config=ctx.config, log=ctx.log, dry_run=ctx.dry_run)
        result.gate_results = run_gates(gate_ctx, ctx.options.gates, self.events)
        for gate in result.gate_results:
            if gate.status == FAILED:
                result.errors.extend(f"[{gate.gate}] {message}" for message in gate.errors)

        if result.errors:
            result.status = STAGE_FAILED
        elif ctx.dry_run:
            result.status = STAGE_PLANNED
            result.actions.extend(f"{gate.gate}: {gate.detail}" for gate in result.gate_results)
        return result
