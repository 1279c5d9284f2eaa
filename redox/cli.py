"""Command-line entry point for the documentation pipeline."""

from __future__ import annotations

import argparse
import os
from dataclasses import replace
from pathlib import Path

from .artifacts import ArtifactPaths, ArtifactStore
from .config import ConfigError, load_config, parse_gates
from .constants import GATES, PROFILES, STAGES
from .context import RunOptions
from .doctor import doctor_report
from .events import ProgressTracker, RunEvent
from .orchestrator import Orchestrator, RunOutcome, UnknownStageError, expand_stage
from .runlog import RunLog
from .usage import UsageLedger, format_usage_report


class ExitCode:
    SUCCESS = 0
    USAGE = 2
    PRODUCER = 3
    GATE = 4


STAGE_HELP = {
    "extract": "Load fact artifacts and write stack-profile.json",
    "synthesize": "Write narrative documents for --profile",
    "render": "Write the ER diagram and schema dump",
    "check": "Build the coverage matrix and run the selected gates",
    "review": "Run the architecture, qa, ops, security and docs reviews",
    "dev": "extract, synthesize(dev), render, check",
    "user": "extract, synthesize(user), render, check",
    "audit": "extract, synthesize(audit), render, check",
    "all": "extract, synthesize for every profile, render, check",
}


def _add_run_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("dir", nargs="?", default=".", help="Target repository root")
    parser.add_argument("--out", default="", help="Output directory (default: <dir>/redox)")
    parser.add_argument("--gates", default=None, help=f"Comma-separated gates (default: {','.join(GATES)})")
    parser.add_argument("--profile", choices=PROFILES, default=None, help="Narrative profile for synthesize")
    parser.add_argument("--dry-run", action="store_true", help="Describe actions without writing or spawning")
    parser.add_argument("--resume", action="store_true", help="Skip producer stages whose output already exists")
    parser.add_argument("--clean", action="store_true", help="Remove previous narrative output first")
    parser.add_argument("--clean-facts", action="store_true", help="With --clean, also remove the facts directory")
    parser.add_argument("--quiet", action="store_true", help="Only write run.log")
    parser.add_argument("--verbose", action="store_true", help="Echo debug lines")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="redox",
        description="Evidence-backed documentation pipeline",
    )
    sub = parser.add_subparsers(dest="command", required=True)
    for name in STAGES:
        _add_run_arguments(sub.add_parser(name, help=STAGE_HELP[name]))

    usage = sub.add_parser("usage", help="Summarise the usage ledger")
    usage.add_argument("dir", nargs="?", default=".")
    usage.add_argument("--out", default="")

    sub.add_parser("doctor", help="Check optional external tools")
    return parser


def _progress_printer(tracker: ProgressTracker, log: RunLog):
    def _on_event(event: RunEvent) -> None:
        tracker(event)
        if event.type in {"stage-end", "stage-skipped"}:
            log.info(f"progress {tracker.describe()}")

    return _on_event


def _print_summary(outcome: RunOutcome, log: RunLog) -> None:
    for result in outcome.results:
        log.info(f"{result.label}: {result.status}")
        for action in result.actions:
            log.info(f"  {action}")
    for gate in outcome.gate_results:
        suffix = f" ({gate.detail})" if gate.detail and not gate.errors else ""
        log.info(f"gate {gate.gate}: {gate.status}{suffix}")


def _exit_code(outcome: RunOutcome) -> int:
    if outcome.success:
        return ExitCode.SUCCESS
    if outcome.producer_failed:
        return ExitCode.PRODUCER
    return ExitCode.GATE


def _run_usage(args: argparse.Namespace) -> int:
    root = Path(args.dir).resolve()
    try:
        config = load_config(root)
    except ConfigError as exc:
        print(str(exc))
        return ExitCode.USAGE
    paths = ArtifactPaths.for_target(root, args.out or config.out_dir)
    ledger = UsageLedger(paths.usage_ledger, run_id="")
    for line in format_usage_report(ledger.summarize(), paths.usage_ledger):
        print(line)
    return ExitCode.SUCCESS


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "doctor":
        for line in doctor_report():
            print(line)
        return ExitCode.SUCCESS
    if args.command == "usage":
        return _run_usage(args)

    root = Path(args.dir).resolve()
    if not root.is_dir():
        print(f"target directory not found: {root}")
        return ExitCode.USAGE
    try:
        config = load_config(root)
    except ConfigError as exc:
        print(str(exc))
        return ExitCode.USAGE

    if args.out:
        config = replace(config, out_dir=args.out)
    gates = parse_gates(args.gates) if args.gates is not None else config.gates
    options = RunOptions(
        gates=gates,
        dry_run=args.dry_run,
        resume=args.resume,
        profile=args.profile or config.profile,
    )

    store = ArtifactStore(ArtifactPaths.for_target(root, config.out_dir))
    log_path = None if args.dry_run else store.paths.run_log
    log = RunLog(log_path, echo=not args.quiet, verbose=args.verbose)
    orchestrator = Orchestrator(root, config, log=log, env=os.environ)

    try:
        plan = expand_stage(args.command, options.profile)
    except UnknownStageError as exc:
        print(str(exc))
        return ExitCode.USAGE

    if args.clean:
        if args.dry_run:
            log.info(f"[dry-run] would clean {store.paths.out_dir}", include_facts=args.clean_facts)
        else:
            store.clean(include_facts=args.clean_facts, log=log)

    tracker = ProgressTracker([f"{name}:{profile}" if profile else name for name, profile in plan])
    orchestrator.events.subscribe(_progress_printer(tracker, log))

    outcome = orchestrator.run(args.command, options)
    _print_summary(outcome, log)
    return _exit_code(outcome)


if __name__ == "__main__":
    raise SystemExit(main())
