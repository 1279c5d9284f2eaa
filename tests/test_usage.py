from __future__ import annotations

import json

from redox.usage import UsageLedger, format_usage_report, new_run_id


def test_summary_groups_by_model_and_agent(tmp_path):
    path = tmp_path / "usage.jsonl"
    first = UsageLedger(path, "run-1")
    first.record(model="gpt-a", stage="synthesize", profile="dev", agent="writer", input_tokens=100, output_tokens=20)
    first.record(model="gpt-a", stage="review", agent="qa-review", total_tokens=50)
    UsageLedger(path, "run-2").record(model="gpt-b", agent="writer", input_tokens=10, output_tokens=5, total_tokens=15)
    with path.open("a", encoding="utf-8") as handle:
        handle.write("{torn line\n\n")

    summary = first.summarize()

    assert summary.entries == 3
    assert summary.runs == 2
    assert summary.total_input == 110
    assert summary.total_output == 25
    assert summary.total_tokens == 120 + 50 + 15
    assert summary.by_model["gpt-a"].calls == 2
    assert summary.by_model["gpt-a"].total == 170
    assert summary.by_agent["writer"].calls == 2
    assert summary.by_agent["writer"].total == 135


def test_record_line_format(tmp_path):
    ledger = UsageLedger(tmp_path / "facts" / "usage.jsonl", "run-9")
    ledger.record(model="m", stage="synthesize", input_tokens=1, meta={"doc": "Overview.md"})

    payload = json.loads(ledger.path.read_text(encoding="utf-8"))

    assert payload["runId"] == "run-9"
    assert payload["inputTokens"] == 1
    assert payload["meta"] == {"doc": "Overview.md"}
    assert "outputTokens" not in payload
    assert "agent" not in payload


def test_run_id_from_environment_or_generated():
    assert new_run_id({"REDOX_RUN_ID": "pinned"}) == "pinned"
    generated = new_run_id({})
    assert len(generated.rsplit("-", 1)[1]) == 6
    assert generated != new_run_id({})


def test_report_lines(tmp_path):
    ledger = UsageLedger(tmp_path / "usage.jsonl", "r")
    assert format_usage_report(ledger.summarize(), ledger.path)[0].startswith("No usage data recorded yet")

    ledger.record(model="m1", agent="writer", input_tokens=3, output_tokens=4)
    lines = format_usage_report(ledger.summarize(), ledger.path)

    assert "  m1: calls=1 input=3 output=4 total=7" in lines
    assert "  writer: calls=1 input=3 output=4 total=7" in lines
