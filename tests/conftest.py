from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from redox.artifacts import ArtifactPaths, ArtifactStore
from redox.config import RedoxConfig
from redox.gates import GateContext
from redox.runlog import RunLog


def write_json(path: Path, payload: Any) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    return path


@pytest.fixture
def target(tmp_path: Path) -> Path:
    root = tmp_path / "target"
    root.mkdir()
    return root


@pytest.fixture
def store(target: Path) -> ArtifactStore:
    return ArtifactStore(ArtifactPaths.for_target(target))


@pytest.fixture
def quiet_log(store: ArtifactStore) -> RunLog:
    return RunLog(store.paths.run_log, echo=False)


@pytest.fixture
def gate_ctx(store: ArtifactStore, quiet_log: RunLog) -> GateContext:
    return GateContext(store=store, config=RedoxConfig(), log=quiet_log)


@pytest.fixture
def scenario_matrix() -> dict[str, Any]:
    return {
        "routes": ["r1", "r2"],
        "endpoints": ["e1"],
        "useCases": [{"id": "uc1"}],
        "links": [{"routeId": "r1", "endpointId": "e1", "useCaseId": "uc1"}],
        "unmapped": {"routes": ["r2"], "endpoints": []},
        "stats": {"routeCount": 2, "endpointCount": 1, "useCaseCount": 1, "linkCount": 1},
    }


@pytest.fixture
def dump_json():
    return write_json


def read_log_lines(path: Path) -> list[str]:
    if not path.exists():
        return []
    return [line for line in path.read_text(encoding="utf-8").splitlines() if line.strip()]


@pytest.fixture
def log_lines():
    return read_log_lines
