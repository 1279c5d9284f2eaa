from __future__ import annotations

import pytest

from redox.config import ConfigError, RedoxConfig, load_config, parse_gates
from redox.constants import GATES


def test_defaults_without_file(tmp_path):
    config = load_config(tmp_path, env={})

    assert config == RedoxConfig()
    assert config.gates == GATES


def test_parse_gates():
    assert parse_gates(None) == GATES
    assert parse_gates("") == GATES
    assert parse_gates("rbac, schema,bogus") == ("schema", "rbac")
    assert parse_gates(["evidence"]) == ("evidence",)
    assert parse_gates("bogus") == ()


def test_yaml_file_then_env_override(tmp_path):
    (tmp_path / "redox.yaml").write_text(
        "out_dir: docs/generated\n"
        "gates: [coverage, traceability]\n"
        "profile: audit\n"
        "migrations_command: [php, artisan, migrate]\n"
        "ready_timeout_seconds: 5\n",
        encoding="utf-8",
    )

    from_file = load_config(tmp_path, env={})
    overridden = load_config(tmp_path, env={"REDOX_GATES": "evidence", "REDOX_PROFILE": "user"})

    assert from_file.out_dir == "docs/generated"
    assert from_file.gates == ("coverage", "traceability")
    assert from_file.migrations_command == ("php", "artisan", "migrate")
    assert from_file.ready_timeout_seconds == 5.0
    assert overridden.gates == ("evidence",)
    assert overridden.profile == "user"
    assert overridden.out_dir == "docs/generated"


def test_jsonc_file(tmp_path):
    (tmp_path / "redox.jsonc").write_text(
        '{\n  // generated docs live next to the code\n  "out_dir": "out", /* inline */ "build_dsn": "postgresql://h/db"\n}\n',
        encoding="utf-8",
    )

    config = load_config(tmp_path, env={})

    assert config.out_dir == "out"
    assert config.build_dsn == "postgresql://h/db"


def test_invalid_file_lists_every_violation(tmp_path):
    (tmp_path / "redox.yaml").write_text("profile: nightly\nunknown_key: 1\nready_timeout_seconds: 0\n", encoding="utf-8")

    with pytest.raises(ConfigError) as excinfo:
        load_config(tmp_path, env={})

    message = str(excinfo.value)
    assert "redox.yaml schema validation failed" in message
    assert "profile:" in message
    assert "ready_timeout_seconds:" in message
    assert "unknown_key" in message


def test_bad_env_profile(tmp_path):
    with pytest.raises(ConfigError, match="REDOX_PROFILE"):
        load_config(tmp_path, env={"REDOX_PROFILE": "nightly"})


def test_non_mapping_yaml(tmp_path):
    (tmp_path / "redox.yml").write_text("- a\n- b\n", encoding="utf-8")

    with pytest.raises(ConfigError, match="mapping"):
        load_config(tmp_path, env={})
