"""Run configuration: optional redox.yaml / redox.jsonc plus REDOX_* overrides."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Mapping

import yaml
from jsonschema import Draft202012Validator

from .constants import DEFAULT_POSTGRES_IMAGE, DEFAULT_READY_TIMEOUT_SECONDS, GATES, PROFILES
from .framework import load_schema
from .jsonc import read_jsonc

CONFIG_FILENAMES = ("redox.yaml", "redox.yml", "redox.jsonc")


class ConfigError(ValueError):
    """Raised when the configuration file or an override is invalid."""


def parse_gates(value: str | list[str] | tuple[str, ...] | None) -> tuple[str, ...]:
    """Filter a gate selection against the registry, keeping registry order.

    Unknown names are ignored; an empty or absent selection means every gate.
    """
    if value is None:
        return GATES
    if isinstance(value, str):
        requested = {part.strip() for part in value.split(",") if part.strip()}
    else:
        requested = {str(part).strip() for part in value if str(part).strip()}
    if not requested:
        return GATES
    return tuple(name for name in GATES if name in requested)


@dataclass(frozen=True)
class RedoxConfig:
    out_dir: str = ""
    gates: tuple[str, ...] = GATES
    profile: str = "dev"
    extra_route_sources: tuple[str, ...] = ()
    migrations_command: tuple[str, ...] = ()
    postgres_image: str = DEFAULT_POSTGRES_IMAGE
    ready_timeout_seconds: float = DEFAULT_READY_TIMEOUT_SECONDS
    build_dsn: str = ""
    source: str = field(default="", compare=False)


def load_yaml(path: Path) -> dict[str, Any]:
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"YAML root must be a mapping/object: {path}")
    return data


def find_config_file(root: Path) -> Path | None:
    for name in CONFIG_FILENAMES:
        candidate = root / name
        if candidate.is_file():
            return candidate
    return None


def _read_config_file(path: Path) -> dict[str, Any]:
    try:
        if path.suffix == ".jsonc":
            return read_jsonc(path)
        return load_yaml(path)
    except (ValueError, yaml.YAMLError) as exc:
        raise ConfigError(f"failed to parse {path.name}: {exc}") from exc


def _validate(payload: dict[str, Any], source: str) -> None:
    validator = Draft202012Validator(load_schema("config.schema.json"))
    errors = sorted(validator.iter_errors(payload), key=lambda err: list(err.absolute_path))
    if errors:
        details = "\n".join(
            f"- {'/'.join(str(p) for p in err.absolute_path) or '<root>'}: {err.message}"
            for err in errors
        )
        raise ConfigError(f"{source} schema validation failed:\n{details}")


def _from_mapping(payload: dict[str, Any], source: str) -> RedoxConfig:
    config = RedoxConfig(source=source)
    if "out_dir" in payload:
        config = replace(config, out_dir=payload["out_dir"])
    if "gates" in payload:
        config = replace(config, gates=parse_gates(payload["gates"]))
    if "profile" in payload:
        config = replace(config, profile=payload["profile"])
    if "extra_route_sources" in payload:
        config = replace(config, extra_route_sources=tuple(payload["extra_route_sources"]))
    if "migrations_command" in payload:
        config = replace(config, migrations_command=tuple(payload["migrations_command"]))
    if "postgres_image" in payload:
        config = replace(config, postgres_image=payload["postgres_image"])
    if "ready_timeout_seconds" in payload:
        config = replace(config, ready_timeout_seconds=float(payload["ready_timeout_seconds"]))
    if "build_dsn" in payload:
        config = replace(config, build_dsn=payload["build_dsn"])
    return config


def _apply_env(config: RedoxConfig, env: Mapping[str, str]) -> RedoxConfig:
    if env.get("REDOX_OUT_DIR"):
        config = replace(config, out_dir=env["REDOX_OUT_DIR"])
    if env.get("REDOX_GATES"):
        config = replace(config, gates=parse_gates(env["REDOX_GATES"]))
    profile = env.get("REDOX_PROFILE", "")
    if profile:
        if profile not in PROFILES:
            raise ConfigError(f"REDOX_PROFILE must be one of {', '.join(PROFILES)}: {profile}")
        config = replace(config, profile=profile)
    return config


def load_config(root: Path, env: Mapping[str, str] | None = None) -> RedoxConfig:
    env = os.environ if env is None else env
    path = find_config_file(root)
    if path is None:
        config = RedoxConfig()
    else:
        payload = _read_config_file(path)
        _validate(payload, path.name)
        config = _from_mapping(payload, str(path))
    return _apply_env(config, env)
