#!/usr/bin/env python3
"""Input locations and audit conventions for the service coverage audit."""

from __future__ import annotations

import json
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

from jsonschema import Draft202012Validator
from jsonschema.exceptions import ValidationError

from pure_tooling.repo_io import HardFailError, read_text_hard_fail, resolve_repo_path

DEFAULT_CONTRACT = "openapi/pure.yaml"
DEFAULT_REGISTRY = "src/services/service-config.ts"
DEFAULT_SERVICES_DIR = "src/services"
DEFAULT_IMPLEMENTATION_SUFFIX = ".ts"
DEFAULT_ACCESS_PREFIX = "this.operations."
DEFAULT_SAMPLE_LIMIT = 50

CONFIG_SCHEMA: dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "title": "service coverage audit configuration",
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "contract": {"type": "string", "minLength": 1},
        "registry": {"type": "string", "minLength": 1},
        "services_dir": {"type": "string", "minLength": 1},
        "implementation_suffix": {"type": "string", "pattern": r"^\.[A-Za-z0-9]+$"},
        "access_prefix": {"type": "string", "minLength": 1},
        "sample_limit": {"type": "integer", "minimum": 0},
    },
}


@dataclass(frozen=True)
class CoverageConfig:
    contract: str = DEFAULT_CONTRACT
    registry: str = DEFAULT_REGISTRY
    services_dir: str = DEFAULT_SERVICES_DIR
    implementation_suffix: str = DEFAULT_IMPLEMENTATION_SUFFIX
    access_prefix: str = DEFAULT_ACCESS_PREFIX
    sample_limit: int = DEFAULT_SAMPLE_LIMIT

    def contract_path(self, root: Path) -> Path:
        return resolve_repo_path(self.contract, root)

    def registry_path(self, root: Path) -> Path:
        return resolve_repo_path(self.registry, root)

    def services_path(self, root: Path) -> Path:
        return resolve_repo_path(self.services_dir, root)


def validate_config_payload(payload: object) -> list[str]:
    """Return schema violations as sorted `<field>: <message>` strings."""

    validator = Draft202012Validator(CONFIG_SCHEMA)
    errors: list[str] = []
    for error in validator.iter_errors(payload):
        location = ".".join(str(part) for part in error.path) or "<root>"
        errors.append(f"{location}: {error.message}")
    return sorted(errors)


def load_config(config_path: Path | None, *, root: Path) -> CoverageConfig:
    if config_path is None:
        return CoverageConfig()

    path = resolve_repo_path(config_path, root)
    raw_text = read_text_hard_fail(path, artifact="config", root=root)
    try:
        payload = json.loads(raw_text)
    except json.JSONDecodeError as exc:
        raise HardFailError(
            f"config file is not valid JSON: {config_path} "
            f"(line {exc.lineno} column {exc.colno}: {exc.msg})"
        ) from exc

    errors = validate_config_payload(payload)
    if errors:
        raise HardFailError(f"config file {config_path} is invalid: " + "; ".join(errors))

    return CoverageConfig(**payload)


def apply_overrides(config: CoverageConfig, **overrides: Any) -> CoverageConfig:
    """Apply explicit command-line values on top of a loaded config."""

    present = {key: value for key, value in overrides.items() if value is not None}
    if "sample_limit" in present and present["sample_limit"] < 0:
        raise HardFailError("--sample-limit must be >= 0")
    try:
        Draft202012Validator(CONFIG_SCHEMA).validate(present)
    except ValidationError as exc:
        location = ".".join(str(part) for part in exc.path) or "<root>"
        raise HardFailError(f"invalid override {location}: {exc.message}") from exc
    return replace(config, **present)
