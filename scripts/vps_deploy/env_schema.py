"""Deterministic deploy configuration schema.

This module is the single source of truth for:
- which keys exist (vars vs secrets)
- which dotenv file they are read from (`.env.deploy` vs `.env.deploy.secrets`)
- their defaults

Values resolve CLI flag -> process env -> dotenv file -> schema default.
Prompted values resolved this way are only prompt defaults; they still pass
the same validation as typed input.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterable, Mapping

from dotenv import dotenv_values


DEPLOY_DOTENV = ".env.deploy"
DEPLOY_SECRETS_DOTENV = ".env.deploy.secrets"


class EnvTarget(str, Enum):
    DOTENV_DEPLOY = "dotenv_deploy"  # `.env.deploy`
    DOTENV_DEPLOY_SECRETS = "dotenv_deploy_secrets"  # `.env.deploy.secrets`


class VarsEnum(str, Enum):
    # Prompt defaults
    DEPLOY_GIT_URL = "DEPLOY_GIT_URL"
    DEPLOY_BRANCH = "DEPLOY_BRANCH"
    DEPLOY_SSH_USER = "DEPLOY_SSH_USER"
    DEPLOY_SSH_HOST = "DEPLOY_SSH_HOST"
    DEPLOY_SSH_KEY = "DEPLOY_SSH_KEY"
    DEPLOY_APP_PORT = "DEPLOY_APP_PORT"

    # Run behavior
    DEPLOY_HEALTH_ATTEMPTS = "DEPLOY_HEALTH_ATTEMPTS"
    DEPLOY_HEALTH_INTERVAL = "DEPLOY_HEALTH_INTERVAL"
    DEPLOY_LOG_DIR = "DEPLOY_LOG_DIR"
    DEPLOY_ASSUME_YES = "DEPLOY_ASSUME_YES"


class SecretsEnum(str, Enum):
    GITHUB_PAT = "GITHUB_PAT"


@dataclass(frozen=True)
class EnvKeySpec:
    key: VarsEnum | SecretsEnum
    default: str | None = None
    target: EnvTarget = EnvTarget.DOTENV_DEPLOY


class EnvValidationError(ValueError):
    def __init__(self, *, context: str, problems: list[str]):
        super().__init__("; ".join(problems))
        self.context = context
        self.problems = problems

    def format(self) -> str:
        lines = [f"[env] validation failed: {self.context}"]
        for p in self.problems:
            lines.append(f"- {p}")
        return "\n".join(lines)


DEPLOY_SCHEMA: tuple[EnvKeySpec, ...] = (
    EnvKeySpec(key=VarsEnum.DEPLOY_GIT_URL),
    EnvKeySpec(key=VarsEnum.DEPLOY_BRANCH, default="main"),
    EnvKeySpec(key=VarsEnum.DEPLOY_SSH_USER),
    EnvKeySpec(key=VarsEnum.DEPLOY_SSH_HOST),
    EnvKeySpec(key=VarsEnum.DEPLOY_SSH_KEY),
    EnvKeySpec(key=VarsEnum.DEPLOY_APP_PORT),
    EnvKeySpec(key=VarsEnum.DEPLOY_HEALTH_ATTEMPTS, default="6"),
    EnvKeySpec(key=VarsEnum.DEPLOY_HEALTH_INTERVAL, default="5"),
    EnvKeySpec(key=VarsEnum.DEPLOY_LOG_DIR, default="."),
    EnvKeySpec(key=VarsEnum.DEPLOY_ASSUME_YES, default="false"),
)

SECRETS_SCHEMA: tuple[EnvKeySpec, ...] = (
    EnvKeySpec(key=SecretsEnum.GITHUB_PAT, target=EnvTarget.DOTENV_DEPLOY_SECRETS),
)


def _schema_keys(schema: Iterable[EnvKeySpec]) -> set[str]:
    return {spec.key.value for spec in schema}


def parse_dotenv_file(path: Path) -> dict[str, str]:
    """Parse dotenv file strictly.

    - Comments are ignored.
    - Keys are preserved even if they have empty values (""), so we can detect unknown keys.
    """
    kv: dict[str, str] = {}
    raw = dotenv_values(path)
    for k, v in raw.items():
        if k is None:
            continue
        key = str(k).strip()
        if not key:
            continue
        val = "" if v is None else str(v).strip()
        kv[key] = val
    return kv


def validate_known_keys(schema: Iterable[EnvKeySpec], kv: Mapping[str, str], *, context: str) -> None:
    allowed = _schema_keys(schema)
    unknown = sorted([k for k in kv.keys() if k not in allowed])
    if unknown:
        raise EnvValidationError(
            context=context,
            problems=["Unknown key(s): " + ", ".join(unknown)],
        )


def get_spec(key: VarsEnum | SecretsEnum) -> EnvKeySpec:
    for spec in (*DEPLOY_SCHEMA, *SECRETS_SCHEMA):
        if spec.key == key:
            return spec
    raise KeyError(key)


def parse_boolish(value: str, *, default: bool = False) -> bool:
    normalized = str(value or "").strip().lower()
    if not normalized:
        return default
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


class DeployConfig:
    """Resolves deploy keys from CLI overrides, process env and dotenv files."""

    def __init__(self, *, work_dir: Path, overrides: Mapping[str, str | None] | None = None):
        self.work_dir = work_dir
        self._overrides = {k: v for k, v in (overrides or {}).items() if str(v or "").strip()}
        self._files: dict[EnvTarget, dict[str, str]] = {
            EnvTarget.DOTENV_DEPLOY: self._load(work_dir / DEPLOY_DOTENV, DEPLOY_SCHEMA),
            EnvTarget.DOTENV_DEPLOY_SECRETS: self._load(work_dir / DEPLOY_SECRETS_DOTENV, SECRETS_SCHEMA),
        }

    @staticmethod
    def _load(path: Path, schema: Iterable[EnvKeySpec]) -> dict[str, str]:
        if not path.exists():
            return {}
        kv = parse_dotenv_file(path)
        validate_known_keys(schema, kv, context=str(path))
        return kv

    def get(self, key: VarsEnum | SecretsEnum) -> str:
        """Return the resolved value, or the schema default, or ""."""
        spec = get_spec(key)
        value = str(self._overrides.get(key.value) or "").strip()
        if not value:
            value = str(os.getenv(key.value) or "").strip()
        if not value:
            value = self._files[spec.target].get(key.value, "")
        if not value:
            value = spec.default or ""
        return value

    def get_int(self, key: VarsEnum) -> int:
        raw = self.get(key)
        try:
            return int(raw)
        except ValueError:
            raise EnvValidationError(context=key.value, problems=[f"{key.value} must be an integer, got {raw!r}"])

    def get_bool(self, key: VarsEnum) -> bool:
        return parse_boolish(self.get(key), default=False)
