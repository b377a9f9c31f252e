from __future__ import annotations

import sys
from pathlib import Path

import pytest


def pytest_configure() -> None:
    # Allow tests to import `scripts.vps_deploy.*` as a namespace package.
    repo_root = Path(__file__).parents[2]
    sys.path.append(str(repo_root))


@pytest.fixture(autouse=True)
def _isolate_deploy_env(monkeypatch):
    """Keep DEPLOY_* / GITHUB_PAT from the developer's shell out of config resolution."""
    from scripts.vps_deploy.env_schema import SecretsEnum, VarsEnum

    for key in [*VarsEnum, *SecretsEnum]:
        monkeypatch.delenv(key.value, raising=False)
