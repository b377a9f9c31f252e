"""Clone or update the application repository in the working directory."""

from __future__ import annotations

from pathlib import Path

from scripts.vps_deploy.deploy_errors import MissingManifestError
from scripts.vps_deploy.deploy_log import logger
from scripts.vps_deploy.deploy_params import DEFAULT_BRANCH, DeployParams, build_clone_url
from scripts.vps_deploy.remote import run_cmd
from scripts.vps_deploy.remote_scripts import COMPOSE_FILE, DOCKERFILE, DeployMode


def build_git_clone_cmd(*, clone_url: str, repo_name: str) -> list[str]:
    return ["git", "clone", clone_url, repo_name]


def build_git_checkout_cmd(*, branch: str) -> list[str]:
    return ["git", "checkout", branch]


def _checkout_with_fallback(*, repo_dir: Path, branch: str) -> str:
    result = run_cmd(build_git_checkout_cmd(branch=branch), check=False, cwd=repo_dir)
    if result.returncode == 0:
        return branch
    print(f"⚠️ Branch '{branch}' not found. Defaulting to '{DEFAULT_BRANCH}'.")
    logger.warning("Branch '%s' not found; defaulting to '%s'.", branch, DEFAULT_BRANCH)
    run_cmd(
        build_git_checkout_cmd(branch=DEFAULT_BRANCH),
        cwd=repo_dir,
        action=f"Checking out default branch '{DEFAULT_BRANCH}' failed",
    )
    return DEFAULT_BRANCH


def sync_repository(*, params: DeployParams, work_dir: Path) -> tuple[Path, str]:
    """Return the local clone directory and the branch actually checked out."""
    repo_dir = work_dir / params.repo_name
    secrets = (params.token,)

    if repo_dir.is_dir():
        logger.info("Repo exists; pulling changes...")
        run_cmd(["git", "fetch", "--all"], cwd=repo_dir, action="git fetch failed", secrets=secrets)
        branch = _checkout_with_fallback(repo_dir=repo_dir, branch=params.branch)
        run_cmd(
            ["git", "pull", "origin", branch],
            cwd=repo_dir,
            action=f"git pull of '{branch}' failed",
            secrets=secrets,
        )
    else:
        logger.info("Cloning repo...")
        clone_url = build_clone_url(params.git_url, params.token)
        run_cmd(
            build_git_clone_cmd(clone_url=clone_url, repo_name=params.repo_name),
            cwd=work_dir,
            action=f"git clone of {params.git_url} failed",
            secrets=secrets,
        )
        branch = _checkout_with_fallback(repo_dir=repo_dir, branch=params.branch)

    logger.info("Repo handled on branch '%s'.", branch)
    return repo_dir, branch


def detect_deploy_mode(repo_dir: Path) -> DeployMode:
    if (repo_dir / COMPOSE_FILE).is_file():
        logger.info("Using Docker Compose.")
        return DeployMode.COMPOSE
    if (repo_dir / DOCKERFILE).is_file():
        logger.info("Using single Dockerfile.")
        return DeployMode.DOCKERFILE
    raise MissingManifestError(f"No {DOCKERFILE} or {COMPOSE_FILE} in {repo_dir}.")
