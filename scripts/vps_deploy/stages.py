"""Remote deploy stages run after the local checkout is ready."""

from __future__ import annotations

import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

import requests

from scripts.vps_deploy import remote_scripts
from scripts.vps_deploy.deploy_log import logger
from scripts.vps_deploy.remote import (
    SshTarget,
    build_ssh_cmd,
    mirror_directory,
    run_cmd,
    run_remote,
    run_remote_script,
)
from scripts.vps_deploy.remote_scripts import DeployLayout


EXTERNAL_PROBE_TIMEOUT = 10


@dataclass(frozen=True)
class RetryPolicy:
    attempts: int = 6
    interval: float = 5.0

    def __post_init__(self) -> None:
        if self.attempts < 1:
            raise ValueError("attempts must be >= 1")
        if self.interval < 0:
            raise ValueError("interval must be >= 0")


def bootstrap_remote(target: SshTarget) -> None:
    run_remote_script(
        target,
        remote_scripts.bootstrap_script(),
        action="Preparing remote environment failed",
    )


def poll_health(
    target: SshTarget,
    *,
    port: int,
    policy: RetryPolicy,
    sleep_fn: Callable[[float], None] = time.sleep,
) -> bool:
    """Probe the app on the remote host; False (never an exception) on timeout."""
    probe = remote_scripts.health_probe_cmd(port=port)
    for attempt in range(1, policy.attempts + 1):
        result = run_remote(target, probe, check=False, capture=True)
        if result.returncode == 0:
            print("Healthy")
            logger.info("Health check passed on attempt %s/%s.", attempt, policy.attempts)
            return True
        logger.debug("Health check attempt %s/%s failed.", attempt, policy.attempts)
        if attempt < policy.attempts:
            sleep_fn(policy.interval)
    print("Timeout - check logs")
    logger.warning("Health check timed out after %s attempts; check container logs.", policy.attempts)
    return False


def deploy_application(
    target: SshTarget,
    *,
    repo_dir: Path,
    layout: DeployLayout,
    app_port: int,
    policy: RetryPolicy,
    sleep_fn: Callable[[float], None] = time.sleep,
) -> bool:
    mirror_directory(source_dir=repo_dir, target=target, remote_dir=layout.remote_dir)
    run_remote_script(
        target,
        remote_scripts.deploy_script(layout=layout, app_port=app_port),
        action=f"Deploying containers ({layout.mode.value}) failed",
    )
    return poll_health(target, port=app_port, policy=policy, sleep_fn=sleep_fn)


def configure_nginx(target: SshTarget, *, server_name: str, app_port: int) -> None:
    config = remote_scripts.render_nginx_config(server_name=server_name, app_port=app_port)
    run_cmd(
        build_ssh_cmd(target=target, remote_command=remote_scripts.nginx_upload_cmd()),
        input_text=config,
        action=f"Uploading {remote_scripts.NGINX_SITE_PATH} failed",
    )
    run_remote(target, remote_scripts.nginx_reload_cmd(), action="Nginx config test/reload failed")


def probe_external(url: str) -> bool:
    try:
        response = requests.get(url, timeout=EXTERNAL_PROBE_TIMEOUT)
    except requests.RequestException as exc:
        logger.debug("External probe of %s failed: %s", url, exc)
        return False
    return response.ok


def validate_deployment(target: SshTarget, *, layout: DeployLayout) -> list[str]:
    """Run read-only checks; returns the warnings logged (empty when all pass)."""
    checks = [
        (remote_scripts.docker_service_status_cmd(), "Docker service is not active."),
        (remote_scripts.containers_running_cmd(layout=layout), "Application containers are not running."),
        (remote_scripts.proxy_probe_cmd(), "Remote local curl failed."),
    ]
    warnings: list[str] = []
    for command, warning in checks:
        if run_remote(target, command, check=False).returncode != 0:
            warnings.append(warning)

    if not probe_external(f"http://{target.host}"):
        warnings.append("External curl failed (firewall?).")

    for warning in warnings:
        logger.warning(warning)
    return warnings


def cleanup_deployment(target: SshTarget, *, layout: DeployLayout) -> bool:
    """Best-effort teardown; failures are logged, never raised."""
    try:
        result = run_remote_script(target, remote_scripts.cleanup_script(layout=layout), check=False)
    except OSError as exc:
        logger.warning("Cleanup could not reach the remote host: %s", exc)
        return False
    if result.returncode != 0:
        logger.warning("Cleanup script exited with code %s; some resources may remain.", result.returncode)
        return False
    return True
