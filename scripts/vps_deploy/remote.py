"""SSH / rsync command builders and the subprocess runner used by every stage.

Security note: this module shells out to `ssh` and `rsync`. Host keys are not
pinned (`StrictHostKeyChecking=no`), matching a first-contact deploy target.
"""

from __future__ import annotations

import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from scripts.vps_deploy.deploy_errors import DeployError, SshConnectivityError
from scripts.vps_deploy.deploy_log import logger


SSH_CONNECT_TIMEOUT = 10
SSH_OK_MARKER = "SSH OK"


@dataclass(frozen=True)
class SshTarget:
    user: str
    host: str
    key_path: Path

    @property
    def destination(self) -> str:
        return f"{self.user}@{self.host}"

    def ssh_options(self) -> list[str]:
        return [
            "-i",
            str(self.key_path),
            "-o",
            "StrictHostKeyChecking=no",
            "-o",
            f"ConnectTimeout={SSH_CONNECT_TIMEOUT}",
        ]


def build_ssh_cmd(*, target: SshTarget, remote_command: str) -> list[str]:
    return ["ssh", *target.ssh_options(), target.destination, remote_command]


def build_ssh_script_cmd(*, target: SshTarget) -> list[str]:
    # The script itself is fed on stdin.
    return build_ssh_cmd(target=target, remote_command="bash -s")


def build_ssh_connectivity_cmd(*, target: SshTarget) -> list[str]:
    return build_ssh_cmd(target=target, remote_command=f"echo '{SSH_OK_MARKER}'")


def build_rsync_cmd(*, source_dir: Path, target: SshTarget, remote_dir: str) -> list[str]:
    remote_shell = " ".join(shlex.quote(part) for part in ["ssh", *target.ssh_options()])
    # Trailing slashes mirror the directory contents rather than nesting the directory.
    return [
        "rsync",
        "-avz",
        "--delete",
        "--exclude",
        ".git",
        "-e",
        remote_shell,
        f"{source_dir}/",
        f"{target.destination}:{remote_dir}/",
    ]


def format_cmd(cmd: list[str], *, secrets: Iterable[str] = ()) -> str:
    """Render argv for logs with every secret value replaced by `***`."""
    text = " ".join(cmd)
    for secret in secrets:
        if secret:
            text = text.replace(secret, "***")
    return text


def subprocess_error_text(exc: subprocess.CalledProcessError) -> str:
    stderr = exc.stderr.decode("utf-8", errors="replace") if isinstance(exc.stderr, bytes) else str(exc.stderr or "")
    stdout = exc.stdout.decode("utf-8", errors="replace") if isinstance(exc.stdout, bytes) else str(exc.stdout or "")
    return (stderr.strip() or stdout.strip() or "").strip()


def ssh_failure_hint(error_text: str) -> str:
    lowered = error_text.lower()
    if "no route to host" in lowered:
        return "No route to host. Check VPN/LAN reachability and the server IP."
    if "connection timed out" in lowered:
        return "SSH timed out. Verify the server is online and port 22 is reachable."
    if "connection refused" in lowered:
        return "SSH connection refused. Confirm SSH daemon is running and port 22 is open."
    if "permission denied" in lowered:
        return "SSH authentication failed. Verify the SSH key is authorized for this user."
    if "could not resolve hostname" in lowered:
        return "Host resolution failed. Check the server address for typos/DNS issues."
    return ""


def run_cmd(
    cmd: list[str],
    *,
    check: bool = True,
    capture: bool = False,
    input_text: str | None = None,
    cwd: Path | None = None,
    action: str | None = None,
    secrets: Iterable[str] = (),
) -> subprocess.CompletedProcess:
    """Run `cmd`; on failure with `check=True` raise DeployError with a redacted command line."""
    secrets = tuple(secrets)
    logger.debug("Running: %s", format_cmd(cmd, secrets=secrets))
    try:
        return subprocess.run(
            cmd,
            check=check,
            capture_output=capture,
            input=input_text,
            text=True,
            cwd=str(cwd) if cwd is not None else None,
        )
    except subprocess.CalledProcessError as exc:
        action_text = action or f"Command failed: {format_cmd(cmd, secrets=secrets)}"
        detail = format_cmd([subprocess_error_text(exc)], secrets=secrets)
        message = f"{action_text} (exit code {exc.returncode})."
        if detail:
            message = f"{message} {detail}"
        if cmd and cmd[0] == "ssh":
            hint = ssh_failure_hint(detail)
            if hint:
                message = f"{message} {hint}"
        raise DeployError(message) from exc


def run_remote(
    target: SshTarget,
    remote_command: str,
    *,
    check: bool = True,
    capture: bool = False,
    action: str | None = None,
) -> subprocess.CompletedProcess:
    return run_cmd(
        build_ssh_cmd(target=target, remote_command=remote_command),
        check=check,
        capture=capture,
        action=action,
    )


def run_remote_script(
    target: SshTarget,
    script: str,
    *,
    check: bool = True,
    action: str | None = None,
) -> subprocess.CompletedProcess:
    return run_cmd(build_ssh_script_cmd(target=target), check=check, input_text=script, action=action)


def check_ssh_connectivity(target: SshTarget) -> None:
    try:
        result = run_cmd(build_ssh_connectivity_cmd(target=target), check=False, capture=True)
    except OSError as exc:
        raise SshConnectivityError(f"SSH to {target.destination} could not be started: {exc}") from exc
    if result.returncode == 0 and SSH_OK_MARKER in str(result.stdout or ""):
        return
    detail = str(result.stderr or "").strip()
    message = f"SSH to {target.destination} failed (exit code {result.returncode})."
    hint = ssh_failure_hint(detail)
    if hint:
        message = f"{message} {hint}"
    raise SshConnectivityError(message)


def mirror_directory(*, source_dir: Path, target: SshTarget, remote_dir: str) -> None:
    run_remote(target, f"mkdir -p {shlex.quote(remote_dir)}", action="Creating remote deploy directory failed")
    run_cmd(
        build_rsync_cmd(source_dir=source_dir, target=target, remote_dir=remote_dir),
        action="Syncing files to remote host failed",
    )
