"""Format checks and the validated parameter record for one deploy run."""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path

from scripts.vps_deploy.deploy_errors import ParamValidationError


GIT_URL_PATTERN = re.compile(
    r"^(https://|git@)([A-Za-z0-9._-]+)(:[0-9]+)?[/:][A-Za-z0-9._-]+/[A-Za-z0-9._-]+(\.git)?$"
)
# Covers classic `ghp_` and fine-grained `github_pat_` tokens.
PAT_PATTERN = re.compile(r"^(ghp_|github_pat_)[A-Za-z0-9_]{20,}$")
BRANCH_PATTERN = re.compile(r"^[a-zA-Z0-9._/-]+$")
SSH_USER_PATTERN = re.compile(r"^[a-z_][a-z0-9_-]*$")
IPV4_PATTERN = re.compile(r"^([0-9]{1,3}\.){3}[0-9]{1,3}$")
PORT_PATTERN = re.compile(r"^[0-9]+$")

DEFAULT_BRANCH = "main"
GITHUB_HOST = "github.com"
RESERVED_REPO_NAMES = frozenset({"", ".", ".."})

URL_HINT = (
    "Example: https://github.com/user/repo.git or git@github.com:user/repo.git "
    "(the repository name must not be empty, '.' or '..')"
)
PAT_HINT = "Expected: ghp_xxx or github_pat_xxx (check GitHub docs)"
BRANCH_HINT = "Allowed characters: letters, digits, '.', '_', '/', '-'"
SSH_USER_HINT = "Lowercase letters, numbers, _, - (must not start with a digit or -)"
IPV4_HINT = "Expected an IPv4 address, e.g. 192.168.1.100"
PORT_HINT = "Port must be 1-65535"


def is_valid_git_url(url: str) -> bool:
    if not GIT_URL_PATTERN.match(url):
        return False
    return is_valid_repo_name(repo_name_from_url(url))


def is_https_url(url: str) -> bool:
    return url.startswith("https://")


def is_valid_pat_format(token: str) -> bool:
    return bool(PAT_PATTERN.match(token))


def is_valid_branch_name(branch: str) -> bool:
    return bool(BRANCH_PATTERN.match(branch))


def is_valid_ssh_user(user: str) -> bool:
    return bool(SSH_USER_PATTERN.match(user))


def is_valid_ipv4(host: str) -> bool:
    if not IPV4_PATTERN.match(host):
        return False
    return all(int(octet) <= 255 for octet in host.split("."))


def parse_port(raw: str) -> int | None:
    """Return the port number, or None when `raw` is not a port in 1-65535."""
    value = str(raw or "").strip()
    if not PORT_PATTERN.match(value):
        return None
    port = int(value)
    if port < 1 or port > 65535:
        return None
    return port


def mask_token(token: str) -> str:
    if not token:
        return ""
    return f"{token[:4]}{'*' * 16}{token[-4:]}"


def repo_name_from_url(url: str) -> str:
    """`https://github.com/user/repo.git` -> `repo`."""
    name = url.rstrip("/").rsplit("/", 1)[-1]
    if name.endswith(".git"):
        name = name[: -len(".git")]
    return name


def is_valid_repo_name(name: str) -> bool:
    # "", "." and ".." resolve to the SSH user's home directory or its parent.
    return name not in RESERVED_REPO_NAMES


def github_repo_path(url: str) -> str | None:
    """Return `owner/repo` for HTTPS GitHub URLs, None for anything else."""
    prefix = f"https://{GITHUB_HOST}/"
    if not url.startswith(prefix):
        return None
    path = url[len(prefix):]
    if path.endswith(".git"):
        path = path[: -len(".git")]
    return path


def build_clone_url(url: str, token: str) -> str:
    """Embed the token for HTTPS clones; other URLs are returned unchanged."""
    if not token or not is_https_url(url):
        return url
    return f"https://{token}@{url[len('https://'):]}"


@dataclass(frozen=True)
class DeployParams:
    git_url: str
    branch: str
    ssh_user: str
    ssh_host: str
    ssh_key: Path
    app_port: int
    token: str = ""

    def __post_init__(self) -> None:
        if not is_valid_git_url(self.git_url):
            raise ParamValidationError(field="git URL", value=self.git_url, hint=URL_HINT)
        if self.token and not is_valid_pat_format(self.token):
            raise ParamValidationError(field="access token", value=mask_token(self.token), hint=PAT_HINT)
        if not is_valid_branch_name(self.branch):
            raise ParamValidationError(field="branch name", value=self.branch, hint=BRANCH_HINT)
        if not is_valid_ssh_user(self.ssh_user):
            raise ParamValidationError(field="SSH username", value=self.ssh_user, hint=SSH_USER_HINT)
        if not is_valid_ipv4(self.ssh_host):
            raise ParamValidationError(field="IP address", value=self.ssh_host, hint=IPV4_HINT)
        if parse_port(str(self.app_port)) is None:
            raise ParamValidationError(field="port", value=str(self.app_port), hint=PORT_HINT)

    @property
    def repo_name(self) -> str:
        return repo_name_from_url(self.git_url)

    @property
    def masked_token(self) -> str:
        return mask_token(self.token)

    def summary_lines(self) -> list[str]:
        return [
            f"Git URL:       {self.git_url}",
            f"Branch:        {self.branch}",
            f"PAT (masked):  {self.masked_token or 'N/A (SSH)'}",
            f"SSH User:      {self.ssh_user}",
            f"SSH IP:        {self.ssh_host}",
            f"SSH Key:       {self.ssh_key}",
            f"App Port:      {self.app_port}",
        ]
