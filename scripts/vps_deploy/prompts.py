"""Interactive collection of deploy parameters.

Each field is re-prompted until it passes its format check. Values resolved
from CLI flags, the environment or `.env.deploy` are offered as defaults
(empty input accepts them) and are validated exactly like typed input.
"""

from __future__ import annotations

import getpass
from pathlib import Path
from typing import Callable

from scripts.vps_deploy import github_api
from scripts.vps_deploy.deploy_errors import InvalidBranchError, TokenVerificationError
from scripts.vps_deploy.deploy_log import logger
from scripts.vps_deploy.deploy_params import (
    BRANCH_HINT,
    DEFAULT_BRANCH,
    IPV4_HINT,
    PAT_HINT,
    PORT_HINT,
    SSH_USER_HINT,
    URL_HINT,
    DeployParams,
    github_repo_path,
    is_https_url,
    is_valid_branch_name,
    is_valid_git_url,
    is_valid_ipv4,
    is_valid_pat_format,
    is_valid_ssh_user,
    parse_port,
)
from scripts.vps_deploy.env_schema import DeployConfig, SecretsEnum, VarsEnum
from scripts.vps_deploy.remote import run_cmd


MAX_TOKEN_ATTEMPTS = 3


def is_yes(answer: str) -> bool:
    return answer.strip() in {"y", "Y"}


def host_responds_to_ping(host: str) -> bool:
    result = run_cmd(["ping", "-c", "1", "-W", "2", host], check=False, capture=True)
    return result.returncode == 0


def is_valid_ssh_key(path: Path) -> bool:
    if not path.is_file():
        return False
    result = run_cmd(["ssh-keygen", "-l", "-f", str(path)], check=False, capture=True)
    return result.returncode == 0


class ParameterCollector:
    def __init__(
        self,
        *,
        config: DeployConfig,
        input_fn: Callable[[str], str] = input,
        secret_fn: Callable[[str], str] = getpass.getpass,
        max_token_attempts: int = MAX_TOKEN_ATTEMPTS,
    ):
        self.config = config
        self.input_fn = input_fn
        self.secret_fn = secret_fn
        self.max_token_attempts = max_token_attempts

    def _ask(self, prompt: str, *, default: str = "") -> str:
        suffix = f" [{default}]" if default else ""
        answer = self.input_fn(f"{prompt}{suffix}: ").strip()
        return answer or default

    def ask_git_url(self) -> str:
        default = self.config.get(VarsEnum.DEPLOY_GIT_URL)
        while True:
            url = self._ask("Enter Git repository URL (HTTPS or SSH)", default=default)
            if is_valid_git_url(url):
                logger.info("Validated Git repository URL: %s", url)
                return url
            print(f"Invalid URL format. {URL_HINT}")

    def ask_token(self) -> str:
        default = self.config.get(SecretsEnum.GITHUB_PAT)
        prompt = "Enter your GitHub Personal Access Token"
        if default:
            prompt = f"{prompt} (Enter to use {SecretsEnum.GITHUB_PAT.value})"
        failed_attempts = 0
        while True:
            token = self.secret_fn(f"{prompt}: ").strip() or default
            if not is_valid_pat_format(token):
                print(f"Invalid token format. {PAT_HINT}")
                continue

            print("Verifying token with GitHub...")
            status = github_api.verify_token(token=token)
            if status == 200:
                print("PAT verified successfully.")
                logger.info("GitHub PAT verified successfully.")
                return token

            failed_attempts += 1
            print(f"GitHub authentication failed (HTTP {status if status is not None else '000'}).")
            if failed_attempts >= self.max_token_attempts:
                raise TokenVerificationError(
                    f"PAT verification failed after {failed_attempts} attempts."
                )
            if not is_yes(self.input_fn("Re-enter token? (y/n): ")):
                raise TokenVerificationError("PAT verification failed.")

    def ask_branch(self, *, git_url: str, token: str) -> str:
        default = self.config.get(VarsEnum.DEPLOY_BRANCH) or DEFAULT_BRANCH
        branch = self.input_fn(f"Enter branch name (default: {default}): ").strip() or default
        if not is_valid_branch_name(branch):
            print("Invalid branch name format.")
            raise InvalidBranchError(f"Invalid branch name: {branch!r}. {BRANCH_HINT}")

        if not is_https_url(git_url):
            logger.warning("SSH URL; skipping remote branch check (will verify during clone).")
            return branch

        repo_path = github_repo_path(git_url)
        if repo_path is None:
            logger.warning("Non-GitHub HTTPS URL; skipping remote branch check (will verify during clone).")
            return branch

        print(f"Checking if branch '{branch}' exists...")
        if github_api.branch_exists(repo_path=repo_path, branch=branch, token=token):
            print(f"✅ Branch '{branch}' exists.")
            logger.info("Branch '%s' validated.", branch)
            return branch

        print(f"Branch '{branch}' not found. Defaulting to '{DEFAULT_BRANCH}'.")
        logger.warning("Branch '%s' not found; defaulting to '%s'.", branch, DEFAULT_BRANCH)
        return DEFAULT_BRANCH

    def ask_ssh_user(self) -> str:
        default = self.config.get(VarsEnum.DEPLOY_SSH_USER)
        while True:
            user = self._ask("Enter remote server SSH username", default=default)
            if is_valid_ssh_user(user):
                logger.info("Validated SSH username: %s", user)
                return user
            print(f"Invalid username format ({SSH_USER_HINT}).")

    def ask_ssh_host(self) -> str:
        default = self.config.get(VarsEnum.DEPLOY_SSH_HOST)
        while True:
            host = self._ask("Enter remote server IP address", default=default)
            if not is_valid_ipv4(host):
                print(f"Invalid IP format ({IPV4_HINT}).")
                continue
            if host_responds_to_ping(host):
                print("IP reachable via ping.")
                logger.info("Validated and reachable IP: %s", host)
                return host
            print("⚠️ IP not reachable via ping.")
            if is_yes(self.input_fn("Proceed anyway? (y/n): ")):
                logger.warning("Proceeding with unreachable IP: %s", host)
                return host

    def ask_ssh_key(self) -> Path:
        default = self.config.get(VarsEnum.DEPLOY_SSH_KEY)
        while True:
            raw = self._ask("Enter SSH key path (e.g., ~/.ssh/id_rsa)", default=default)
            key_path = Path(raw).expanduser()
            if raw and is_valid_ssh_key(key_path):
                print("Valid SSH key found.")
                logger.info("Validated SSH key: %s", key_path)
                return key_path
            print("Invalid or missing SSH key file.")

    def ask_app_port(self) -> int:
        default = self.config.get(VarsEnum.DEPLOY_APP_PORT)
        while True:
            port = parse_port(self._ask("Enter application port (1-65535)", default=default))
            if port is not None:
                logger.info("Validated app port: %s", port)
                return port
            print(f"Invalid port ({PORT_HINT}).")

    def collect(self) -> DeployParams:
        git_url = self.ask_git_url()
        token = ""
        if is_https_url(git_url):
            token = self.ask_token()
        else:
            logger.info("SSH URL detected; no PAT required for cloning.")
        branch = self.ask_branch(git_url=git_url, token=token)
        return DeployParams(
            git_url=git_url,
            token=token,
            branch=branch,
            ssh_user=self.ask_ssh_user(),
            ssh_host=self.ask_ssh_host(),
            ssh_key=self.ask_ssh_key(),
            app_port=self.ask_app_port(),
        )

    def confirm(self, params: DeployParams, *, assume_yes: bool = False) -> bool:
        print("\n🧾 Parameter Summary:")
        print("-----------------------------------------")
        for line in params.summary_lines():
            print(line)
        print("-----------------------------------------")

        logger.info("Git URL: %s", params.git_url)
        logger.info("Branch: %s", params.branch)
        logger.info("PAT (masked): %s", params.masked_token or "N/A")
        logger.info("SSH User: %s", params.ssh_user)
        logger.info("SSH IP: %s", params.ssh_host)
        logger.info("SSH Key: %s", params.ssh_key)
        logger.info("App Port: %s", params.app_port)

        if assume_yes:
            return True
        return is_yes(self.input_fn("Proceed? (y/n): "))
