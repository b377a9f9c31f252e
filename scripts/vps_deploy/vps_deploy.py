#!/usr/bin/env python3
"""Deploy a Dockerized git repository to a remote Linux host over SSH.

Stages: collect parameters -> clone/update repo -> detect Dockerfile/compose
-> check SSH -> bootstrap Docker/Compose/Nginx -> mirror files and run
containers -> configure Nginx reverse proxy -> validate -> optional cleanup.

Exit codes: 0 success/cancelled, 1 unexpected failure, 2 token verification
failed, 3 invalid branch name, 5 no Dockerfile/docker-compose.yml,
6 SSH unreachable.

Security note: this script shells out to `git`, `ssh`, `rsync`, `ping` and
`ssh-keygen`; the access token is embedded in the clone URL for HTTPS repos
and redacted from every logged command.
"""

from __future__ import annotations

import argparse
import getpass
import sys
import time
from pathlib import Path
from typing import Callable

from scripts.vps_deploy.deploy_errors import EXIT_GENERIC, EXIT_OK, DeployError
from scripts.vps_deploy.deploy_log import (
    StepPrinter,
    close_run_logging,
    configure_run_logging,
    log_separator,
    logger,
)
from scripts.vps_deploy.env_schema import DeployConfig, EnvValidationError, VarsEnum
from scripts.vps_deploy.prompts import ParameterCollector
from scripts.vps_deploy.remote import SshTarget, check_ssh_connectivity
from scripts.vps_deploy.remote_scripts import DeployLayout
from scripts.vps_deploy.repo_sync import detect_deploy_mode, sync_repository
from scripts.vps_deploy.stages import (
    RetryPolicy,
    bootstrap_remote,
    cleanup_deployment,
    configure_nginx,
    deploy_application,
    validate_deployment,
)


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Deploy a Dockerized git repository to a remote Linux host over SSH")
    parser.add_argument(
        "--cleanup",
        action="store_true",
        help="After validation, tear down containers/images/volumes and remove the remote deploy directory",
    )
    parser.add_argument(
        "--yes",
        action="store_true",
        help="Skip the final 'Proceed?' confirmation (overrides DEPLOY_ASSUME_YES)",
    )
    parser.add_argument(
        "--git-url",
        default=None,
        help="Prompt default for the repository URL. Resolution: CLI -> DEPLOY_GIT_URL env var -> .env.deploy",
    )
    parser.add_argument(
        "--branch",
        default=None,
        help="Prompt default for the branch. Resolution: CLI -> DEPLOY_BRANCH env var -> .env.deploy -> main",
    )
    parser.add_argument("--ssh-user", default=None, help="Prompt default for the SSH username (DEPLOY_SSH_USER)")
    parser.add_argument("--ssh-host", default=None, help="Prompt default for the server IPv4 address (DEPLOY_SSH_HOST)")
    parser.add_argument("--ssh-key", default=None, help="Prompt default for the SSH private key path (DEPLOY_SSH_KEY)")
    parser.add_argument("--app-port", default=None, help="Prompt default for the application port (DEPLOY_APP_PORT)")
    parser.add_argument(
        "--health-attempts",
        type=int,
        default=None,
        help="Health check attempts after deploy (resolution: CLI/env/.env.deploy -> 6)",
    )
    parser.add_argument(
        "--health-interval",
        type=float,
        default=None,
        help="Seconds between health check attempts (resolution: CLI/env/.env.deploy -> 5)",
    )
    parser.add_argument(
        "--log-dir",
        default=None,
        help="Directory for deploy_<timestamp>.log (resolution: CLI/env/.env.deploy -> current directory)",
    )
    return parser


def _cli_overrides(args: argparse.Namespace) -> dict[str, str | None]:
    def _str(value: object) -> str | None:
        return None if value is None else str(value)

    return {
        VarsEnum.DEPLOY_GIT_URL.value: args.git_url,
        VarsEnum.DEPLOY_BRANCH.value: args.branch,
        VarsEnum.DEPLOY_SSH_USER.value: args.ssh_user,
        VarsEnum.DEPLOY_SSH_HOST.value: args.ssh_host,
        VarsEnum.DEPLOY_SSH_KEY.value: args.ssh_key,
        VarsEnum.DEPLOY_APP_PORT.value: _str(args.app_port),
        VarsEnum.DEPLOY_HEALTH_ATTEMPTS.value: _str(args.health_attempts),
        VarsEnum.DEPLOY_HEALTH_INTERVAL.value: _str(args.health_interval),
        VarsEnum.DEPLOY_LOG_DIR.value: args.log_dir,
    }


def resolve_retry_policy(config: DeployConfig) -> RetryPolicy:
    raw_interval = config.get(VarsEnum.DEPLOY_HEALTH_INTERVAL)
    try:
        interval = float(raw_interval)
    except ValueError:
        raise EnvValidationError(
            context=VarsEnum.DEPLOY_HEALTH_INTERVAL.value,
            problems=[f"{VarsEnum.DEPLOY_HEALTH_INTERVAL.value} must be a number, got {raw_interval!r}"],
        )
    try:
        return RetryPolicy(attempts=config.get_int(VarsEnum.DEPLOY_HEALTH_ATTEMPTS), interval=interval)
    except ValueError as exc:
        raise EnvValidationError(context="health check policy", problems=[str(exc)])


def resolve_log_dir(config: DeployConfig) -> Path:
    log_dir = Path(config.get(VarsEnum.DEPLOY_LOG_DIR)).expanduser()
    if not log_dir.is_absolute():
        log_dir = config.work_dir / log_dir
    return log_dir


def run_deploy(
    *,
    config: DeployConfig,
    collector: ParameterCollector,
    cleanup: bool,
    assume_yes: bool,
    sleep_fn: Callable[[float], None] = time.sleep,
) -> int:
    printer = StepPrinter()
    policy = resolve_retry_policy(config)

    printer.step("Collecting deployment parameters", icon="🧾")
    params = collector.collect()
    if not collector.confirm(params, assume_yes=assume_yes):
        logger.warning("Deployment aborted by user.")
        print("🚫 Cancelled.")
        return EXIT_OK
    logger.info("Proceeding with deployment.")
    log_separator()

    printer.step("Handling repository", icon="📥")
    repo_dir, branch = sync_repository(params=params, work_dir=config.work_dir)
    printer.info(f"Repository ready at {repo_dir} (branch '{branch}')")
    log_separator()

    printer.step("Verifying Dockerfile / docker-compose.yml", icon="🔎")
    mode = detect_deploy_mode(repo_dir)
    layout = DeployLayout.for_repo(repo_name=params.repo_name, ssh_user=params.ssh_user, mode=mode)
    logger.info("Files verified.")
    log_separator()

    target = SshTarget(user=params.ssh_user, host=params.ssh_host, key_path=params.ssh_key)

    printer.step("Checking SSH connectivity", icon="🔐")
    check_ssh_connectivity(target)
    logger.info("SSH connected.")
    log_separator()

    printer.step("Preparing remote environment (Docker, Compose, Nginx)", icon="🛠️")
    bootstrap_remote(target)
    logger.info("Remote prepared.")
    log_separator()

    printer.step(f"Deploying to {target.destination}:{layout.remote_dir}", icon="📦")
    deploy_application(
        target,
        repo_dir=repo_dir,
        layout=layout,
        app_port=params.app_port,
        policy=policy,
        sleep_fn=sleep_fn,
    )
    logger.info("Deployed.")
    log_separator()

    printer.step("Configuring Nginx reverse proxy", icon="🌐")
    configure_nginx(target, server_name=params.ssh_host, app_port=params.app_port)
    logger.info("Nginx configured.")
    log_separator()

    printer.step("Validating deployment", icon="✅")
    for warning in validate_deployment(target, layout=layout):
        printer.info(warning, icon="⚠️")
    logger.info("Validated.")
    log_separator()

    if cleanup:
        printer.step("Cleaning up deployment", icon="🧹")
        cleanup_deployment(target, layout=layout)
        logger.info("Cleanup done.")

    logger.info("Process completed.")
    return EXIT_OK


def main(
    argv: list[str] | None = None,
    work_dir_override: Path | None = None,
    *,
    input_fn: Callable[[str], str] | None = None,
    secret_fn: Callable[[str], str] | None = None,
    sleep_fn: Callable[[float], None] = time.sleep,
) -> None:
    args = build_arg_parser().parse_args(argv)
    work_dir = work_dir_override or Path.cwd()

    try:
        config = DeployConfig(work_dir=work_dir, overrides=_cli_overrides(args))
    except EnvValidationError as e:
        print(e.format(), file=sys.stderr)
        raise SystemExit(EXIT_GENERIC)

    log_dir = resolve_log_dir(config)
    try:
        log_path = configure_run_logging(log_dir=log_dir)
    except OSError as exc:
        close_run_logging()
        print(f"Could not open a deploy log in {log_dir}: {exc}", file=sys.stderr)
        raise SystemExit(EXIT_GENERIC)
    log_separator()
    logger.info(" Deployment Initialization Started")
    logger.info(" Log file: %s", log_path)
    log_separator()

    collector = ParameterCollector(
        config=config,
        input_fn=input_fn or input,
        secret_fn=secret_fn or getpass.getpass,
    )
    try:
        exit_code = run_deploy(
            config=config,
            collector=collector,
            cleanup=bool(args.cleanup),
            assume_yes=bool(args.yes) or config.get_bool(VarsEnum.DEPLOY_ASSUME_YES),
            sleep_fn=sleep_fn,
        )
    except DeployError as exc:
        logger.error(str(exc))
        exit_code = exc.exit_code
    except EnvValidationError as exc:
        logger.error(exc.format())
        exit_code = EXIT_GENERIC
    except EOFError:
        logger.error("Input closed before all parameters were collected.")
        exit_code = EXIT_GENERIC
    except OSError as exc:
        logger.error("Could not run a required command: %s", exc)
        exit_code = EXIT_GENERIC
    finally:
        close_run_logging()

    if exit_code != EXIT_OK:
        raise SystemExit(exit_code)
    print(f"Finished. Log: {log_path}")


if __name__ == "__main__":
    main()
