import subprocess
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
import requests

from scripts.vps_deploy.deploy_errors import DeployError
from scripts.vps_deploy.remote import SshTarget
from scripts.vps_deploy.remote_scripts import DeployLayout, DeployMode
from scripts.vps_deploy.stages import (
    RetryPolicy,
    cleanup_deployment,
    configure_nginx,
    deploy_application,
    poll_health,
    validate_deployment,
)


TARGET = SshTarget(user="ubuntu", host="10.0.0.5", key_path=Path("/keys/id_rsa"))
LAYOUT = DeployLayout.for_repo(repo_name="repo", ssh_user="ubuntu", mode=DeployMode.DOCKERFILE)


def _completed(code: int = 0) -> subprocess.CompletedProcess:
    return subprocess.CompletedProcess(args=[], returncode=code, stdout="", stderr="")


def test_retry_policy_defaults_and_bounds():
    policy = RetryPolicy()
    assert (policy.attempts, policy.interval) == (6, 5.0)
    with pytest.raises(ValueError):
        RetryPolicy(attempts=0)
    with pytest.raises(ValueError):
        RetryPolicy(interval=-1)


def test_poll_health_exhausts_attempts_without_trailing_sleep(capsys):
    sleep = MagicMock()
    with patch("subprocess.run", return_value=_completed(7)) as mock_run:
        healthy = poll_health(TARGET, port=8080, policy=RetryPolicy(attempts=3, interval=2), sleep_fn=sleep)

    assert healthy is False
    assert mock_run.call_count == 3
    assert sleep.call_count == 2
    sleep.assert_called_with(2)
    assert "Timeout - check logs" in capsys.readouterr().out


def test_poll_health_stops_on_first_success():
    sleep = MagicMock()
    with patch("subprocess.run", side_effect=[_completed(7), _completed(0)]) as mock_run:
        healthy = poll_health(TARGET, port=8080, policy=RetryPolicy(attempts=6, interval=5), sleep_fn=sleep)

    assert healthy is True
    assert mock_run.call_count == 2
    assert sleep.call_count == 1
    assert mock_run.call_args[0][0][-1] == "curl -f --max-time 5 http://localhost:8080"


def test_deploy_application_runs_sync_deploy_then_health(tmp_path: Path):
    with patch("subprocess.run", return_value=_completed(0)) as mock_run:
        healthy = deploy_application(
            TARGET,
            repo_dir=tmp_path,
            layout=LAYOUT,
            app_port=8080,
            policy=RetryPolicy(attempts=1, interval=0),
            sleep_fn=MagicMock(),
        )

    assert healthy is True
    cmds = [c[0][0] for c in mock_run.call_args_list]
    assert cmds[0][-1] == "mkdir -p /home/ubuntu/repo"
    assert cmds[1][0] == "rsync"
    assert cmds[2][-1] == "bash -s"
    deploy_input = mock_run.call_args_list[2][1]["input"]
    assert "docker run -d --name repo-app -p 8080:8080 repo-image" in deploy_input


def test_deploy_application_failure_is_fatal(tmp_path: Path):
    def _run(cmd, **kwargs):
        if cmd[-1] == "bash -s":
            raise subprocess.CalledProcessError(1, cmd)
        return _completed(0)

    with patch("subprocess.run", side_effect=_run):
        with pytest.raises(DeployError) as exc:
            deploy_application(
                TARGET,
                repo_dir=tmp_path,
                layout=LAYOUT,
                app_port=8080,
                policy=RetryPolicy(attempts=1, interval=0),
            )
    assert "Deploying containers (dockerfile) failed" in str(exc.value)


def test_configure_nginx_uploads_on_stdin_then_reloads():
    with patch("subprocess.run", return_value=_completed(0)) as mock_run:
        configure_nginx(TARGET, server_name="10.0.0.5", app_port=8080)

    upload, reload_ = mock_run.call_args_list
    assert upload[0][0][-1] == "sudo tee /etc/nginx/sites-available/default > /dev/null"
    assert "proxy_pass http://localhost:8080/;" in upload[1]["input"]
    assert reload_[0][0][-1] == "sudo nginx -t && sudo systemctl reload nginx"


def test_validate_deployment_only_warns():
    with patch("subprocess.run", return_value=_completed(1)), patch(
        "requests.get", side_effect=requests.ConnectionError("refused")
    ):
        warnings = validate_deployment(TARGET, layout=LAYOUT)

    assert len(warnings) == 4
    assert "External curl failed (firewall?)." in warnings


def test_validate_deployment_all_green():
    response = MagicMock()
    response.ok = True
    with patch("subprocess.run", return_value=_completed(0)), patch("requests.get", return_value=response) as mock_get:
        assert validate_deployment(TARGET, layout=LAYOUT) == []
    assert mock_get.call_args[0][0] == "http://10.0.0.5"


def test_cleanup_never_raises_on_failure():
    with patch("subprocess.run", return_value=_completed(1)) as mock_run:
        assert cleanup_deployment(TARGET, layout=LAYOUT) is False
    script = mock_run.call_args[1]["input"]
    assert "rm -rf /home/ubuntu/repo" in script


def test_cleanup_swallows_missing_ssh_binary():
    with patch("subprocess.run", side_effect=FileNotFoundError("ssh")):
        assert cleanup_deployment(TARGET, layout=LAYOUT) is False
