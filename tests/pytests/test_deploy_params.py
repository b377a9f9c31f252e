from __future__ import annotations

from pathlib import Path

import pytest

from scripts.vps_deploy.deploy_errors import ParamValidationError
from scripts.vps_deploy.deploy_params import (
    DeployParams,
    build_clone_url,
    github_repo_path,
    is_valid_branch_name,
    is_valid_git_url,
    is_valid_ipv4,
    is_valid_pat_format,
    is_valid_ssh_user,
    mask_token,
    parse_port,
    repo_name_from_url,
)


VALID_PAT = "ghp_" + "a" * 36


def _params(**overrides) -> DeployParams:
    values = dict(
        git_url="https://github.com/user/repo.git",
        token=VALID_PAT,
        branch="main",
        ssh_user="ubuntu",
        ssh_host="192.168.1.100",
        ssh_key=Path("/home/me/.ssh/id_rsa"),
        app_port=8080,
    )
    values.update(overrides)
    return DeployParams(**values)


@pytest.mark.parametrize(
    "url",
    [
        "https://github.com/user/repo.git",
        "https://github.com/user/repo",
        "git@github.com:user/repo.git",
        "https://git.example.com:8443/team/app.git",
    ],
)
def test_is_valid_git_url_accepts_https_and_ssh(url):
    assert is_valid_git_url(url)


@pytest.mark.parametrize(
    "url",
    [
        "github.com/user/repo.git",
        "http://github.com/user/repo.git",
        "https://github.com/repo.git",
        "https://git hub.com/user/repo.git",
        "ftp://github.com/user/repo.git",
        "",
    ],
)
def test_is_valid_git_url_rejects_missing_scheme_and_bad_host(url):
    assert not is_valid_git_url(url)


def test_pat_format_classic_and_fine_grained():
    assert is_valid_pat_format(VALID_PAT)
    assert is_valid_pat_format("github_pat_" + "B1_" * 10)
    assert not is_valid_pat_format("ghp_short")
    assert not is_valid_pat_format("gho_" + "a" * 36)


def test_branch_name_charset():
    assert is_valid_branch_name("main")
    assert is_valid_branch_name("feature/login-v2.1_fix")
    assert not is_valid_branch_name("bad branch")
    assert not is_valid_branch_name("feat;rm -rf")
    assert not is_valid_branch_name("")


def test_ssh_user_pattern():
    assert is_valid_ssh_user("ubuntu")
    assert is_valid_ssh_user("_deploy-1")
    assert not is_valid_ssh_user("Ubuntu")
    assert not is_valid_ssh_user("1user")
    assert not is_valid_ssh_user("")


def test_ipv4_requires_four_octets_in_range():
    assert is_valid_ipv4("10.0.0.1")
    assert is_valid_ipv4("255.255.255.255")
    assert not is_valid_ipv4("256.1.1.1")
    assert not is_valid_ipv4("10.0.0")
    assert not is_valid_ipv4("example.com")


def test_parse_port_bounds():
    assert parse_port("1") == 1
    assert parse_port("65535") == 65535
    assert parse_port(" 8080 ") == 8080
    assert parse_port("0") is None
    assert parse_port("65536") is None
    assert parse_port("-1") is None
    assert parse_port("80a") is None
    assert parse_port("") is None


def test_mask_token_keeps_only_edges():
    masked = mask_token(VALID_PAT)
    assert masked == "ghp_" + "*" * 16 + "aaaa"
    assert VALID_PAT not in masked
    assert mask_token("") == ""


def test_repo_name_from_url_variants():
    assert repo_name_from_url("https://github.com/user/my-app.git") == "my-app"
    assert repo_name_from_url("https://github.com/user/my-app") == "my-app"
    assert repo_name_from_url("git@github.com:user/my-app.git") == "my-app"


def test_github_repo_path_only_for_https_github():
    assert github_repo_path("https://github.com/user/repo.git") == "user/repo"
    assert github_repo_path("https://github.com/user/repo") == "user/repo"
    assert github_repo_path("git@github.com:user/repo.git") is None
    assert github_repo_path("https://gitlab.com/user/repo.git") is None


def test_build_clone_url_embeds_token_for_https_only():
    assert build_clone_url("https://github.com/user/repo.git", VALID_PAT) == f"https://{VALID_PAT}@github.com/user/repo.git"
    assert build_clone_url("git@github.com:user/repo.git", VALID_PAT) == "git@github.com:user/repo.git"
    assert build_clone_url("https://github.com/user/repo.git", "") == "https://github.com/user/repo.git"


def test_deploy_params_valid_record():
    params = _params()
    assert params.repo_name == "repo"
    assert params.masked_token.startswith("ghp_")
    summary = "\n".join(params.summary_lines())
    assert VALID_PAT not in summary
    assert "App Port:      8080" in summary


def test_deploy_params_ssh_summary_shows_na_token():
    params = _params(git_url="git@github.com:user/repo.git", token="")
    assert "PAT (masked):  N/A (SSH)" in params.summary_lines()


@pytest.mark.parametrize(
    "field,value",
    [
        ("git_url", "github.com/user/repo"),
        ("branch", "bad branch"),
        ("ssh_user", "Root"),
        ("ssh_host", "300.1.1.1"),
        ("app_port", 0),
        ("app_port", 70000),
        ("token", "not-a-token"),
    ],
)
def test_deploy_params_rejects_invalid_fields(field, value):
    with pytest.raises(ParamValidationError) as exc:
        _params(**{field: value})
    assert "Invalid" in str(exc.value)


def test_deploy_params_error_never_contains_raw_token():
    bad_token = "ghp_bad-token-with-dashes-0123456789"
    with pytest.raises(ParamValidationError) as exc:
        _params(token=bad_token)
    assert bad_token not in str(exc.value)


@pytest.mark.parametrize(
    "url",
    [
        "https://github.com/user/.git",
        "https://github.com/user/.",
        "https://github.com/user/..",
        "https://github.com/user/...git",
        "git@github.com:user/..",
        "git@github.com:user/.git",
    ],
)
def test_repo_name_resolving_to_home_dir_is_rejected(url):
    assert not is_valid_git_url(url)
    with pytest.raises(ParamValidationError) as exc:
        _params(git_url=url, token="")
    assert "must not be empty" in str(exc.value)


def test_dotted_repo_names_are_still_allowed():
    assert repo_name_from_url("https://github.com/user/.dotfiles.git") == ".dotfiles"
    assert is_valid_git_url("https://github.com/user/.dotfiles.git")
    assert is_valid_git_url("git@github.com:user/my.app")
