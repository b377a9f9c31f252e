"""Helper functions for talking to the GitHub REST API."""

from __future__ import annotations

from urllib.parse import quote

import requests


GITHUB_API_URL = "https://api.github.com"
GITHUB_API_TIMEOUT = 10


def _github_auth_headers(*, token: str) -> dict[str, str]:
    if token.strip():
        return {"Authorization": f"token {token.strip()}"}
    return {}


def _get_status(url: str, *, token: str) -> int | None:
    try:
        response = requests.get(url, headers=_github_auth_headers(token=token), timeout=GITHUB_API_TIMEOUT)
    except requests.RequestException:
        return None
    return int(response.status_code)


def verify_token(*, token: str) -> int | None:
    """Return the HTTP status of `GET /user`, or None if the request failed."""
    return _get_status(f"{GITHUB_API_URL}/user", token=token)


def branch_status(*, repo_path: str, branch: str, token: str) -> int | None:
    url = f"{GITHUB_API_URL}/repos/{repo_path}/branches/{quote(branch, safe='')}"
    return _get_status(url, token=token)


def branch_exists(*, repo_path: str, branch: str, token: str) -> bool:
    return branch_status(repo_path=repo_path, branch=branch, token=token) == 200
