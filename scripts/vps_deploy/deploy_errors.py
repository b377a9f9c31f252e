"""Errors raised by deploy stages; `main` maps them onto process exit codes."""

from __future__ import annotations


EXIT_OK = 0
EXIT_GENERIC = 1
EXIT_TOKEN_VERIFICATION = 2
EXIT_INVALID_BRANCH = 3
EXIT_MISSING_MANIFEST = 5
EXIT_SSH_FAILURE = 6


class DeployError(Exception):
    exit_code = EXIT_GENERIC

    def __init__(self, message: str, *, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class TokenVerificationError(DeployError):
    exit_code = EXIT_TOKEN_VERIFICATION


class InvalidBranchError(DeployError):
    exit_code = EXIT_INVALID_BRANCH


class MissingManifestError(DeployError):
    exit_code = EXIT_MISSING_MANIFEST


class SshConnectivityError(DeployError):
    exit_code = EXIT_SSH_FAILURE


class ParamValidationError(ValueError):
    def __init__(self, *, field: str, value: str, hint: str):
        super().__init__(f"Invalid {field}: {value!r}. {hint}")
        self.field = field
        self.value = value
        self.hint = hint
