"""Exception hierarchy for git-flotilla."""

from __future__ import annotations


class FlotillaError(Exception):
    """Base class for all git-flotilla errors."""


class ConfigurationError(FlotillaError):
    """Invalid call-level input (directory, pattern, strategy, refspec, ...).

    Raised before any repository is touched; aborts the whole bulk call.
    """


class RefspecError(ConfigurationError):
    """A push refspec failed validation."""

    def __init__(self, refspec: str, reason: str):
        self.refspec = refspec
        self.reason = reason
        super().__init__(f"invalid refspec {refspec!r}: {reason}")


class RepositoryError(FlotillaError):
    """A path could not be opened as a Git repository."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"{path}: {reason}")


class GitCommandError(FlotillaError):
    """A git command exited with a non-zero status."""

    def __init__(self, command: str, exit_code: int, stderr: str = ""):
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr.strip()
        message = f"git command failed: {command} (exit code {exit_code})"
        if self.stderr:
            message += f"\n{self.stderr}"
        super().__init__(message)


class AuthenticationRequired(GitCommandError):
    """A remote operation failed because credentials are missing or rejected."""

    def __str__(self) -> str:
        return "authentication required (credential helper not configured)"


class OperationCancelled(FlotillaError):
    """The batch was cancelled (or its deadline passed) before it finished."""
