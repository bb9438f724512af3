"""Git command executor.

Every git invocation in the package goes through :class:`GitExecutor`. It
only runs commands and captures their text output; callers parse it.
"""

from __future__ import annotations

import os
import subprocess
import time
from collections.abc import Mapping
from dataclasses import dataclass, field

from .cancel import CancelToken
from .config import DEFAULT_GIT_BINARY
from .errors import GitCommandError, OperationCancelled

# Fail fast instead of blocking the batch on a credential prompt. LC_ALL=C
# keeps stderr in English so the auth patterns below can match.
NON_INTERACTIVE_ENV = {
    "GIT_TERMINAL_PROMPT": "0",
    "LC_ALL": "C",
}

AUTH_ERROR_PATTERNS = (
    "could not read Username",
    "could not read Password",
    "Authentication failed",
    "terminal prompts disabled",
    "Invalid username or password",
    "HTTP Basic: Access denied",
    "Permission denied (publickey",
)


def is_authentication_error(stderr: str) -> bool:
    """Check whether git's error output points at missing credentials."""
    return any(pattern in stderr for pattern in AUTH_ERROR_PATTERNS)


@dataclass
class GitCommandResult:
    """Captured result of one git invocation."""

    args: tuple[str, ...]
    stdout: str = ""
    stderr: str = ""
    exit_code: int = 0
    duration: float = 0.0

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    @property
    def command(self) -> str:
        return " ".join(("git", *self.args))

    def to_error(self) -> GitCommandError:
        return GitCommandError(self.command, self.exit_code, self.stderr or self.stdout)


@dataclass
class GitExecutor:
    """Run git commands in a working directory."""

    git_binary: str = DEFAULT_GIT_BINARY
    env: dict[str, str] = field(default_factory=dict)
    poll_interval: float = 0.05

    def run(
        self,
        cwd: str | os.PathLike[str],
        *args: str,
        cancel: CancelToken | None = None,
        env: Mapping[str, str] | None = None,
    ) -> GitCommandResult:
        """Run ``git <args>`` in ``cwd``.

        A non-zero exit is reported in the result, not raised. When ``cancel``
        fires while the command runs, the process is killed and
        OperationCancelled is raised.
        """
        if cancel is not None:
            cancel.raise_if_cancelled()

        full_env = None
        if self.env or env:
            full_env = {**os.environ, **self.env, **(env or {})}

        start = time.monotonic()
        try:
            proc = subprocess.Popen(
                [self.git_binary, *args],
                cwd=cwd,
                env=full_env,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
        except OSError as e:
            return GitCommandResult(
                args=args,
                stderr=str(e),
                exit_code=-1,
                duration=time.monotonic() - start,
            )

        if cancel is None:
            stdout, stderr = proc.communicate()
        else:
            while True:
                try:
                    stdout, stderr = proc.communicate(timeout=self.poll_interval)
                    break
                except subprocess.TimeoutExpired:
                    if cancel.cancelled:
                        proc.kill()
                        proc.communicate()
                        raise OperationCancelled(f"cancelled: git {' '.join(args)}") from None

        return GitCommandResult(
            args=args,
            stdout=stdout,
            stderr=stderr,
            exit_code=proc.returncode,
            duration=time.monotonic() - start,
        )

    def run_non_interactive(
        self,
        cwd: str | os.PathLike[str],
        *args: str,
        cancel: CancelToken | None = None,
    ) -> GitCommandResult:
        """Run a command that may contact a remote, with credential prompts disabled."""
        return self.run(cwd, *args, cancel=cancel, env=NON_INTERACTIVE_ENV)

    def output(
        self,
        cwd: str | os.PathLike[str],
        *args: str,
        cancel: CancelToken | None = None,
    ) -> str:
        """Run a command and return its stripped stdout, raising on failure."""
        result = self.run(cwd, *args, cancel=cancel)
        if not result.ok:
            raise result.to_error()
        return result.stdout.strip()

    def lines(
        self,
        cwd: str | os.PathLike[str],
        *args: str,
        cancel: CancelToken | None = None,
    ) -> list[str]:
        """Run a command and return its non-empty stdout lines."""
        return [line.strip() for line in self.output(cwd, *args, cancel=cancel).splitlines() if line.strip()]
