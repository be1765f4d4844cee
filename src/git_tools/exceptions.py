"""Exception hierarchy for git-tools."""

from __future__ import annotations

from collections.abc import Sequence


class GitToolsError(Exception):
    """Base error for all git-tools exceptions."""


class GitCommandError(GitToolsError):
    """Raised when a git invocation exits non-zero and reports on stderr.

    The message is the trimmed stderr text, so callers can surface it as-is.
    """

    def __init__(self, command: Sequence[str], returncode: int, stderr: str | None = None):
        self.command = list(command)
        self.returncode = returncode
        self.stderr = (stderr or "").strip()
        super().__init__(self.stderr or f"Git command failed: {' '.join(self.command)}")


class ConfigurationError(GitToolsError):
    """Raised when options or a roots file cannot be used."""
