"""Run git commands against a repository path."""

from __future__ import annotations

import logging
from pathlib import Path

from .adapters import CommandOutput, FileSystem, LocalFileSystem, ProcessRunner, SubprocessRunner
from .exceptions import GitCommandError
from .scanner import GIT_DIR

logger = logging.getLogger(__name__)

GIT_EXECUTABLE = "git"
GITDIR_PREFIX = "gitdir:"


def resolve_working_directory(fs: FileSystem, repo_path: Path) -> Path:
    """Return the directory git should actually run in for ``repo_path``.

    - ``.git`` is a directory, or missing: ``repo_path`` itself.
    - ``.git`` is a file starting with ``gitdir:``: the path after the prefix,
      resolved against ``repo_path`` (an absolute path is used as-is).
    - ``.git`` is a file with anything else in it: ``repo_path``.

    The file is read on every call; it can be rewritten while a fleet run is in progress.
    """
    marker = repo_path / GIT_DIR
    if fs.is_dir(marker) or not fs.is_file(marker):
        return repo_path

    content = fs.read_text(marker).strip()
    if not content.lower().startswith(GITDIR_PREFIX):
        return repo_path

    target = content[len(GITDIR_PREFIX) :].strip()
    return (repo_path / target).resolve()


class GitCommandGateway:
    """Execute git in the real working directory of a repository."""

    def __init__(
        self,
        runner: ProcessRunner | None = None,
        fs: FileSystem | None = None,
        log_all_git_commands: bool = False,
    ):
        self.runner = runner or SubprocessRunner()
        self.fs = fs or LocalFileSystem()
        self.log_all_git_commands = log_all_git_commands

    def working_directory(self, repo_path: Path) -> Path:
        return resolve_working_directory(self.fs, Path(repo_path))

    def execute(self, repo_path: Path, *args: str) -> CommandOutput:
        """Run ``git <args>`` and capture everything; never raises on a non-zero exit."""
        cwd = self.working_directory(repo_path)
        level = logging.INFO if self.log_all_git_commands else logging.DEBUG
        logger.log(level, "%s> git %s", cwd, " ".join(args))

        stdout: list[str] = []
        stderr: list[str] = []
        exit_code = self.runner.run(
            GIT_EXECUTABLE,
            list(args),
            cwd,
            on_stdout=stdout.append,
            on_stderr=stderr.append,
        )
        return CommandOutput(
            exit_code=exit_code,
            stdout="\n".join(stdout).strip(),
            stderr="\n".join(stderr).strip(),
        )

    def run(self, repo_path: Path, *args: str) -> str:
        """Run ``git <args>`` and return trimmed stdout.

        Fails only when git exits non-zero *and* wrote to stderr; a silent
        non-zero exit is returned as success with whatever stdout there was.
        """
        output = self.execute(repo_path, *args)
        if output.exit_code != 0 and output.stderr:
            raise GitCommandError([GIT_EXECUTABLE, *args], output.exit_code, output.stderr)
        return output.stdout
