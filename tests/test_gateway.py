from __future__ import annotations

import logging
from pathlib import Path

import pytest
from conftest import make_repo, make_worktree

from git_tools.adapters import LocalFileSystem
from git_tools.exceptions import GitCommandError
from git_tools.gateway import GitCommandGateway, resolve_working_directory


class ScriptedRunner:
    """Answer every command with the same exit code and output."""

    def __init__(self, exit_code: int = 0, stdout: list[str] = (), stderr: list[str] = ()):
        self.exit_code = exit_code
        self.stdout = list(stdout)
        self.stderr = list(stderr)
        self.calls: list[tuple[str, list[str], Path]] = []

    def run(self, program, args, cwd, on_stdout=None, on_stderr=None):
        self.calls.append((program, list(args), cwd))
        for line in self.stdout:
            on_stdout(line)
        for line in self.stderr:
            on_stderr(line)
        return self.exit_code


class TestResolveWorkingDirectory:
    def test_marker_directory_uses_repository_path(self, tmp_path: Path):
        repo = make_repo(tmp_path / "repo")
        assert resolve_working_directory(LocalFileSystem(), repo) == repo

    def test_missing_marker_uses_repository_path(self, tmp_path: Path):
        (tmp_path / "plain").mkdir()
        assert resolve_working_directory(LocalFileSystem(), tmp_path / "plain") == tmp_path / "plain"

    def test_relative_gitdir_is_resolved_against_repository(self, tmp_path: Path):
        target = tmp_path / "main" / ".git" / "worktrees" / "wt"
        target.mkdir(parents=True)
        worktree = make_worktree(tmp_path / "wt", "gitdir: ../main/.git/worktrees/wt\n")

        assert resolve_working_directory(LocalFileSystem(), worktree) == target.resolve()

    def test_absolute_gitdir_is_used_as_is(self, tmp_path: Path):
        target = tmp_path / "elsewhere"
        target.mkdir()
        worktree = make_worktree(tmp_path / "wt", f"gitdir: {target}")

        assert resolve_working_directory(LocalFileSystem(), worktree) == target.resolve()

    def test_prefix_is_case_insensitive(self, tmp_path: Path):
        target = tmp_path / "elsewhere"
        target.mkdir()
        worktree = make_worktree(tmp_path / "wt", f"GITDIR: {target}")

        assert resolve_working_directory(LocalFileSystem(), worktree) == target.resolve()

    def test_unprefixed_content_falls_back(self, tmp_path: Path):
        worktree = make_worktree(tmp_path / "wt", "this is not an indirection")

        assert resolve_working_directory(LocalFileSystem(), worktree) == worktree

    def test_indirection_is_reread_on_every_call(self, tmp_path: Path):
        first, second = tmp_path / "first", tmp_path / "second"
        first.mkdir()
        second.mkdir()
        worktree = make_worktree(tmp_path / "wt", f"gitdir: {first}")
        runner = ScriptedRunner()
        gateway = GitCommandGateway(runner, LocalFileSystem())

        gateway.run(worktree, "status")
        (worktree / ".git").write_text(f"gitdir: {second}")
        gateway.run(worktree, "status")

        assert [cwd for _, _, cwd in runner.calls] == [first.resolve(), second.resolve()]


class TestGitCommandGateway:
    def test_run_returns_trimmed_stdout(self, tmp_path: Path):
        repo = make_repo(tmp_path / "repo")
        runner = ScriptedRunner(stdout=["  main", "feature", ""])

        output = GitCommandGateway(runner, LocalFileSystem()).run(repo, "branch")

        assert output == "main\nfeature"
        assert runner.calls == [("git", ["branch"], repo)]

    def test_nonzero_exit_with_stderr_raises(self, tmp_path: Path):
        repo = make_repo(tmp_path / "repo")
        runner = ScriptedRunner(exit_code=128, stderr=["fatal: bad revision 'nope'  "])

        with pytest.raises(GitCommandError) as excinfo:
            GitCommandGateway(runner, LocalFileSystem()).run(repo, "log", "nope")

        assert str(excinfo.value) == "fatal: bad revision 'nope'"
        assert excinfo.value.returncode == 128
        assert excinfo.value.command == ["git", "log", "nope"]

    def test_nonzero_exit_without_stderr_is_success(self, tmp_path: Path):
        repo = make_repo(tmp_path / "repo")
        runner = ScriptedRunner(exit_code=1, stdout=["partial"])

        assert GitCommandGateway(runner, LocalFileSystem()).run(repo, "config", "--get", "x") == "partial"

    def test_zero_exit_with_stderr_is_success(self, tmp_path: Path):
        repo = make_repo(tmp_path / "repo")
        runner = ScriptedRunner(stdout=["ok"], stderr=["warning: something"])

        assert GitCommandGateway(runner, LocalFileSystem()).run(repo, "fetch") == "ok"

    def test_execute_reports_exit_code(self, tmp_path: Path):
        repo = make_repo(tmp_path / "repo")
        runner = ScriptedRunner(exit_code=1)

        output = GitCommandGateway(runner, LocalFileSystem()).execute(
            repo, "merge-base", "--is-ancestor", "a", "b"
        )

        assert not output.ok
        assert output.exit_code == 1

    def test_commands_logged_at_info_when_requested(self, tmp_path: Path, caplog):
        repo = make_repo(tmp_path / "repo")
        gateway = GitCommandGateway(ScriptedRunner(), LocalFileSystem(), log_all_git_commands=True)

        with caplog.at_level(logging.INFO, logger="git_tools.gateway"):
            gateway.run(repo, "status", "--porcelain")

        assert "git status --porcelain" in caplog.text

    def test_commands_logged_at_debug_by_default(self, tmp_path: Path, caplog):
        repo = make_repo(tmp_path / "repo")
        gateway = GitCommandGateway(ScriptedRunner(), LocalFileSystem())

        with caplog.at_level(logging.INFO, logger="git_tools.gateway"):
            gateway.run(repo, "status", "--porcelain")

        assert "git status" not in caplog.text
