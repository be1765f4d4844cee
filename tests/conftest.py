from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from git_tools.adapters import LocalFileSystem
from git_tools.branches import BranchStateEngine
from git_tools.gateway import GitCommandGateway


@dataclass
class FakeBranch:
    name: str
    # Configured upstream, e.g. "origin/feature"
    upstream: str | None = None
    # Whether refs/remotes/origin/<name> exists locally
    remote_exists: bool = True
    ahead: int = 0
    behind: int = 0
    merged: bool = False
    gone: bool = False
    # None makes `git log` fail for this branch
    date: str | None = "2024-01-01T12:00:00+00:00"
    # Answer of `merge-base --is-ancestor`; defaults to ``merged``
    ancestor: bool | None = None

    @property
    def is_ancestor(self) -> bool:
        return self.merged if self.ancestor is None else self.ancestor


@dataclass
class FakeRepo:
    branches: list[FakeBranch] = field(default_factory=list)
    current: str | None = None
    remote_url: str | None = "https://example.com/repo.git"
    dirty: bool = False
    tags: list[str] = field(default_factory=list)
    commits_behind: int = 0
    # Command prefix -> stderr; a matching command exits 1 with that stderr
    failures: dict[str, str] = field(default_factory=dict)
    # Command prefix -> exception raised by the runner itself
    raises: dict[str, Exception] = field(default_factory=dict)
    stash_depth: int = 0

    def branch(self, name: str) -> FakeBranch | None:
        for b in self.branches:
            if b.name == name:
                return b
        return None


class FakeGit:
    """Scripted ``ProcessRunner`` answering git invocations from ``FakeRepo`` state.

    Every invocation is recorded in ``calls`` as ``(cwd, args)``.
    """

    def __init__(self):
        self.repos: dict[Path, FakeRepo] = {}
        self.calls: list[tuple[Path, list[str]]] = []

    def add(self, path: Path, repo: FakeRepo | None = None) -> FakeRepo:
        repo = repo or FakeRepo()
        self.repos[Path(path).resolve()] = repo
        return repo

    def commands(self, path: Path | None = None) -> list[str]:
        """Recorded commands as strings, optionally only those run in ``path``."""
        wanted = Path(path).resolve() if path is not None else None
        return [
            " ".join(args)
            for cwd, args in self.calls
            if wanted is None or Path(cwd).resolve() == wanted
        ]

    def run(
        self,
        program: str,
        args: Sequence[str],
        cwd: Path,
        on_stdout=None,
        on_stderr=None,
    ) -> int:
        args = list(args)
        self.calls.append((Path(cwd), args))
        command = " ".join(args)

        repo = self.repos.get(Path(cwd).resolve())
        if repo is None:
            code, out, err = 128, [], ["fatal: not a git repository (or any of the parent directories): .git"]
        else:
            for prefix, exc in repo.raises.items():
                if command.startswith(prefix):
                    raise exc
            for prefix, stderr in repo.failures.items():
                if command.startswith(prefix):
                    if on_stderr:
                        on_stderr(stderr)
                    return 1
            code, out, err = self._answer(repo, args)

        for line in out:
            if on_stdout:
                on_stdout(line)
        for line in err:
            if on_stderr:
                on_stderr(line)
        return code

    def _answer(self, repo: FakeRepo, args: list[str]) -> tuple[int, list[str], list[str]]:
        match args:
            case ["config", "--get", "remote.origin.url"]:
                return (0, [repo.remote_url], []) if repo.remote_url else (1, [], [])
            case ["branch", "--format=%(refname:short)"]:
                return 0, [b.name for b in repo.branches], []
            case ["branch", "--merged"]:
                lines = [
                    f"{'*' if b.name == repo.current else ' '} {b.name}"
                    for b in repo.branches
                    if b.merged or b.name == repo.current
                ]
                return 0, lines, []
            case ["branch", "-vv"]:
                lines = []
                for b in repo.branches:
                    marker = "*" if b.name == repo.current else " "
                    tracking = ""
                    if b.upstream:
                        tracking = f"[{b.upstream}: gone] " if b.gone else f"[{b.upstream}] "
                    lines.append(f"{marker} {b.name} 1a2b3c4 {tracking}commit message")
                return 0, lines, []
            case ["rev-parse", "--abbrev-ref", "HEAD"]:
                return 0, [repo.current or "HEAD"], []
            case ["for-each-ref", "--format=%(upstream:short)", ref]:
                b = repo.branch(ref.removeprefix("refs/heads/"))
                return 0, [b.upstream] if b and b.upstream else [], []
            case ["show-ref", ref]:
                b = repo.branch(ref.removeprefix("origin/"))
                if b and b.upstream and b.remote_exists:
                    return 0, [f"9f8e7d6 refs/remotes/origin/{b.name}"], []
                return 1, [], []
            case ["rev-list", "--left-right", "--count", revisions]:
                b = repo.branch(revisions.split("...", 1)[0])
                return 0, [f"{b.ahead}\t{b.behind}" if b else "0\t0"], []
            case ["rev-list", "--count", _]:
                return 0, [str(repo.commits_behind)], []
            case ["log", "-1", "--format=%cI", name, "--"]:
                b = repo.branch(name)
                if b is None or b.date is None:
                    return 128, [], [f"fatal: bad revision '{name}'"]
                return 0, [b.date], []
            case ["merge-base", "--is-ancestor", name, _]:
                b = repo.branch(name)
                return (0 if b and b.is_ancestor else 1), [], []
            case ["status", "--porcelain"]:
                return 0, [" M README.md"] if repo.dirty else [], []
            case ["stash", "pop"]:
                repo.stash_depth -= 1
                return 0, [], []
            case ["stash", *_]:
                repo.stash_depth += 1
                return 0, ["Saved working directory and index state WIP"], []
            case ["checkout", name]:
                repo.current = name
                return 0, [], [f"Switched to branch '{name}'"]
            case ["branch", "-d" | "-D" as flag, name]:
                b = repo.branch(name)
                if b is None:
                    return 1, [], [f"error: branch '{name}' not found"]
                if flag == "-d" and not b.is_ancestor:
                    return 1, [], [f"error: the branch '{name}' is not fully merged"]
                repo.branches.remove(b)
                return 0, [f"Deleted branch {name} (was 1a2b3c4)."], []
            case ["tag", "-l"]:
                return 0, list(repo.tags), []
            case ["tag", "-l", pattern]:
                return 0, [t for t in repo.tags if t == pattern], []
            case ["tag", "-d", tag]:
                if tag not in repo.tags:
                    return 1, [], [f"error: tag '{tag}' not found."]
                repo.tags.remove(tag)
                return 0, [f"Deleted tag '{tag}' (was 1a2b3c4)"], []
            case _:
                return 0, [], []


def make_repo(path: Path) -> Path:
    """Create a directory that looks like a repository root."""
    (path / ".git").mkdir(parents=True)
    return path


def make_worktree(path: Path, content: str) -> Path:
    """Create a checkout whose ``.git`` is an indirection file."""
    path.mkdir(parents=True, exist_ok=True)
    (path / ".git").write_text(content)
    return path


@pytest.fixture
def fake_git() -> FakeGit:
    return FakeGit()


@pytest.fixture
def fs() -> LocalFileSystem:
    return LocalFileSystem()


@pytest.fixture
def gateway(fake_git: FakeGit, fs: LocalFileSystem) -> GitCommandGateway:
    return GitCommandGateway(fake_git, fs)


@pytest.fixture
def engine(gateway: GitCommandGateway) -> BranchStateEngine:
    return BranchStateEngine(gateway)
