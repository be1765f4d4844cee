"""Branch state engine: local branches, tracking, merge and age metadata."""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Iterable
from datetime import datetime
from pathlib import Path

from .config import DEFAULT_PROTECTED_BRANCHES, normalize_branch_names
from .gateway import GitCommandGateway
from .models import (
    UNKNOWN_COMMIT_DATE,
    BranchStatus,
    DeleteSafety,
    GitRepositoryStatus,
    Repository,
    is_detached_branch_name,
)
from .prune import has_prune_criteria, select_prunable
from .scanner import GIT_DIR, is_git_repository

logger = logging.getLogger(__name__)

_CONFIG_SECTION = re.compile(r'^\s*\[(?P<section>remote|submodule)\s+"(?P<name>[^"]+)"\]')
_ANY_SECTION = re.compile(r"^\s*\[")
_CONFIG_URL = re.compile(r"^\s*url\s*=\s*(.+)$")

GONE_MARKER = ": gone]"


def get_repository_name(path: Path) -> str:
    return Path(path).name or str(path)


def get_hierarchical_name(repo_path: Path, root: Path) -> str:
    """Root-relative, ``/``-joined name; the repository name when it *is* the root."""
    relative = os.path.relpath(repo_path, root).replace(os.sep, "/")
    if len(relative) <= 1:
        return get_repository_name(repo_path)
    return relative


def read_remote_url_from_config(lines: Iterable[str], remote: str = "origin") -> str | None:
    """Find ``url = ...`` inside ``[remote "<remote>"]`` of a git config file."""
    current: str | None = None
    for line in lines:
        section = _CONFIG_SECTION.match(line)
        if section:
            current = section.group("name")
            continue
        if _ANY_SECTION.match(line):
            current = None
            continue
        if current != remote:
            continue
        url = _CONFIG_URL.match(line)
        if url:
            return url.group(1).strip()
    return None


def parse_branch_listing(output: str) -> list[str]:
    """Branch names from ``git branch`` style output (markers and quotes removed)."""
    names = []
    for line in output.splitlines():
        name = line.replace("'", "").strip().lstrip("*+").strip()
        if name:
            names.append(name)
    return names


def parse_gone_branches(output: str) -> list[str]:
    """Branches whose upstream is reported ``gone`` by ``git branch -vv``."""
    gone = []
    for line in output.splitlines():
        if GONE_MARKER not in line.lower():
            continue
        tokens = line.split()
        if not tokens:
            continue
        if tokens[0] in ("*", "+"):
            if len(tokens) > 1:
                gone.append(tokens[1])
        else:
            gone.append(tokens[0])
    return gone


def parse_ahead_behind(output: str) -> tuple[int, int]:
    parts = output.split()
    if not parts:
        return 0, 0
    left = parts[0]
    right = parts[1] if len(parts) > 1 else "0"
    try:
        return int(left), int(right)
    except ValueError:
        return 0, 0


class BranchStateEngine:
    """Compute the state of a repository's local branches through the command gateway.

    Per-branch queries that fail degrade the affected field (date, tracking,
    counts) and are logged; they never stop the remaining branches.
    """

    def __init__(
        self,
        gateway: GitCommandGateway,
        protected_branches: Iterable[str] = DEFAULT_PROTECTED_BRANCHES,
    ):
        self.gateway = gateway
        self.fs = gateway.fs
        self.protected_branches = normalize_branch_names(protected_branches)

    def _exists(self, repo_path: Path | None) -> bool:
        return bool(repo_path) and self.fs.is_dir(Path(repo_path))

    def is_protected(self, branch: str) -> bool:
        return branch.strip().lower() in self.protected_branches

    # -------------------------------------------------------------------------
    # Repository-level queries
    # -------------------------------------------------------------------------

    def get_repository(self, repo_path: Path) -> Repository:
        """Describe a repository root, recovering the remote URL from ``.git/config`` if needed."""
        repo_path = Path(repo_path)
        name = get_repository_name(repo_path)

        if not (self.fs.is_dir(repo_path) and is_git_repository(self.fs, repo_path)):
            return Repository(name=name, path=repo_path, is_valid=False, has_errors=True)

        try:
            remote_url = self.gateway.run(repo_path, "config", "--get", "remote.origin.url")
        except Exception as e:
            logger.warning("Could not read remote URL of %s (%s); trying .git/config", repo_path, e)
            remote_url = self._remote_url_from_config(repo_path)
            return Repository(
                name=name,
                path=repo_path,
                remote_url=remote_url,
                is_valid=bool(remote_url),
                has_errors=True,
            )

        return Repository(name=name, path=repo_path, remote_url=remote_url or None, is_valid=True)

    def _remote_url_from_config(self, repo_path: Path) -> str | None:
        config_path = repo_path / GIT_DIR / "config"
        if not self.fs.is_file(config_path):
            return None
        try:
            return read_remote_url_from_config(self.fs.read_text(config_path).splitlines())
        except Exception as e:
            logger.warning("Could not parse %s (%s)", config_path, e)
            return None

    def has_uncommitted_changes(self, repo_path: Path) -> bool:
        if not self._exists(repo_path):
            return False
        try:
            return bool(self.gateway.run(repo_path, "status", "--porcelain"))
        except Exception as e:
            logger.warning("Error checking uncommitted changes in %s: %s", repo_path, e)
            return False

    def fetch(self, repo_path: Path, prune: bool = False) -> bool:
        if not self._exists(repo_path):
            return False
        args = ["fetch", "--all", "--tags"]
        if prune:
            args.append("--prune")
        try:
            self.gateway.run(repo_path, *args)
            return True
        except Exception as e:
            logger.warning("Error fetching updates in %s: %s", repo_path, e)
            return False

    def get_repository_status(
        self, repo_path: Path, root_dir: Path, fetch: bool = True
    ) -> GitRepositoryStatus:
        """Aggregate status of one repository; failures end up in ``error_message``."""
        repo_path = Path(repo_path)
        name = get_repository_name(repo_path)
        hierarchical_name = get_hierarchical_name(repo_path, root_dir)

        if not self._exists(repo_path):
            return GitRepositoryStatus(
                name, hierarchical_name, repo_path, error_message="Repository does not exist."
            )

        try:
            remote_url = self.gateway.run(repo_path, "config", "--get", "remote.origin.url")
            branches = self.get_local_branches(repo_path)
            has_changes = self.has_uncommitted_changes(repo_path)

            if not branches:
                return GitRepositoryStatus(name, hierarchical_name, repo_path, remote_url or None)

            if fetch:
                self.fetch(repo_path, prune=True)

            return GitRepositoryStatus(
                name=name,
                hierarchical_name=hierarchical_name,
                repo_path=repo_path,
                remote_url=remote_url or None,
                has_uncommitted_changes=has_changes,
                local_branches=self.get_branch_statuses(repo_path),
            )
        except Exception as e:
            return GitRepositoryStatus(name, hierarchical_name, repo_path, error_message=str(e))

    def count_commits_behind(self, repo_path: Path, branch: str = "main", fetch: bool = True) -> int:
        """Commits on ``origin/<branch>`` missing from HEAD. Raises on git failure."""
        if fetch:
            self.gateway.run(repo_path, "fetch", "origin")
        output = self.gateway.run(repo_path, "rev-list", "--count", f"HEAD..origin/{branch}")
        try:
            return int(output.strip() or 0)
        except ValueError:
            return 0

    # -------------------------------------------------------------------------
    # Branch queries
    # -------------------------------------------------------------------------

    def get_local_branches(self, repo_path: Path) -> list[str]:
        if not self._exists(repo_path):
            return []
        try:
            output = self.gateway.run(repo_path, "branch", "--format=%(refname:short)")
            return parse_branch_listing(output)
        except Exception as e:
            logger.warning("Error getting local branches in %s: %s", repo_path, e)
            return []

    def get_current_branch(self, repo_path: Path) -> str | None:
        if not self._exists(repo_path):
            return None
        try:
            current = self.gateway.run(repo_path, "rev-parse", "--abbrev-ref", "HEAD").strip()
            return current or None
        except Exception as e:
            logger.warning("Error retrieving current branch in %s: %s", repo_path, e)
            return None

    def get_merged_branches(self, repo_path: Path) -> list[str]:
        if not self._exists(repo_path):
            return []
        try:
            names = parse_branch_listing(self.gateway.run(repo_path, "branch", "--merged"))
            return [n for n in names if not is_detached_branch_name(n)]
        except Exception as e:
            logger.warning("Error getting merged branches in %s: %s", repo_path, e)
            return []

    def get_gone_branches(self, repo_path: Path) -> list[str]:
        if not self._exists(repo_path):
            return []
        try:
            return parse_gone_branches(self.gateway.run(repo_path, "branch", "-vv"))
        except Exception as e:
            logger.warning("Error getting gone branches in %s: %s", repo_path, e)
            return []

    def get_tracking(self, repo_path: Path, branch: str) -> tuple[bool, str | None]:
        """Return ``(is_tracked, upstream)``.

        A configured upstream only counts as tracked when ``origin/<branch>``
        still exists locally; a stale configuration keeps its upstream name but
        reports ``False``.
        """
        if not self._exists(repo_path):
            return False, None
        try:
            upstream = self.gateway.run(
                repo_path, "for-each-ref", "--format=%(upstream:short)", f"refs/heads/{branch}"
            ).strip()
            if not upstream:
                return False, None

            refs = self.gateway.run(repo_path, "show-ref", f"origin/{branch}")
            is_tracked = f"refs/remotes/origin/{branch}".lower() in refs.lower()
            return is_tracked, upstream
        except Exception as e:
            logger.warning("Error checking if branch %s is tracked in %s: %s", branch, repo_path, e)
            return False, None

    def get_remote_ahead_behind(
        self, repo_path: Path, branch: str, fetch: bool = True
    ) -> tuple[int, int]:
        """``(ahead, behind)`` of ``branch`` relative to ``origin/<branch>``."""
        if not self._exists(repo_path):
            return 0, 0
        try:
            if fetch:
                self.gateway.run(repo_path, "fetch")
            output = self.gateway.run(
                repo_path, "rev-list", "--left-right", "--count", f"{branch}...origin/{branch}"
            )
            return parse_ahead_behind(output)
        except Exception as e:
            logger.warning(
                "Error getting ahead/behind count of %s in %s: %s", branch, repo_path, e
            )
            return 0, 0

    def get_last_commit_date(self, repo_path: Path, branch: str) -> datetime:
        """Committer date of the branch tip, or ``UNKNOWN_COMMIT_DATE``."""
        if not self._exists(repo_path):
            return UNKNOWN_COMMIT_DATE
        try:
            output = self.gateway.run(repo_path, "log", "-1", "--format=%cI", branch, "--")
            return datetime.fromisoformat(output.strip())
        except Exception as e:
            logger.warning(
                "Error getting last commit date for branch %s in %s: %s", branch, repo_path, e
            )
            return UNKNOWN_COMMIT_DATE

    def probe_delete_safety(
        self,
        repo_path: Path,
        branch: str,
        upstream: str | None = None,
        is_current: bool = False,
    ) -> DeleteSafety:
        """Would ``git branch -d <branch>`` succeed? Checked without deleting anything.

        Mirrors git's own rule: the branch must be merged into its upstream when
        that resolves (pass it as ``upstream``), otherwise into HEAD.
        """
        if self.is_protected(branch):
            return DeleteSafety.unsafe("protected branch")
        if is_current:
            return DeleteSafety.unsafe("branch is checked out")

        target = upstream or "HEAD"
        try:
            output = self.gateway.execute(repo_path, "merge-base", "--is-ancestor", branch, target)
        except Exception as e:
            return DeleteSafety.unsafe(str(e))

        if output.ok:
            return DeleteSafety.ok()
        return DeleteSafety.unsafe(output.stderr or f"not fully merged into {target}")

    def is_fully_merged(self, repo_path: Path, branch: str) -> bool:
        """Same answer as ``is_fully_merged`` in the branch snapshot."""
        if not self._exists(repo_path):
            return False
        current = self.get_current_branch(repo_path)
        is_tracked, upstream = self.get_tracking(repo_path, branch)
        return self.probe_delete_safety(
            repo_path,
            branch,
            upstream=upstream if is_tracked else None,
            is_current=current is not None and current.lower() == branch.strip().lower(),
        ).safe

    def get_branch_statuses(self, repo_path: Path, exclude_detached: bool = True) -> list[BranchStatus]:
        """Snapshot every local branch of ``repo_path``."""
        if not self._exists(repo_path):
            return []

        repo_path = Path(repo_path)
        branches = self.get_local_branches(repo_path)
        merged = {b.lower() for b in self.get_merged_branches(repo_path)}
        gone = {b.lower() for b in self.get_gone_branches(repo_path)}
        current = self.get_current_branch(repo_path)

        statuses = []
        for branch in branches:
            if exclude_detached and is_detached_branch_name(branch):
                continue

            is_tracked, upstream = self.get_tracking(repo_path, branch)
            is_current = current is not None and current.lower() == branch.lower()
            safety = self.probe_delete_safety(
                repo_path,
                branch,
                upstream=upstream if is_tracked else None,
                is_current=is_current,
            )
            ahead, behind = (
                self.get_remote_ahead_behind(repo_path, branch, fetch=False)
                if is_tracked
                else (0, 0)
            )

            statuses.append(
                BranchStatus(
                    repository_path=repo_path,
                    name=branch,
                    upstream=upstream,
                    is_tracked=is_tracked,
                    is_current=is_current,
                    remote_ahead_count=ahead,
                    remote_behind_count=behind,
                    is_merged=branch.lower() in merged,
                    is_gone=branch.lower() in gone,
                    last_commit_date=self.get_last_commit_date(repo_path, branch),
                    is_fully_merged=safety.safe,
                )
            )
        return statuses

    def get_prunable_branches(
        self,
        repo_path: Path,
        merged: bool = False,
        gone: bool = False,
        include_not_fully_merged: bool = True,
        older_than_days: int | None = None,
    ) -> list[BranchStatus]:
        """Branches matching any requested criterion; nothing when none is requested."""
        if not has_prune_criteria(merged, gone, older_than_days):
            return []
        if not self._exists(repo_path):
            return []
        try:
            return select_prunable(
                self.get_branch_statuses(repo_path),
                merged=merged,
                gone=gone,
                include_not_fully_merged=include_not_fully_merged,
                older_than_days=older_than_days,
                protected_branches=self.protected_branches,
            )
        except Exception as e:
            logger.warning("Error getting prunable branches in %s: %s", repo_path, e)
            return []

    def delete_local_branch(self, repo_path: Path | None, branch: str, force: bool = False) -> None:
        """Delete a local branch; errors are raised, not swallowed."""
        if not repo_path:
            raise ValueError("repository path is required")
        self.gateway.run(Path(repo_path), "branch", "-D" if force else "-d", branch)

    # -------------------------------------------------------------------------
    # Working tree operations
    # -------------------------------------------------------------------------

    def stash(self, repo_path: Path, include_untracked: bool = False) -> bool:
        if not self._exists(repo_path):
            return False
        args = ["stash"]
        if include_untracked:
            args.append("--include-untracked")
        try:
            self.gateway.run(repo_path, *args)
            return True
        except Exception as e:
            logger.warning("Error stashing changes in %s: %s", repo_path, e)
            return False

    def pop(self, repo_path: Path) -> bool:
        if not self._exists(repo_path):
            return False
        try:
            self.gateway.run(repo_path, "stash", "pop")
            return True
        except Exception as e:
            logger.warning("Error popping stash in %s: %s", repo_path, e)
            return False

    def checkout(self, repo_path: Path, branch: str) -> bool:
        if not self._exists(repo_path) or not branch:
            return False
        try:
            self.gateway.run(repo_path, "checkout", branch)
            return True
        except Exception as e:
            logger.warning("Error checking out %s in %s: %s", branch, repo_path, e)
            return False

    def push(
        self,
        repo_path: Path,
        branch: str | None = None,
        force: bool = False,
        tags: bool = True,
    ) -> bool:
        """Push ``branch`` (or the current branch) and, unless disabled, all tags."""
        if not self._exists(repo_path):
            return False
        args = ["push"]
        if force:
            args.append("--force")
        if branch:
            args.extend(["origin", branch])
        try:
            self.gateway.run(repo_path, *args)
            if tags:
                self.gateway.run(repo_path, "push", "--tags")
            return True
        except Exception as e:
            logger.warning("Error pushing changes in %s: %s", repo_path, e)
            return False

    def pull(self, repo_path: Path, branch: str, remote: str = "origin") -> None:
        """Pull ``remote/branch`` into the current branch. Raises on git failure."""
        self.gateway.run(repo_path, "pull", remote, branch)

    # -------------------------------------------------------------------------
    # Tags
    # -------------------------------------------------------------------------

    def get_all_tags(self, repo_path: Path) -> list[str]:
        """All tags of the repository. Raises on git failure."""
        output = self.gateway.run(repo_path, "tag", "-l")
        return [line.strip() for line in output.splitlines() if line.strip()]

    def delete_tag(self, repo_path: Path, tag: str) -> None:
        self.gateway.run(repo_path, "tag", "-d", tag)

    def delete_remote_tag(self, repo_path: Path, tag: str, remote: str = "origin") -> None:
        self.gateway.run(repo_path, "push", remote, f":refs/tags/{tag}")
