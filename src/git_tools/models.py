"""Domain models: repositories, branch snapshots and fleet-level results."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import StrEnum
from pathlib import Path

# "Unknown" marker for a branch whose last commit date could not be read.
UNKNOWN_COMMIT_DATE = datetime.min.replace(tzinfo=timezone.utc)


def is_detached_branch_name(name: str) -> bool:
    """Check if a branch listing entry is a detached-HEAD pseudo-branch.

    ``git branch`` reports a detached checkout as ``(HEAD detached at 1a2b3c)``
    or ``(no branch, rebasing x)``; ``HEAD`` itself can also leak through.
    """
    stripped = name.strip()
    return (
        stripped.startswith("(")
        or stripped.upper() == "HEAD"
        or "head detached" in stripped.lower()
    )


class RepositorySyncState(StrEnum):
    """Aggregate sync state of a repository's local branches."""

    CLEAN = "clean"
    AHEAD = "ahead"
    BEHIND = "behind"
    DIVERGED = "diverged"
    ERROR = "error"


@dataclass(frozen=True)
class Repository:
    """A repository root and its origin remote."""

    name: str
    path: Path
    remote_url: str | None = None
    is_valid: bool = False
    # True whenever the primary remote-URL query failed, even if a fallback recovered it
    has_errors: bool = False

    @property
    def parent_dir(self) -> Path:
        return self.path.parent

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "path": str(self.path),
            "remote_url": self.remote_url,
            "is_valid": self.is_valid,
            "has_errors": self.has_errors,
        }


@dataclass(frozen=True)
class BranchStatus:
    """Snapshot of one local branch against its upstream.

    ``is_merged`` comes from ``git branch --merged``; ``is_fully_merged`` is the
    stricter delete-safety answer (never true for protected branches).
    ``remote_ahead_count`` counts commits on the local branch missing from
    ``origin/<branch>``, ``remote_behind_count`` the reverse.
    """

    repository_path: Path
    name: str
    upstream: str | None = None
    is_tracked: bool = False
    is_current: bool = False
    remote_ahead_count: int = 0
    remote_behind_count: int = 0
    is_merged: bool = False
    is_gone: bool = False
    last_commit_date: datetime = UNKNOWN_COMMIT_DATE
    is_fully_merged: bool = False

    @property
    def is_detached(self) -> bool:
        return is_detached_branch_name(self.name)

    @property
    def is_synced(self) -> bool:
        return self.remote_ahead_count == 0 and self.remote_behind_count == 0

    @property
    def can_be_safely_deleted(self) -> bool:
        return self.is_fully_merged

    @property
    def has_known_commit_date(self) -> bool:
        return self.last_commit_date != UNKNOWN_COMMIT_DATE

    def to_dict(self) -> dict:
        return {
            "repository_path": str(self.repository_path),
            "name": self.name,
            "upstream": self.upstream,
            "is_tracked": self.is_tracked,
            "is_current": self.is_current,
            "is_detached": self.is_detached,
            "remote_ahead_count": self.remote_ahead_count,
            "remote_behind_count": self.remote_behind_count,
            "is_merged": self.is_merged,
            "is_gone": self.is_gone,
            "is_fully_merged": self.is_fully_merged,
            "last_commit_date": (
                self.last_commit_date.isoformat() if self.has_known_commit_date else None
            ),
        }


NO_LOCAL_BRANCHES = "No local branches found."


@dataclass
class GitRepositoryStatus:
    """Status of one repository and all of its local branches.

    An empty branch list is always an error: if no ``error_message`` is given,
    one is filled in.
    """

    name: str
    hierarchical_name: str
    repo_path: Path
    remote_url: str | None = None
    has_uncommitted_changes: bool = False
    local_branches: list[BranchStatus] = field(default_factory=list)
    error_message: str | None = None

    def __post_init__(self):
        if not self.local_branches and not self.error_message:
            self.error_message = NO_LOCAL_BRANCHES

    @property
    def has_errors(self) -> bool:
        return bool(self.error_message and self.error_message.strip())

    @property
    def current_branch(self) -> str | None:
        for branch in self.local_branches:
            if branch.is_current:
                return branch.name
        return None

    @property
    def tracked_branches_count(self) -> int:
        return sum(1 for b in self.local_branches if b.is_tracked)

    @property
    def untracked_branches_count(self) -> int:
        return sum(1 for b in self.local_branches if not b.is_tracked)

    @property
    def are_branches_synced(self) -> bool:
        return all(b.is_synced for b in self.local_branches)

    @property
    def commits_ahead(self) -> int:
        return sum(b.remote_ahead_count for b in self.local_branches)

    @property
    def commits_behind(self) -> int:
        return sum(b.remote_behind_count for b in self.local_branches)

    @property
    def sync_state(self) -> RepositorySyncState:
        if self.has_errors:
            return RepositorySyncState.ERROR
        ahead, behind = self.commits_ahead, self.commits_behind
        if ahead and behind:
            return RepositorySyncState.DIVERGED
        if ahead:
            return RepositorySyncState.AHEAD
        if behind:
            return RepositorySyncState.BEHIND
        return RepositorySyncState.CLEAN

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "hierarchical_name": self.hierarchical_name,
            "repo_path": str(self.repo_path),
            "remote_url": self.remote_url,
            "has_uncommitted_changes": self.has_uncommitted_changes,
            "current_branch": self.current_branch,
            "sync_state": self.sync_state.value,
            "tracked_branches_count": self.tracked_branches_count,
            "untracked_branches_count": self.untracked_branches_count,
            "local_branches": [b.to_dict() for b in self.local_branches],
            "error_message": self.error_message,
        }


@dataclass(frozen=True)
class DeleteSafety:
    """Outcome of the non-destructive delete probe for a branch."""

    safe: bool
    reason: str = ""

    @classmethod
    def ok(cls) -> DeleteSafety:
        return cls(True)

    @classmethod
    def unsafe(cls, reason: str) -> DeleteSafety:
        return cls(False, reason)

    def __bool__(self) -> bool:
        return self.safe


@dataclass
class TagSearchResult:
    """Result of a fleet-wide tag search."""

    repositories_with_tags: list[Path] = field(default_factory=list)
    repository_tags_map: dict[Path, list[str]] = field(default_factory=dict)
    scan_errors: dict[Path, Exception] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "repositories_with_tags": [str(p) for p in self.repositories_with_tags],
            "repository_tags_map": {str(p): tags for p, tags in self.repository_tags_map.items()},
            "scan_errors": {str(p): str(e) for p, e in self.scan_errors.items()},
        }


@dataclass
class OperationResult:
    """Result of a mutating operation on one repository."""

    path: Path
    name: str
    success: bool
    operation: str
    message: str = ""
    error: str = ""

    def to_dict(self) -> dict:
        return {
            "path": str(self.path),
            "name": self.name,
            "success": self.success,
            "operation": self.operation,
            "message": self.message,
            "error": self.error,
        }


@dataclass
class OutdatedStatus:
    """How far a repository's HEAD lags behind ``origin/<branch>``."""

    path: Path
    name: str
    branch: str
    commits_behind: int = 0
    skipped: bool = False
    error: str = ""

    @property
    def is_outdated(self) -> bool:
        return not self.skipped and not self.error and self.commits_behind > 0

    def to_dict(self) -> dict:
        return {
            "path": str(self.path),
            "name": self.name,
            "branch": self.branch,
            "commits_behind": self.commits_behind,
            "skipped": self.skipped,
            "error": self.error,
            "is_outdated": self.is_outdated,
        }


@dataclass
class FleetSummary:
    """Summary of fleet status."""

    total: int = 0
    clean: int = 0
    ahead: int = 0
    behind: int = 0
    diverged: int = 0
    dirty: int = 0
    errors: int = 0
    branches: int = 0
    untracked_branches: int = 0

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_statuses(cls, statuses: list[GitRepositoryStatus]) -> FleetSummary:
        summary = cls(total=len(statuses))
        for status in statuses:
            match status.sync_state:
                case RepositorySyncState.ERROR:
                    summary.errors += 1
                case RepositorySyncState.CLEAN:
                    if not status.has_uncommitted_changes:
                        summary.clean += 1
                case RepositorySyncState.AHEAD:
                    summary.ahead += 1
                case RepositorySyncState.BEHIND:
                    summary.behind += 1
                case RepositorySyncState.DIVERGED:
                    summary.diverged += 1
            if status.has_uncommitted_changes:
                summary.dirty += 1
            summary.branches += len(status.local_branches)
            summary.untracked_branches += status.untracked_branches_count
        return summary
