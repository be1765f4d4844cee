"""
git-tools: keep a fleet of Git repositories tidy.

Discover repositories under one or more roots, report branch state, prune
stale branches, rebase everything onto its upstream and manage tags in bulk.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Any

from .adapters import FileSystem, LocalFileSystem, ProcessRunner
from .branches import BranchStateEngine, get_hierarchical_name
from .config import GitToolsOptions
from .gateway import GitCommandGateway
from .models import (
    BranchStatus,
    FleetSummary,
    GitRepositoryStatus,
    OperationResult,
    OutdatedStatus,
    TagSearchResult,
)
from .scanner import GitRepositoryScanner
from .sync import ProgressSink, SynchronizationOrchestrator
from .tags import TagSearchService, filter_repositories

logger = logging.getLogger(__name__)


def _result_path(result: Any) -> str:
    for attr in ("repo_path", "path", "repository_path"):
        if hasattr(result, attr):
            return str(getattr(result, attr))
    if isinstance(result, tuple) and result:
        return str(result[0])
    return str(result)


# =============================================================================
# Fleet Manager
# =============================================================================


class FleetManager:
    """Run engine operations over every repository under one root."""

    def __init__(
        self,
        root_path: Path,
        options: GitToolsOptions | None = None,
        max_workers: int = 8,
        *,
        runner: ProcessRunner | None = None,
        fs: FileSystem | None = None,
    ):
        self.root_path = Path(root_path).resolve()
        self.options = options or GitToolsOptions()
        self.max_workers = max_workers
        self.fs = fs or LocalFileSystem()

        self.gateway = GitCommandGateway(
            runner, self.fs, log_all_git_commands=self.options.log_all_git_commands
        )
        self.scanner = GitRepositoryScanner(
            self.fs, include_submodules=self.options.include_submodules
        )
        self.engine = BranchStateEngine(self.gateway, self.options.protected_branches)
        self.orchestrator = SynchronizationOrchestrator(self.engine)
        self.tag_search = TagSearchService(self.scanner, self.engine)
        self._repositories: list[Path] | None = None

    def discover_repositories(self) -> list[Path]:
        """Discover repositories under the root, honouring the repository filters."""
        if self._repositories is not None:
            return self._repositories

        repos = self.scanner.scan(self.root_path)
        if self.options.has_repository_filters:
            repos = filter_repositories(repos, self.options.repository_filters)

        self._repositories = repos
        return repos

    def display_name(self, repo_path: Path) -> str:
        return get_hierarchical_name(repo_path, self.root_path)

    def _execute_parallel(
        self,
        operation: Callable[[Any], Any],
        items: Iterable[Any] | None = None,
        sequential: bool = False,
    ) -> list:
        """Execute operation per repository in parallel or sequentially."""
        items = self.discover_repositories() if items is None else list(items)

        results = []

        if sequential or len(items) <= 1:
            for item in items:
                results.append(operation(item))
        else:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                futures = {executor.submit(operation, item): item for item in items}
                for future in as_completed(futures):
                    results.append(future.result())

        # Sort by path for consistent ordering
        results.sort(key=_result_path)
        return results

    # -------------------------------------------------------------------------
    # Status
    # -------------------------------------------------------------------------

    def get_status(self, repo_path: Path, fetch_first: bool = True) -> GitRepositoryStatus:
        return self.engine.get_repository_status(repo_path, self.root_path, fetch=fetch_first)

    def iter_status(self, fetch_first: bool = True) -> Iterator[GitRepositoryStatus]:
        """Yield repository statuses as soon as each one is ready."""
        repos = self.discover_repositories()
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = [executor.submit(self.get_status, repo, fetch_first) for repo in repos]
            for future in as_completed(futures):
                yield future.result()

    def get_all_status(
        self, fetch_first: bool = True, sequential: bool = False
    ) -> list[GitRepositoryStatus]:
        """Get status of all repositories."""
        return self._execute_parallel(
            lambda repo: self.get_status(repo, fetch_first=fetch_first),
            sequential=sequential,
        )

    def get_summary(self, statuses: list[GitRepositoryStatus]) -> FleetSummary:
        return FleetSummary.from_statuses(statuses)

    # -------------------------------------------------------------------------
    # Branch pruning
    # -------------------------------------------------------------------------

    def get_all_prunable(
        self,
        merged: bool = False,
        gone: bool = False,
        include_not_fully_merged: bool = True,
        older_than_days: int | None = None,
        sequential: bool = False,
    ) -> list[tuple[Path, list[BranchStatus]]]:
        """Prunable branches per repository; repositories with none are left out."""
        results = self._execute_parallel(
            lambda repo: (
                repo,
                self.engine.get_prunable_branches(
                    repo,
                    merged=merged,
                    gone=gone,
                    include_not_fully_merged=include_not_fully_merged,
                    older_than_days=older_than_days,
                ),
            ),
            sequential=sequential,
        )
        return [(repo, branches) for repo, branches in results if branches]

    def _delete_repository_branches(
        self, repo_path: Path, branches: list[BranchStatus], force: bool
    ) -> list[OperationResult]:
        results = []
        for branch in branches:
            try:
                self.engine.delete_local_branch(repo_path, branch.name, force=force)
                results.append(
                    OperationResult(
                        path=repo_path,
                        name=f"{self.display_name(repo_path)} -> {branch.name}",
                        success=True,
                        operation="delete-branch",
                        message="Deleted",
                    )
                )
            except Exception as e:
                logger.warning("Error deleting branch %s in %s: %s", branch.name, repo_path, e)
                results.append(
                    OperationResult(
                        path=repo_path,
                        name=f"{self.display_name(repo_path)} -> {branch.name}",
                        success=False,
                        operation="delete-branch",
                        error=str(e),
                    )
                )
        return results

    def delete_branches(
        self,
        selection: Iterable[BranchStatus],
        force: bool = True,
        sequential: bool = False,
    ) -> list[OperationResult]:
        """Delete the selected branches; branches of one repository go one at a time."""
        by_repo: dict[Path, list[BranchStatus]] = {}
        for branch in selection:
            by_repo.setdefault(Path(branch.repository_path), []).append(branch)

        grouped = self._execute_parallel(
            lambda item: (item[0], self._delete_repository_branches(item[0], item[1], force)),
            items=by_repo.items(),
            sequential=sequential,
        )
        return [result for _, results in grouped for result in results]

    # -------------------------------------------------------------------------
    # Synchronization
    # -------------------------------------------------------------------------

    def get_sync_candidates(
        self,
        statuses: list[GitRepositoryStatus],
        with_uncommitted: bool = False,
        push_new_branches: bool = False,
    ) -> list[GitRepositoryStatus]:
        """Repositories with something to synchronize.

        Repositories with errors are left out, as are dirty ones unless
        ``with_uncommitted`` is set.
        """
        candidates = []
        for status in statuses:
            if status.has_errors:
                continue
            if status.has_uncommitted_changes and not with_uncommitted:
                continue
            needs_push = push_new_branches and status.untracked_branches_count > 0
            if not status.are_branches_synced or needs_push:
                candidates.append(status)
        return candidates

    def synchronize_all(
        self,
        statuses: list[GitRepositoryStatus] | None = None,
        progress: ProgressSink | None = None,
        with_uncommitted: bool = False,
        push_new_branches: bool = False,
        sequential: bool = False,
    ) -> list[OperationResult]:
        """Synchronize repositories; all steps for one repository run in one worker."""
        if statuses is None:
            statuses = self.get_sync_candidates(
                self.get_all_status(fetch_first=True, sequential=sequential),
                with_uncommitted=with_uncommitted,
                push_new_branches=push_new_branches,
            )

        def synchronize(status: GitRepositoryStatus) -> OperationResult:
            success = self.orchestrator.synchronize_repository(
                status,
                progress=progress,
                with_uncommitted=with_uncommitted,
                push_new_branches=push_new_branches,
            )
            return OperationResult(
                path=status.repo_path,
                name=status.hierarchical_name,
                success=success,
                operation="sync",
                message="Updated" if success else "",
                error="" if success else "Synchronization failed",
            )

        return self._execute_parallel(synchronize, items=statuses, sequential=sequential)

    # -------------------------------------------------------------------------
    # Outdated check
    # -------------------------------------------------------------------------

    def check_outdated(
        self, repo_path: Path, branch: str = "main", with_uncommitted: bool = False
    ) -> OutdatedStatus:
        name = self.display_name(repo_path)
        try:
            if not with_uncommitted and self.engine.has_uncommitted_changes(repo_path):
                return OutdatedStatus(repo_path, name, branch, skipped=True)
            behind = self.engine.count_commits_behind(repo_path, branch)
            return OutdatedStatus(repo_path, name, branch, commits_behind=behind)
        except Exception as e:
            logger.warning("Error checking %s against origin/%s: %s", repo_path, branch, e)
            return OutdatedStatus(repo_path, name, branch, error=str(e))

    def get_outdated(
        self, branch: str = "main", with_uncommitted: bool = False, sequential: bool = False
    ) -> list[OutdatedStatus]:
        """Compare every repository's HEAD with ``origin/<branch>``."""
        return self._execute_parallel(
            lambda repo: self.check_outdated(repo, branch, with_uncommitted),
            sequential=sequential,
        )

    def update_repository(
        self, repo_path: Path, branch: str = "main", with_uncommitted: bool = False
    ) -> OperationResult:
        """Pull ``origin/<branch>``, stashing local changes around the pull when asked to."""
        name = self.display_name(repo_path)
        stashed = False
        try:
            if with_uncommitted and self.engine.has_uncommitted_changes(repo_path):
                stashed = self.engine.stash(repo_path, include_untracked=True)
            self.engine.pull(repo_path, branch)
            return OperationResult(repo_path, name, True, "update", message="Updated")
        except Exception as e:
            return OperationResult(repo_path, name, False, "update", error=str(e))
        finally:
            if stashed:
                self.engine.pop(repo_path)

    def update_outdated(
        self,
        outdated: Iterable[OutdatedStatus],
        with_uncommitted: bool = False,
        sequential: bool = False,
    ) -> list[OperationResult]:
        return self._execute_parallel(
            lambda item: self.update_repository(item.path, item.branch, with_uncommitted),
            items=[o for o in outdated if o.is_outdated],
            sequential=sequential,
        )

    # -------------------------------------------------------------------------
    # Tags
    # -------------------------------------------------------------------------

    def search_tags(
        self, patterns: Iterable[str], progress: Callable[[str], None] | None = None
    ) -> TagSearchResult:
        return self.tag_search.search_repositories_with_tags(
            self.root_path,
            patterns,
            progress_callback=progress,
            repositories=self.discover_repositories(),
        )

    def _remove_repository_tags(
        self, repo_path: Path, tags: list[str], remote: bool
    ) -> OperationResult:
        name = self.display_name(repo_path)
        removed = []
        try:
            for tag in tags:
                self.engine.delete_tag(repo_path, tag)
                if remote:
                    self.engine.delete_remote_tag(repo_path, tag)
                removed.append(tag)
            return OperationResult(
                repo_path, name, True, "remove-tags", message=f"Removed {', '.join(removed)}"
            )
        except Exception as e:
            logger.warning("Error removing tags in %s: %s", repo_path, e)
            return OperationResult(repo_path, name, False, "remove-tags", error=str(e))

    def remove_tags(
        self,
        repo_tags: dict[Path, list[str]],
        remote: bool = False,
        sequential: bool = False,
    ) -> list[OperationResult]:
        """Delete the given tags locally (and from ``origin`` with ``remote``)."""
        return self._execute_parallel(
            lambda item: self._remove_repository_tags(item[0], item[1], remote),
            items=repo_tags.items(),
            sequential=sequential,
        )


class MultiRootFleetManager:
    """Manage repositories across several root directories."""

    def __init__(
        self,
        roots: list[Path],
        options: GitToolsOptions | None = None,
        max_workers: int = 8,
        *,
        runner: ProcessRunner | None = None,
        fs: FileSystem | None = None,
    ):
        self.roots = [Path(r).resolve() for r in roots]
        self._fleet_managers: dict[Path, FleetManager] = {
            root: FleetManager(root, options, max_workers, runner=runner, fs=fs)
            for root in self.roots
        }

    @property
    def fleets(self) -> dict[Path, FleetManager]:
        return self._fleet_managers

    def discover_all_repositories(self) -> list[tuple[Path, list[Path]]]:
        """Discover all repositories across all roots."""
        return [(root, fleet.discover_repositories()) for root, fleet in self._fleet_managers.items()]

    def get_all_status(
        self, fetch_first: bool = True, sequential: bool = False
    ) -> list[tuple[Path, list[GitRepositoryStatus]]]:
        """Get status for all repositories across all roots."""
        results = []
        for root, fleet in self._fleet_managers.items():
            statuses = fleet.get_all_status(fetch_first=fetch_first, sequential=sequential)
            results.append((root, statuses))
        return results

    def get_summary(
        self, all_statuses: list[tuple[Path, list[GitRepositoryStatus]]]
    ) -> FleetSummary:
        """Generate combined summary from all statuses."""
        combined = []
        for _, statuses in all_statuses:
            combined.extend(statuses)
        return FleetSummary.from_statuses(combined)
