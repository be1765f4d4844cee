"""Rebase local branches onto their upstreams, one repository at a time."""

from __future__ import annotations

import logging
from collections.abc import Callable

from .branches import BranchStateEngine
from .models import BranchStatus, GitRepositoryStatus

logger = logging.getLogger(__name__)

ProgressSink = Callable[[str], None]


def _discard(message: str) -> None:
    pass


class SynchronizationOrchestrator:
    """Bring every local branch of a repository up to date with ``origin``.

    Steps for one repository always run in order in the calling thread;
    callers must not synchronize the same repository concurrently.
    """

    def __init__(self, engine: BranchStateEngine):
        self.engine = engine
        self.gateway = engine.gateway

    def synchronize_branch(self, branch: BranchStatus, push_new_branches: bool = False) -> bool:
        """Reconcile one branch with its upstream.

        An untracked branch is either pushed (``push_new_branches``) or left
        alone, which counts as success. A tracked branch gets its upstream
        refreshed, is checked out and rebased with ``--autostash``; the first
        failing step ends the attempt.
        """
        path, name = branch.repository_path, branch.name
        if not self.engine.fs.is_dir(path):
            return False

        if not branch.is_tracked:
            if not push_new_branches:
                return True
            try:
                self.gateway.run(path, "push", "--set-upstream", "origin", name)
                return True
            except Exception as e:
                logger.warning("Error pushing new branch %s in %s: %s", name, path, e)
                return False

        try:
            self.gateway.run(path, "branch", "--quiet", f"--set-upstream-to=origin/{name}", name)
            self.gateway.run(path, "checkout", name)
            self.gateway.run(path, "rebase", "--autostash", f"origin/{name}")
            return True
        except Exception as e:
            logger.warning("Error synchronizing branch %s in %s: %s", name, path, e)
            return False

    def synchronize_repository(
        self,
        status: GitRepositoryStatus,
        progress: ProgressSink | None = None,
        with_uncommitted: bool = False,
        push_new_branches: bool = False,
    ) -> bool:
        """Synchronize all branches of ``status``; never raises.

        Every branch gets an attempt even after one fails. The originally
        checked-out branch is restored and any stash created here is popped
        before the final push. Returns True only if every branch succeeded.
        """
        report = progress or _discard
        path = status.repo_path

        try:
            if not status.local_branches:
                report(f"[red]✗[/] [grey]{status.name} has no local branches. Skipping.[/]")
                return False

            if not self.engine.fs.is_dir(path):
                report(f"[red]✗[/] [grey]{status.name} does not exist at {path}. Skipping.[/]")
                return False

            original_branch = status.current_branch or self.engine.get_current_branch(path)

            stashed = False
            if with_uncommitted and self.engine.has_uncommitted_changes(path):
                stashed = self.engine.stash(path, include_untracked=True)
                if not stashed:
                    report(f"[yellow]![/] {status.name}: could not stash uncommitted changes, continuing.")

            success = True
            try:
                for branch in status.local_branches:
                    if not self.synchronize_branch(branch, push_new_branches):
                        success = False
                        report(f"[red]✗[/] {status.name}: failed to synchronize branch {branch.name}.")
            finally:
                if original_branch:
                    self.engine.checkout(path, original_branch)
                if stashed and not self.engine.pop(path):
                    report(f"[yellow]![/] {status.name}: could not pop the stash, run 'git stash pop'.")

            if not self.engine.push(path):
                report(f"[yellow]![/] {status.name}: push failed.")

            if success:
                report(f"[green]✓[/] {status.name} updated.")
            return success
        except Exception as e:
            report(f"[red]✗[/] {status.name}: {e}")
            return False
