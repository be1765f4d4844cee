"""Output formatters for console and JSON display."""

from __future__ import annotations

import json
from collections import defaultdict
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

from rich.console import Console
from rich.table import Table

from .branches import get_hierarchical_name
from .models import UNKNOWN_COMMIT_DATE, RepositorySyncState

if TYPE_CHECKING:
    from .models import (
        BranchStatus,
        FleetSummary,
        GitRepositoryStatus,
        OperationResult,
        OutdatedStatus,
        TagSearchResult,
    )


def compute_unique_root_names(roots: list[Path]) -> dict[Path, str]:
    """Display names for root paths.

    Roots sharing a directory name get parent components prepended until
    each name is unique.
    """
    if len(roots) <= 1:
        return {root: root.name for root in roots}

    name_groups: dict[str, list[Path]] = defaultdict(list)
    for root in roots:
        name_groups[root.name].append(root)

    result: dict[Path, str] = {}
    for name, group in name_groups.items():
        if len(group) == 1:
            result[group[0]] = name
            continue
        for root, unique_name in zip(group, _make_paths_unique(group)):
            result[root] = unique_name
    return result


def _make_paths_unique(paths: list[Path]) -> list[str]:
    """Shortest ``/``-joined suffix of each path that no other path shares."""
    reversed_parts = [list(reversed(p.parts)) for p in paths]

    def suffix(parts: list[str], depth: int) -> str:
        return "/".join(reversed(parts[:depth]))

    result = []
    for i, parts in enumerate(reversed_parts):
        for depth in range(1, len(parts) + 1):
            candidate = suffix(parts, depth)
            if all(
                suffix(other, min(depth, len(other))) != candidate
                for j, other in enumerate(reversed_parts)
                if i != j
            ):
                result.append(candidate)
                break
        else:
            result.append(suffix(parts, len(parts)))
    return result


class OutputFormatter:
    """Format output for console or JSON."""

    def __init__(self, console: Console, use_json: bool = False):
        self.console = console
        self.use_json = use_json

    def _print_json(self, data: dict):
        self.console.print(
            json.dumps(data, indent=2, default=str), markup=False, highlight=False, soft_wrap=True
        )

    # -------------------------------------------------------------------------
    # Repository lists
    # -------------------------------------------------------------------------

    def print_repo_list(self, repos: list[Path], root_path: Path):
        """Print simple repository list."""
        if self.use_json:
            self._print_json(
                {
                    "root": str(root_path),
                    "count": len(repos),
                    "repositories": [
                        {
                            "path": str(r),
                            "name": r.name,
                            "display_name": get_hierarchical_name(r, root_path),
                        }
                        for r in repos
                    ],
                }
            )
            return

        self.console.print(f"[bold]Found {len(repos)} repositories in {root_path}[/]\n")
        for repo in repos:
            self.console.print(f"  [cyan]{get_hierarchical_name(repo, root_path)}[/]")

    def print_multi_root_repo_list(self, all_repos: list[tuple[Path, list[Path]]]):
        """Print repository list for multiple roots."""
        root_names = compute_unique_root_names([root for root, _ in all_repos])
        total = sum(len(repos) for _, repos in all_repos)

        if self.use_json:
            self._print_json(
                {
                    "roots": [
                        {
                            "root": str(root),
                            "root_name": root_names.get(root, root.name),
                            "count": len(repos),
                            "repositories": [
                                {
                                    "path": str(r),
                                    "name": r.name,
                                    "display_name": get_hierarchical_name(r, root),
                                }
                                for r in repos
                            ],
                        }
                        for root, repos in all_repos
                    ],
                    "total": total,
                }
            )
            return

        self.console.print(f"[bold]Found {total} repositories in {len(all_repos)} roots[/]\n")
        for root, repos in all_repos:
            self.console.print(f"[yellow]{root_names.get(root, root.name)}[/]:")
            for repo in repos:
                self.console.print(f"  [cyan]{get_hierarchical_name(repo, root)}[/]")
            self.console.print()

    # -------------------------------------------------------------------------
    # Status
    # -------------------------------------------------------------------------

    def print_status_list(
        self,
        statuses: list[GitRepositoryStatus],
        summary: FleetSummary,
        root_path: Path,
    ):
        if self.use_json:
            self._print_json(
                {
                    "repositories": [s.to_dict() for s in statuses],
                    "summary": summary.to_dict(),
                }
            )
            return

        table = self._status_table(f"Fleet Status: {root_path}")
        for status in statuses:
            table.add_row(*self._status_row(status))

        self.console.print(table)
        self.console.print()
        self._print_summary(summary)

    def print_multi_root_status_list(
        self,
        all_statuses: list[tuple[Path, list[GitRepositoryStatus]]],
        summary: FleetSummary,
    ):
        root_names = compute_unique_root_names([root for root, _ in all_statuses])

        if self.use_json:
            self._print_json(
                {
                    "roots": [
                        {
                            "root": str(root),
                            "root_name": root_names.get(root, root.name),
                            "repositories": [s.to_dict() for s in statuses],
                        }
                        for root, statuses in all_statuses
                    ],
                    "summary": summary.to_dict(),
                }
            )
            return

        table = self._status_table(f"Fleet Status ({len(all_statuses)} roots)", with_root=True)
        for root, statuses in all_statuses:
            root_name = root_names.get(root, root.name)
            for status in statuses:
                table.add_row(root_name, *self._status_row(status))

        self.console.print(table)
        self.console.print()
        self._print_summary(summary)

    def _status_table(self, title: str, with_root: bool = False) -> Table:
        table = Table(title=title)
        if with_root:
            table.add_column("Root", style="yellow", no_wrap=True)
        table.add_column("Repository", style="cyan", no_wrap=True)
        table.add_column("Branch")
        table.add_column("Branches", justify="right")
        table.add_column("Sync", justify="center")
        table.add_column("Working Tree", justify="center")
        return table

    def _status_row(self, status: GitRepositoryStatus) -> tuple[str, ...]:
        branch = status.current_branch
        branch_display = f"[green]{branch}[/]" if branch else "[dim]-[/]"
        branches = (
            f"{status.tracked_branches_count}"
            f" [dim]+{status.untracked_branches_count} local[/]"
            if status.untracked_branches_count
            else str(status.tracked_branches_count)
        )
        working_tree = (
            "[yellow]dirty[/]" if status.has_uncommitted_changes else "[green]clean[/]"
        )
        return (
            status.hierarchical_name,
            branch_display,
            branches,
            self._get_sync_icon(status),
            working_tree,
        )

    def _get_sync_icon(self, status: GitRepositoryStatus) -> str:
        match status.sync_state:
            case RepositorySyncState.CLEAN:
                return "[green]✓[/]"
            case RepositorySyncState.AHEAD:
                return f"[yellow]⬆ {status.commits_ahead}[/]"
            case RepositorySyncState.BEHIND:
                return f"[blue]⬇ {status.commits_behind}[/]"
            case RepositorySyncState.DIVERGED:
                return f"[red]⬆{status.commits_ahead} ⬇{status.commits_behind}[/]"
            case RepositorySyncState.ERROR:
                return f"[red]✗ {(status.error_message or '')[:30]}[/]"
            case _:
                return "[dim]?[/]"

    def _format_date(self, dt: datetime) -> str:
        """Format datetime for display."""
        if dt == UNKNOWN_COMMIT_DATE:
            return "[dim]unknown[/]"

        delta = datetime.now(dt.tzinfo) - dt

        if delta.days == 0:
            return "[green]today[/]"
        elif delta.days == 1:
            return "[green]yesterday[/]"
        elif delta.days < 7:
            return f"[yellow]{delta.days}d ago[/]"
        elif delta.days < 30:
            return f"[yellow]{delta.days // 7}w ago[/]"
        else:
            return f"[red]{dt.strftime('%Y-%m-%d')}[/]"

    def _print_summary(self, summary: FleetSummary):
        parts = [f"[bold]Total:[/] {summary.total}"]

        if summary.clean > 0:
            parts.append(f"[green]✓ Clean:[/] {summary.clean}")
        if summary.ahead > 0:
            parts.append(f"[yellow]⬆ Ahead:[/] {summary.ahead}")
        if summary.behind > 0:
            parts.append(f"[blue]⬇ Behind:[/] {summary.behind}")
        if summary.diverged > 0:
            parts.append(f"[red]⬆⬇ Diverged:[/] {summary.diverged}")
        if summary.dirty > 0:
            parts.append(f"[yellow]✎ Dirty:[/] {summary.dirty}")
        if summary.untracked_branches > 0:
            parts.append(f"[dim]Local-only branches:[/] {summary.untracked_branches}")
        if summary.errors > 0:
            parts.append(f"[red]✗ Errors:[/] {summary.errors}")

        self.console.print(" | ".join(parts))

    # -------------------------------------------------------------------------
    # Branch pruning
    # -------------------------------------------------------------------------

    def print_prunable_branches(
        self, prunable: list[tuple[Path, list[BranchStatus]]], root_path: Path
    ):
        if self.use_json:
            self._print_json(
                {
                    "root": str(root_path),
                    "repositories": [
                        {
                            "path": str(repo),
                            "display_name": get_hierarchical_name(repo, root_path),
                            "branches": [b.to_dict() for b in branches],
                        }
                        for repo, branches in prunable
                    ],
                    "total": sum(len(branches) for _, branches in prunable),
                }
            )
            return

        table = Table(title="Branches to prune")
        table.add_column("Repository", style="cyan", no_wrap=True)
        table.add_column("Branch")
        table.add_column("Reason")
        table.add_column("Last Commit", justify="right")
        table.add_column("Delete")

        for repo, branches in prunable:
            repo_display = get_hierarchical_name(repo, root_path)
            for branch in branches:
                reasons = []
                if branch.is_merged:
                    reasons.append("merged")
                if branch.is_gone:
                    reasons.append("gone")
                table.add_row(
                    repo_display,
                    branch.name,
                    ", ".join(reasons) or "stale",
                    self._format_date(branch.last_commit_date),
                    "[green]can be safely deleted[/]"
                    if branch.can_be_safely_deleted
                    else "[red]not fully merged[/]",
                )

        self.console.print(table)

    # -------------------------------------------------------------------------
    # Synchronization and outdated checks
    # -------------------------------------------------------------------------

    def print_sync_candidates(self, statuses: list[GitRepositoryStatus]):
        if self.use_json:
            self._print_json({"repositories": [s.to_dict() for s in statuses]})
            return

        table = Table(title="[yellow]Outdated Repositories[/]")
        table.add_column("Repository", style="cyan")
        table.add_column("Remote URL", style="blue")
        table.add_column("Ahead", style="red", justify="right")
        table.add_column("Behind", style="yellow", justify="right")

        for status in statuses:
            table.add_row(
                status.hierarchical_name,
                status.remote_url or "",
                str(status.commits_ahead),
                str(status.commits_behind),
            )

        self.console.print(table)

    def print_outdated(self, outdated: list[OutdatedStatus]):
        if self.use_json:
            self._print_json(
                {
                    "repositories": [o.to_dict() for o in outdated],
                    "outdated": sum(1 for o in outdated if o.is_outdated),
                }
            )
            return

        for item in outdated:
            if item.skipped:
                self.console.print(
                    f"[yellow]⚠[/] [grey]{item.name} has uncommitted changes. Skipping.[/]"
                )
            elif item.error:
                self.console.print(f"[red]✗[/] [grey]{item.name} failed: {item.error}[/]")

        behind = [o for o in outdated if o.is_outdated]
        if not behind:
            self.console.print("[green]All repositories are up to date.[/]")
            return

        table = Table(title="Outdated Repositories")
        table.add_column("Repository", style="cyan")
        table.add_column("Behind", style="yellow", justify="right")
        for item in behind:
            table.add_row(item.name, f"{item.commits_behind} (origin/{item.branch})")
        self.console.print(table)

    def print_operation_results(self, results: list[OperationResult], operation: str):
        """Print operation results."""
        if self.use_json:
            self._print_json(
                {
                    "results": [r.to_dict() for r in results],
                    "summary": {
                        "total": len(results),
                        "success": sum(1 for r in results if r.success),
                        "failed": sum(1 for r in results if not r.success),
                    },
                }
            )
            return

        if not results:
            self.console.print(f"[dim]Nothing to {operation}[/]")
            return

        table = Table(title=f"{operation.title()} Results")
        table.add_column("Repository", style="cyan")
        table.add_column("Status", justify="center")
        table.add_column("Message")

        success_count = 0
        for result in results:
            if result.success:
                success_count += 1
                status = "[green]✓[/]"
                message = result.message[:60] if result.message else "OK"
            else:
                status = "[red]✗[/]"
                message = f"[red]{result.error[:60]}[/]" if result.error else "Failed"
            table.add_row(result.name, status, message)

        self.console.print(table)
        self.console.print(
            f"\n[blue]{success_count} succeeded, {len(results) - success_count} failed.[/]"
        )

    # -------------------------------------------------------------------------
    # Tags
    # -------------------------------------------------------------------------

    def print_tag_search(self, result: TagSearchResult, root_path: Path, patterns: list[str]):
        if self.use_json:
            self._print_json({"root": str(root_path), "patterns": patterns, **result.to_dict()})
            return

        if not result.repositories_with_tags:
            self.console.print("[yellow]No repository with the specified tag(s) found.[/]")
        else:
            table = Table(title=f"Tags matching {', '.join(patterns)}")
            table.add_column("Repository", style="cyan")
            table.add_column("Tags", style="green")
            for repo in result.repositories_with_tags:
                table.add_row(
                    get_hierarchical_name(repo, root_path),
                    ", ".join(result.repository_tags_map.get(repo, [])),
                )
            self.console.print(table)

        self.print_scan_errors(result.scan_errors, root_path)

    def print_scan_errors(self, scan_errors: dict[Path, Exception], root_path: Path):
        if not scan_errors or self.use_json:
            return

        self.console.print()
        self.console.print(f"[red]{len(scan_errors)} repositories could not be scanned:[/]")
        for repo, error in scan_errors.items():
            self.console.print(f"  [red]✗[/] {get_hierarchical_name(repo, root_path)}: {error}")
