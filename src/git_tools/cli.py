"""Command-line interface."""

from __future__ import annotations

import json
from contextlib import contextmanager
from dataclasses import dataclass, replace
from pathlib import Path

import typer
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn

from ._version import __version__
from .config import (
    GitToolsOptions,
    configure_logging,
    load_roots_file,
    resolve_roots_file,
)
from .core import FleetManager, MultiRootFleetManager
from .exceptions import ConfigurationError
from .formatters import OutputFormatter
from .schema import get_tool_schema
from .tags import parse_tags

app = typer.Typer(
    name="git-tools",
    help="Discover, inspect, prune and synchronize fleets of Git repositories.",
    no_args_is_help=True,
)

tag_app = typer.Typer(help="Search and remove tags across repositories.", no_args_is_help=True)
app.add_typer(tag_app, name="tag")


@dataclass
class CliState:
    """Global options collected by the top-level callback."""

    options: GitToolsOptions
    sequential: bool = False
    roots_file: Path | None = None


def get_state(ctx: typer.Context) -> CliState:
    if isinstance(ctx.obj, CliState):
        return ctx.obj
    return CliState(GitToolsOptions.from_env())


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        print(f"git-tools {__version__}")
        raise typer.Exit()


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
    schema: bool = typer.Option(
        False,
        "--schema",
        help="Output MCP-compatible tool schema for AI agents",
    ),
    log_all_git_commands: bool = typer.Option(
        False,
        "--log-all-git-commands",
        help="Log every git command that is run",
    ),
    log_file: Path = typer.Option(
        None,
        "--log-file",
        help="Replicate log output to this file",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Debug logging",
    ),
    no_submodules: bool = typer.Option(
        False,
        "--no-submodules",
        help="Do not report submodules as separate repositories",
    ),
    repository_filter: list[str] = typer.Option(
        None,
        "--repository-filter",
        "-f",
        help="Only include repositories whose name matches this wildcard (repeatable)",
    ),
    sequential: bool = typer.Option(
        False,
        "--sequential",
        "-s",
        help="Run sequentially instead of parallel",
    ),
    roots: Path = typer.Option(
        None,
        "--roots",
        "-r",
        help="File containing repository root paths (one per line)",
    ),
):
    """git-tools: keep a fleet of Git repositories tidy."""
    if schema:
        print(json.dumps(get_tool_schema(), indent=2))
        raise typer.Exit()

    options = GitToolsOptions.from_env()
    options = replace(
        options,
        log_all_git_commands=options.log_all_git_commands or log_all_git_commands,
        log_file_path=log_file,
        include_submodules=not no_submodules,
        repository_filters=tuple(repository_filter or ()),
    )

    try:
        configure_logging(
            verbose=verbose,
            log_file=options.log_file_path,
            show_git_commands=options.log_all_git_commands,
        )
    except ConfigurationError as e:
        Console(stderr=True).print(f"[red]Error: {e}[/]")
        raise typer.Exit(1) from e

    ctx.obj = CliState(options=options, sequential=sequential, roots_file=roots)


def get_console_and_formatter(json_output: bool) -> tuple[Console, OutputFormatter]:
    """Create console and formatter."""
    console = Console(force_terminal=not json_output)
    formatter = OutputFormatter(console, use_json=json_output)
    return console, formatter


@contextmanager
def spinner(console: Console, description: str, enabled: bool = True):
    """Show a spinner while the block runs; yields a description updater, or None when disabled."""
    if not enabled:
        yield None
        return

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
    ) as progress:
        task = progress.add_task(description, total=None)

        def update(text: str):
            progress.update(task, description=text)

        yield update


def resolve_multi_roots(state: CliState, path: Path | None, console: Console) -> list[Path] | None:
    """Roots from ``--roots``, or from an auto-resolved roots file when no path is given."""
    roots_file = state.roots_file or (None if path else resolve_roots_file())
    if not roots_file:
        return None

    root_paths = load_roots_file(roots_file)
    if not root_paths:
        console.print(f"[red]Error: No valid roots found in {roots_file}[/]")
        raise typer.Exit(1)
    return root_paths


@app.command("list")
def list_repos(
    ctx: typer.Context,
    path: Path = typer.Argument(
        None,
        help="Root path to scan for repositories",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output as JSON",
    ),
    paths_only: bool = typer.Option(
        False,
        "--paths",
        "-p",
        help="Output only paths (one per line, for piping to fzf etc.)",
    ),
):
    """List all discovered repositories."""
    state = get_state(ctx)
    console, formatter = get_console_and_formatter(json_output)

    root_paths = resolve_multi_roots(state, path, console)
    if root_paths:
        multi_fleet = MultiRootFleetManager(root_paths, state.options)
        all_repos = multi_fleet.discover_all_repositories()

        if paths_only:
            for _, repos in all_repos:
                for repo in repos:
                    print(repo)
        else:
            formatter.print_multi_root_repo_list(all_repos)
    else:
        fleet = FleetManager(path or Path("."), state.options)
        repos = fleet.discover_repositories()

        if paths_only:
            for repo in repos:
                print(repo)
        else:
            formatter.print_repo_list(repos, fleet.root_path)


@app.command()
def status(
    ctx: typer.Context,
    path: Path = typer.Argument(
        None,
        help="Root path to scan for repositories",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output as JSON",
    ),
    no_fetch: bool = typer.Option(
        False,
        "--no-fetch",
        help="Skip fetching before status check",
    ),
):
    """Show branch status of all repositories."""
    state = get_state(ctx)
    console, formatter = get_console_and_formatter(json_output)
    description = "Analyzing..." if no_fetch else "Fetching and analyzing..."

    root_paths = resolve_multi_roots(state, path, console)
    if root_paths:
        multi_fleet = MultiRootFleetManager(root_paths, state.options)
        with spinner(console, description, enabled=not json_output):
            all_statuses = multi_fleet.get_all_status(
                fetch_first=not no_fetch, sequential=state.sequential
            )
        formatter.print_multi_root_status_list(all_statuses, multi_fleet.get_summary(all_statuses))
        return

    fleet = FleetManager(path or Path("."), state.options)

    with spinner(console, "Scanning repositories...", enabled=not json_output):
        repos = fleet.discover_repositories()
    if not json_output:
        console.print(f"Found [bold]{len(repos)}[/] repositories\n")

    with spinner(console, description, enabled=not json_output):
        statuses = fleet.get_all_status(fetch_first=not no_fetch, sequential=state.sequential)

    formatter.print_status_list(statuses, fleet.get_summary(statuses), fleet.root_path)


@app.command("prune-branches")
def prune_branches(
    ctx: typer.Context,
    root: Path = typer.Argument(..., help="Root directory of git repositories"),
    merged: bool = typer.Option(False, "--merged", help="Include branches already merged into HEAD"),
    gone: bool = typer.Option(
        False, "--gone", help="Include branches whose upstream no longer exists"
    ),
    older_than: int = typer.Option(
        None,
        "--older-than",
        min=0,
        help="Include branches with last commit older than this many days",
    ),
    yes: bool = typer.Option(False, "--yes", "-y", help="Delete without prompting"),
    dry_run: bool = typer.Option(
        False, "--dry-run", "-n", help="Show what would be deleted without deleting"
    ),
    safe: bool = typer.Option(
        False, "--safe", help="Use 'git branch -d' so git refuses unmerged branches"
    ),
    fully_merged_only: bool = typer.Option(
        False, "--fully-merged-only", help="Skip branches that are not fully merged into their upstream"
    ),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
):
    """Delete merged, gone or stale local branches.

    With no criterion, --merged is assumed. Current, detached and protected
    branches are never selected. With --json, branches are only deleted with
    --yes; otherwise the listing is printed as in --dry-run.
    """
    state = get_state(ctx)
    console, formatter = get_console_and_formatter(json_output)

    if not merged and not gone and older_than is None:
        merged = True
    if json_output and not yes:
        dry_run = True

    fleet = FleetManager(root, state.options)
    with spinner(console, "Analyzing repositories...", enabled=not json_output):
        prunable = fleet.get_all_prunable(
            merged=merged,
            gone=gone,
            include_not_fully_merged=not fully_merged_only,
            older_than_days=older_than,
            sequential=state.sequential,
        )

    if not prunable:
        if json_output:
            formatter.print_prunable_branches([], fleet.root_path)
        else:
            console.print("[yellow]No branches to prune found.[/]")
        return

    if dry_run or not json_output:
        formatter.print_prunable_branches(prunable, fleet.root_path)
    if dry_run:
        if not json_output:
            console.print("[green]Dry run completed.[/]")
        return

    selection = [branch for _, branches in prunable for branch in branches]
    if not yes and not typer.confirm(f"Delete {len(selection)} branches?"):
        console.print("[yellow]No branch selected.[/]")
        return

    with spinner(console, "Deleting branches...", enabled=not json_output):
        results = fleet.delete_branches(selection, force=not safe, sequential=state.sequential)
    formatter.print_operation_results(results, "prune")


@app.command()
def sync(
    ctx: typer.Context,
    root: Path = typer.Argument(..., help="Root directory of git repositories"),
    show_only: bool = typer.Option(
        False, "--show-only", help="Do not update repositories, just show which ones are outdated"
    ),
    with_uncommitted: bool = typer.Option(
        False,
        "--with-uncommitted",
        help="Stash uncommitted changes before updating and pop them afterwards",
    ),
    push_new_branches: bool = typer.Option(
        False, "--push-new-branches", help="Push local-only branches and set their upstream"
    ),
    yes: bool = typer.Option(False, "--yes", "-y", help="Update without prompting"),
):
    """Rebase every branch onto its upstream and push."""
    state = get_state(ctx)
    console, formatter = get_console_and_formatter(False)

    fleet = FleetManager(root, state.options)
    with spinner(console, f"[yellow]Scanning for Git repositories in {root}...[/]"):
        repos = fleet.discover_repositories()

    if not repos:
        console.print("[yellow]No Git repositories found.[/]")
        return

    with spinner(console, "Checking repositories..."):
        statuses = fleet.get_all_status(fetch_first=True, sequential=state.sequential)

    for repo_status in statuses:
        if repo_status.has_errors:
            console.print(
                f"[red]✗[/] [grey]{repo_status.hierarchical_name} has errors:"
                f" {repo_status.error_message}[/]"
            )

    candidates = fleet.get_sync_candidates(
        statuses, with_uncommitted=with_uncommitted, push_new_branches=push_new_branches
    )
    if not candidates:
        console.print("[green]All repositories are up to date.[/]")
        return

    formatter.print_sync_candidates(candidates)
    if show_only:
        return

    if not yes and not typer.confirm(f"Update {len(candidates)} repositories?"):
        console.print("[yellow]No repository selected.[/]")
        return

    with spinner(console, "Updating repositories..."):
        results = fleet.synchronize_all(
            candidates,
            progress=console.print,
            with_uncommitted=with_uncommitted,
            push_new_branches=push_new_branches,
            sequential=state.sequential,
        )
    formatter.print_operation_results(results, "sync")


@app.command()
def outdated(
    ctx: typer.Context,
    root: Path = typer.Argument(..., help="Root directory of git repositories"),
    branch: str = typer.Option("main", "--branch", "-b", help="Branch to compare against"),
    update: bool = typer.Option(
        False, "--update", help="Automatically update all outdated repositories"
    ),
    with_uncommitted: bool = typer.Option(
        False, "--with-uncommitted", help="Include repositories with uncommitted changes"
    ),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
):
    """Check for repositories behind origin/<branch> and optionally update them."""
    state = get_state(ctx)
    console, formatter = get_console_and_formatter(json_output)

    fleet = FleetManager(root, state.options)
    with spinner(console, "Checking repositories...", enabled=not json_output):
        results = fleet.get_outdated(branch, with_uncommitted, sequential=state.sequential)

    formatter.print_outdated(results)

    behind = [o for o in results if o.is_outdated]
    if not behind:
        return
    if not update and (json_output or not typer.confirm(f"Update {len(behind)} repositories?")):
        return

    with spinner(console, "Updating repositories...", enabled=not json_output):
        updates = fleet.update_outdated(behind, with_uncommitted, sequential=state.sequential)
    formatter.print_operation_results(updates, "update")


def _parse_tags_or_exit(tags: str, console: Console) -> list[str]:
    patterns = parse_tags(tags)
    if not patterns:
        console.print("[red]No tags specified.[/]")
        raise typer.Exit(1)
    return patterns


@tag_app.command("ls")
def tag_list(
    ctx: typer.Context,
    directory: Path = typer.Argument(..., help="Root directory of git repositories"),
    tags: str = typer.Argument(..., help="Tags to search for (comma separated, wildcards allowed)"),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
):
    """List repositories that have matching tags."""
    state = get_state(ctx)
    console, formatter = get_console_and_formatter(json_output)
    patterns = _parse_tags_or_exit(tags, console)

    if not json_output:
        console.print(f"[blue]Base folder: [bold]{directory}[/][/]")
        console.print(f"[blue]Tags to search: [bold]{', '.join(patterns)}[/][/]")

    fleet = FleetManager(directory, state.options)
    with spinner(console, "Scanning repositories for tags...", enabled=not json_output) as update:
        result = fleet.search_tags(
            patterns, progress=(lambda name: update(f"Checked {name}")) if update else None
        )

    formatter.print_tag_search(result, fleet.root_path, patterns)


@tag_app.command("rm")
def tag_remove(
    ctx: typer.Context,
    directory: Path = typer.Argument(..., help="Root directory of git repositories"),
    tags: str = typer.Argument(..., help="Tags to remove (comma separated, wildcards allowed)"),
    remote: bool = typer.Option(
        False, "--remote", "-r", help="Also remove the tags from origin"
    ),
    yes: bool = typer.Option(False, "--yes", "-y", help="Remove without prompting"),
):
    """Remove matching tags from every repository that has them."""
    state = get_state(ctx)
    console, formatter = get_console_and_formatter(False)
    patterns = _parse_tags_or_exit(tags, console)

    fleet = FleetManager(directory, state.options)
    with spinner(console, "Scanning repositories for tags...") as update:
        result = fleet.search_tags(patterns, progress=lambda name: update(f"Checked {name}"))

    formatter.print_tag_search(result, fleet.root_path, patterns)
    if not result.repositories_with_tags:
        return

    count = len(result.repositories_with_tags)
    if not yes and not typer.confirm(f"Remove the tags from {count} repositories?"):
        console.print("[yellow]No repository selected.[/]")
        return

    with spinner(console, f"Removing tag(s) {', '.join(patterns)}..."):
        results = fleet.remove_tags(
            result.repository_tags_map, remote=remote, sequential=state.sequential
        )
    formatter.print_operation_results(results, "remove tags")
