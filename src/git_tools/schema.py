"""MCP-compatible tool schema for AI agents."""

from __future__ import annotations

from ._version import __version__
from .models import RepositorySyncState


def _flag(description: str) -> dict:
    return {"type": "boolean", "description": description, "default": False}


def _root(description: str = "Root directory of git repositories") -> dict:
    return {"type": "string", "description": description}


_BRANCH_STATUS = {
    "type": "object",
    "properties": {
        "name": {"type": "string"},
        "upstream": {"type": ["string", "null"]},
        "is_tracked": {"type": "boolean"},
        "is_current": {"type": "boolean"},
        "remote_ahead_count": {"type": "integer"},
        "remote_behind_count": {"type": "integer"},
        "is_merged": {"type": "boolean"},
        "is_gone": {"type": "boolean"},
        "is_fully_merged": {"type": "boolean"},
        "last_commit_date": {"type": ["string", "null"], "format": "date-time"},
    },
}


def get_tool_schema() -> dict:
    """Generate MCP-compatible tool schema for AI agents."""
    return {
        "name": "git-tools",
        "version": __version__,
        "description": "Keep a fleet of Git repositories tidy: discover repositories (and submodules) under a directory tree, report branch state, prune merged/gone/stale branches, rebase every branch onto its upstream and search or remove tags in bulk.",
        "usage": "git-tools [global options] <command> [args] [options]",
        "tools": [
            {
                "name": "list",
                "description": "List repositories found under a directory. Nested repositories are only reported when declared as submodules.",
                "inputSchema": {
                    "type": "object",
                    "properties": {
                        "path": _root("Root path to scan (default: current directory)"),
                        "paths": _flag("Show absolute paths instead of root-relative names"),
                        "json": _flag("Output as JSON for machine parsing"),
                    },
                    "required": [],
                },
            },
            {
                "name": "status",
                "description": "Show branch state of every repository: current branch, tracked and local-only branches, commits ahead/behind origin and uncommitted changes. Fetches first unless --no-fetch.",
                "inputSchema": {
                    "type": "object",
                    "properties": {
                        "path": _root("Root path to scan (default: current directory)"),
                        "no_fetch": _flag("Skip 'git fetch --all --tags --prune' before reading state"),
                        "json": _flag("Output as JSON for machine parsing"),
                    },
                    "required": [],
                },
                "outputSchema": {
                    "type": "object",
                    "properties": {
                        "repositories": {
                            "type": "array",
                            "items": {
                                "type": "object",
                                "properties": {
                                    "name": {"type": "string"},
                                    "hierarchical_name": {"type": "string"},
                                    "repo_path": {"type": "string"},
                                    "remote_url": {"type": ["string", "null"]},
                                    "has_uncommitted_changes": {"type": "boolean"},
                                    "current_branch": {"type": ["string", "null"]},
                                    "sync_state": {
                                        "type": "string",
                                        "enum": [s.value for s in RepositorySyncState],
                                    },
                                    "local_branches": {"type": "array", "items": _BRANCH_STATUS},
                                    "error_message": {"type": ["string", "null"]},
                                },
                            },
                        },
                        "summary": {"type": "object"},
                    },
                },
            },
            {
                "name": "prune-branches",
                "description": "Delete local branches matching any of --merged, --gone or --older-than (union). Current, detached and protected branches are never selected. With no criterion, --merged is assumed. With --json and without --yes nothing is deleted.",
                "inputSchema": {
                    "type": "object",
                    "properties": {
                        "root": _root(),
                        "merged": _flag("Include branches already merged into HEAD"),
                        "gone": _flag("Include branches whose upstream no longer exists"),
                        "older_than": {
                            "type": "integer",
                            "description": "Include branches whose last commit is older than this many days",
                        },
                        "yes": _flag("Delete without prompting for confirmation"),
                        "dry_run": _flag("Show what would be deleted without deleting"),
                        "safe": _flag("Use 'git branch -d' so git refuses unmerged branches"),
                        "fully_merged_only": _flag("Skip branches that are not fully merged into their upstream"),
                        "json": _flag("Output as JSON for machine parsing"),
                    },
                    "required": ["root"],
                },
            },
            {
                "name": "sync",
                "description": "Rebase every tracked branch onto origin/<branch> (with --autostash), restore the original branch and push. Repositories with uncommitted changes are skipped unless --with-uncommitted.",
                "inputSchema": {
                    "type": "object",
                    "properties": {
                        "root": _root(),
                        "show_only": _flag("Only show which repositories are out of sync"),
                        "with_uncommitted": _flag("Stash uncommitted changes (including untracked files) and pop them afterwards"),
                        "push_new_branches": _flag("Push local-only branches and set their upstream"),
                        "yes": _flag("Update without prompting for confirmation"),
                    },
                    "required": ["root"],
                },
            },
            {
                "name": "outdated",
                "description": "Report repositories whose HEAD is behind origin/<branch> and optionally pull them.",
                "inputSchema": {
                    "type": "object",
                    "properties": {
                        "root": _root(),
                        "branch": {"type": "string", "default": "main"},
                        "update": _flag("Pull all outdated repositories without prompting"),
                        "with_uncommitted": _flag("Include repositories with uncommitted changes (stashed before pulling)"),
                        "json": _flag("Output as JSON for machine parsing"),
                    },
                    "required": ["root"],
                },
            },
            {
                "name": "tag ls",
                "description": "Find repositories carrying tags that match comma-separated wildcard patterns ('*' any run, '?' one character, case-insensitive).",
                "inputSchema": {
                    "type": "object",
                    "properties": {
                        "directory": _root(),
                        "tags": {"type": "string", "description": "Comma-separated tag patterns"},
                        "json": _flag("Output as JSON for machine parsing"),
                    },
                    "required": ["directory", "tags"],
                },
            },
            {
                "name": "tag rm",
                "description": "Delete matching tags from every repository that has them, optionally from origin too.",
                "inputSchema": {
                    "type": "object",
                    "properties": {
                        "directory": _root(),
                        "tags": {"type": "string", "description": "Comma-separated tag patterns"},
                        "remote": _flag("Also delete the tags from origin"),
                        "yes": _flag("Remove without prompting for confirmation"),
                    },
                    "required": ["directory", "tags"],
                },
            },
        ],
        "globalOptions": {
            "--log-all-git-commands": "Log every git command that is run",
            "--log-file": "Replicate log output to a file",
            "--verbose, -v": "Debug logging",
            "--no-submodules": "Do not report submodules as separate repositories",
            "--repository-filter, -f": "Only include repositories whose name matches this wildcard (repeatable)",
            "--sequential, -s": "Run repositories one at a time instead of in parallel",
            "--roots, -r": "Path to roots file (overrides auto-resolution)",
        },
        "environment": {
            "GIT_TOOLS_ROOTS": "Path to the roots file",
            "GIT_TOOLS_PROTECTED_BRANCHES": "Comma-separated branch names never pruned (default: master,main,develop)",
            "GIT_TOOLS_LOG_GIT_COMMANDS": "Set to 1/true/yes to log every git command",
        },
        "rootsFileAutoResolution": {
            "priority": [
                "$GIT_TOOLS_ROOTS environment variable (path to roots file)",
                "~/.config/git-tools/roots (XDG-compliant)",
                "~/.git-tools-roots (legacy fallback)",
            ],
            "fallback": "Without a roots file, the given path (or the current directory) is the only root",
        },
        "notes": [
            "list and status accept --json for machine-readable output",
            "Use 'status --json' first to understand the current state before making changes",
            "Use 'prune-branches --dry-run' to preview deletions",
        ],
    }
