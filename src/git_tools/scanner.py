"""Discover repository roots (and their submodules) under a directory."""

from __future__ import annotations

import logging
import re
from pathlib import Path

from .adapters import FileSystem, LocalFileSystem

logger = logging.getLogger(__name__)

GIT_DIR = ".git"
GIT_MODULES_FILE = ".gitmodules"

_SUBMODULE_PATH = re.compile(r"^\s*path\s*=\s*(.+?)\s*$", re.MULTILINE)


def is_git_repository(fs: FileSystem, directory: Path) -> bool:
    """A ``.git`` directory, or a ``.git`` file (worktree/submodule indirection)."""
    marker = directory / GIT_DIR
    return fs.is_dir(marker) or fs.is_file(marker)


def parse_submodule_paths(content: str) -> list[str]:
    """Return the ``path = ...`` entries of a ``.gitmodules`` file, in order."""
    return [m.group(1) for m in _SUBMODULE_PATH.finditer(content)]


def _visit_key(path: Path) -> str:
    return str(path.resolve()).casefold()


class GitRepositoryScanner:
    """Walk a directory tree and collect repository roots.

    Traversal is depth-first from an explicit stack. A repository's own
    subdirectories are never descended into; nested repositories are only
    reached through its ``.gitmodules`` declarations.
    """

    def __init__(self, fs: FileSystem | None = None, include_submodules: bool = True):
        self.fs = fs or LocalFileSystem()
        self.include_submodules = include_submodules

    def scan(self, root_folder: Path, include_submodules: bool | None = None) -> list[Path]:
        """Return repository roots under ``root_folder`` in traversal order, without duplicates."""
        if include_submodules is None:
            include_submodules = self.include_submodules

        root_folder = Path(root_folder)
        if not self.fs.is_dir(root_folder):
            logger.error("Cannot scan %s: not an accessible directory", root_folder)
            return []

        repos: list[Path] = []
        visited: set[str] = set()
        pending: list[Path] = [root_folder]

        while pending:
            current = pending.pop()
            self._process_directory(
                current, repos, visited, pending, include_submodules, is_root=current == root_folder
            )

        logger.debug("Found %d repositories under %s", len(repos), root_folder)
        return repos

    def _process_directory(
        self,
        current: Path,
        repos: list[Path],
        visited: set[str],
        pending: list[Path],
        include_submodules: bool,
        is_root: bool = False,
    ) -> None:
        try:
            key = _visit_key(current)
            if key in visited:
                return
            visited.add(key)

            if is_git_repository(self.fs, current):
                repos.append(current)
                if include_submodules:
                    self._push_submodules(current, visited, pending)
                return

            # Reversed so the stack pops subdirectories in name order
            for child in reversed(self.fs.list_dirs(current)):
                pending.append(child)
        except Exception as e:
            if is_root:
                logger.error("Cannot scan %s: %s", current, e)
            else:
                logger.warning("Ignored: %s (%s)", current, e)

    def _push_submodules(self, repo_dir: Path, visited: set[str], pending: list[Path]) -> None:
        modules_file = repo_dir / GIT_MODULES_FILE
        if not self.fs.is_file(modules_file):
            return

        try:
            content = self.fs.read_text(modules_file)
            for relative in reversed(parse_submodule_paths(content)):
                submodule = repo_dir / relative
                if is_git_repository(self.fs, submodule) and _visit_key(submodule) not in visited:
                    pending.append(submodule)
        except Exception as e:
            logger.warning("Error processing submodules in: %s (%s)", repo_dir, e)
