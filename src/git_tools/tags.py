"""Wildcard tag matching and fleet-wide tag search."""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable
from pathlib import Path

from .branches import BranchStateEngine
from .models import TagSearchResult
from .scanner import GitRepositoryScanner

logger = logging.getLogger(__name__)


def wildcard_to_regex(pattern: str) -> re.Pattern[str]:
    """``*`` matches any run of characters, ``?`` exactly one; the rest is literal."""
    escaped = re.escape(pattern).replace(r"\*", ".*").replace(r"\?", ".")
    return re.compile(f"^{escaped}$", re.IGNORECASE | re.DOTALL)


def match_items(items: Iterable[str], patterns: Iterable[str]) -> list[str]:
    """Items matching at least one pattern, de-duplicated, in input order.

    No patterns means no matches.
    """
    regexes = [wildcard_to_regex(p) for p in patterns]
    if not regexes:
        return []

    matched: list[str] = []
    seen: set[str] = set()
    for item in items:
        if item in seen:
            continue
        if any(r.match(item) for r in regexes):
            seen.add(item)
            matched.append(item)
    return matched


def parse_tags(raw: str | None) -> list[str]:
    """Split comma-separated command-line input, dropping blanks."""
    if not raw:
        return []
    return [t.strip() for t in raw.split(",") if t.strip()]


def filter_repositories(paths: Iterable[Path], patterns: Iterable[str]) -> list[Path]:
    """Keep repositories whose directory name matches a pattern; no patterns keeps all."""
    paths = list(paths)
    regexes = [wildcard_to_regex(p) for p in patterns]
    if not regexes:
        return paths
    return [p for p in paths if any(r.match(Path(p).name) for r in regexes)]


class TagSearchService:
    """Find repositories carrying tags that match wildcard patterns."""

    def __init__(self, scanner: GitRepositoryScanner, engine: BranchStateEngine):
        self.scanner = scanner
        self.engine = engine

    def search_tags_in_repository(self, repo_path: Path, patterns: Iterable[str]) -> list[str]:
        """Matching tags of one repository. Raises when the tags cannot be listed."""
        patterns = list(patterns)
        if not patterns:
            return []
        return match_items(self.engine.get_all_tags(repo_path), patterns)

    def search_repositories_with_tags(
        self,
        base_folder: Path,
        patterns: Iterable[str],
        progress_callback: Callable[[str], None] | None = None,
        repositories: Iterable[Path] | None = None,
    ) -> TagSearchResult:
        """Scan ``base_folder`` (or use ``repositories``) and collect matching tags.

        A repository whose tags cannot be read is recorded in ``scan_errors``
        and the search goes on. ``progress_callback`` receives each
        repository's name once it has been handled.
        """
        result = TagSearchResult()
        patterns = list(patterns)
        if not patterns:
            return result

        if repositories is None:
            repositories = self.scanner.scan(base_folder)

        for repo in repositories:
            try:
                tags = self.search_tags_in_repository(repo, patterns)
                if tags:
                    result.repositories_with_tags.append(repo)
                    result.repository_tags_map[repo] = tags
            except Exception as e:
                logger.warning("Error searching tags in %s: %s", repo, e)
                result.scan_errors[repo] = e

            if progress_callback:
                progress_callback(Path(repo).name)

        return result
