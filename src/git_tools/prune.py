"""Select local branches eligible for deletion."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timedelta, timezone

from .config import DEFAULT_PROTECTED_BRANCHES
from .models import BranchStatus


def has_prune_criteria(merged: bool, gone: bool, older_than_days: int | None) -> bool:
    return merged or gone or older_than_days is not None


def is_prune_candidate(branch: BranchStatus, protected_branches: frozenset[str]) -> bool:
    """Current, detached and protected branches are never pruned."""
    return (
        not branch.is_current
        and not branch.is_detached
        and branch.name.strip().lower() not in protected_branches
    )


def select_prunable(
    branches: Iterable[BranchStatus],
    merged: bool = False,
    gone: bool = False,
    include_not_fully_merged: bool = True,
    older_than_days: int | None = None,
    protected_branches: frozenset[str] = DEFAULT_PROTECTED_BRANCHES,
    now: datetime | None = None,
) -> list[BranchStatus]:
    """Union of the requested criteria, de-duplicated by case-insensitive name.

    With no criterion requested nothing is selected. Branches whose last commit
    date is unknown count as older than any threshold. With
    `include_not_fully_merged` off, only branches git would delete with
    `branch -d` are kept.
    """
    if not has_prune_criteria(merged, gone, older_than_days):
        return []

    candidates = [b for b in branches if is_prune_candidate(b, protected_branches)]
    if not include_not_fully_merged:
        candidates = [b for b in candidates if b.is_fully_merged]
    selected: list[BranchStatus] = []

    if merged:
        selected.extend(b for b in candidates if b.is_merged)

    if gone:
        selected.extend(b for b in candidates if b.is_gone)

    if older_than_days is not None:
        now = now or datetime.now(timezone.utc)
        threshold = now - timedelta(days=older_than_days)
        selected.extend(b for b in candidates if b.last_commit_date < threshold)

    seen: set[str] = set()
    result = []
    for branch in selected:
        key = branch.name.lower()
        if key not in seen:
            seen.add(key)
            result.append(branch)
    return result
