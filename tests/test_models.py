from __future__ import annotations

from pathlib import Path

import pytest

from git_tools.models import (
    NO_LOCAL_BRANCHES,
    UNKNOWN_COMMIT_DATE,
    BranchStatus,
    DeleteSafety,
    FleetSummary,
    GitRepositoryStatus,
    OutdatedStatus,
    Repository,
    RepositorySyncState,
    is_detached_branch_name,
)

REPO = Path("/work/svc")


def status(*branches: BranchStatus, **kwargs) -> GitRepositoryStatus:
    return GitRepositoryStatus("svc", "svc", REPO, local_branches=list(branches), **kwargs)


@pytest.mark.parametrize(
    ("name", "detached"),
    [
        ("(HEAD detached at 1a2b3c4)", True),
        ("(no branch, rebasing main)", True),
        ("HEAD", True),
        ("main", False),
        ("ahead-fix", False),
        ("feature/head-detached-docs", False),
    ],
)
def test_is_detached_branch_name(name, detached):
    assert is_detached_branch_name(name) is detached


def test_empty_branch_list_is_always_an_error():
    assert status().error_message == NO_LOCAL_BRANCHES
    assert status().has_errors
    assert status(error_message="Repository does not exist.").error_message == "Repository does not exist."


@pytest.mark.parametrize(
    ("ahead", "behind", "state"),
    [
        (0, 0, RepositorySyncState.CLEAN),
        (2, 0, RepositorySyncState.AHEAD),
        (0, 3, RepositorySyncState.BEHIND),
        (1, 1, RepositorySyncState.DIVERGED),
    ],
)
def test_sync_state(ahead, behind, state):
    s = status(BranchStatus(REPO, "main", is_tracked=True, remote_ahead_count=ahead, remote_behind_count=behind))

    assert s.sync_state is state
    assert s.are_branches_synced is (state is RepositorySyncState.CLEAN)


def test_branch_counts_and_current():
    s = status(
        BranchStatus(REPO, "main", is_tracked=True, is_current=True),
        BranchStatus(REPO, "topic"),
        BranchStatus(REPO, "spike"),
    )

    assert s.current_branch == "main"
    assert s.tracked_branches_count == 1
    assert s.untracked_branches_count == 2


def test_branch_status_serialization_hides_unknown_date():
    branch = BranchStatus(REPO, "topic")

    assert branch.last_commit_date == UNKNOWN_COMMIT_DATE
    assert branch.to_dict()["last_commit_date"] is None
    assert not branch.can_be_safely_deleted


def test_status_to_dict():
    data = status(BranchStatus(REPO, "main", is_current=True)).to_dict()

    assert data["current_branch"] == "main"
    assert data["sync_state"] == "clean"
    assert data["local_branches"][0]["name"] == "main"


def test_delete_safety_truthiness():
    assert DeleteSafety.ok()
    assert not DeleteSafety.unsafe("protected branch")
    assert DeleteSafety.unsafe("protected branch").reason == "protected branch"


def test_repository_parent_dir():
    repo = Repository("svc", REPO, "git@example.com:svc.git", is_valid=True)

    assert repo.parent_dir == Path("/work")
    assert repo.to_dict()["remote_url"] == "git@example.com:svc.git"


def test_outdated_status():
    assert OutdatedStatus(REPO, "svc", "main", commits_behind=2).is_outdated
    assert not OutdatedStatus(REPO, "svc", "main", commits_behind=2, skipped=True).is_outdated
    assert not OutdatedStatus(REPO, "svc", "main", commits_behind=2, error="boom").is_outdated


def test_fleet_summary():
    statuses = [
        status(BranchStatus(REPO, "main")),
        status(BranchStatus(REPO, "main"), has_uncommitted_changes=True),
        status(BranchStatus(REPO, "main", remote_ahead_count=1)),
        status(),
    ]

    summary = FleetSummary.from_statuses(statuses)

    assert summary.to_dict() == {
        "total": 4,
        "clean": 1,
        "ahead": 1,
        "behind": 0,
        "diverged": 0,
        "dirty": 1,
        "errors": 1,
        "branches": 3,
        "untracked_branches": 3,
    }
