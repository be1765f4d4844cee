from __future__ import annotations

from pathlib import Path

import pytest
from conftest import FakeRepo, make_repo

from git_tools.scanner import GitRepositoryScanner
from git_tools.tags import (
    TagSearchService,
    filter_repositories,
    match_items,
    parse_tags,
    wildcard_to_regex,
)


@pytest.fixture
def service(engine, fs) -> TagSearchService:
    return TagSearchService(GitRepositoryScanner(fs), engine)


class TestWildcards:
    def test_literal_pattern_is_equality(self):
        assert wildcard_to_regex("v1.0").match("v1.0")
        assert not wildcard_to_regex("v1.0").match("v1x0")
        assert not wildcard_to_regex("v1.0").match("v1.0.1")

    def test_star_and_question_mark(self):
        assert match_items(["v1.0", "v1.1", "v2.0"], ["v1.*"]) == ["v1.0", "v1.1"]
        assert match_items(["v1", "v10", "v2"], ["v?"]) == ["v1", "v2"]
        assert match_items(["release"], ["*"]) == ["release"]

    def test_matching_ignores_case(self):
        assert match_items(["RC-1"], ["rc-*"]) == ["RC-1"]

    def test_regex_metacharacters_are_literal(self):
        assert match_items(["a+b", "aab", "(x)"], ["a+b", "(x)"]) == ["a+b", "(x)"]

    def test_results_are_unique_and_keep_input_order(self):
        items = ["b-2", "a-1", "b-2", "a-3"]

        assert match_items(items, ["a-*", "b-*", "*"]) == ["b-2", "a-1", "a-3"]

    def test_no_patterns_match_nothing(self):
        assert match_items(["v1.0"], []) == []


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("v1.0", ["v1.0"]),
        (" v1.0 , v2.* ,, ", ["v1.0", "v2.*"]),
        ("", []),
        (None, []),
    ],
)
def test_parse_tags(raw, expected):
    assert parse_tags(raw) == expected


def test_filter_repositories_by_name():
    paths = [Path("/src/api-users"), Path("/src/api-orders"), Path("/src/web")]

    assert filter_repositories(paths, ["api-*"]) == paths[:2]
    assert filter_repositories(paths, []) == paths


class TestTagSearch:
    def test_finds_repositories_with_matching_tags(self, service, fake_git, tmp_path: Path):
        alpha = make_repo(tmp_path / "alpha")
        beta = make_repo(tmp_path / "beta")
        gamma = make_repo(tmp_path / "gamma")
        fake_git.add(alpha, FakeRepo(tags=["v1.0", "v1.1", "v2.0"]))
        fake_git.add(beta, FakeRepo(tags=["v2.0"]))
        fake_git.add(gamma, FakeRepo(tags=["v1.5-rc"]))

        result = service.search_repositories_with_tags(tmp_path, ["v1.*"])

        assert result.repositories_with_tags == [alpha, gamma]
        assert result.repository_tags_map == {alpha: ["v1.0", "v1.1"], gamma: ["v1.5-rc"]}
        assert result.scan_errors == {}

    def test_unreadable_repository_is_recorded_and_search_continues(
        self, service, fake_git, tmp_path: Path
    ):
        broken = make_repo(tmp_path / "broken")
        ok = make_repo(tmp_path / "ok")
        fake_git.add(broken, FakeRepo(failures={"tag": "fatal: bad object refs/tags/v1"}))
        fake_git.add(ok, FakeRepo(tags=["v1"]))

        result = service.search_repositories_with_tags(tmp_path, ["v1"])

        assert list(result.scan_errors) == [broken]
        assert "bad object" in str(result.scan_errors[broken])
        assert result.repositories_with_tags == [ok]

    def test_progress_reports_each_repository_name(self, service, fake_git, tmp_path: Path):
        for name in ("one", "two"):
            fake_git.add(make_repo(tmp_path / name), FakeRepo(tags=[]))
        seen: list[str] = []

        service.search_repositories_with_tags(tmp_path, ["*"], progress_callback=seen.append)

        assert seen == ["one", "two"]

    def test_empty_patterns_do_not_scan(self, service, fake_git, tmp_path: Path):
        fake_git.add(make_repo(tmp_path / "one"), FakeRepo(tags=["v1"]))

        result = service.search_repositories_with_tags(tmp_path, [])

        assert result.repositories_with_tags == []
        assert fake_git.calls == []

    def test_explicit_repository_list_skips_scanning(self, service, fake_git, tmp_path: Path):
        chosen = make_repo(tmp_path / "chosen")
        fake_git.add(chosen, FakeRepo(tags=["v3"]))
        fake_git.add(make_repo(tmp_path / "ignored"), FakeRepo(tags=["v3"]))

        result = service.search_repositories_with_tags(tmp_path, ["v3"], repositories=[chosen])

        assert result.repositories_with_tags == [chosen]
