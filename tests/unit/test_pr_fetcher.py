"""
Tests for batched PR status fetching.
"""

import pytest

from wtsync.exceptions import CommandTimeoutError
from wtsync.mocks import MockGit
from wtsync.models import PRError, PRExists, PRNoPR, WorktreeRef
from wtsync.pr_fetcher import (
    PRStatusFetcher,
    discover_worktrees,
    group_by_repository,
    infer_project_from_path,
    parse_check_rollup,
    record_from_row,
    repository_root,
)

WEB_A = "/p/web-branches/feat-a"
WEB_B = "/p/web-branches/feat-b"
WEB_C = "/p/web-branches/feat-c"
API_A = "/p/api-branches/fix-a"
API_B = "/p/api-branches/fix-b"


class TestProjectGrouping:
    """Tests for infer_project_from_path and group_by_repository."""

    def test_infers_project_from_branches_dir(self):
        assert infer_project_from_path("/p/web-branches/feat-a") == "web"
        assert infer_project_from_path("/p/my-app-branches/x") == "my-app"

    def test_main_checkout_is_its_own_project(self):
        assert infer_project_from_path("/p/web") == "web"

    def test_repository_root(self):
        assert repository_root("/p/web-branches/feat-a") == "/p/web"
        assert repository_root("/p/web") == "/p/web"

    def test_groups_by_repository(self):
        groups = group_by_repository([WEB_A, API_A, WEB_B])
        assert list(groups) == ["/p/web", "/p/api"]
        assert [r.path for r in groups["/p/web"]] == [WEB_A, WEB_B]

    def test_same_name_in_different_dirs_kept_apart(self):
        groups = group_by_repository([
            "/work/web-branches/a", "/personal/web-branches/b", "/work/web", "/personal/web",
        ])
        assert list(groups) == ["/work/web", "/personal/web"]
        assert [r.path for r in groups["/work/web"]] == ["/work/web-branches/a", "/work/web"]

    def test_explicit_tag_wins(self):
        groups = group_by_repository([WorktreeRef(project="custom", path=WEB_A)])
        assert list(groups) == ["custom"]

    def test_duplicates_dropped(self):
        groups = group_by_repository([WEB_A, WEB_A])
        assert len(groups["/p/web"]) == 1


class TestParseCheckRollup:
    """Tests for parse_check_rollup."""

    def test_all_success(self):
        assert parse_check_rollup([{"conclusion": "SUCCESS"}, {"state": "SUCCESS"}]) == "passing"

    def test_any_failure(self):
        rollup = [{"conclusion": "SUCCESS"}, {"conclusion": "FAILURE"}, {"status": "IN_PROGRESS"}]
        assert parse_check_rollup(rollup) == "failing"

    def test_error_state_is_failure(self):
        assert parse_check_rollup([{"state": "ERROR"}]) == "failing"

    def test_in_progress_is_pending(self):
        rollup = [{"conclusion": "SUCCESS"}, {"status": "IN_PROGRESS", "conclusion": ""}]
        assert parse_check_rollup(rollup) == "pending"

    def test_no_checks(self):
        assert parse_check_rollup([]) is None
        assert parse_check_rollup(None) is None


class TestRecordFromRow:
    def test_shapes_row(self):
        record = record_from_row({
            "headRefName": "feat-a", "number": 12, "state": "open",
            "statusCheckRollup": [{"conclusion": "SUCCESS"}],
            "mergeable": "MERGEABLE", "title": "T", "url": "u",
        })
        assert record == PRExists(number=12, state="OPEN", checks="passing",
                                  mergeable="MERGEABLE", title="T", url="u", head="feat-a")


class TestPRStatusFetcher:
    """Tests for PRStatusFetcher.fetch."""

    @pytest.mark.asyncio
    async def test_minimal_queries(self, fetcher, mock_git, mock_hosting):
        """Three worktrees of one project and two of another cost two listings."""
        mock_hosting.add_pr("feat-a", 1)
        mock_hosting.add_pr("fix-b", 2, state="MERGED")

        results = await fetcher.fetch([WEB_A, WEB_B, WEB_C, API_A, API_B])

        assert len(mock_hosting.calls) == 2
        assert mock_hosting.calls[0] == (WEB_A, ["feat-a", "feat-b", "feat-c"])
        assert mock_hosting.calls[1] == (API_A, ["fix-a", "fix-b"])
        assert len(mock_git.calls_to("worktree_branches")) == 2
        assert mock_git.calls_to("resolve_branch") == []

        assert results[WEB_A].number == 1
        assert results[API_B].state == "MERGED"
        assert results[WEB_B] == PRNoPR()
        assert results[API_A] == PRNoPR()

    @pytest.mark.asyncio
    async def test_listing_filtered_to_requested_branches(self, fetcher, mock_hosting):
        await fetcher.fetch([WEB_B])
        assert mock_hosting.calls == [(WEB_B, ["feat-b"])]

    @pytest.mark.asyncio
    async def test_unrequested_rows_ignored(self, fetcher, mock_hosting):
        mock_hosting.extra_rows.append({"headRefName": "feat-c", "number": 99, "state": "OPEN"})
        results = await fetcher.fetch([WEB_A])
        assert results == {WEB_A: PRNoPR()}

    @pytest.mark.asyncio
    async def test_unlisted_worktree_falls_back_to_resolve(self, fetcher, mock_git, mock_hosting):
        mock_git.add_worktree("/p/web-branches/new", "new-branch", listed=False)
        mock_hosting.add_pr("new-branch", 5)

        results = await fetcher.fetch(["/p/web-branches/new"])

        assert mock_git.calls_to("resolve_branch") == ["/p/web-branches/new"]
        assert results["/p/web-branches/new"].number == 5

    @pytest.mark.asyncio
    async def test_detached_worktrees_skip_listing(self, fetcher, mock_git, mock_hosting):
        mock_git.add_worktree("/p/x-branches/detached", None, listed=False)
        results = await fetcher.fetch(["/p/x-branches/detached"])
        assert mock_hosting.calls == []
        assert results == {"/p/x-branches/detached": PRNoPR()}

    @pytest.mark.asyncio
    async def test_group_failure_is_isolated(self, fetcher, mock_hosting):
        mock_hosting.add_pr("fix-a", 3)
        mock_hosting.fail_repos.add(WEB_A)

        results = await fetcher.fetch([WEB_A, WEB_B, API_A])

        assert isinstance(results[WEB_A], PRError)
        assert isinstance(results[WEB_B], PRError)
        assert results[API_A].number == 3

    @pytest.mark.asyncio
    async def test_git_failure_is_error(self, fetcher, mock_git):
        mock_git.fail_paths.add(API_A)
        results = await fetcher.fetch([API_A, API_B])
        assert all(isinstance(r, PRError) for r in results.values())

    @pytest.mark.asyncio
    async def test_timeout_is_error(self, fetcher, mock_hosting):
        mock_hosting.error = CommandTimeoutError(["gh", "pr", "list"], 30)
        results = await fetcher.fetch([WEB_A])
        assert isinstance(results[WEB_A], PRError)
        assert "timed out" in results[WEB_A].message

    @pytest.mark.asyncio
    async def test_same_named_repos_queried_separately(self, mock_hosting):
        mock_git = MockGit()
        mock_git.add_worktree("/work/web", "main-a")
        mock_git.add_worktree("/personal/web", "main-b")
        mock_hosting.add_pr("main-b", 8)
        fetcher = PRStatusFetcher(mock_git, mock_hosting)

        results = await fetcher.fetch(["/work/web", "/personal/web"])

        assert mock_hosting.calls == [("/work/web", ["main-a"]), ("/personal/web", ["main-b"])]
        assert results["/work/web"] == PRNoPR()
        assert results["/personal/web"].number == 8

    @pytest.mark.asyncio
    async def test_empty_request(self, fetcher, mock_git, mock_hosting):
        assert await fetcher.fetch([]) == {}
        assert mock_git.calls == []
        assert mock_hosting.calls == []


class TestDiscoverWorktrees:
    @pytest.mark.asyncio
    async def test_finds_feature_worktrees(self, tmp_path):
        mock_git = MockGit()
        (tmp_path / "web" / ".git").mkdir(parents=True)
        (tmp_path / "web-branches").mkdir()
        (tmp_path / "notes").mkdir()
        feature = str(tmp_path / "web-branches" / "feat-z")
        mock_git.add_worktree(str(tmp_path / "web"), "main")
        mock_git.add_worktree(feature, "feat-z")

        refs = await discover_worktrees(tmp_path, mock_git)

        assert refs == [WorktreeRef(project="web", path=feature)]

    @pytest.mark.asyncio
    async def test_missing_dir(self, tmp_path, mock_git):
        assert await discover_worktrees(tmp_path / "nope", mock_git) == []
