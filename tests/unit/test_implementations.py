"""
Tests for the production implementations: command runner, output parsers,
git and gh adapters, and the loop scheduler.
"""

import asyncio
import json
import sys

import pytest

from wtsync import implementations
from wtsync.exceptions import CommandTimeoutError, ExternalCommandError
from wtsync.implementations import (
    LoopScheduler,
    RealGit,
    RealGitHub,
    parse_ahead_behind,
    parse_merged_pr_numbers,
    parse_worktree_porcelain,
    run_command,
)

WORKTREE_PORCELAIN = """\
worktree /p/web
HEAD 1111111111111111111111111111111111111111
branch refs/heads/main

worktree /p/web-branches/feat-a
HEAD 2222222222222222222222222222222222222222
branch refs/heads/feat-a

worktree /p/web-branches/detached
HEAD 3333333333333333333333333333333333333333
detached
"""


class FakeRunner:
    """Stands in for run_command, replaying canned results in order."""

    def __init__(self, *results):
        self.results = list(results)
        self.calls = []

    async def __call__(self, args, cwd=None, timeout=None):
        self.calls.append((list(args), cwd, timeout))
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture
def runner(monkeypatch):
    def install(*results):
        fake = FakeRunner(*results)
        monkeypatch.setattr(implementations, "run_command", fake)
        return fake
    return install


class TestRunCommand:

    @pytest.mark.asyncio
    async def test_returns_stdout(self):
        assert await run_command([sys.executable, "-c", "print('hello')"]) == "hello\n"

    @pytest.mark.asyncio
    async def test_non_zero_exit(self):
        code = "import sys; sys.stderr.write('boom'); sys.exit(3)"
        with pytest.raises(ExternalCommandError) as exc_info:
            await run_command([sys.executable, "-c", code])
        assert exc_info.value.returncode == 3
        assert exc_info.value.message == "boom"

    @pytest.mark.asyncio
    async def test_timeout_kills_process(self):
        with pytest.raises(CommandTimeoutError) as exc_info:
            await run_command([sys.executable, "-c", "import time; time.sleep(10)"], timeout=0.2)
        assert "timed out after 0.2s" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_missing_binary(self):
        with pytest.raises(ExternalCommandError):
            await run_command(["wtsync-no-such-binary-xyz"])

    @pytest.mark.asyncio
    async def test_missing_cwd(self, tmp_path):
        with pytest.raises(ExternalCommandError):
            await run_command([sys.executable, "-c", "pass"], cwd=str(tmp_path / "gone"))


class TestParsers:

    def test_worktree_porcelain(self):
        assert parse_worktree_porcelain(WORKTREE_PORCELAIN) == {
            "/p/web": "main",
            "/p/web-branches/feat-a": "feat-a",
        }

    def test_worktree_porcelain_empty(self):
        assert parse_worktree_porcelain("") == {}

    def test_merged_pr_numbers(self):
        log = "Add login (#42)\nFix typo\nMerge pull request (#7) and (#8)\n"
        assert parse_merged_pr_numbers(log) == [42, 7, 8]

    def test_ahead_behind(self):
        assert parse_ahead_behind("3\t1\n") == (3, 1)
        assert parse_ahead_behind("") == (0, 0)
        assert parse_ahead_behind("x y") == (0, 0)


class TestRealGit:

    @pytest.mark.asyncio
    async def test_worktree_branches(self, runner):
        fake = runner(WORKTREE_PORCELAIN)
        branches = await RealGit(timeout=9, quick_timeout=1).worktree_branches("/p/web")
        assert branches["/p/web-branches/feat-a"] == "feat-a"
        args, _, timeout = fake.calls[0]
        assert args == ["git", "-C", "/p/web", "worktree", "list", "--porcelain"]
        assert timeout == 9

    @pytest.mark.asyncio
    async def test_resolve_branch(self, runner):
        runner("feat-a\n")
        assert await RealGit().resolve_branch("/w") == "feat-a"

    @pytest.mark.asyncio
    async def test_detached_head(self, runner):
        runner(ExternalCommandError(["git"], "", 1))
        assert await RealGit().resolve_branch("/w") is None

    @pytest.mark.asyncio
    async def test_resolve_branch_other_failure(self, runner):
        runner(ExternalCommandError(["git"], "not a git repository", 128))
        with pytest.raises(ExternalCommandError):
            await RealGit().resolve_branch("/w")

    @pytest.mark.asyncio
    async def test_merged_numbers_fall_back_to_master(self, runner):
        fake = runner(ExternalCommandError(["git"], "unknown revision", 128), "Ship it (#12)\n")
        assert await RealGit().recent_merged_pr_numbers("/p/web", 20) == [12]
        assert fake.calls[1][0] == ["git", "-C", "/p/web", "log", "origin/master",
                                    "--format=%s", "-n", "20"]

    @pytest.mark.asyncio
    async def test_merged_numbers_without_main_line(self, runner):
        runner(ExternalCommandError(["git"], "x", 128), ExternalCommandError(["git"], "x", 128))
        assert await RealGit().recent_merged_pr_numbers("/p/web", 20) == []

    @pytest.mark.asyncio
    async def test_status_porcelain(self, runner):
        runner(" M a.py\n?? b.py\n\n")
        assert await RealGit().status_porcelain("/w") == [" M a.py", "?? b.py"]

    @pytest.mark.asyncio
    async def test_no_upstream(self, runner):
        runner(ExternalCommandError(["git"], "no upstream", 128))
        assert await RealGit().upstream("/w") is None

    @pytest.mark.asyncio
    async def test_upstream_timeout_propagates(self, runner):
        runner(CommandTimeoutError(["git"], 5))
        with pytest.raises(CommandTimeoutError):
            await RealGit().upstream("/w")

    @pytest.mark.asyncio
    async def test_ref_exists(self, runner):
        runner("abc\n", ExternalCommandError(["git"], "", 1))
        git = RealGit()
        assert await git.ref_exists("/w", "origin/main") is True
        assert await git.ref_exists("/w", "origin/nope") is False

    @pytest.mark.asyncio
    async def test_ahead_behind(self, runner):
        fake = runner("2\t0\n")
        assert await RealGit().ahead_behind("/w", "@{u}") == (2, 0)
        assert fake.calls[0][0][-1] == "HEAD...@{u}"


class TestRealGitHub:

    @pytest.mark.asyncio
    async def test_one_filtered_listing(self, runner):
        rows = [{"headRefName": "feat-a", "number": 1, "state": "OPEN"}]
        fake = runner(json.dumps(rows))

        result = await RealGitHub(timeout=7).list_pr_status("/p/web", ["feat-a", "feat-b"])

        assert result == rows
        args, cwd, timeout = fake.calls[0]
        assert args[:3] == ["gh", "pr", "list"]
        assert args[args.index("--search") + 1] == "head:feat-a head:feat-b"
        assert args[args.index("--state") + 1] == "all"
        assert "statusCheckRollup" in args[args.index("--json") + 1]
        assert (cwd, timeout) == ("/p/web", 7)

    @pytest.mark.asyncio
    async def test_no_branches_no_call(self, runner):
        fake = runner()
        assert await RealGitHub().list_pr_status("/p/web", []) == []
        assert fake.calls == []

    @pytest.mark.asyncio
    async def test_invalid_json(self, runner):
        runner("not json")
        with pytest.raises(ExternalCommandError):
            await RealGitHub().list_pr_status("/p/web", ["feat-a"])

    @pytest.mark.asyncio
    async def test_unexpected_shape(self, runner):
        runner('{"number": 1}')
        with pytest.raises(ExternalCommandError):
            await RealGitHub().list_pr_status("/p/web", ["feat-a"])


class TestLoopScheduler:

    @pytest.mark.asyncio
    async def test_call_later_runs_on_loop(self):
        fired = asyncio.Event()
        LoopScheduler().call_later(0.01, fired.set)
        await asyncio.wait_for(fired.wait(), timeout=1)

    @pytest.mark.asyncio
    async def test_cancel(self):
        fired = []
        handle = LoopScheduler().call_later(0.01, lambda: fired.append(1))
        handle.cancel()
        await asyncio.sleep(0.05)
        assert fired == []
