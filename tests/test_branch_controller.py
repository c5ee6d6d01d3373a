"""Tests for the branch controller against a real throwaway repository."""

import pytest

from lsvrt.errors import CheckoutFailure, PreconditionFailure, UnknownBranchFailure
from lsvrt.git.branch_controller import BranchController, _porcelain_path


class TestPorcelainPath:

    @pytest.mark.parametrize("line,expected", [
        (" M src/Button.tsx", "src/Button.tsx"),
        ("?? .lsvrt/", ".lsvrt/"),
        ("R  old.txt -> new.txt", "new.txt"),
        ('?? "with space.txt"', "with space.txt"),
    ])
    def test_parses_paths(self, line, expected):
        assert _porcelain_path(line) == expected


class TestRepositoryQueries:

    @pytest.mark.asyncio
    async def test_is_repo(self, git_repo):
        assert await BranchController(git_repo).is_repo()

    @pytest.mark.asyncio
    async def test_plain_directory_is_not_repo(self, tmp_path):
        plain = tmp_path / "plain"
        plain.mkdir()
        (plain / ".git").write_text("gitdir: /nonexistent\n")
        assert not await BranchController(plain).is_repo()

    @pytest.mark.asyncio
    async def test_current_branch(self, git_repo):
        assert await BranchController(git_repo).current_branch() == "main"

    @pytest.mark.asyncio
    async def test_detached_head_has_no_branch(self, git_repo, git_cmd):
        git_cmd(git_repo, "checkout", "-q", "--detach")
        branches = BranchController(git_repo)
        assert await branches.current_branch() is None
        with pytest.raises(PreconditionFailure):
            await branches.snapshot()

    @pytest.mark.asyncio
    async def test_path_prefix(self, git_repo):
        sub = git_repo / "packages" / "ui"
        sub.mkdir(parents=True)
        assert await BranchController(git_repo).path_prefix() == ""
        assert await BranchController(sub).path_prefix() == "packages/ui/"


class TestChangedFiles:

    @pytest.mark.asyncio
    async def test_clean_tree(self, git_repo):
        state = await BranchController(git_repo).snapshot()
        assert state.branch == "main"
        assert state.is_clean

    @pytest.mark.asyncio
    async def test_modified_and_untracked_files(self, git_repo):
        (git_repo / "README.md").write_text("changed\n")
        (git_repo / "new.txt").write_text("new\n")
        files = await BranchController(git_repo).changed_files()
        assert sorted(files) == ["README.md", "new.txt"]

    @pytest.mark.asyncio
    async def test_ignored_prefixes(self, git_repo):
        (git_repo / ".lsvrt" / "capture").mkdir(parents=True)
        (git_repo / ".lsvrt" / "capture" / "a.png").write_bytes(b"x")
        files = await BranchController(git_repo).changed_files(ignore=[".lsvrt"])
        assert files == []


class TestEnsureExists:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("branch", ["main", "feature-x", "feature/nested"])
    async def test_existing_branches(self, git_repo, branch):
        await BranchController(git_repo).ensure_exists(branch)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("branch", ["does-not-exist", "feature/missing", "", "--all"])
    async def test_unknown_branches(self, git_repo, branch):
        with pytest.raises(UnknownBranchFailure) as exc:
            await BranchController(git_repo).ensure_exists(branch)
        assert exc.value.branch == branch


class TestCheckoutAndRestore:

    @pytest.mark.asyncio
    async def test_checkout(self, git_repo):
        branches = BranchController(git_repo)
        await branches.checkout("feature-x")
        assert await branches.current_branch() == "feature-x"

    @pytest.mark.asyncio
    async def test_checkout_failure(self, git_repo):
        with pytest.raises(CheckoutFailure) as exc:
            await BranchController(git_repo).checkout("does-not-exist")
        assert exc.value.exit_code != 0

    @pytest.mark.asyncio
    async def test_restore_switches_back(self, git_repo):
        branches = BranchController(git_repo)
        await branches.checkout("feature/nested")
        assert await branches.restore("main") is True
        assert await branches.current_branch() == "main"

    @pytest.mark.asyncio
    async def test_restore_is_noop_on_same_branch(self, git_repo):
        assert await BranchController(git_repo).restore("main") is True

    @pytest.mark.asyncio
    async def test_restore_failure_is_swallowed(self, git_repo):
        branches = BranchController(git_repo)
        assert await branches.restore("vanished-branch") is False
        assert await branches.current_branch() == "main"

    @pytest.mark.asyncio
    async def test_switched_returns_on_error(self, git_repo):
        branches = BranchController(git_repo)
        with pytest.raises(RuntimeError):
            async with branches.switched("feature-x", back_to="main"):
                assert await branches.current_branch() == "feature-x"
                raise RuntimeError("check failed")
        assert await branches.current_branch() == "main"
