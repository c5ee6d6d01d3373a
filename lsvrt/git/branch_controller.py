"""Branch controller: verify, switch and restore git branches."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Iterable, Optional

from lsvrt.errors import (
    CheckoutFailure,
    LsvrtError,
    PreconditionFailure,
    ProcessFailure,
    SpawnFailure,
    UnknownBranchFailure,
)
from lsvrt.models.branch import OriginalBranchState
from lsvrt.runner.process import read_command, run_command

logger = logging.getLogger(__name__)


def _porcelain_path(line: str) -> str:
    # "XY path" or "R  old -> new"
    path = line[3:]
    if " -> " in path:
        path = path.split(" -> ", 1)[1]
    return path.strip().strip('"')


class BranchController:
    """Wraps the handful of git subcommands the pipeline needs."""

    def __init__(self, cwd: Optional[Path] = None, git: str = "git"):
        self.cwd = cwd
        self.git = git

    async def _read(self, *args: str) -> str:
        return await read_command(self.git, list(args), cwd=self.cwd)

    async def is_repo(self) -> bool:
        try:
            out = await self._read("rev-parse", "--is-inside-work-tree")
        except (ProcessFailure, SpawnFailure) as e:
            logger.debug("Not a git repository: %s", e)
            return False
        return out.strip() == "true"

    async def path_prefix(self) -> str:
        """Path of the working directory relative to the repository root ("" at the root)."""
        return (await self._read("rev-parse", "--show-prefix")).strip()

    async def current_branch(self) -> Optional[str]:
        """Name of the checked-out branch, or None on a detached HEAD."""
        try:
            out = await self._read("symbolic-ref", "--short", "-q", "HEAD")
        except ProcessFailure:
            return None
        return out.strip() or None

    async def changed_files(self, ignore: Iterable[str] = ()) -> list[str]:
        """Modified, staged and untracked paths, minus anything under ``ignore``."""
        out = await self._read("status", "--porcelain", "--untracked-files=normal")
        prefixes = [p.rstrip("/") for p in ignore]
        files = []
        for line in out.splitlines():
            if not line.strip():
                continue
            path = _porcelain_path(line)
            if any(path.rstrip("/") == p or path.startswith(p + "/") for p in prefixes):
                continue
            files.append(path)
        return files

    async def snapshot(self, ignore: Iterable[str] = ()) -> OriginalBranchState:
        branch = await self.current_branch()
        if not branch:
            raise PreconditionFailure("Failed to detect current branch.")
        return OriginalBranchState(branch=branch, changed_files=await self.changed_files(ignore))

    async def ensure_exists(self, branch: str) -> None:
        """Raise UnknownBranchFailure unless ``branch`` resolves via rev-parse --verify."""
        if not branch or branch.startswith("-"):
            raise UnknownBranchFailure(branch)
        try:
            await self._read("rev-parse", "--verify", "--quiet", branch)
        except ProcessFailure as e:
            raise UnknownBranchFailure(branch) from e

    async def checkout(self, branch: str) -> None:
        logger.info("Checking out %s", branch)
        try:
            await run_command(self.git, ["checkout", branch], cwd=self.cwd)
        except ProcessFailure as e:
            raise CheckoutFailure.from_failure(e) from e

    async def restore(self, original: str) -> bool:
        """Return to ``original`` if the run left us elsewhere.

        Failures are logged and swallowed so they never mask the run's own error.
        """
        try:
            current = await self.current_branch()
            if current == original:
                return True
            logger.info("Restoring original branch %s (currently on %s)",
                        original, current or "detached HEAD")
            await self.checkout(original)
            return True
        except Exception as e:
            logger.error("Failed to restore branch %s: %s", original, e)
            return False

    @asynccontextmanager
    async def switched(self, branch: str, back_to: str) -> AsyncIterator[None]:
        """Check out ``branch`` for the duration of the block, then ``back_to``.

        When the block raises, a failure to switch back is only logged so the
        block's own error reaches the caller.
        """
        await self.checkout(branch)
        try:
            yield
        except BaseException:
            try:
                await self.checkout(back_to)
            except LsvrtError as e:
                logger.error("Failed to return to branch %s: %s", back_to, e)
            raise
        await self.checkout(back_to)
