"""Pipeline driver: preconditions, capture both branches, diff, report, restore."""

from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path
from typing import Optional

from pydantic import BaseModel

from lsvrt.capture.stage import CaptureStage
from lsvrt.diff.backends import DiffBackend, create_backend
from lsvrt.diff.report import load_summary, open_report
from lsvrt.errors import DirtyWorkingTreeFailure, MissingBinariesFailure, NotARepositoryFailure
from lsvrt.git.branch_controller import BranchController
from lsvrt.models.branch import BranchRef, OriginalBranchState
from lsvrt.models.config import RunConfig
from lsvrt.models.diff_result import DiffResult
from lsvrt.runner.bin_resolver import find_missing_binaries
from lsvrt.utils.fs import reset_dir

logger = logging.getLogger(__name__)


class PipelineResult(BaseModel):
    base_branch: str
    target_branch: str
    base_dir: str
    target_dir: str
    diff: DiffResult
    report_opened: bool = False
    duration: float = 0.0


class Pipeline:
    """Runs one base-vs-target visual regression comparison.

    Artifacts live under ``<cwd>/<namespace>/capture/<branch>/`` and
    ``<cwd>/<namespace>/reg-work/``. They are left on disk after the run,
    whether it succeeded or not.
    """

    def __init__(
        self,
        config: RunConfig,
        cwd: Optional[Path] = None,
        branches: Optional[BranchController] = None,
        backend: Optional[DiffBackend] = None,
    ):
        self.config = config
        self.cwd = Path(cwd or Path.cwd()).resolve()
        self.run_dir = self.cwd / config.namespace
        self.capture_root = self.run_dir / "capture"
        self.workspace = self.run_dir / "reg-work"
        self.branches = branches or BranchController(self.cwd)
        self.backend = backend or create_backend(config, cwd=self.cwd)
        self.capture_stage = CaptureStage(config, self.branches, self.capture_root, cwd=self.cwd)

    def run(self, target_branch: str) -> PipelineResult:
        """Execute the complete pipeline against ``target_branch``."""
        return asyncio.run(self.run_async(target_branch))

    async def run_async(self, target_branch: str) -> PipelineResult:
        start = time.time()
        original = await self.check_preconditions(target_branch)
        base = BranchRef(name=original.branch)
        target = BranchRef(name=target_branch)
        logger.info("=== Comparing %s (base) with %s (target) ===", base.name, target.name)

        try:
            await self.ensure_binaries_for_branches(base, target)

            self.capture_root.mkdir(parents=True, exist_ok=True)
            self.workspace.mkdir(parents=True, exist_ok=True)

            logger.info("--- Stage 1: Capture %s ---", base.name)
            stage_start = time.time()
            base_dir = await self.capture_stage.capture(base, checkout=False)
            logger.info("--- Stage 1 complete in %.1fs ---", time.time() - stage_start)

            logger.info("--- Stage 2: Capture %s ---", target.name)
            stage_start = time.time()
            target_dir = await self.capture_stage.capture(target, checkout=True)
            logger.info("--- Stage 2 complete in %.1fs ---", time.time() - stage_start)

            logger.info("--- Stage 3: Diff (%s) ---", self.backend.name)
            stage_start = time.time()
            diff = await self._diff(base_dir, target_dir)
            logger.info("--- Stage 3 complete in %.1fs ---", time.time() - stage_start)

            opened = False
            if diff.report_path and self.config.open_report:
                opened = await open_report(Path(diff.report_path))
        finally:
            await self.branches.restore(original.branch)

        duration = time.time() - start
        logger.info("=== Pipeline complete in %.1fs ===", duration)
        return PipelineResult(
            base_branch=base.name,
            target_branch=target.name,
            base_dir=str(base_dir),
            target_dir=str(target_dir),
            diff=diff,
            report_opened=opened,
            duration=round(duration, 2),
        )

    async def check_preconditions(self, target_branch: str) -> OriginalBranchState:
        """Everything that must hold before git state is touched."""
        if not await self.branches.is_repo():
            raise NotARepositoryFailure(str(self.cwd))

        prefix = await self.branches.path_prefix()
        original = await self.branches.snapshot(ignore=[prefix + self.config.namespace])

        if not original.is_clean:
            if not self.config.allow_dirty:
                raise DirtyWorkingTreeFailure(original.changed_files)
            logger.warning("Uncommitted changes detected (%d file(s)); continuing because "
                           "dirty trees are allowed", len(original.changed_files))

        await self.branches.ensure_exists(target_branch)
        return original

    def ensure_required_binaries(self, context: str) -> None:
        missing = find_missing_binaries(self.config.required_binaries, cwd=self.cwd)
        if missing:
            raise MissingBinariesFailure(missing, context)
        logger.debug("Required binaries present on %s", context)

    async def ensure_binaries_for_branches(self, base: BranchRef, target: BranchRef) -> None:
        """Both branches must have storycap and the diff tool installed."""
        self.ensure_required_binaries(f"branch {base.name}")
        if target.name == base.name:
            return
        async with self.branches.switched(target.name, back_to=base.name):
            self.ensure_required_binaries(f"branch {target.name}")

    async def _diff(self, base_dir: Path, target_dir: Path) -> DiffResult:
        reset_dir(self.workspace)
        report = await self.backend.run_diff(base_dir, target_dir, self.workspace)
        return DiffResult(
            backend=self.backend.name,
            workspace=str(self.workspace),
            report_path=str(report) if report else None,
            summary=load_summary(self.backend.summary_path(self.workspace)),
        )
