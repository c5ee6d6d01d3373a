"""Capture stage: boot Storybook for one branch and screenshot every story.

Per branch the stage walks strictly through

    idle -> server-starting -> server-ready -> capturing -> server-stopping -> done

and the preview server is torn down on every exit path, including a
failed readiness probe or a failed capture.
"""

from __future__ import annotations

import logging
import time
from enum import Enum
from pathlib import Path
from typing import Optional

from lsvrt.errors import CaptureFailure, ProcessFailure
from lsvrt.git.branch_controller import BranchController
from lsvrt.models.branch import BranchRef
from lsvrt.models.config import CAPTURE_TOOL, RunConfig
from lsvrt.runner.bin_resolver import resolve_command
from lsvrt.runner.process import ProcessHandle, managed_process, run_local_bin
from lsvrt.runner.readiness import wait_until_ready
from lsvrt.utils.fs import count_files, reset_dir

logger = logging.getLogger(__name__)

SERVER_FLAGS = ["--disable-telemetry", "--ci"]


class CaptureState(str, Enum):
    IDLE = "idle"
    SERVER_STARTING = "server-starting"
    SERVER_READY = "server-ready"
    CAPTURING = "capturing"
    SERVER_STOPPING = "server-stopping"
    DONE = "done"


def _exit_reason(server: ProcessHandle) -> Optional[str]:
    if server.running:
        return None
    return f"server process exited early with code {server.returncode}"


class CaptureStage:
    """Captures screenshots for one branch at a time into ``capture_root/<branch>``."""

    def __init__(
        self,
        config: RunConfig,
        branches: BranchController,
        capture_root: Path,
        cwd: Optional[Path] = None,
    ):
        self.config = config
        self.branches = branches
        self.capture_root = capture_root
        self.cwd = cwd
        self.state = CaptureState.IDLE
        self.history: list[CaptureState] = []

    def capture_dir(self, branch: BranchRef) -> Path:
        return self.capture_root / branch.sanitized

    def server_invocation(self) -> tuple[str, list[str]]:
        head, *rest = self.config.storybook_command
        args = [*rest, "-p", str(self.config.port), *SERVER_FLAGS]
        return resolve_command(head, cwd=self.cwd), args

    def capture_args(self, output_dir: Path) -> list[str]:
        return [self.config.server_url, "--outDir", str(output_dir), *self.config.storycap_options]

    def _enter(self, state: CaptureState) -> None:
        logger.debug("Capture state: %s -> %s", self.state.value, state.value)
        self.state = state
        self.history.append(state)

    async def capture(self, branch: BranchRef, checkout: bool = False) -> Path:
        """Capture ``branch`` and return its capture directory.

        ``checkout`` is False for the base branch, which is already active.
        """
        self.state = CaptureState.IDLE
        self.history = [CaptureState.IDLE]
        start = time.time()

        if checkout:
            await self.branches.checkout(branch.name)

        output_dir = self.capture_dir(branch)
        reset_dir(output_dir)

        command, args = self.server_invocation()
        logger.info("Starting Storybook for %s on port %d", branch.name, self.config.port)
        self._enter(CaptureState.SERVER_STARTING)

        async with managed_process(command, args, cwd=self.cwd, new_session=True) as server:
            try:
                await wait_until_ready(
                    self.config.port,
                    timeout=self.config.ready_timeout,
                    interval=self.config.ready_interval,
                    abort_reason=lambda: _exit_reason(server),
                )
                self._enter(CaptureState.SERVER_READY)

                self._enter(CaptureState.CAPTURING)
                logger.info("Capturing stories for %s into %s", branch.name, output_dir)
                try:
                    await run_local_bin(CAPTURE_TOOL, self.capture_args(output_dir), cwd=self.cwd)
                except ProcessFailure as e:
                    raise CaptureFailure.from_failure(e) from e
            finally:
                self._enter(CaptureState.SERVER_STOPPING)
                logger.info("Stopping Storybook for %s", branch.name)

        self._enter(CaptureState.DONE)
        logger.info("Captured %d file(s) for %s in %.1fs", count_files(output_dir), branch.name, time.time() - start)
        return output_dir
