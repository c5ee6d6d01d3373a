"""Diff backends: run reg-cli or reg-suit over two capture directories.

Both share one contract: ``run_diff(base_dir, target_dir, workspace)``
returns the HTML report path, or None when the tool completed without
writing one. A non-zero exit raises DiffToolFailure. Visual differences
alone never fail the run; they are what the report is for.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from lsvrt.errors import DiffToolFailure, ProcessFailure
from lsvrt.models.config import RunConfig
from lsvrt.runner.process import run_local_bin
from lsvrt.utils.fs import replace_tree, reset_dir

logger = logging.getLogger(__name__)

REPORT_FILE = "index.html"


def _existing(path: Path) -> Optional[Path]:
    if path.is_file():
        return path
    logger.warning("Diff tool finished but no report was written at %s", path)
    return None


class DiffBackend(ABC):
    name: str = ""
    tool: str = ""
    summary_file: str = ""

    def __init__(self, config: RunConfig, cwd: Optional[Path] = None):
        self.config = config
        self.cwd = cwd

    def report_path(self, workspace: Path) -> Path:
        return workspace / REPORT_FILE

    def summary_path(self, workspace: Path) -> Path:
        return workspace / self.summary_file

    async def _run_tool(self, args: list[str]) -> None:
        logger.info("Running %s", self.tool)
        try:
            await run_local_bin(self.tool, args, cwd=self.cwd)
        except ProcessFailure as e:
            raise DiffToolFailure.from_failure(e) from e

    @abstractmethod
    async def run_diff(self, base_dir: Path, target_dir: Path, workspace: Path) -> Optional[Path]:
        ...


class RegCliBackend(DiffBackend):
    """Calls reg-cli directly with positional directories and threshold flags."""

    name = "reg-cli"
    tool = "reg-cli"
    summary_file = "reg.json"

    def build_args(self, base_dir: Path, target_dir: Path, workspace: Path) -> list[str]:
        return [
            str(base_dir),
            str(target_dir),
            str(workspace / "diff"),
            "--json", str(self.summary_path(workspace)),
            "--report", str(self.report_path(workspace)),
            "--thresholdRate", f"{self.config.threshold_rate:g}",
            "--thresholdPixel", str(self.config.threshold_pixel),
            *self.config.regcli_options,
        ]

    async def run_diff(self, base_dir: Path, target_dir: Path, workspace: Path) -> Optional[Path]:
        reset_dir(workspace / "diff")
        await self._run_tool(self.build_args(base_dir, target_dir, workspace))
        return _existing(self.report_path(workspace))


class RegSuitBackend(DiffBackend):
    """Drives reg-suit through a generated regconfig.json.

    reg-suit only compares against expected images inside its own working
    directory, so the target captures are copied to ``<workspace>/expected``.
    Thresholds are pinned to 0 here regardless of the run configuration.
    """

    name = "reg-suit"
    tool = "reg-suit"
    summary_file = "out.json"
    config_file = "regconfig.json"

    def build_config(self, base_dir: Path, target_dir: Path, workspace: Path) -> dict:
        return {
            "core": {
                "workingDir": str(workspace),
                "actualDir": str(base_dir),
                "expectedDir": str(target_dir),
                "thresholdRate": 0,
                "thresholdPixel": 0,
            },
            "plugins": {},
        }

    async def run_diff(self, base_dir: Path, target_dir: Path, workspace: Path) -> Optional[Path]:
        workspace.mkdir(parents=True, exist_ok=True)
        config_path = workspace / self.config_file
        with open(config_path, "w", encoding="utf-8") as f:
            json.dump(self.build_config(base_dir, target_dir, workspace), f, indent=2)
        logger.debug("Wrote reg-suit config to %s", config_path)

        replace_tree(target_dir, workspace / "expected")
        await self._run_tool(["run", "--config", str(config_path)])
        return _existing(self.report_path(workspace))


BACKENDS: dict[str, type[DiffBackend]] = {
    RegCliBackend.name: RegCliBackend,
    RegSuitBackend.name: RegSuitBackend,
}


def create_backend(config: RunConfig, cwd: Optional[Path] = None) -> DiffBackend:
    return BACKENDS[config.backend](config, cwd=cwd)
