"""Report helpers: read the diff summary and open the HTML report."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from lsvrt.errors import LsvrtError
from lsvrt.models.diff_result import DiffSummary
from lsvrt.runner.process import run_command

logger = logging.getLogger(__name__)


def load_summary(path: Path) -> Optional[DiffSummary]:
    """Parse a reg-cli/reg-suit JSON summary. Best-effort: None if missing or unreadable."""
    if not path.is_file():
        logger.debug("No diff summary at %s", path)
        return None
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        return DiffSummary.model_validate(data)
    except (OSError, ValueError, ValidationError) as e:
        logger.debug("Could not read diff summary %s: %s", path, e)
        return None


def opener_invocation(file_path: Path, platform: Optional[str] = None) -> tuple[str, list[str]]:
    platform = platform or sys.platform
    if platform == "darwin":
        return "open", [str(file_path)]
    if platform == "win32":
        return "cmd", ["/c", "start", "", str(file_path)]
    return "xdg-open", [str(file_path)]


async def open_report(file_path: Path) -> bool:
    """Open the report in the platform's default viewer; a failure is only a warning."""
    command, args = opener_invocation(file_path)
    try:
        await run_command(command, args, quiet=True)
    except LsvrtError as e:
        logger.warning("Could not open report automatically: %s", e)
        return False
    logger.info("Opening report in your browser: %s", file_path)
    return True
