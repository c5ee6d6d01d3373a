"""Locate node tool binaries installed under node_modules/.bin.

Candidates are evaluated lazily in this order:
  1. ``node_modules/.bin`` in the working directory and every ancestor
  2. the same walk starting from where lsvrt itself is installed
  3. the ``node_modules/.bin`` that ships next to the lsvrt package
The first existing file wins. When nothing matches, callers either fail
(mandatory tools) or go through the ``npx`` package runner.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Iterable, Iterator, Optional, Sequence

logger = logging.getLogger(__name__)

LOCAL_BIN = Path("node_modules") / ".bin"
PACKAGE_RUNNER = "npx"

_INSTALL_DIR = Path(__file__).resolve().parent
PACKAGE_BIN_DIR = _INSTALL_DIR.parents[1] / LOCAL_BIN


def _bin_filename(name: str, platform: str | None = None) -> str:
    platform = platform or sys.platform
    return f"{name}.cmd" if platform == "win32" else name


def walk_local_bin_dirs(start: Path) -> Iterator[Path]:
    """Yield ``start/node_modules/.bin`` and the same for every ancestor up to the root."""
    current = Path(start).resolve()
    while True:
        yield current / LOCAL_BIN
        parent = current.parent
        if parent == current:
            break
        current = parent


def build_bin_candidates(
    name: str,
    cwd: Optional[Path] = None,
    install_dir: Optional[Path] = None,
    extra_dirs: Sequence[Path] = (PACKAGE_BIN_DIR,),
    platform: str | None = None,
) -> Iterator[Path]:
    """Yield unique candidate paths for ``name`` in search order."""
    filename = _bin_filename(name, platform)
    seen: set[Path] = set()

    def dirs() -> Iterable[Path]:
        yield from walk_local_bin_dirs(cwd or Path.cwd())
        yield from walk_local_bin_dirs(install_dir or _INSTALL_DIR)
        yield from extra_dirs

    for directory in dirs():
        candidate = directory / filename
        if candidate in seen:
            continue
        seen.add(candidate)
        yield candidate


def resolve_bin(name: str, cwd: Optional[Path] = None, **kwargs) -> Optional[Path]:
    """Return the first installed binary for ``name`` or None."""
    for candidate in build_bin_candidates(name, cwd=cwd, **kwargs):
        if candidate.is_file():
            logger.debug("Resolved %s -> %s", name, candidate)
            return candidate
    logger.debug("No local binary found for %s", name)
    return None


def resolve_command(name: str, cwd: Optional[Path] = None) -> str:
    """Resolve a command's first token locally, falling back to the bare name (PATH lookup)."""
    resolved = resolve_bin(name, cwd=cwd)
    return str(resolved) if resolved else name


def local_bin_invocation(
    name: str, args: Sequence[str], cwd: Optional[Path] = None
) -> tuple[str, list[str]]:
    """Return ``(command, args)`` for a node tool, routing through npx when not installed."""
    resolved = resolve_bin(name, cwd=cwd)
    if resolved:
        return str(resolved), list(args)
    logger.info("%s not found locally, falling back to %s", name, PACKAGE_RUNNER)
    return PACKAGE_RUNNER, [name, *args]


def find_missing_binaries(names: Iterable[str], cwd: Optional[Path] = None) -> list[str]:
    return [name for name in names if resolve_bin(name, cwd=cwd) is None]
