"""Filesystem helpers for run-scoped artifact directories."""

from __future__ import annotations

import shutil
from pathlib import Path


def reset_dir(path: Path) -> Path:
    """Delete ``path`` if present and recreate it empty."""
    shutil.rmtree(path, ignore_errors=True)
    path.mkdir(parents=True, exist_ok=True)
    return path


def replace_tree(source: Path, dest: Path) -> Path:
    """Make ``dest`` an exact copy of ``source``."""
    shutil.rmtree(dest, ignore_errors=True)
    dest.parent.mkdir(parents=True, exist_ok=True)
    shutil.copytree(source, dest)
    return dest


def count_files(path: Path) -> int:
    return sum(1 for p in path.rglob("*") if p.is_file())
