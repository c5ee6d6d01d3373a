"""Pytest configuration and shared fixtures."""

import shutil
import subprocess
from pathlib import Path

import pytest

from lsvrt.models.branch import BranchRef
from lsvrt.models.config import RunConfig


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def run_config() -> RunConfig:
    """Create a test run configuration that never opens a browser."""
    return RunConfig(
        port=6006,
        storybook_command="storybook dev",
        ready_timeout=1.0,
        ready_interval=0.01,
        open_report=False,
    )


@pytest.fixture
def base_branch() -> BranchRef:
    return BranchRef(name="main")


@pytest.fixture
def target_branch() -> BranchRef:
    return BranchRef(name="feature/button-colors")


# ============================================================================
# Git Repository Fixtures
# ============================================================================


def git(repo: Path, *args: str) -> str:
    """Run git synchronously in ``repo`` for test setup."""
    result = subprocess.run(
        ["git", *args], cwd=repo, check=True, capture_output=True, text=True
    )
    return result.stdout


@pytest.fixture
def git_repo(tmp_path: Path) -> Path:
    """A real repository on ``main`` with extra branches ``feature-x`` and ``feature/nested``."""
    if shutil.which("git") is None:
        pytest.skip("git is not installed")

    repo = tmp_path / "repo"
    repo.mkdir()
    git(repo, "init", "-q")
    git(repo, "config", "user.email", "dev@example.com")
    git(repo, "config", "user.name", "Dev")
    git(repo, "config", "commit.gpgsign", "false")
    (repo / "README.md").write_text("hello\n")
    git(repo, "add", "README.md")
    git(repo, "commit", "-q", "-m", "initial")
    git(repo, "branch", "-M", "main")
    git(repo, "branch", "feature-x")
    git(repo, "branch", "feature/nested")
    return repo


@pytest.fixture
def git_cmd():
    """The synchronous git helper, for tests that need extra setup."""
    return git


# ============================================================================
# Screenshot Helpers
# ============================================================================


def create_mock_screenshot(path: Path, variant: int = 0) -> None:
    """Create a small PNG file for testing; ``variant`` changes the trailing bytes."""
    png_data = (
        b'\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR\x00\x00\x00\x01'
        b'\x00\x00\x00\x01\x08\x02\x00\x00\x00\x90wS\xde\x00\x00'
        b'\x00\x0cIDATx\x9cc\x00\x01\x00\x00\x05\x00\x01\r\n-'
        b'\xb4\x00\x00\x00\x00IEND\xaeB`\x82'
    )
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(png_data + bytes([variant]) if variant else png_data)


@pytest.fixture
def create_screenshot_helper():
    """Fixture that provides the create_mock_screenshot function."""
    return create_mock_screenshot
