"""Failure types raised by the visual-regression pipeline."""

from __future__ import annotations

from typing import Sequence


class LsvrtError(Exception):
    """Base class for every failure the pipeline reports to the user."""


# --- Preconditions (raised before any branch is touched) ---


class PreconditionFailure(LsvrtError):
    pass


class NotARepositoryFailure(PreconditionFailure):
    def __init__(self, cwd: str = ""):
        self.cwd = cwd
        super().__init__("Please run this command inside a git repository.")


class UnknownBranchFailure(PreconditionFailure):
    def __init__(self, branch: str):
        self.branch = branch
        super().__init__(f"Branch '{branch}' could not be resolved in this repository.")


class DirtyWorkingTreeFailure(PreconditionFailure):
    def __init__(self, files: Sequence[str]):
        self.files = list(files)
        preview = ", ".join(self.files[:5])
        if len(self.files) > 5:
            preview += f" (+{len(self.files) - 5} more)"
        super().__init__(
            "Uncommitted changes detected. Please commit or stash before running. "
            f"Changed: {preview}"
        )


class MissingBinariesFailure(PreconditionFailure):
    def __init__(self, missing: Sequence[str], context: str):
        self.missing = list(missing)
        self.context = context
        super().__init__(
            f"Required CLI binaries not found ({context}): {', '.join(self.missing)}\n"
            "Searched node_modules/.bin from the current directory upward and within the lsvrt package.\n"
            "In monorepos, install dependencies at the workspace root and try again."
        )


# --- External processes ---


class ProcessFailure(LsvrtError):
    """An external command ran but exited with a non-zero status."""

    def __init__(self, command: str, args: Sequence[str], exit_code: int | None):
        self.command = command
        self.args_list = list(args)
        self.exit_code = exit_code
        super().__init__(self._describe())

    def _describe(self) -> str:
        cmdline = " ".join([self.command, *self.args_list])
        return f"{cmdline} failed with code {self.exit_code}"

    @classmethod
    def from_failure(cls, failure: "ProcessFailure"):
        return cls(failure.command, failure.args_list, failure.exit_code)


class CheckoutFailure(ProcessFailure):
    pass


class CaptureFailure(ProcessFailure):
    pass


class DiffToolFailure(ProcessFailure):
    pass


class SpawnFailure(LsvrtError):
    """An external command could not be launched at all."""

    def __init__(self, command: str, args: Sequence[str], reason: str):
        self.command = command
        self.args_list = list(args)
        self.reason = reason
        super().__init__(f"Could not launch {command}: {reason}")


# --- Preview server ---


class ServerStartFailure(LsvrtError):
    def __init__(self, port: int, reason: str):
        self.port = port
        self.reason = reason
        super().__init__(f"Storybook did not start on port {port}: {reason}")


class TimeoutFailure(ServerStartFailure):
    """The readiness probe never saw a 2xx response before the deadline."""

    def __init__(self, port: int, timeout: float, last_error: object | None = None):
        self.timeout = timeout
        self.last_error = last_error
        detail = str(last_error) if last_error is not None else ""
        if not detail and last_error is not None:
            detail = type(last_error).__name__
        reason = f"{detail or 'unknown'} (gave up after {timeout:g}s)"
        super().__init__(port, reason)
