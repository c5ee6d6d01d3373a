"""Process runner: the one place external commands are launched.

Every git, Storybook, storycap and diff tool invocation goes through here so
that failure semantics are uniform: a non-zero exit raises ProcessFailure and
a command that cannot be launched raises SpawnFailure.
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional, Sequence

from lsvrt.errors import ProcessFailure, SpawnFailure

from .bin_resolver import local_bin_invocation

logger = logging.getLogger(__name__)

# Seconds a process gets between SIGTERM and SIGKILL
TERMINATE_GRACE_SECONDS = 10.0


def _cmdline(command: str, args: Sequence[str]) -> str:
    return " ".join([command, *args])


async def _create(
    command: str,
    args: Sequence[str],
    cwd: Optional[Path],
    stdout=None,
    stderr=None,
    new_session: bool = False,
) -> asyncio.subprocess.Process:
    logger.debug("$ %s", _cmdline(command, args))
    kwargs = {}
    if new_session and sys.platform != "win32":
        kwargs["start_new_session"] = True
    try:
        return await asyncio.create_subprocess_exec(
            command, *args,
            cwd=str(cwd) if cwd else None,
            stdin=None,
            stdout=stdout,
            stderr=stderr,
            **kwargs,
        )
    except OSError as e:
        raise SpawnFailure(command, args, str(e)) from e


async def run_command(
    command: str,
    args: Sequence[str] = (),
    *,
    cwd: Optional[Path] = None,
    quiet: bool = False,
) -> None:
    """Run a command with inherited stdio and wait for it to exit 0.

    With ``quiet=True`` the child's output is discarded instead.
    """
    stream = asyncio.subprocess.DEVNULL if quiet else None
    process = await _create(command, args, cwd, stdout=stream, stderr=stream)
    code = await process.wait()
    if code != 0:
        raise ProcessFailure(command, args, code)


async def read_command(
    command: str,
    args: Sequence[str] = (),
    *,
    cwd: Optional[Path] = None,
) -> str:
    """Run a command and return its stdout. Used for read-only git queries."""
    process = await _create(
        command, args, cwd,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    stdout, stderr = await process.communicate()
    if process.returncode != 0:
        logger.debug("%s stderr: %s", command, stderr.decode("utf-8", errors="replace").strip())
        raise ProcessFailure(command, args, process.returncode)
    return stdout.decode("utf-8", errors="replace")


async def run_local_bin(
    name: str,
    args: Sequence[str] = (),
    *,
    cwd: Optional[Path] = None,
    quiet: bool = False,
) -> None:
    """Run a node tool from node_modules/.bin, or through npx when not installed."""
    command, final_args = local_bin_invocation(name, args, cwd=cwd)
    await run_command(command, final_args, cwd=cwd, quiet=quiet)


class ProcessHandle:
    """A live child process owned by whichever stage spawned it."""

    def __init__(self, process: asyncio.subprocess.Process, command: str, args: Sequence[str],
                 own_group: bool = False):
        self.process = process
        self.command = command
        self.args = list(args)
        self.own_group = own_group

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def returncode(self) -> Optional[int]:
        return self.process.returncode

    @property
    def running(self) -> bool:
        return self.process.returncode is None

    async def wait(self) -> int:
        return await self.process.wait()

    def _signal(self, sig: int) -> None:
        try:
            if self.own_group:
                # reaches grandchildren too, e.g. the node server behind npx
                os.killpg(self.process.pid, sig)
            elif sig == signal.SIGTERM:
                self.process.terminate()
            else:
                self.process.kill()
        except ProcessLookupError:
            pass

    async def terminate(self, grace: float = TERMINATE_GRACE_SECONDS) -> Optional[int]:
        """Send SIGTERM, wait for exit, escalate to SIGKILL after ``grace`` seconds.

        Never raises for a process that refuses to exit; returns None instead.
        """
        if not self.running:
            return self.returncode

        logger.debug("Terminating %s (pid %d)", self.command, self.pid)
        self._signal(signal.SIGTERM)
        try:
            return await asyncio.wait_for(self.process.wait(), grace)
        except asyncio.TimeoutError:
            logger.warning("%s did not exit after SIGTERM, killing it", self.command)

        self._signal(getattr(signal, "SIGKILL", signal.SIGTERM))
        try:
            return await asyncio.wait_for(self.process.wait(), grace)
        except asyncio.TimeoutError:
            logger.warning("%s (pid %d) did not exit; leaving it behind", self.command, self.pid)
            return None


async def spawn(
    command: str,
    args: Sequence[str] = (),
    *,
    cwd: Optional[Path] = None,
    new_session: bool = False,
) -> ProcessHandle:
    """Start a long-running process with inherited stdio and return its handle."""
    process = await _create(command, args, cwd, new_session=new_session)
    return ProcessHandle(
        process, command, args,
        own_group=new_session and sys.platform != "win32",
    )


@asynccontextmanager
async def managed_process(
    command: str,
    args: Sequence[str] = (),
    *,
    cwd: Optional[Path] = None,
    new_session: bool = False,
    grace: float = TERMINATE_GRACE_SECONDS,
) -> AsyncIterator[ProcessHandle]:
    """Spawn a process for the duration of the block; it is always torn down on exit."""
    handle = await spawn(command, args, cwd=cwd, new_session=new_session)
    try:
        yield handle
    finally:
        await handle.terminate(grace)
