"""Readiness probe: polls the preview server until it answers with a 2xx."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

import httpx

from lsvrt.errors import ServerStartFailure, TimeoutFailure

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 120.0
POLL_INTERVAL_SECONDS = 1.5
REQUEST_TIMEOUT_SECONDS = 5.0


async def wait_until_ready(
    port: int,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    interval: float = POLL_INTERVAL_SECONDS,
    *,
    host: str = "localhost",
    transport: Optional[httpx.AsyncBaseTransport] = None,
    abort_reason: Optional[Callable[[], Optional[str]]] = None,
) -> None:
    """Issue HEAD requests to ``http://<host>:<port>/`` until one returns 2xx.

    Connection errors and non-2xx statuses count as "not ready yet". The last
    attempt is made at the deadline itself, so a server that comes up before
    ``timeout`` elapses is always seen; otherwise the most recent error is
    reported in the TimeoutFailure. Proxy variables from the environment are
    not honoured. ``abort_reason`` is checked before every attempt; if it
    returns a message the wait stops with ServerStartFailure.
    """
    url = f"http://{host}:{port}/"
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    last_error: object | None = None
    attempts = 0

    async with httpx.AsyncClient(
        transport=transport, timeout=REQUEST_TIMEOUT_SECONDS, trust_env=False
    ) as client:
        while True:
            if abort_reason is not None:
                reason = abort_reason()
                if reason:
                    raise ServerStartFailure(port, reason)

            attempts += 1
            try:
                response = await client.head(url)
                if response.is_success:
                    logger.info("Server ready at %s after %d attempt(s)", url, attempts)
                    return
                last_error = f"HTTP {response.status_code}"
            except httpx.HTTPError as e:
                last_error = e
            logger.debug("Not ready yet (%s): %s", url, last_error)

            remaining = deadline - loop.time()
            if remaining <= 0:
                break
            await asyncio.sleep(min(interval, remaining))

    raise TimeoutFailure(port, timeout, last_error)
