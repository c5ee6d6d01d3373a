"""Tests for the readiness probe, using httpx.MockTransport and a local HTTP server."""

import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import httpx
import pytest

from lsvrt.errors import ServerStartFailure, TimeoutFailure
from lsvrt.runner.readiness import wait_until_ready


def _transport(handler) -> httpx.MockTransport:
    return httpx.MockTransport(handler)


class TestWaitUntilReady:

    @pytest.mark.asyncio
    async def test_ready_on_first_success(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200)

        await wait_until_ready(6006, timeout=1, interval=0.01, transport=_transport(handler))
        assert len(seen) == 1
        assert seen[0].method == "HEAD"
        assert str(seen[0].url) == "http://localhost:6006/"

    @pytest.mark.asyncio
    async def test_retries_until_success(self):
        statuses = iter([503, 404, 204])

        def handler(request):
            return httpx.Response(next(statuses))

        await wait_until_ready(6006, timeout=1, interval=0.01, transport=_transport(handler))

    @pytest.mark.asyncio
    async def test_connection_errors_are_not_fatal(self):
        calls = {"n": 0}

        def handler(request):
            calls["n"] += 1
            if calls["n"] < 3:
                raise httpx.ConnectError("Connection refused", request=request)
            return httpx.Response(200)

        await wait_until_ready(6006, timeout=1, interval=0.01, transport=_transport(handler))
        assert calls["n"] == 3

    @pytest.mark.asyncio
    async def test_timeout_reports_last_error(self):
        def handler(request):
            raise httpx.ConnectError("Connection refused", request=request)

        with pytest.raises(TimeoutFailure) as exc:
            await wait_until_ready(6123, timeout=0.1, interval=0.02, transport=_transport(handler))
        assert isinstance(exc.value.last_error, httpx.ConnectError)
        assert exc.value.port == 6123
        assert "Connection refused" in str(exc.value)

    @pytest.mark.asyncio
    async def test_timeout_reports_last_status(self):
        def handler(request):
            return httpx.Response(500)

        with pytest.raises(TimeoutFailure) as exc:
            await wait_until_ready(6006, timeout=0.1, interval=0.02, transport=_transport(handler))
        assert exc.value.last_error == "HTTP 500"

    @pytest.mark.asyncio
    async def test_timeout_is_a_server_start_failure(self):
        def handler(request):
            return httpx.Response(503)

        with pytest.raises(ServerStartFailure):
            await wait_until_ready(6006, timeout=0.05, interval=0.01, transport=_transport(handler))

    @pytest.mark.asyncio
    async def test_abort_reason_stops_early(self):
        def handler(request):
            return httpx.Response(503)

        reasons = iter([None, "server process exited early with code 1"])
        start = time.monotonic()
        with pytest.raises(ServerStartFailure) as exc:
            await wait_until_ready(6006, timeout=10, interval=0.01, transport=_transport(handler),
                                   abort_reason=lambda: next(reasons))
        assert not isinstance(exc.value, TimeoutFailure)
        assert "exited early" in str(exc.value)
        assert time.monotonic() - start < 5


class TestReadinessIsMonotonicInTime:
    """A server that becomes ready at T is seen iff the timeout exceeds T."""

    READY_AFTER = 0.3

    def _handler(self):
        ready_at = time.monotonic() + self.READY_AFTER

        def handler(request):
            if time.monotonic() >= ready_at:
                return httpx.Response(200)
            raise httpx.ConnectError("Connection refused", request=request)

        return handler

    @pytest.mark.asyncio
    async def test_timeout_longer_than_startup_succeeds(self):
        await wait_until_ready(6006, timeout=3, interval=0.02, transport=_transport(self._handler()))

    @pytest.mark.asyncio
    async def test_timeout_shorter_than_startup_fails(self):
        with pytest.raises(TimeoutFailure):
            await wait_until_ready(6006, timeout=0.1, interval=0.02, transport=_transport(self._handler()))

    @pytest.mark.asyncio
    async def test_server_ready_between_last_poll_and_deadline(self):
        # first poll at 0 fails, the next poll is only due after the deadline
        handler = self._handler()
        attempts = []

        def counting(request):
            attempts.append(time.monotonic())
            return handler(request)

        await wait_until_ready(6006, timeout=0.6, interval=5.0, transport=_transport(counting))
        assert len(attempts) == 2

    @pytest.mark.asyncio
    async def test_final_attempt_still_times_out_when_not_ready(self):
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ConnectError("Connection refused", request=request)

        start = time.monotonic()
        with pytest.raises(TimeoutFailure):
            await wait_until_ready(6006, timeout=0.2, interval=5.0, transport=_transport(handler))
        assert 2 <= len(calls) <= 3
        assert time.monotonic() - start < 2


class _HeadOk(BaseHTTPRequestHandler):
    def do_HEAD(self):
        self.send_response(200)
        self.end_headers()

    def log_message(self, format, *args):
        pass


@pytest.fixture
def local_server():
    server = ThreadingHTTPServer(("127.0.0.1", 0), _HeadOk)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield server.server_address[1]
    server.shutdown()
    server.server_close()


class TestReadinessAgainstRealServer:

    @pytest.mark.asyncio
    async def test_ready(self, local_server):
        await wait_until_ready(local_server, timeout=2, interval=0.05, host="127.0.0.1")

    @pytest.mark.asyncio
    async def test_proxy_environment_is_ignored(self, local_server, monkeypatch):
        for name in ("HTTP_PROXY", "http_proxy", "ALL_PROXY", "all_proxy"):
            monkeypatch.setenv(name, "http://127.0.0.1:9")
        monkeypatch.delenv("NO_PROXY", raising=False)
        monkeypatch.delenv("no_proxy", raising=False)
        await wait_until_ready(local_server, timeout=2, interval=0.05, host="127.0.0.1")
