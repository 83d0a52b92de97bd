"""
Tests for the aiohttp transport against a local aiohttp server.
"""

from typing import Any, Dict, List

import pytest
from aiohttp import web
from aiohttp import test_utils

from m3log.client.transport import HttpTransport
from m3log.core.exceptions import TransportFailure


def build_app(status: int, received: List[Dict[str, Any]]) -> web.Application:
    async def handle_logs(request: web.Request) -> web.Response:
        received.append(await request.json())
        if status == 200:
            return web.json_response({"success": True, "count": 1})
        return web.json_response({"error": "nope"}, status=status)

    app = web.Application()
    app.router.add_post("/api/logs", handle_logs)
    return app


class TestHttpTransport:
    """Test success and failure reporting."""

    @pytest.mark.asyncio
    async def test_posts_envelope_and_accepts_200(self) -> None:
        received: List[Dict[str, Any]] = []
        server = test_utils.TestServer(build_app(200, received))
        await server.start_server()
        transport = HttpTransport(str(server.make_url("/")))
        try:
            await transport.send("svc", ["line-1", "line-2"])
        finally:
            await transport.close()
            await server.close()

        assert received == [{"source": "svc", "logs": ["line-1", "line-2"]}]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [201, 400, 503])
    async def test_non_200_is_failure_with_body(self, status: int) -> None:
        server = test_utils.TestServer(build_app(status, []))
        await server.start_server()
        transport = HttpTransport(str(server.make_url("/")))
        try:
            with pytest.raises(TransportFailure) as exc_info:
                await transport.send("svc", ["line"])
        finally:
            await transport.close()
            await server.close()

        assert exc_info.value.status == status
        assert "nope" in (exc_info.value.body or "")

    @pytest.mark.asyncio
    async def test_connection_error_is_failure(self) -> None:
        server = test_utils.TestServer(build_app(200, []))
        await server.start_server()
        url = str(server.make_url("/"))
        await server.close()

        transport = HttpTransport(url, timeout_seconds=2)
        try:
            with pytest.raises(TransportFailure):
                await transport.send("svc", ["line"])
        finally:
            await transport.close()

    def test_url_joins_endpoint(self) -> None:
        assert HttpTransport("http://localhost:3000/").url == "http://localhost:3000/api/logs"
