"""
Unit tests for AiohttpClient against a local aiohttp server.

Run with: pytest tests/unit/test_client.py -v
"""

import asyncio
import base64

import pytest
from aiohttp import test_utils, web

from dirhound.core.config import DEFAULT_USER_AGENT, AuthConfig, ScanConfig
from dirhound.core.errors import TransportError
from dirhound.core.models import body_signature
from dirhound.http.client import AiohttpClient


async def start_server(routes):
    """Start a local server with the given (path, handler) routes"""
    app = web.Application()
    for path, handler in routes:
        app.router.add_get(path, handler)
    server = test_utils.TestServer(app)
    await server.start_server()
    return server


def echo_headers(seen):
    async def handler(request):
        seen.append(dict(request.headers))
        return web.Response(text="hello world")
    return handler


class TestAiohttpClient:
    """Test suite for AiohttpClient class"""

    @pytest.mark.asyncio
    async def test_send_returns_outcome(self):
        """Test status, length, word count and signature of a response"""
        server = await start_server([("/page", echo_headers([]))])
        try:
            async with AiohttpClient(timeout=5) as client:
                outcome = await client.send(str(server.make_url("/page")), {})
        finally:
            await server.close()

        assert outcome.status == 200
        assert outcome.length == len(b"hello world")
        assert outcome.word_count == 2
        assert outcome.signature == body_signature(b"hello world")
        assert outcome.elapsed > 0

    @pytest.mark.asyncio
    async def test_default_and_rotated_user_agent(self):
        """Test rotated headers override the default User-Agent"""
        seen = []
        server = await start_server([("/", echo_headers(seen))])
        try:
            async with AiohttpClient() as client:
                url = str(server.make_url("/"))
                await client.send(url, {})
                await client.send(url, {"User-Agent": "rotated/2.0", "X-Forwarded-For": "10.1.1.1"})
        finally:
            await server.close()

        assert seen[0]["User-Agent"] == DEFAULT_USER_AGENT
        assert seen[1]["User-Agent"] == "rotated/2.0"
        assert seen[1]["X-Forwarded-For"] == "10.1.1.1"

    @pytest.mark.asyncio
    async def test_redirects_reported_by_default(self):
        """Test 3xx responses are returned as-is unless following is enabled"""
        async def old(request):
            raise web.HTTPFound("/new")

        async def new(request):
            return web.Response(text="moved here")

        server = await start_server([("/old", old), ("/new", new)])
        try:
            url = str(server.make_url("/old"))
            async with AiohttpClient() as client:
                reported = await client.send(url, {})
            async with AiohttpClient(follow_redirects=True) as client:
                followed = await client.send(url, {})
        finally:
            await server.close()

        assert reported.status == 302
        assert followed.status == 200

    @pytest.mark.asyncio
    async def test_retries_on_server_errors(self):
        """Test 5xx responses are retried when retries are configured"""
        calls = []

        async def flaky(request):
            calls.append(1)
            if len(calls) < 3:
                return web.Response(status=503, text="busy")
            return web.Response(text="ok")

        server = await start_server([("/flaky", flaky)])
        try:
            async with AiohttpClient(retries=2, retry_delay=0) as client:
                outcome = await client.send(str(server.make_url("/flaky")), {})
                stats = client.get_statistics()
        finally:
            await server.close()

        assert outcome.status == 200
        assert stats == {"requests": 3, "retries": 2}

    @pytest.mark.asyncio
    async def test_no_retry_by_default(self):
        """Test a 5xx is returned as an outcome when retries are off"""
        async def down(request):
            return web.Response(status=503, text="busy")

        server = await start_server([("/down", down)])
        try:
            async with AiohttpClient() as client:
                outcome = await client.send(str(server.make_url("/down")), {})
        finally:
            await server.close()

        assert outcome.status == 503

    @pytest.mark.asyncio
    async def test_connection_refused(self):
        """Test an unreachable host raises TransportError"""
        server = await start_server([])
        url = str(server.make_url("/gone"))
        await server.close()

        async with AiohttpClient(timeout=2) as client:
            with pytest.raises(TransportError) as exc_info:
                await client.send(url, {})

        assert exc_info.value.url == url

    @pytest.mark.asyncio
    async def test_timeout(self):
        """Test a slow response raises TransportError"""
        async def slow(request):
            await asyncio.sleep(1)
            return web.Response(text="late")

        server = await start_server([("/slow", slow)])
        try:
            async with AiohttpClient(timeout=0.1) as client:
                with pytest.raises(TransportError):
                    await client.send(str(server.make_url("/slow")), {})
        finally:
            await server.close()

    @pytest.mark.asyncio
    async def test_basic_auth(self):
        """Test basic credentials are sent on every request"""
        seen = []
        server = await start_server([("/", echo_headers(seen))])
        try:
            async with AiohttpClient(auth=AuthConfig(basic="alice:s3cret")) as client:
                await client.send(str(server.make_url("/")), {})
        finally:
            await server.close()

        expected = base64.b64encode(b"alice:s3cret").decode()
        assert seen[0]["Authorization"] == f"Basic {expected}"

    @pytest.mark.asyncio
    async def test_bearer_auth(self):
        """Test bearer tokens become an Authorization header"""
        seen = []
        server = await start_server([("/", echo_headers(seen))])
        try:
            async with AiohttpClient(auth=AuthConfig(bearer="tok123")) as client:
                await client.send(str(server.make_url("/")), {})
        finally:
            await server.close()

        assert seen[0]["Authorization"] == "Bearer tok123"

    @pytest.mark.asyncio
    async def test_cookie_jar_sends_cookies_back(self):
        """Test cookies set by the server are replayed only when the jar is enabled"""
        seen = []

        async def set_cookie(request):
            seen.append(request.headers.get("Cookie"))
            response = web.Response(text="ok")
            response.set_cookie("session", "abc123")
            return response

        server = await start_server([("/", set_cookie)])
        try:
            url = str(server.make_url("/"))
            async with AiohttpClient(cookie_jar=True) as client:
                await client.send(url, {})
                await client.send(url, {})
            async with AiohttpClient() as client:
                await client.send(url, {})
                await client.send(url, {})
        finally:
            await server.close()

        assert seen == [None, "session=abc123", None, None]

    def test_from_config(self):
        """Test client settings are taken from the scan config"""
        config = ScanConfig.create(
            target="https://example.com",
            wordlist="w.txt",
            threads=7,
            timeout=2.5,
            retries=1,
            verify_tls=False,
            cookie_jar=True,
            proxy="http://127.0.0.1:8080",
        )

        client = AiohttpClient.from_config(config)

        assert client.connections == 7
        assert client.timeout == 2.5
        assert client.retries == 1
        assert client.verify_tls is False
        assert client.cookie_jar is True
        assert client.proxy == "http://127.0.0.1:8080"
        assert client.session is None


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
