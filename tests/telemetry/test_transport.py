"""
Aiohttp Transport Tests.

============================================================
PURPOSE
============================================================
Integration tests for AiohttpTransport and the channel client
against a local aiohttp.web server standing in for ThingSpeak
and for the proxy.

TEST CATEGORIES:
- Transport tests: Status mapping, JSON decoding, timeouts
- End-to-end tests: Client retries, proxy fallback over HTTP

============================================================
"""

import asyncio
from types import SimpleNamespace

import aiohttp
import pytest
import pytest_asyncio
from aiohttp import test_utils, web

from telemetry_sources import (
    AiohttpTransport,
    ChannelNotFoundError,
    ClientConfig,
    ExhaustedRetriesError,
    InvalidApiKeyError,
    InvalidResponseError,
    NetworkError,
    NetworkErrorKind,
    RateLimitError,
    ResilientChannelClient,
    ServerError,
)


API_KEY = "JMZCM47SV93DPC0R"


@pytest_asyncio.fixture
async def server(channel_response):
    requests = []
    
    async def feeds(request: web.Request) -> web.StreamResponse:
        channel_id = request.match_info["channel_id"]
        requests.append(("GET", channel_id, dict(request.query)))
        
        if channel_id == "404":
            return web.json_response(-1, status=404)
        if channel_id == "500":
            return web.Response(status=500, text="Internal Server Error")
        if channel_id == "429":
            return web.Response(status=429, headers={"Retry-After": "15"})
        if channel_id == "slow":
            await asyncio.sleep(1)
        if channel_id == "html":
            return web.Response(text="<html>maintenance</html>", content_type="text/html")
        if request.query.get("api_key") != API_KEY:
            return web.json_response({"status": "401", "error": "Unauthorized"}, status=401)
        return web.json_response(channel_response)
    
    async def proxy(request: web.Request) -> web.StreamResponse:
        body = await request.json()
        requests.append(("POST", body["url"], body["params"]))
        return web.json_response(channel_response)
    
    app = web.Application()
    app.router.add_get("/channels/{channel_id}/feeds.json", feeds)
    app.router.add_post("/proxy", proxy)
    
    test_server = test_utils.TestServer(app)
    await test_server.start_server()
    yield SimpleNamespace(
        received=requests,
        url=lambda path: str(test_server.make_url(path)),
    )
    await test_server.close()


@pytest_asyncio.fixture
async def transport():
    transport = AiohttpTransport()
    yield transport
    await transport.close()


def feeds_url(server, channel_id: str) -> str:
    return server.url(f"/channels/{channel_id}/feeds.json")


# =============================================================================
# TRANSPORT TESTS
# =============================================================================

class TestAiohttpTransport:
    """Tests for AiohttpTransport against a live local server."""
    
    @pytest.mark.asyncio
    async def test_get_json(self, server, transport, channel_response):
        data = await transport.get_json(
            feeds_url(server, "12397"), {"api_key": API_KEY, "results": 2}, 5.0, "12397",
        )
        
        assert data == channel_response
        assert server.received == [("GET", "12397", {"api_key": API_KEY, "results": "2"})]
    
    @pytest.mark.asyncio
    @pytest.mark.parametrize("channel_id,error_class", [
        ("404", ChannelNotFoundError),
        ("500", ServerError),
        ("429", RateLimitError),
    ])
    async def test_error_statuses(self, server, transport, channel_id, error_class):
        with pytest.raises(error_class) as exc_info:
            await transport.get_json(feeds_url(server, channel_id), {"api_key": API_KEY}, 5.0)
        
        assert API_KEY not in exc_info.value.request_url
    
    @pytest.mark.asyncio
    async def test_rate_limit_retry_after(self, server, transport):
        with pytest.raises(RateLimitError) as exc_info:
            await transport.get_json(feeds_url(server, "429"), {"api_key": API_KEY}, 5.0)
        
        assert exc_info.value.retry_after_seconds == 15
    
    @pytest.mark.asyncio
    async def test_unauthorized(self, server, transport):
        with pytest.raises(InvalidApiKeyError) as exc_info:
            await transport.get_json(feeds_url(server, "12397"), {"api_key": "WRONG"}, 5.0)
        
        assert exc_info.value.kind == NetworkErrorKind.UNAUTHORIZED
        assert exc_info.value.status_code == 401
    
    @pytest.mark.asyncio
    async def test_non_json_body(self, server, transport):
        with pytest.raises(InvalidResponseError):
            await transport.get_json(feeds_url(server, "html"), {"api_key": API_KEY}, 5.0)
    
    @pytest.mark.asyncio
    async def test_timeout(self, server, transport):
        with pytest.raises(NetworkError) as exc_info:
            await transport.get_json(feeds_url(server, "slow"), {"api_key": API_KEY}, 0.2)
        
        assert exc_info.value.message == "Request timed out after 0.2s"
    
    @pytest.mark.asyncio
    async def test_connection_refused(self, transport):
        with pytest.raises(NetworkError) as exc_info:
            await transport.get_json("http://127.0.0.1:1/channels/1/feeds.json", {}, 2.0)
        
        assert exc_info.value.message.startswith("Connection error")
    
    @pytest.mark.asyncio
    async def test_post_json(self, server, transport, channel_response):
        body = {"url": "https://api.thingspeak.com/channels/1/feeds.json", "params": {"results": 1}}
        
        data = await transport.post_json(server.url("/proxy"), body, 5.0)
        
        assert data == channel_response
    
    @pytest.mark.asyncio
    async def test_close_keeps_caller_session(self):
        async with aiohttp.ClientSession() as session:
            transport = AiohttpTransport(session=session)
            await transport.close()
            
            assert session.closed is False


# =============================================================================
# END-TO-END TESTS
# =============================================================================

class TestClientOverHttp:
    """ResilientChannelClient driving the real transport."""
    
    @pytest.mark.asyncio
    async def test_fetch_channel(self, server):
        config = ClientConfig(base_url=server.url("/"), retry_delay_seconds=0)
        
        async with ResilientChannelClient(config) as client:
            payload = await client.fetch_channel("12397", API_KEY, results=2)
            again = await client.fetch_channel("12397", API_KEY, results=2)
        
        assert payload.channel.name == "Office Energy Monitor"
        assert again is payload
        assert len(server.received) == 1
    
    @pytest.mark.asyncio
    async def test_server_errors_exhaust_retries(self, server):
        config = ClientConfig(base_url=server.url("/"), retry_delay_seconds=0)
        
        async with ResilientChannelClient(config) as client:
            with pytest.raises(ExhaustedRetriesError) as exc_info:
                await client.fetch_channel("500", API_KEY)
        
        assert exc_info.value.kind == NetworkErrorKind.SERVER_ERROR
        assert len(server.received) == 3
    
    @pytest.mark.asyncio
    async def test_proxy_fallback(self, server):
        config = ClientConfig(
            base_url=server.url("/"),
            proxy_url=server.url("/proxy"),
            retry_count=2,
            retry_delay_seconds=0,
        )
        
        async with ResilientChannelClient(config) as client:
            payload = await client.fetch_channel("404", API_KEY, results=5)
        
        assert payload.meta.via_proxy is True
        method, url, params = server.received[-1]
        assert method == "POST"
        assert url.endswith("/channels/404/feeds.json")
        assert params == {"api_key": API_KEY, "results": 5}
