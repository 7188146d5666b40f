"""
Unit tests for the embedded proxy and the held connection lifecycle.
"""

import asyncio
import contextlib
from unittest.mock import AsyncMock

import pytest

from grip_gateway.errors import SubscriberWriteError
from grip_gateway.gateway import INITIAL_FRAME, StreamGateway
from grip_gateway.logging import request_id_var
from grip_gateway.models import ConnectionState, HeldConnection, HoldInstruction
from grip_gateway.negotiator import negotiate
from grip_gateway.proxy import EmbeddedProxy
from grip_gateway.publisher import EventPublisher
from grip_gateway.schemas import StreamRequest


@pytest.fixture
def proxy(registry):
    return EmbeddedProxy(registry, queue_size=10)


@pytest.fixture
def publisher(registry):
    return EventPublisher(registry)


class TestHeldConnection:

    @pytest.mark.asyncio
    async def test_send_after_close_fails(self):
        conn = HeldConnection("news")
        conn.close()
        assert conn.state is ConnectionState.CLOSED
        with pytest.raises(SubscriberWriteError):
            await conn.send("frame")

    @pytest.mark.asyncio
    async def test_full_queue_fails(self):
        conn = HeldConnection("news", queue_size=1)
        await conn.send("one")
        with pytest.raises(SubscriberWriteError):
            await conn.send("two")

    def test_closed_is_terminal(self):
        conn = HeldConnection("news")
        conn.close()
        with pytest.raises(ValueError):
            conn.transition(ConnectionState.STREAMING)

    def test_cannot_skip_hold(self):
        conn = HeldConnection("news")
        with pytest.raises(ValueError):
            conn.transition(ConnectionState.STREAMING)


class TestEmbeddedProxy:

    @pytest.mark.asyncio
    async def test_open_registers_connection(self, registry, proxy):
        conn = await proxy.open(negotiate("news"))
        assert conn.state is ConnectionState.HOLD_ESTABLISHED
        assert await registry.snapshot("news") == frozenset({conn})

    @pytest.mark.asyncio
    async def test_stream_then_published_event(self, registry, proxy, publisher):
        """GET /stream?topic=news, then publish("news", "update", "hello")."""
        opened = StreamGateway().handle(StreamRequest(topic="news"))
        assert opened.headers["Grip-Channel"] == "news"

        instruction = proxy.instruction_from(opened.headers)
        conn = await proxy.open(instruction)
        frames = proxy.frames(conn, opened.body, instruction)

        assert await frames.__anext__() == "event: message\ndata: stream open\n\n"

        result = await publisher.publish("news", "update", "hello")
        assert result.delivered == 1
        assert await frames.__anext__() == "event: update\ndata: hello\n\n"
        assert conn.state is ConnectionState.STREAMING

        await frames.aclose()
        assert conn.state is ConnectionState.CLOSED
        assert await registry.snapshot("news") == frozenset()

    @pytest.mark.asyncio
    async def test_keep_alive_on_idle_stream(self, proxy):
        instruction = HoldInstruction(channel="news", keep_alive_timeout=0)
        conn = await proxy.open(instruction)
        frames = proxy.frames(conn, INITIAL_FRAME, instruction)

        await frames.__anext__()
        assert await frames.__anext__() == ":\n\n"
        await frames.aclose()

    @pytest.mark.asyncio
    async def test_keep_alive_failure_closes(self, registry, proxy):
        instruction = HoldInstruction(channel="news", keep_alive_timeout=0)
        conn = await proxy.open(instruction)
        is_disconnected = AsyncMock(return_value=True)
        frames = proxy.frames(conn, INITIAL_FRAME, instruction, is_disconnected)

        await frames.__anext__()
        with pytest.raises(StopAsyncIteration):
            await frames.__anext__()

        is_disconnected.assert_awaited()
        assert conn.state is ConnectionState.CLOSED
        assert conn.history == [
            ConnectionState.REQUESTED,
            ConnectionState.HOLD_ESTABLISHED,
            ConnectionState.STREAMING,
            ConnectionState.TIMED_OUT,
            ConnectionState.CLOSED,
        ]
        assert await registry.snapshot("news") == frozenset()

    @pytest.mark.asyncio
    async def test_slow_connection_dropped_on_publish(self, registry, publisher):
        proxy = EmbeddedProxy(registry, queue_size=1)
        instruction = negotiate("news")
        slow = await proxy.open(instruction)
        fast_proxy = EmbeddedProxy(registry, queue_size=10)
        fast = await fast_proxy.open(instruction)
        frames = proxy.frames(slow, INITIAL_FRAME, instruction)
        await frames.__anext__()

        await publisher.publish("news", "update", "1")
        result = await publisher.publish("news", "update", "2")

        assert result.delivered == 1
        assert result.failed == [slow.connection_id]
        assert await registry.snapshot("news") == frozenset({fast})
        with pytest.raises(StopAsyncIteration):
            await frames.__anext__()
        assert fast.queue.qsize() == 2

    def test_only_stream_holds(self, proxy):
        with pytest.raises(ValueError):
            proxy.instruction_from({"Grip-Hold": "response", "Grip-Channel": "news"})

    @pytest.mark.asyncio
    async def test_hold_strips_grip_headers(self, registry, proxy):
        opened = StreamGateway().handle(StreamRequest(topic="news"))
        response = await proxy.hold(opened)

        assert response.media_type == "text/event-stream"
        assert "grip-channel" not in response.headers
        assert response.headers["cache-control"] == "no-cache"
        assert await registry.snapshot("news") == frozenset()
        assert await response.body_iterator.__anext__() == INITIAL_FRAME
        assert len(await registry.snapshot("news")) == 1
        await response.body_iterator.aclose()
        assert await registry.snapshot("news") == frozenset()

    @pytest.mark.asyncio
    async def test_hold_binds_request_id(self, proxy):
        request_id_var.set("req-42")
        try:
            response = await proxy.hold(StreamGateway().handle(StreamRequest(topic="news")))
        finally:
            request_id_var.set(None)
        await response.body_iterator.__anext__()
        conn = next(iter(await proxy.registry.snapshot("news")))
        assert conn.request_id == "req-42"
        await response.body_iterator.aclose()

    @pytest.mark.asyncio
    async def test_client_gone_before_first_frame(self, registry, proxy):
        """A client that disconnects before the stream starts leaves nothing registered."""
        response = await proxy.hold(StreamGateway().handle(StreamRequest(topic="news")))
        scope = {
            "type": "http",
            "asgi": {"version": "3.0", "spec_version": "2.0"},
            "http_version": "1.1",
            "method": "GET",
            "path": "/stream",
            "query_string": b"topic=news",
            "headers": [],
        }

        async def receive():
            return {"type": "http.disconnect"}

        async def send(message):
            await asyncio.sleep(0.05)

        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(response(scope, receive, send), timeout=1)

        assert await registry.snapshot("news") == frozenset()
        assert await registry.subscriber_count() == 0
