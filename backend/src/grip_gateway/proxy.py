"""
Embedded GRIP proxy: hold stream connections inside this process.

The proxy reads the hold instruction off a gateway response. Once the response
starts streaming it registers the connection on the instruction's channel, then
sends the initial frame, every published frame and, when the stream is idle
for the keep-alive timeout, the keep-alive data. Any way the stream ends,
the connection is closed and unsubscribed.
"""

import asyncio
from typing import AsyncIterator, Awaitable, Callable, Mapping, Optional

from fastapi.responses import StreamingResponse

from .errors import KeepAliveError
from .gateway import StreamOpen
from .logging import request_id_var
from .models import ConnectionState, HeldConnection, HoldInstruction
from .negotiator import parse_headers
from .registry import ChannelRegistry
from .utilities import HOLD_MODE_STREAM, SSE_HEADERS, SUBSCRIBER_QUEUE_SIZE

DisconnectCheck = Callable[[], Awaitable[bool]]


async def _never_disconnected() -> bool:
    return False


class EmbeddedProxy:

    def __init__(self, registry: ChannelRegistry, queue_size: int = SUBSCRIBER_QUEUE_SIZE):
        self.registry = registry
        self.queue_size = queue_size

    @staticmethod
    def instruction_from(headers: Mapping[str, str]) -> HoldInstruction:
        instruction = parse_headers(headers)
        if instruction.mode != HOLD_MODE_STREAM:
            raise ValueError(f"embedded proxy only holds streams, got {instruction.mode!r}")
        return instruction

    def connection_for(self, instruction: HoldInstruction, request_id: Optional[str] = None) -> HeldConnection:
        """A new, not yet registered, connection for the instruction's channel."""
        return HeldConnection(instruction.channel, queue_size=self.queue_size, request_id=request_id)

    async def register(self, conn: HeldConnection) -> HeldConnection:
        await self.registry.subscribe(conn.topic, conn)
        conn.transition(ConnectionState.HOLD_ESTABLISHED)
        conn.logger.info("Hold established")
        return conn

    async def open(self, instruction: HoldInstruction) -> HeldConnection:
        """Register a new held connection on the instruction's channel."""
        return await self.register(self.connection_for(instruction))

    async def release(self, conn: HeldConnection):
        conn.close()
        await self.registry.unsubscribe(conn.topic, conn)
        conn.logger.info("Connection closed", states=[state.value for state in conn.history])

    async def _keep_alive(self, conn: HeldConnection, instruction: HoldInstruction, is_disconnected: DisconnectCheck) -> str:
        if await is_disconnected():
            raise KeepAliveError("peer unreachable", {"connection_id": conn.connection_id})
        return instruction.keep_alive_data

    async def frames(
        self,
        conn: HeldConnection,
        initial: str,
        instruction: HoldInstruction,
        is_disconnected: Optional[DisconnectCheck] = None,
    ) -> AsyncIterator[str]:
        """Yield the frames written to a held connection until it closes.

        The connection is registered when iteration starts, so a stream that
        is never iterated never holds a subscription.
        """
        is_disconnected = is_disconnected or _never_disconnected
        try:
            if conn.state is ConnectionState.REQUESTED:
                await self.register(conn)
            yield initial
            if conn.closed:
                return
            conn.transition(ConnectionState.STREAMING)
            while not conn.closed:
                try:
                    frame = await asyncio.wait_for(conn.queue.get(), timeout=instruction.keep_alive_timeout)
                except asyncio.TimeoutError:
                    try:
                        frame = await self._keep_alive(conn, instruction, is_disconnected)
                    except KeepAliveError as exc:
                        conn.transition(ConnectionState.TIMED_OUT)
                        conn.logger.warning("Keep-alive failed", code=exc.code, details=exc.details)
                        return
                if frame is None or conn.closed:
                    return
                yield frame
        finally:
            # the stream may be torn down by cancellation; finish the cleanup regardless
            await asyncio.shield(self.release(conn))

    async def hold(self, stream: StreamOpen, is_disconnected: Optional[DisconnectCheck] = None) -> StreamingResponse:
        """Hold the client connection for an accepted stream request.

        GRIP headers are consumed here and not passed on to the client.
        """
        instruction = self.instruction_from(stream.headers)
        conn = self.connection_for(instruction, request_id=request_id_var.get())
        return StreamingResponse(
            self.frames(conn, stream.body, instruction, is_disconnected),
            media_type=stream.media_type,
            headers=SSE_HEADERS,
        )
