import asyncio
import enum
import itertools
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Set

from ..errors import SubscriberWriteError
from ..logging import get_logger
from ..utilities import (
    GRIP_CHANNEL,
    GRIP_HOLD,
    GRIP_KEEP_ALIVE,
    HOLD_MODE_RESPONSE,
    HOLD_MODE_STREAM,
    KEEP_ALIVE_DATA,
    KEEP_ALIVE_INTERVAL,
    SUBSCRIBER_QUEUE_SIZE,
    cstring_escape,
    make_sse_frame,
)

_connection_ids = itertools.count(1)


# ------------ Hold instructions ------------
@dataclass(frozen=True)
class HoldInstruction:
    ''' Declarative request to the proxy: hold this connection on `channel`.'''

    channel: str
    mode: str = HOLD_MODE_STREAM
    keep_alive_data: str = KEEP_ALIVE_DATA
    keep_alive_format: str = "cstring"
    keep_alive_timeout: int = KEEP_ALIVE_INTERVAL

    def __post_init__(self):
        if self.mode not in (HOLD_MODE_STREAM, HOLD_MODE_RESPONSE):
            raise ValueError(f"unknown hold mode: {self.mode}")

    def keep_alive_header(self) -> str:
        data = self.keep_alive_data
        if self.keep_alive_format == "cstring":
            data = cstring_escape(data)
        return f"{data}; format={self.keep_alive_format}; timeout={self.keep_alive_timeout}"

    def to_headers(self) -> Dict[str, str]:
        return {
            GRIP_HOLD: self.mode,
            GRIP_CHANNEL: self.channel,
            GRIP_KEEP_ALIVE: self.keep_alive_header(),
        }


# ------------ Events ------------
@dataclass(frozen=True)
class Event:
    topic: str
    event_type: str
    payload: str
    seq: int
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_sse(self) -> str:
        return make_sse_frame(self.event_type, self.payload)


# ------------ Held connections ------------
class ConnectionState(str, enum.Enum):
    REQUESTED = "requested"
    HOLD_ESTABLISHED = "hold_established"
    STREAMING = "streaming"
    TIMED_OUT = "timed_out"
    CLOSED = "closed"


# closed is terminal; timed_out can only close
_TRANSITIONS = {
    ConnectionState.REQUESTED: {ConnectionState.HOLD_ESTABLISHED, ConnectionState.CLOSED},
    ConnectionState.HOLD_ESTABLISHED: {ConnectionState.STREAMING, ConnectionState.TIMED_OUT, ConnectionState.CLOSED},
    ConnectionState.STREAMING: {ConnectionState.TIMED_OUT, ConnectionState.CLOSED},
    ConnectionState.TIMED_OUT: {ConnectionState.CLOSED},
    ConnectionState.CLOSED: set(),
}


class HeldConnection:
    ''' A client connection held open by the embedded proxy.'''

    def __init__(self, topic: str, queue_size: int = SUBSCRIBER_QUEUE_SIZE, request_id: Optional[str] = None):
        self.connection_id = f"conn-{next(_connection_ids)}"
        self.topic = topic
        self.request_id = request_id
        self.created_at = datetime.now(timezone.utc)
        self.state = ConnectionState.REQUESTED
        self.history: List[ConnectionState] = [self.state]
        # outlives the request context, so the request id is bound here
        self.logger = get_logger("grip_gateway.connection").bind(
            connection_id=self.connection_id, topic=topic, request_id=request_id
        )

        # frames waiting to be written to the client, in publish order
        # publisher never waits on a slow client: a full queue is a write failure
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)

    def __repr__(self):
        return f"<HeldConnection {self.connection_id} topic={self.topic!r} state={self.state.value}>"

    @property
    def closed(self) -> bool:
        return self.state is ConnectionState.CLOSED

    def transition(self, new_state: ConnectionState):
        if new_state is self.state:
            return
        if new_state not in _TRANSITIONS[self.state]:
            raise ValueError(f"invalid transition {self.state.value} -> {new_state.value}")
        self.state = new_state
        self.history.append(new_state)

    async def send(self, frame: str):
        if self.closed:
            raise SubscriberWriteError("connection closed", {"connection_id": self.connection_id})
        try:
            self.queue.put_nowait(frame)
        except asyncio.QueueFull:
            raise SubscriberWriteError(
                "connection queue full", {"connection_id": self.connection_id, "queue_size": self.queue.maxsize}
            )

    def close(self):
        if self.closed:
            return
        self.transition(ConnectionState.CLOSED)
        # wake a stream waiting on the queue; None is the close sentinel
        try:
            self.queue.put_nowait(None)
        except asyncio.QueueFull:
            pass


# ------------ Channels ------------
class Channel:
    ''' Subscribers of one topic, guarded by the channel's own lock.'''

    def __init__(self, name: str):
        self.name = name
        self.subscribers: Set[object] = set()
        self.created_at = datetime.now(timezone.utc)
        self.lock = asyncio.Lock()
        # set once the channel is dropped from the registry; a retired channel takes no subscribers
        self.retired = False
        # stats
        self.messages_published = 0
        self.last_seq: Optional[int] = None
