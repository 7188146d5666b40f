import pytest

from grip_gateway.errors import SubscriberWriteError
from grip_gateway.registry import ChannelRegistry


class FakeConnection:
    """Connection handle that records frames, or fails every write."""

    def __init__(self, name, fail=False):
        self.name = name
        self.fail = fail
        self.frames = []
        self.closed = False

    def __repr__(self):
        return f"<FakeConnection {self.name}>"

    async def send(self, frame):
        if self.fail:
            raise SubscriberWriteError("peer went away", {"connection": self.name})
        self.frames.append(frame)

    def close(self):
        self.closed = True


@pytest.fixture
def registry():
    return ChannelRegistry()


@pytest.fixture
def make_connection():
    return FakeConnection
