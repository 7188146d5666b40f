"""
Channel registry: topic -> set of held connection handles.

Each topic has its own lock. The registry-wide lock only guards the channel
map itself (lookup, create, drop) and is never held while a channel lock is
awaited, so traffic on one topic never waits on another.
"""

import asyncio
from typing import Dict, FrozenSet, Hashable, List

from .logging import get_logger
from .models import Channel


class ChannelRegistry:

    def __init__(self):
        self.logger = get_logger("grip_gateway.registry")
        self._channels: Dict[str, Channel] = {}
        # handle -> topic; a handle is held on at most one topic
        self._memberships: Dict[Hashable, str] = {}
        self._lock = asyncio.Lock()

    async def _get_or_create(self, topic: str) -> Channel:
        async with self._lock:
            channel = self._channels.get(topic)
            if channel is None:
                channel = Channel(topic)
                self._channels[topic] = channel
            return channel

    async def _get(self, topic: str):
        async with self._lock:
            return self._channels.get(topic)

    async def _drop_if_empty(self, channel: Channel):
        # caller holds channel.lock
        if channel.subscribers or channel.retired:
            return
        channel.retired = True
        async with self._lock:
            if self._channels.get(channel.name) is channel:
                del self._channels[channel.name]
        self.logger.debug("Channel dropped", topic=channel.name)

    async def subscribe(self, topic: str, handle: Hashable) -> bool:
        """Add ``handle`` to ``topic``. Returns False if it was already there.

        A handle subscribed to a new topic leaves its previous one. When the
        same handle is subscribed concurrently, the last claim wins.
        """
        async with self._lock:
            previous = self._memberships.get(handle)
            self._memberships[handle] = topic
        if previous is not None and previous != topic:
            await self._remove(previous, handle)

        while True:
            channel = await self._get_or_create(topic)
            async with channel.lock:
                # lost a race with _drop_if_empty; fetch the replacement channel
                if channel.retired:
                    continue
                added = handle not in channel.subscribers
                channel.subscribers.add(handle)
                count = len(channel.subscribers)
            break

        async with self._lock:
            superseded = self._memberships.get(handle) != topic
        if superseded:
            # moved or unsubscribed while we were adding it
            await self._remove(topic, handle)
            return False
        if added:
            self.logger.info("Subscribed", topic=topic, subscriber_count=count)
        return added

    async def _remove(self, topic: str, handle: Hashable) -> bool:
        channel = await self._get(topic)
        if channel is None:
            return False
        async with channel.lock:
            removed = handle in channel.subscribers
            channel.subscribers.discard(handle)
            await self._drop_if_empty(channel)
        return removed

    async def unsubscribe(self, topic: str, handle: Hashable) -> bool:
        """Remove ``handle`` from ``topic``. Absent handles are ignored."""
        async with self._lock:
            if self._memberships.get(handle) == topic:
                del self._memberships[handle]
        removed = await self._remove(topic, handle)
        if removed:
            self.logger.info("Unsubscribed", topic=topic)
        return removed

    async def snapshot(self, topic: str) -> FrozenSet[Hashable]:
        channel = await self._get(topic)
        if channel is None:
            return frozenset()
        async with channel.lock:
            return frozenset(channel.subscribers)

    async def record_publish(self, topic: str, seq: int):
        channel = await self._get(topic)
        if channel is None:
            return
        async with channel.lock:
            channel.messages_published += 1
            channel.last_seq = seq

    async def topics(self) -> List[dict]:
        async with self._lock:
            channels = list(self._channels.values())
        out = []
        for channel in channels:
            async with channel.lock:
                out.append({
                    "name": channel.name,
                    "subscribers": len(channel.subscribers),
                    "messages": channel.messages_published,
                    "last_seq": channel.last_seq,
                })
        return out

    async def subscriber_count(self) -> int:
        async with self._lock:
            return len(self._memberships)

    async def topic_count(self) -> int:
        async with self._lock:
            return len(self._channels)
