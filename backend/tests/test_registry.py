"""
Unit tests for the channel registry.
"""

import asyncio

import pytest


class TestChannelRegistry:

    @pytest.mark.asyncio
    async def test_subscribe_and_snapshot(self, registry, make_connection):
        a, b = make_connection("a"), make_connection("b")
        assert await registry.subscribe("news", a) is True
        assert await registry.subscribe("news", b) is True
        assert await registry.snapshot("news") == frozenset({a, b})

    @pytest.mark.asyncio
    async def test_subscribe_is_idempotent(self, registry, make_connection):
        a = make_connection("a")
        await registry.subscribe("news", a)
        assert await registry.subscribe("news", a) is False
        assert len(await registry.snapshot("news")) == 1

    @pytest.mark.asyncio
    async def test_unsubscribe_absent_is_noop(self, registry, make_connection):
        assert await registry.unsubscribe("news", make_connection("a")) is False
        await registry.subscribe("news", make_connection("b"))
        assert await registry.unsubscribe("news", make_connection("c")) is False
        assert len(await registry.snapshot("news")) == 1

    @pytest.mark.asyncio
    async def test_snapshot_is_a_copy(self, registry, make_connection):
        a = make_connection("a")
        await registry.subscribe("news", a)
        snap = await registry.snapshot("news")
        await registry.unsubscribe("news", a)
        assert a in snap
        assert await registry.snapshot("news") == frozenset()

    @pytest.mark.asyncio
    async def test_unknown_topic_snapshot_is_empty(self, registry):
        assert await registry.snapshot("nothing") == frozenset()

    @pytest.mark.asyncio
    async def test_handle_held_on_one_topic(self, registry, make_connection):
        a = make_connection("a")
        await registry.subscribe("news", a)
        await registry.subscribe("sports", a)
        assert a not in await registry.snapshot("news")
        assert a in await registry.snapshot("sports")
        assert await registry.subscriber_count() == 1

    @pytest.mark.asyncio
    async def test_empty_channel_dropped(self, registry, make_connection):
        a = make_connection("a")
        await registry.subscribe("news", a)
        assert await registry.topic_count() == 1
        await registry.unsubscribe("news", a)
        assert await registry.topic_count() == 0
        assert await registry.topics() == []

    @pytest.mark.asyncio
    async def test_resubscribe_after_drop(self, registry, make_connection):
        a, b = make_connection("a"), make_connection("b")
        await registry.subscribe("news", a)
        await registry.unsubscribe("news", a)
        await registry.subscribe("news", b)
        assert await registry.snapshot("news") == frozenset({b})

    @pytest.mark.asyncio
    async def test_concurrent_subscribe_unsubscribe(self, registry, make_connection):
        conns = [make_connection(str(i)) for i in range(50)]
        await asyncio.gather(*(registry.subscribe("news", c) for c in conns))
        assert len(await registry.snapshot("news")) == 50

        await asyncio.gather(
            *(registry.unsubscribe("news", c) for c in conns[:25]),
            *(registry.subscribe("other", make_connection(f"o{i}")) for i in range(10)),
        )
        assert await registry.snapshot("news") == frozenset(conns[25:])
        assert len(await registry.snapshot("other")) == 10

    @pytest.mark.asyncio
    async def test_topics_listing(self, registry, make_connection):
        await registry.subscribe("news", make_connection("a"))
        await registry.subscribe("news", make_connection("b"))
        await registry.record_publish("news", 7)
        assert await registry.topics() == [
            {"name": "news", "subscribers": 2, "messages": 1, "last_seq": 7}
        ]

    @pytest.mark.asyncio
    async def test_concurrent_subscribe_to_two_topics(self, registry, make_connection):
        a = make_connection("a")
        await asyncio.gather(registry.subscribe("news", a), registry.subscribe("sports", a))

        held_on = [t for t in ("news", "sports") if a in await registry.snapshot(t)]
        assert len(held_on) == 1
        assert await registry.subscriber_count() == 1

    @pytest.mark.asyncio
    async def test_repeated_moves_leave_one_membership(self, registry, make_connection):
        a = make_connection("a")
        topics = ["t0", "t1", "t2", "t3"] * 5
        await asyncio.gather(*(registry.subscribe(t, a) for t in topics))

        held_on = [t for t in set(topics) if a in await registry.snapshot(t)]
        assert len(held_on) == 1
        await registry.unsubscribe(held_on[0], a)
        assert await registry.topic_count() == 0
