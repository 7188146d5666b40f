"""
Event publisher: fan a published event out to every connection held on its topic.
"""

import asyncio
import itertools
from dataclasses import dataclass, field
from typing import Hashable, List, Optional

from .control import GripControlClient
from .errors import ControlChannelError, ValidationError
from .logging import get_logger
from .models import Event
from .registry import ChannelRegistry


@dataclass
class PublishResult:
    event: Event
    delivered: int = 0
    failed: List[str] = field(default_factory=list)
    # None when no external proxy is configured
    relayed: Optional[bool] = None


class EventPublisher:
    """Best-effort, at-most-once delivery to the connections held at publish time."""

    def __init__(self, registry: ChannelRegistry, control: Optional[GripControlClient] = None):
        self.registry = registry
        self.control = control
        self.logger = get_logger("grip_gateway.publisher")
        self._seq = itertools.count(1)
        # stats
        self.messages_published = 0
        self.frames_delivered = 0
        self.write_failures = 0
        self.relay_failures = 0

    async def publish(self, topic: str, event_type: str = "message", payload: str = "") -> PublishResult:
        if not topic:
            raise ValidationError("topic must be a non-empty string", {"field": "topic"})
        if not event_type or "\n" in event_type or "\r" in event_type:
            raise ValidationError("event type must be a non-empty single line", {"field": "event"})

        event = Event(topic=topic, event_type=event_type, payload=payload, seq=next(self._seq))
        self.messages_published += 1
        result = PublishResult(event=event)

        subscribers = await self.registry.snapshot(topic)
        await self.registry.record_publish(topic, event.seq)

        # fan-out outside any lock; one failing handle never stops the others
        frame = event.to_sse()
        outcomes = await asyncio.gather(
            *(handle.send(frame) for handle in subscribers),
            return_exceptions=True,
        )
        for handle, outcome in zip(subscribers, outcomes):
            if isinstance(outcome, BaseException):
                result.failed.append(self._describe(handle))
                await self._drop(topic, handle, outcome)
            else:
                result.delivered += 1

        if self.control is not None:
            try:
                await self.control.publish(event)
                result.relayed = True
            except ControlChannelError as exc:
                self.relay_failures += 1
                result.relayed = False
                self.logger.warning("GRIP relay failed", topic=topic, seq=event.seq, code=exc.code, details=exc.details)

        self.frames_delivered += result.delivered
        self.write_failures += len(result.failed)
        self.logger.info(
            "Published event",
            topic=topic,
            event_type=event_type,
            seq=event.seq,
            delivered=result.delivered,
            failed=len(result.failed),
            relayed=result.relayed,
        )
        return result

    async def _drop(self, topic: str, handle: Hashable, error: BaseException):
        self.logger.warning(
            "Subscriber write failed, unsubscribing",
            topic=topic,
            subscriber=self._describe(handle),
            subscriber_request_id=getattr(handle, "request_id", None),
            error=str(error),
        )
        await self.registry.unsubscribe(topic, handle)
        close = getattr(handle, "close", None)
        if close is not None:
            outcome = close()
            if asyncio.iscoroutine(outcome):
                await outcome

    @staticmethod
    def _describe(handle) -> str:
        return getattr(handle, "connection_id", None) or repr(handle)

    def stats(self) -> dict:
        return {
            "messages_published": self.messages_published,
            "frames_delivered": self.frames_delivered,
            "write_failures": self.write_failures,
            "relay_failures": self.relay_failures,
        }
