"""
Client for the GRIP control channel of an external proxy (e.g. Pushpin).

Publishes are POSTed to ``<control_url>/publish/`` as ``http-stream`` items,
which the proxy appends to every connection held on the item's channel.
"""

from typing import Any, Dict, Optional

import httpx

from .errors import ControlChannelError
from .logging import get_logger
from .models import Event


class GripControlClient:
    """Relays events to an external GRIP proxy."""

    def __init__(self, control_url: str, timeout: float = 5.0, client: Optional[httpx.AsyncClient] = None):
        self.base_url = control_url.rstrip("/")
        self.logger = get_logger("grip_gateway.control")
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @staticmethod
    def build_item(event: Event) -> Dict[str, Any]:
        return {
            "channel": event.topic,
            "id": str(event.seq),
            "formats": {"http-stream": {"content": event.to_sse()}},
        }

    async def publish(self, event: Event) -> None:
        payload = {"items": [self.build_item(event)]}
        try:
            response = await self._client.post(f"{self.base_url}/publish/", json=payload)
        except httpx.HTTPError as exc:
            raise ControlChannelError(
                "GRIP control channel unreachable",
                {"url": self.base_url, "error": str(exc)},
            ) from exc

        if response.status_code >= 300:
            raise ControlChannelError(
                "GRIP control channel rejected publish",
                {"url": self.base_url, "status_code": response.status_code, "body": response.text},
            )
        self.logger.debug("Relayed event to GRIP proxy", topic=event.topic, seq=event.seq)

    async def close(self):
        await self._client.aclose()
