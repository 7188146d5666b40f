"""
Stream gateway: validate a stream request and answer it with hold instructions
plus the initial SSE frame.
"""

from dataclasses import dataclass
from typing import Dict

from .errors import MissingParameterError
from .logging import get_logger
from .models import HoldInstruction
from .negotiator import negotiate
from .schemas import StreamRequest
from .utilities import INITIAL_DATA, INITIAL_EVENT, KEEP_ALIVE_INTERVAL, SSE_MEDIA_TYPE, make_sse_frame

INITIAL_FRAME = make_sse_frame(INITIAL_EVENT, INITIAL_DATA)


@dataclass(frozen=True)
class StreamOpen:
    """An accepted stream request, ready to be handed to the proxy."""

    instruction: HoldInstruction
    body: str = INITIAL_FRAME
    media_type: str = SSE_MEDIA_TYPE

    @property
    def topic(self) -> str:
        return self.instruction.channel

    @property
    def headers(self) -> Dict[str, str]:
        return self.instruction.to_headers()


class StreamGateway:

    def __init__(self, keep_alive_interval: int = KEEP_ALIVE_INTERVAL):
        self.keep_alive_interval = keep_alive_interval
        self.logger = get_logger("grip_gateway.gateway")

    def handle(self, request: StreamRequest) -> StreamOpen:
        """Accept a stream request or raise ``MissingParameterError``.

        No registry bookkeeping happens here: whoever holds the connection
        registers it from the returned instruction.
        """
        if not request.topic:
            raise MissingParameterError("topic")

        instruction = negotiate(request.topic, self.keep_alive_interval)
        self.logger.info("Stream opened", topic=request.topic, hold=instruction.mode)
        return StreamOpen(instruction=instruction)
