"""
Hold negotiation: turn a validated topic into GRIP hold instructions.
"""

from typing import Mapping

from .models import HoldInstruction
from .utilities import (
    GRIP_CHANNEL,
    GRIP_HOLD,
    GRIP_KEEP_ALIVE,
    HOLD_MODE_STREAM,
    KEEP_ALIVE_DATA,
    KEEP_ALIVE_INTERVAL,
    cstring_unescape,
)


def negotiate(topic: str, keep_alive_interval: int = KEEP_ALIVE_INTERVAL) -> HoldInstruction:
    """Build the hold instruction for a stream on ``topic``.

    The topic must already be validated by the caller. The result only depends
    on the arguments.
    """
    return HoldInstruction(
        channel=topic,
        mode=HOLD_MODE_STREAM,
        keep_alive_data=KEEP_ALIVE_DATA,
        keep_alive_format="cstring",
        keep_alive_timeout=keep_alive_interval,
    )


def parse_keep_alive(value: str):
    """Parse a ``Grip-Keep-Alive`` header value into (data, format, timeout)."""
    data, *params = [part.strip() for part in value.split(";")]
    options = {}
    for param in params:
        key, sep, val = param.partition("=")
        if not sep:
            raise ValueError(f"malformed keep-alive parameter: {param!r}")
        options[key.strip().lower()] = val.strip()

    fmt = options.get("format", "raw")
    if fmt == "cstring":
        data = cstring_unescape(data)
    elif fmt != "raw":
        raise ValueError(f"unsupported keep-alive format: {fmt}")
    timeout = int(options.get("timeout", KEEP_ALIVE_INTERVAL))
    return data, fmt, timeout


def parse_headers(headers: Mapping[str, str]) -> HoldInstruction:
    """Read a hold instruction back from GRIP response headers.

    Header names are matched case-insensitively.
    """
    lowered = {k.lower(): v for k, v in headers.items()}
    channel = lowered.get(GRIP_CHANNEL.lower())
    if not channel:
        raise ValueError("response carries no Grip-Channel header")

    # Grip-Channel may carry parameters (e.g. prev-id); only the name is used
    channel = channel.split(";", 1)[0].strip()
    mode = lowered.get(GRIP_HOLD.lower(), HOLD_MODE_STREAM)

    keep_alive = lowered.get(GRIP_KEEP_ALIVE.lower())
    if keep_alive is None:
        return HoldInstruction(channel=channel, mode=mode)
    data, fmt, timeout = parse_keep_alive(keep_alive)
    return HoldInstruction(
        channel=channel,
        mode=mode,
        keep_alive_data=data,
        keep_alive_format=fmt,
        keep_alive_timeout=timeout,
    )
