"""
GRIP stream gateway.

Answers ``GET /stream?topic=...`` with GRIP hold instructions and an initial
SSE frame, and fans events published on ``POST /publish`` out to the
connections held on each topic, either by an external GRIP proxy or by the
embedded one.
"""

__version__ = "1.0.0"
