# ------------ Config ------------
SUBSCRIBER_QUEUE_SIZE = 50    # bounded per-connection frame queue
KEEP_ALIVE_INTERVAL = 55      # seconds between keep-alive frames on an idle stream
KEEP_ALIVE_DATA = ":\n\n"     # SSE comment frame, ignored by EventSource clients
# --------------------------------

# ------------ GRIP headers ------------
GRIP_HOLD = "Grip-Hold"
GRIP_CHANNEL = "Grip-Channel"
GRIP_KEEP_ALIVE = "Grip-Keep-Alive"

HOLD_MODE_STREAM = "stream"
HOLD_MODE_RESPONSE = "response"
# --------------------------------------

SSE_MEDIA_TYPE = "text/event-stream"
TEXT_MEDIA_TYPE = "text/plain"

INITIAL_EVENT = "message"
INITIAL_DATA = "stream open"

# Response headers for streams this process holds itself
SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}
