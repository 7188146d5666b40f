import re

# SSE treats CRLF, CR and LF alike as line ends
_SSE_LINE_END = re.compile(r"\r\n|\r|\n")

# SSE frames are built as plain strings
def make_sse_frame(event: str, data: str) -> str:
    # one data line per payload line, otherwise a line end in the payload ends the frame early
    lines = _SSE_LINE_END.split(data)
    body = "".join(f"data: {line}\n" for line in lines)
    return f"event: {event}\n{body}\n"

# C-style escaping used by the `format=cstring` keep-alive parameter
_CSTRING_ESCAPES = {"\\": "\\\\", "\n": "\\n", "\r": "\\r", "\t": "\\t", "\0": "\\0"}
_CSTRING_UNESCAPES = {v[1]: k for k, v in _CSTRING_ESCAPES.items()}

def cstring_escape(data: str) -> str:
    return "".join(_CSTRING_ESCAPES.get(ch, ch) for ch in data)

def cstring_unescape(data: str) -> str:
    out = []
    chars = iter(data)
    for ch in chars:
        if ch != "\\":
            out.append(ch)
            continue
        nxt = next(chars, None)
        if nxt is None or nxt not in _CSTRING_UNESCAPES:
            raise ValueError(f"invalid cstring escape in {data!r}")
        out.append(_CSTRING_UNESCAPES[nxt])
    return "".join(out)

