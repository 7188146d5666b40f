from .constants import *  # noqa: F401,F403
from .utility_functions import (  # noqa: F401
    make_sse_frame,
    cstring_escape,
    cstring_unescape,
)
