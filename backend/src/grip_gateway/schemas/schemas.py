from typing import List, Optional

from pydantic import BaseModel


class StreamRequest(BaseModel):
    ''' Parameters of GET /stream. `topic` is validated by the gateway, not here.'''
    topic: Optional[str] = None


# topic and event are checked by the publisher so that the API and direct callers fail alike
class PublishRequest(BaseModel):
    topic: str
    event: str = "message"
    data: str = ""


class PublishResponse(BaseModel):
    status: str = "ok"
    topic: str
    event: str
    seq: int
    delivered: int
    failed: int
    relayed: Optional[bool] = None


class TopicInfo(BaseModel):
    name: str
    subscribers: int
    messages: int
    last_seq: Optional[int] = None


class TopicList(BaseModel):
    topics: List[TopicInfo]
