from .schemas import PublishRequest, PublishResponse, StreamRequest, TopicInfo, TopicList  # noqa: F401
