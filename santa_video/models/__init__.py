from santa_video.models.base import Base
from santa_video.models.call import Call, VideoStatus
from santa_video.models.call_event import CallEvent

__all__ = [
    "Base",
    "Call",
    "CallEvent",
    "VideoStatus",
]
