from santa_video.schemas.job import RenderResult, VideoJob

__all__ = ["RenderResult", "VideoJob"]
