from santa_video.render.audio_analysis import AudioAnalyzer, EstimatingAudioAnalyzer, RenderInputs
from santa_video.render.engine import LocalRenderEngine, RemoteRenderEngine, RenderRequest, get_render_engine
from santa_video.render.outro import OutroCompositor
from santa_video.render.pipeline import VideoRenderPipeline

__all__ = [
    "VideoRenderPipeline",
    "OutroCompositor",
    "AudioAnalyzer",
    "EstimatingAudioAnalyzer",
    "RenderInputs",
    "RenderRequest",
    "LocalRenderEngine",
    "RemoteRenderEngine",
    "get_render_engine",
]
