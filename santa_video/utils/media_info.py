"""Media file information utilities using FFprobe."""

import json
import subprocess
from dataclasses import dataclass

from santa_video.config import get_settings


@dataclass
class MediaInfo:
    """Media file information."""

    duration_ms: int | None = None
    width: int | None = None
    height: int | None = None
    fps: int | None = None
    sample_rate: int | None = None
    has_video: bool = False
    has_audio: bool = False


def _run_ffprobe(file_path: str, *args) -> dict:
    """Run ffprobe and return parsed JSON."""
    settings = get_settings()
    cmd = [
        settings.ffprobe_path,
        "-v", "quiet",
        "-print_format", "json",
        *args,
        file_path,
    ]

    try:
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=60)
    except (OSError, subprocess.TimeoutExpired) as e:
        raise RuntimeError(f"ffprobe failed: {e}")
    if result.returncode != 0:
        raise RuntimeError(f"ffprobe failed: {result.stderr}")

    try:
        return json.loads(result.stdout)
    except json.JSONDecodeError as e:
        raise RuntimeError(f"Failed to parse ffprobe output: {e}")


def _parse_frame_rate(value: str) -> int | None:
    if "/" in value:
        num, den = value.split("/", 1)
        if int(den) > 0:
            return round(int(num) / int(den))
        return None
    return round(float(value)) if value else None


def get_media_info(file_path: str) -> MediaInfo:
    """
    Get dimensions, frame rate and audio sample rate of a media file.

    Raises:
        RuntimeError: If ffprobe fails
    """
    data = _run_ffprobe(file_path, "-show_format", "-show_streams")
    info = MediaInfo()

    format_info = data.get("format", {})
    if "duration" in format_info:
        info.duration_ms = int(float(format_info["duration"]) * 1000)

    for stream in data.get("streams", []):
        codec_type = stream.get("codec_type")
        if codec_type == "video" and not info.has_video:
            info.has_video = True
            info.width = stream.get("width")
            info.height = stream.get("height")
            try:
                info.fps = _parse_frame_rate(stream.get("r_frame_rate", "0/1"))
            except ValueError:
                info.fps = None
        elif codec_type == "audio" and not info.has_audio:
            info.has_audio = True
            info.sample_rate = int(stream.get("sample_rate", 0)) or None

    return info
