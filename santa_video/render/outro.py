"""Outro concatenation.

Appends the fixed outro clip to a rendered video with FFmpeg. The outro is
rescaled, padded and resampled to the main video's resolution, frame rate and
audio sample rate first. A missing outro or an FFmpeg failure falls back to
the unmodified main video: the outro is an enhancement and must never fail a
job.
"""

import asyncio
import logging
import shutil
import time
from dataclasses import dataclass
from pathlib import Path

from santa_video.config import Settings, get_settings
from santa_video.utils.media_info import get_media_info

logger = logging.getLogger(__name__)


@dataclass
class OutroTarget:
    width: int
    height: int
    fps: int
    sample_rate: int


@dataclass
class OutroResult:
    output_path: Path
    outro_appended: bool
    reason: str = ""


class OutroCompositor:
    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()
        self.outro_path = Path(self.settings.outro_path)

    def probe_target(self, main_video_path: Path) -> OutroTarget:
        """Match the main video; fall back to configured output format."""
        target = OutroTarget(
            width=self.settings.render_output_width,
            height=self.settings.render_output_height,
            fps=self.settings.render_fps,
            sample_rate=self.settings.render_audio_sample_rate,
        )
        try:
            info = get_media_info(str(main_video_path))
        except RuntimeError as e:
            logger.warning(f"[OUTRO] Could not probe main video, using defaults: {e}")
            return target

        target.width = info.width or target.width
        target.height = info.height or target.height
        target.fps = info.fps or target.fps
        target.sample_rate = info.sample_rate or target.sample_rate
        return target

    def build_command(self, main_video_path: Path, output_path: Path, target: OutroTarget) -> list[str]:
        w, h = target.width, target.height
        filter_complex = (
            f"[1:v]scale={w}:{h}:force_original_aspect_ratio=decrease,"
            f"pad={w}:{h}:(ow-iw)/2:(oh-ih)/2,fps={target.fps},format=yuv420p[outro_v];"
            f"[1:a]aresample={target.sample_rate}[outro_a];"
            "[0:v][0:a][outro_v][outro_a]concat=n=2:v=1:a=1[outv][outa]"
        )
        return [
            self.settings.ffmpeg_path,
            "-y",
            "-i", str(main_video_path),
            "-i", str(self.outro_path),
            "-filter_complex", filter_complex,
            "-map", "[outv]",
            "-map", "[outa]",
            "-c:v", "libx264",
            "-c:a", "aac",
            "-preset", "fast",
            "-crf", "23",
            str(output_path),
        ]

    async def compose(self, main_video_path: Path, output_path: Path) -> OutroResult:
        """Write main + outro to ``output_path``. Transcoder failures never raise."""
        logger.info(f"[OUTRO] Checking for outro at: {self.outro_path}")

        if not self.outro_path.exists():
            logger.warning("[OUTRO] No outro found, skipping concatenation")
            return self._fallback(main_video_path, output_path, "outro missing")

        size_mb = self.outro_path.stat().st_size / 1024 / 1024
        target = await asyncio.to_thread(self.probe_target, main_video_path)
        logger.info(
            f"[OUTRO] Found outro ({size_mb:.2f} MB), concatenating "
            f"(scaling outro to {target.width}x{target.height} @ {target.fps}fps)"
        )

        cmd = self.build_command(main_video_path, output_path, target)
        start = time.monotonic()
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.warning(f"[OUTRO] FFmpeg could not be started: {e}")
            return self._fallback(main_video_path, output_path, "ffmpeg unavailable")

        try:
            _, stderr = await asyncio.wait_for(
                proc.communicate(), timeout=self.settings.outro_timeout_seconds
            )
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            logger.warning(f"[OUTRO] FFmpeg concat timed out after {self.settings.outro_timeout_seconds}s")
            return self._fallback(main_video_path, output_path, "ffmpeg timeout")

        if proc.returncode != 0:
            stderr_text = stderr.decode("utf-8", errors="replace").strip()
            logger.warning(f"[OUTRO] FFmpeg concat failed (code {proc.returncode}): {stderr_text[-500:]}")
            return self._fallback(main_video_path, output_path, "ffmpeg failed")

        logger.info(f"[OUTRO] Outro added successfully (took {time.monotonic() - start:.1f}s)")
        return OutroResult(output_path=output_path, outro_appended=True)

    @staticmethod
    def _fallback(main_video_path: Path, output_path: Path, reason: str) -> OutroResult:
        logger.warning("[OUTRO] Using main video only (no outro)")
        shutil.copyfile(main_video_path, output_path)
        return OutroResult(output_path=output_path, outro_appended=False, reason=reason)
