"""Tests for outro concatenation and its fallback."""

import threading
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from santa_video.render.outro import OutroCompositor, OutroTarget
from santa_video.utils.media_info import MediaInfo


@pytest.fixture
def main_video(tmp_path: Path) -> Path:
    path = tmp_path / "main.mp4"
    path.write_bytes(b"main-video-bytes")
    return path


@pytest.fixture
def outro_file(settings) -> Path:
    path = Path(settings.outro_path)
    path.write_bytes(b"outro-bytes")
    return path


def fake_process(returncode: int, stderr: bytes = b""):
    proc = MagicMock()
    proc.returncode = returncode
    proc.communicate = AsyncMock(return_value=(b"", stderr))
    proc.wait = AsyncMock(return_value=returncode)
    return proc


class TestBuildCommand:
    """Tests for the FFmpeg command line."""

    def test_filter_matches_target(self, settings, main_video, tmp_path):
        compositor = OutroCompositor(settings)
        target = OutroTarget(width=1080, height=1920, fps=60, sample_rate=48000)

        cmd = compositor.build_command(main_video, tmp_path / "out.mp4", target)

        filter_complex = cmd[cmd.index("-filter_complex") + 1]
        assert "scale=1080:1920:force_original_aspect_ratio=decrease" in filter_complex
        assert "pad=1080:1920:(ow-iw)/2:(oh-ih)/2" in filter_complex
        assert "fps=60" in filter_complex
        assert "aresample=48000" in filter_complex
        assert "concat=n=2:v=1:a=1" in filter_complex
        assert cmd[cmd.index("-c:v") + 1] == "libx264"
        assert cmd[cmd.index("-c:a") + 1] == "aac"
        assert cmd[cmd.index("-preset") + 1] == "fast"
        assert cmd[cmd.index("-crf") + 1] == "23"
        assert cmd[-1] == str(tmp_path / "out.mp4")


class TestProbeTarget:
    """Tests for matching the main video's format."""

    def test_uses_probed_values(self, settings, main_video):
        info = MediaInfo(width=720, height=1280, fps=30, sample_rate=44100, has_video=True, has_audio=True)
        with patch("santa_video.render.outro.get_media_info", return_value=info):
            target = OutroCompositor(settings).probe_target(main_video)
        assert (target.width, target.height, target.fps, target.sample_rate) == (720, 1280, 30, 44100)

    def test_probe_failure_uses_defaults(self, settings, main_video):
        with patch("santa_video.render.outro.get_media_info", side_effect=RuntimeError("ffprobe failed")):
            target = OutroCompositor(settings).probe_target(main_video)
        assert (target.width, target.height, target.fps, target.sample_rate) == (1080, 1920, 60, 48000)


class TestCompose:
    """Tests for compose and its fallbacks."""

    @pytest.mark.asyncio
    async def test_missing_outro_copies_main_video(self, settings, main_video, tmp_path):
        output = tmp_path / "final.mp4"

        result = await OutroCompositor(settings).compose(main_video, output)

        assert result.outro_appended is False
        assert result.reason == "outro missing"
        assert output.read_bytes() == b"main-video-bytes"

    @pytest.mark.asyncio
    async def test_ffmpeg_failure_falls_back(self, settings, main_video, outro_file, tmp_path):
        output = tmp_path / "final.mp4"
        proc = fake_process(1, b"Invalid data found when processing input")

        with patch("santa_video.render.outro.get_media_info", side_effect=RuntimeError("no ffprobe")), \
                patch("asyncio.create_subprocess_exec", AsyncMock(return_value=proc)):
            result = await OutroCompositor(settings).compose(main_video, output)

        assert result.outro_appended is False
        assert result.reason == "ffmpeg failed"
        assert output.read_bytes() == b"main-video-bytes"

    @pytest.mark.asyncio
    async def test_ffmpeg_missing_falls_back(self, settings, main_video, outro_file, tmp_path):
        output = tmp_path / "final.mp4"

        with patch("santa_video.render.outro.get_media_info", side_effect=RuntimeError("no ffprobe")), \
                patch("asyncio.create_subprocess_exec", AsyncMock(side_effect=FileNotFoundError("ffmpeg"))):
            result = await OutroCompositor(settings).compose(main_video, output)

        assert result.outro_appended is False
        assert result.reason == "ffmpeg unavailable"
        assert output.read_bytes() == b"main-video-bytes"

    @pytest.mark.asyncio
    async def test_probe_runs_off_event_loop_thread(self, settings, main_video, outro_file, tmp_path):
        probe_threads = []

        def probe(path):
            probe_threads.append(threading.get_ident())
            raise RuntimeError("no ffprobe")

        with patch("santa_video.render.outro.get_media_info", side_effect=probe), \
                patch("asyncio.create_subprocess_exec", AsyncMock(return_value=fake_process(0))):
            await OutroCompositor(settings).compose(main_video, tmp_path / "final.mp4")

        assert len(probe_threads) == 1
        assert probe_threads[0] != threading.get_ident()

    @pytest.mark.asyncio
    async def test_successful_concat(self, settings, main_video, outro_file, tmp_path):
        output = tmp_path / "final.mp4"
        exec_mock = AsyncMock(return_value=fake_process(0))

        with patch("santa_video.render.outro.get_media_info", side_effect=RuntimeError("no ffprobe")), \
                patch("asyncio.create_subprocess_exec", exec_mock):
            result = await OutroCompositor(settings).compose(main_video, output)

        assert result.outro_appended is True
        args = exec_mock.await_args.args
        assert args[0] == "ffmpeg"
        assert str(outro_file) in args
