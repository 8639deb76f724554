"""Render engine adapters.

The visual composition lives in an external video-composition project. The
worker hands it a render spec (frame count, audio URL, display name,
amplitudes, encoder settings) and gets back an encoded file:

- LocalRenderEngine runs the project's render script as a subprocess. The
  script reads the JSON spec, prints ``progress=<0..1>`` lines and exits
  non-zero on failure.
- RemoteRenderEngine submits the spec to a serverless render endpoint, polls
  it and downloads the output.
"""

import asyncio
import json
import logging
import shlex
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Optional, Protocol
from uuid import UUID

import httpx

from santa_video.config import Settings, get_settings
from santa_video.exceptions import RenderEngineError

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]


@dataclass
class RenderRequest:
    job_id: UUID
    composition_id: str
    total_frames: int
    audio_url: str
    display_name: str
    amplitudes: list[float] = field(default_factory=list)
    output_path: Path = Path("out.mp4")
    codec: str = "h264"
    pixel_format: str = "yuv420p"
    crf: int = 28
    concurrency: int = 2
    timeout_ms: int = 120_000

    def input_props(self) -> dict[str, Any]:
        return {
            "audioUrl": self.audio_url,
            "childName": self.display_name,
            "audioDurationInFrames": self.total_frames,
            "waveformData": self.amplitudes,
        }

    def to_spec(self, entry_point: str | None = None) -> dict[str, Any]:
        spec = {
            "compositionId": self.composition_id,
            "durationInFrames": self.total_frames,
            "inputProps": self.input_props(),
            "codec": self.codec,
            "pixelFormat": self.pixel_format,
            "crf": self.crf,
            "concurrency": self.concurrency,
            "timeoutInMilliseconds": self.timeout_ms,
            "outputLocation": str(self.output_path),
        }
        if entry_point:
            spec["entryPoint"] = entry_point
        return spec


class RenderEngine(Protocol):
    timeout_ms: int

    async def render(
        self, request: RenderRequest, on_progress: Optional[ProgressCallback] = None
    ) -> Path: ...


def parse_progress_line(line: str) -> float | None:
    """Parse ``progress=0.42`` into a clamped fraction."""
    if not line.startswith("progress="):
        return None
    try:
        value = float(line.split("=", 1)[1])
    except ValueError:
        return None
    return max(0.0, min(1.0, value))


class ProgressLogger:
    """Progress callback that logs every 10%."""

    def __init__(self, job_id: UUID) -> None:
        self.job_id = job_id
        self.last_logged = 0

    def __call__(self, fraction: float) -> None:
        percent = round(fraction * 100)
        if percent >= self.last_logged + 10:
            self.last_logged = (percent // 10) * 10
            logger.info(f"[RENDER] Progress: {percent}%")


class LocalRenderEngine:
    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()

    @property
    def timeout_ms(self) -> int:
        return self.settings.render_timeout_ms

    def build_command(self, spec_path: Path) -> list[str]:
        return [*shlex.split(self.settings.render_command), str(spec_path)]

    async def render(
        self, request: RenderRequest, on_progress: Optional[ProgressCallback] = None
    ) -> Path:
        spec_path = request.output_path.with_suffix(".render.json")
        spec_path.write_text(json.dumps(request.to_spec(self.settings.remotion_entry)))

        cmd = self.build_command(spec_path)
        logger.info(f"[RENDER] Starting render: {' '.join(cmd)}")

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise RenderEngineError(f"Failed to start render engine: {e}", job_id=str(request.job_id)) from e

        timeout_s = request.timeout_ms / 1000
        try:
            stderr_output = await asyncio.wait_for(self._consume(proc, on_progress), timeout=timeout_s)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            raise RenderEngineError(
                f"Render timed out after {request.timeout_ms}ms", job_id=str(request.job_id)
            )
        finally:
            spec_path.unlink(missing_ok=True)

        if proc.returncode != 0:
            message = stderr_output.strip().splitlines()[-1] if stderr_output.strip() else "no output"
            raise RenderEngineError(
                f"Render engine exited with code {proc.returncode}: {message}",
                job_id=str(request.job_id),
            )
        if not request.output_path.exists():
            raise RenderEngineError("Render engine produced no output file", job_id=str(request.job_id))
        return request.output_path

    @staticmethod
    async def _consume(proc: asyncio.subprocess.Process, on_progress: Optional[ProgressCallback]) -> str:
        """Forward progress lines while collecting stderr; return stderr text."""
        stderr_task = asyncio.create_task(proc.stderr.read())
        try:
            async for raw_line in proc.stdout:
                fraction = parse_progress_line(raw_line.decode("utf-8", errors="replace").strip())
                if fraction is not None and on_progress:
                    on_progress(fraction)
        except asyncio.CancelledError:
            stderr_task.cancel()
            raise
        stderr = await stderr_task
        await proc.wait()
        return stderr.decode("utf-8", errors="replace")


class RemoteRenderEngine:
    def __init__(
        self,
        settings: Settings | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._http_client = http_client

    @property
    def timeout_ms(self) -> int:
        return self.settings.remote_render_timeout_ms

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.settings.remote_render_api_key:
            headers["Authorization"] = f"Bearer {self.settings.remote_render_api_key}"
        return headers

    async def render(
        self, request: RenderRequest, on_progress: Optional[ProgressCallback] = None
    ) -> Path:
        if not self.settings.remote_render_url:
            raise RenderEngineError("Missing remote_render_url", job_id=str(request.job_id))

        client = self._http_client or httpx.AsyncClient(timeout=60.0)
        try:
            return await asyncio.wait_for(
                self._render(client, request, on_progress),
                timeout=request.timeout_ms / 1000,
            )
        except asyncio.TimeoutError:
            raise RenderEngineError(
                f"Remote render timed out after {request.timeout_ms}ms", job_id=str(request.job_id)
            )
        except httpx.HTTPError as e:
            raise RenderEngineError(f"Remote render request failed: {e}", job_id=str(request.job_id)) from e
        finally:
            if self._http_client is None:
                await client.aclose()

    async def _render(
        self,
        client: httpx.AsyncClient,
        request: RenderRequest,
        on_progress: Optional[ProgressCallback],
    ) -> Path:
        base_url = self.settings.remote_render_url.rstrip("/")
        spec = request.to_spec()
        spec.pop("outputLocation")
        spec["customData"] = {"callId": str(request.job_id)}

        response = await client.post(f"{base_url}/renders", json=spec, headers=self._headers())
        response.raise_for_status()
        render_id = response.json()["renderId"]
        logger.info(f"[RENDER] Remote render started: {render_id}")

        poll_s = self.settings.remote_render_poll_interval_ms / 1000
        started = time.monotonic()
        while True:
            response = await client.get(f"{base_url}/renders/{render_id}", headers=self._headers())
            response.raise_for_status()
            status = response.json()

            if on_progress and status.get("progress") is not None:
                on_progress(max(0.0, min(1.0, float(status["progress"]))))

            state = status.get("status")
            if state == "done":
                output_url = status.get("outputUrl")
                if not output_url:
                    raise RenderEngineError("Remote render finished without outputUrl", job_id=str(request.job_id))
                break
            if state in ("error", "timeout"):
                errors = status.get("errors") or []
                detail = "; ".join(e.get("message", str(e)) for e in errors) or state
                raise RenderEngineError(f"Remote render failed: {detail}", job_id=str(request.job_id))
            await asyncio.sleep(poll_s)

        logger.info(f"[RENDER] Remote render {render_id} done in {time.monotonic() - started:.1f}s")
        async with client.stream("GET", output_url) as download:
            download.raise_for_status()
            with open(request.output_path, "wb") as f:
                async for chunk in download.aiter_bytes():
                    f.write(chunk)
        return request.output_path


def get_render_engine(settings: Settings | None = None) -> RenderEngine:
    settings = settings or get_settings()
    if settings.render_engine == "remote":
        return RemoteRenderEngine(settings)
    return LocalRenderEngine(settings)
