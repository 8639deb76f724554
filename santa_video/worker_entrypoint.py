"""Worker entrypoint for Cloud Run.

Runs a health check server alongside the polling video worker.
"""

import argparse
import asyncio
import json
import logging
import signal
import threading
from http.server import BaseHTTPRequestHandler, HTTPServer
from uuid import UUID

from santa_video.config import get_settings
from santa_video.models.database import init_db
from santa_video.render.pipeline import VideoRenderPipeline
from santa_video.services.job_store import JobStore
from santa_video.worker import VideoWorker

logger = logging.getLogger(__name__)


class HealthHandler(BaseHTTPRequestHandler):
    """Simple health check handler."""

    worker: VideoWorker | None = None

    def do_GET(self):
        if self.path == "/health" or self.path == "/":
            worker = type(self).worker
            body = {
                "status": "stopping" if worker and worker.context.stopping else "ok",
                "current_job": str(worker.context.current_job_id) if worker and worker.context.current_job_id else None,
            }
            self.send_response(200)
            self.send_header("Content-type", "application/json")
            self.end_headers()
            self.wfile.write(json.dumps(body).encode())
        else:
            self.send_response(404)
            self.end_headers()

    def log_message(self, format, *args):
        # Suppress access logs
        pass


def run_health_server(port: int) -> None:
    """Run the health check server."""
    server = HTTPServer(("0.0.0.0", port), HealthHandler)
    logger.info(f"Health server running on port {port}")
    server.serve_forever()


async def run_worker(worker: VideoWorker) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, worker.request_shutdown, sig.name)
    await worker.run()


async def run_single(store: JobStore, call_id: UUID, pipeline: VideoRenderPipeline | None = None) -> int:
    """Claim and render one call on demand. Returns a process exit code."""
    job = store.claim_job(call_id)
    if job is None:
        logger.error(f"Call {call_id} is missing, has no recording, or is processing or failed")
        return 1

    result = await (pipeline or VideoRenderPipeline(store)).run(job)
    if not result.success:
        store.handle_failure(job.id, result.error or "Unknown error", job.video_retry_count)
        return 1
    logger.info(f"Video URL: {result.video_url}")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Santa call video render worker")
    parser.add_argument("--once", metavar="CALL_ID", type=UUID, help="Render a single call and exit")
    parser.add_argument("--no-health", action="store_true", help="Do not start the health server")
    args = parser.parse_args(argv)

    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    logger.info("=" * 60)
    logger.info("Santa Video Render Worker")
    logger.info("=" * 60)
    logger.info(f"Environment: {settings.environment}")
    logger.info(f"Render engine: {settings.render_engine}")
    logger.info(f"Poll interval: {settings.poll_interval_ms}ms")
    logger.info(f"Max retries: {settings.max_retries}")
    logger.info(f"Backoff delays: {settings.retry_backoff_ms} (enforced={settings.enforce_backoff})")

    if settings.environment == "development":
        init_db()

    store = JobStore(settings=settings)

    if args.once:
        return asyncio.run(run_single(store, args.once))

    worker = VideoWorker(store=store, settings=settings)
    if not args.no_health:
        HealthHandler.worker = worker
        health_thread = threading.Thread(
            target=run_health_server, args=(settings.health_port,), daemon=True
        )
        health_thread.start()

    asyncio.run(run_worker(worker))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
