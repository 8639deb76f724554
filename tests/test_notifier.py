"""Tests for the completion email notifier."""

import json

import httpx
import pytest

from santa_video.services.notifier import EmailNotifier, LoggingNotifier, get_notifier


def email_settings(settings):
    return settings.model_copy(update={"email_api_key": "re_test_key", "app_url": "https://app.test/"})


class TestEmailNotifier:
    """Tests for EmailNotifier."""

    def test_build_message(self, settings, make_job):
        job = make_job(call_duration_seconds=185, transcript="Santa: Ho ho ho!")
        message = EmailNotifier(email_settings(settings)).build_message(job, "https://cdn.test/v.mp4")

        assert message["to"] == ["parent@example.com"]
        assert "Emma" in message["subject"]
        assert f"https://app.test/recording/{job.id}?tab=video" in message["text"]
        assert "https://cdn.test/v.mp4" in message["text"]
        assert "3 minutes 5 seconds" in message["text"]
        assert "Santa: Ho ho ho!" in message["text"]

    @pytest.mark.asyncio
    async def test_send_posts_to_email_api(self, settings, make_job):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"id": "email_123"})

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        notifier = EmailNotifier(email_settings(settings), http_client=client)

        await notifier.send(make_job(), "https://cdn.test/v.mp4")

        assert len(requests) == 1
        assert requests[0].headers["Authorization"] == "Bearer re_test_key"
        assert json.loads(requests[0].content)["to"] == ["parent@example.com"]

    @pytest.mark.asyncio
    async def test_send_raises_on_api_error(self, settings, make_job):
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(500)))
        notifier = EmailNotifier(email_settings(settings), http_client=client)

        with pytest.raises(httpx.HTTPStatusError):
            await notifier.send(make_job(), "https://cdn.test/v.mp4")

    @pytest.mark.asyncio
    async def test_skips_without_parent_email(self, settings, make_job):
        def handler(request):
            raise AssertionError("should not send")

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        await EmailNotifier(email_settings(settings), http_client=client).send(
            make_job(parent_email=""), "https://cdn.test/v.mp4"
        )


class TestGetNotifier:
    """Tests for notifier selection."""

    def test_logging_notifier_without_api_key(self, settings):
        assert isinstance(get_notifier(settings), LoggingNotifier)

    def test_email_notifier_with_api_key(self, settings):
        assert isinstance(get_notifier(email_settings(settings)), EmailNotifier)
