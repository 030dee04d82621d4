import json
import random

import httpx
import pytest

from clients.deapi import DeapiClient, VideoOptions
from clients.key_pool import KeyPool
from clients.text_generation import ChatProvider, TextGenerationClient
from core.exceptions import ConfigurationError, UpstreamProviderError

MESSAGES = [{"role": "user", "content": "hi"}]


def chat_reply(text):
    return httpx.Response(200, json={"choices": [{"message": {"content": text}}]})


def text_client(handler, groq_keys=("g1",), openrouter_keys=("o1",)):
    return TextGenerationClient(
        [
            ChatProvider("groq", "https://groq.test/v1", "llama", KeyPool("groq", list(groq_keys), rng=random.Random(1))),
            ChatProvider("openrouter", "https://openrouter.test/v1", "gpt",
                         KeyPool("openrouter", list(openrouter_keys), rng=random.Random(1))),
        ],
        transport=httpx.MockTransport(handler),
    )


class TestTextGeneration:
    @pytest.mark.asyncio
    async def test_first_provider_answers(self):
        seen = []

        def handler(request):
            seen.append(request)
            return chat_reply("hello")

        result = await text_client(handler).generate(MESSAGES, max_tokens=100, temperature=0.5)

        assert result.text == "hello"
        assert result.provider == "groq"
        assert result.attempts == 1
        body = json.loads(seen[0].content)
        assert body == {"model": "llama", "messages": MESSAGES, "max_tokens": 100, "temperature": 0.5}
        assert seen[0].headers["Authorization"] == "Bearer g1"
        assert seen[0].url.path == "/v1/chat/completions"

    @pytest.mark.asyncio
    async def test_falls_over_to_second_provider(self):
        def handler(request):
            if request.url.host == "groq.test":
                return httpx.Response(429, json={"error": "rate limited"})
            return chat_reply("from openrouter")

        result = await text_client(handler, groq_keys=("g1", "g2")).generate(MESSAGES)

        assert result.provider == "openrouter"
        assert result.text == "from openrouter"
        assert result.attempts == 3

    @pytest.mark.asyncio
    async def test_all_providers_failing(self):
        def handler(request):
            status = 401 if request.url.host == "groq.test" else 429
            return httpx.Response(status, json={})

        with pytest.raises(UpstreamProviderError) as exc_info:
            await text_client(handler).generate(MESSAGES)

        assert exc_info.value.message == "Generation Failed - All AI providers encountered issues"
        assert exc_info.value.to_payload()["details"] == {
            "totalAttempts": 2,
            "providers": 2,
            "keyErrors": 1,
            "rateLimitErrors": 1,
            "serverErrors": 0,
        }

    @pytest.mark.asyncio
    async def test_skips_providers_without_keys(self):
        def handler(request):
            assert request.url.host == "openrouter.test"
            return chat_reply("ok")

        result = await text_client(handler, groq_keys=()).generate(MESSAGES)
        assert result.provider == "openrouter"

    @pytest.mark.asyncio
    async def test_unreadable_reply_moves_to_next_provider(self):
        def handler(request):
            if request.url.host == "groq.test":
                return httpx.Response(200, text="<html>gateway</html>")
            return chat_reply("from openrouter")

        result = await text_client(handler).generate(MESSAGES)

        assert result.provider == "openrouter"
        assert result.text == "from openrouter"

    @pytest.mark.asyncio
    async def test_unreadable_replies_everywhere(self):
        def handler(request):
            return httpx.Response(200, json={"choices": []})

        with pytest.raises(UpstreamProviderError) as exc_info:
            await text_client(handler).generate(MESSAGES)

        assert exc_info.value.message == "Generation Failed - All AI providers encountered issues"

    @pytest.mark.asyncio
    async def test_no_keys_at_all(self):
        with pytest.raises(ConfigurationError):
            await text_client(lambda r: chat_reply("x"), groq_keys=(), openrouter_keys=()).generate(MESSAGES)


def deapi(handler, keys=("d1",), max_poll_attempts=3):
    return DeapiClient(
        KeyPool("deapi", list(keys), rng=random.Random(1)),
        base_url="https://deapi.test/api/v1/client/",
        model="WhisperLargeV3",
        poll_interval=0,
        max_poll_attempts=max_poll_attempts,
        image_poll_attempts=max_poll_attempts,
        video_poll_attempts=max_poll_attempts,
        transport=httpx.MockTransport(handler),
    )


class TestDeapiTranscription:
    @pytest.mark.asyncio
    async def test_immediate_text(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"text": "hello world", "request_id": "r-1"})

        result = await deapi(handler).transcribe_video("https://youtu.be/abc")

        assert result.text == "hello world"
        assert result.request_id == "r-1"
        assert result.attempts == 1
        assert seen[0].url.path == "/api/v1/client/vid2txt"
        assert json.loads(seen[0].content)["video_url"] == "https://youtu.be/abc"

    @pytest.mark.asyncio
    async def test_polls_until_completed(self):
        polls = []

        def handler(request):
            if request.method == "POST":
                return httpx.Response(200, json={"data": {"request_id": "job-1"}})
            polls.append(request.url.path)
            if len(polls) < 2:
                return httpx.Response(200, json={"data": {"status": "processing"}})
            return httpx.Response(200, json={"data": {"status": "completed", "result": {"text": "transcribed"}}})

        result = await deapi(handler).transcribe_video("https://youtu.be/abc")

        assert result.text == "transcribed"
        assert result.request_id == "job-1"
        assert polls == ["/api/v1/client/requests/job-1"] * 2

    @pytest.mark.asyncio
    async def test_failed_job(self):
        def handler(request):
            if request.method == "POST":
                return httpx.Response(200, json={"data": {"request_id": "job-1"}})
            return httpx.Response(200, json={"data": {"status": "failed", "error": "Video unavailable"}})

        with pytest.raises(UpstreamProviderError) as exc_info:
            await deapi(handler).transcribe_video("https://youtu.be/abc")

        assert exc_info.value.message == "Video unavailable"

    @pytest.mark.asyncio
    async def test_times_out(self):
        polls = []

        def handler(request):
            if request.method == "POST":
                return httpx.Response(200, json={"data": {"request_id": "job-1"}})
            polls.append(1)
            return httpx.Response(200, json={"data": {"status": "processing"}})

        with pytest.raises(UpstreamProviderError) as exc_info:
            await deapi(handler, max_poll_attempts=4).transcribe_video("https://youtu.be/abc")

        assert exc_info.value.message == "Transcription timed out"
        assert len(polls) == 4

    @pytest.mark.asyncio
    async def test_rotates_keys_on_rate_limit(self):
        keys = []

        def handler(request):
            keys.append(request.headers["Authorization"])
            if len(keys) == 1:
                return httpx.Response(429, json={"message": "Too many requests"})
            return httpx.Response(200, json={"transcription": "second key worked"})

        result = await deapi(handler, keys=("d1", "d2")).transcribe_video("https://youtu.be/abc")

        assert result.text == "second key worked"
        assert result.request_id == "immediate"
        assert result.attempts == 2
        assert sorted(keys) == ["Bearer d1", "Bearer d2"]

    @pytest.mark.asyncio
    async def test_missing_request_id(self):
        with pytest.raises(UpstreamProviderError) as exc_info:
            await deapi(lambda r: httpx.Response(200, json={})).transcribe_video("https://youtu.be/abc")

        assert exc_info.value.message == "No transcription or request ID in response"


class TestDeapiJobStatus:
    @pytest.mark.asyncio
    async def test_parses_nested_payload(self):
        def handler(request):
            assert request.url.path == "/api/v1/client/request-status/job-9"
            return httpx.Response(200, json={
                "data": {"status": "done", "result_url": "https://cdn.test/v.mp4", "progress": 100},
            })

        job = await deapi(handler).job_status("job-9")

        assert job.request_id == "job-9"
        assert job.status == "done"
        assert job.video_url == "https://cdn.test/v.mp4"
        assert job.progress == 100
        assert job.error is None

    @pytest.mark.asyncio
    async def test_provider_error_message(self):
        def handler(request):
            return httpx.Response(404, json={"message": "Request not found"})

        with pytest.raises(UpstreamProviderError) as exc_info:
            await deapi(handler).job_status("job-9")

        assert exc_info.value.message == "Request not found"
        assert exc_info.value.status == 404

    @pytest.mark.asyncio
    async def test_requires_a_key(self):
        with pytest.raises(ConfigurationError):
            await deapi(lambda r: httpx.Response(200, json={}), keys=()).job_status("job-9")

    @pytest.mark.asyncio
    async def test_unreadable_reply(self):
        with pytest.raises(UpstreamProviderError) as exc_info:
            await deapi(lambda r: httpx.Response(200, text="<html>")).job_status("job-9")

        assert exc_info.value.message == "Invalid response from deAPI"

    @pytest.mark.asyncio
    async def test_network_failure(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(UpstreamProviderError) as exc_info:
            await deapi(handler).job_status("job-9")

        assert exc_info.value.message.startswith("deAPI request failed")


class TestDeapiImages:
    @pytest.mark.asyncio
    async def test_immediate_image(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"image": "https://cdn.test/i.png"})

        result = await deapi(handler).generate_image("a fox", width=512, height=768)

        assert result.image_url == "https://cdn.test/i.png"
        assert result.request_id is None
        assert seen[0].url.path == "/api/v1/client/txt2img"
        body = json.loads(seen[0].content)
        assert body["prompt"] == "a fox"
        assert (body["width"], body["height"]) == (512, 768)
        assert body["model"] == "Flux1schnell"

    @pytest.mark.asyncio
    async def test_polls_past_rate_limits(self):
        polls = []

        def handler(request):
            if request.method == "POST":
                return httpx.Response(200, json={"data": {"request_id": "img-1"}})
            polls.append(request.url.path)
            if len(polls) == 1:
                return httpx.Response(429, json={})
            if len(polls) == 2:
                return httpx.Response(200, json={"message": "Too Many Attempts."})
            if len(polls) == 3:
                return httpx.Response(200, json={"data": {"status": "processing"}})
            return httpx.Response(200, json={"data": {"status": "done", "result_url": "https://cdn.test/i.png"}})

        result = await deapi(handler, max_poll_attempts=5).generate_image("a fox")

        assert result.image_url == "https://cdn.test/i.png"
        assert result.request_id == "img-1"
        assert polls == ["/api/v1/client/request-status/img-1"] * 4

    @pytest.mark.asyncio
    async def test_failed_job(self):
        def handler(request):
            if request.method == "POST":
                return httpx.Response(200, json={"request_id": "img-1"})
            return httpx.Response(200, json={"data": {"status": "failed"}})

        with pytest.raises(UpstreamProviderError) as exc_info:
            await deapi(handler).generate_image("a fox")

        assert exc_info.value.message == "Image generation failed"

    @pytest.mark.asyncio
    async def test_status_check_error(self):
        def handler(request):
            if request.method == "POST":
                return httpx.Response(200, json={"request_id": "img-1"})
            return httpx.Response(500, json={})

        with pytest.raises(UpstreamProviderError) as exc_info:
            await deapi(handler).generate_image("a fox")

        assert exc_info.value.message == "Status check failed: 500"


OPTIONS = VideoOptions(prompt="waves", width=512, height=512, frames=120, fps=30, steps=1)


class TestDeapiVideo:
    @pytest.mark.asyncio
    async def test_uploads_frame_and_polls(self):
        seen = []

        def handler(request):
            seen.append(request)
            if request.method == "POST":
                return httpx.Response(200, json={"data": {"request_id": "vid-1"}})
            return httpx.Response(200, json={"data": {"status": "completed", "result_url": "https://cdn.test/v.mp4"}})

        result = await deapi(handler).image_to_video(b"fake-png", "image.png", "image/png", OPTIONS)

        assert result.video_url == "https://cdn.test/v.mp4"
        assert result.request_id == "vid-1"
        upload = seen[0]
        assert upload.url.path == "/api/v1/client/img2video"
        assert upload.headers["Content-Type"].startswith("multipart/form-data")
        assert b'name="first_frame_image"; filename="image.png"' in upload.content
        assert b"fake-png" in upload.content
        assert b"Ltxv_13B_0_9_8_Distilled_FP8" in upload.content

    @pytest.mark.asyncio
    async def test_direct_video_url(self):
        def handler(request):
            return httpx.Response(200, json={"video_url": "https://cdn.test/now.mp4"})

        result = await deapi(handler).image_to_video(b"fake-png", "image.png", "image/png", OPTIONS)

        assert result.video_url == "https://cdn.test/now.mp4"
        assert result.request_id is None

    @pytest.mark.asyncio
    async def test_times_out(self):
        polls = []

        def handler(request):
            if request.method == "POST":
                return httpx.Response(200, json={"data": {"request_id": "vid-1"}})
            polls.append(1)
            return httpx.Response(200, json={"data": {"status": "processing", "progress": 40}})

        with pytest.raises(UpstreamProviderError) as exc_info:
            await deapi(handler, max_poll_attempts=4).image_to_video(b"fake-png", "image.png", "image/png", OPTIONS)

        assert exc_info.value.message == "Timeout waiting for video generation"
        assert len(polls) == 4

    @pytest.mark.asyncio
    async def test_upload_rejected(self):
        def handler(request):
            return httpx.Response(422, json={"message": "Image too large"})

        with pytest.raises(UpstreamProviderError) as exc_info:
            await deapi(handler).image_to_video(b"fake-png", "image.png", "image/png", OPTIONS)

        assert exc_info.value.message == "Image too large"
        assert exc_info.value.status == 422
