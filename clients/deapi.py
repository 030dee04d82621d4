import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Dict, Optional
import httpx
from clients.key_pool import KeyPool
from core.config import settings, provider_keys
from core.exceptions import UpstreamProviderError

logger = logging.getLogger(__name__)

DONE_STATUSES = ("completed", "success")
JOB_DONE_STATUSES = ("done", "completed", "success")
FAILED_STATUSES = ("failed", "error")

VIDEO_NEGATIVE_PROMPT = "blurry, distorted, low quality, static, frozen"
IMAGE_NEGATIVE_PROMPT = "blur, noise, low quality, distorted"


@dataclass
class TranscriptionResult:
    text: str
    request_id: str
    attempts: int


@dataclass
class ImageResult:
    image_url: str
    request_id: Optional[str]
    attempts: int


@dataclass
class VideoResult:
    video_url: str
    request_id: Optional[str]
    attempts: int


@dataclass
class VideoOptions:
    prompt: str
    width: int
    height: int
    frames: int
    fps: int
    steps: int


@dataclass
class JobStatus:
    request_id: str
    status: Optional[str]
    video_url: Optional[str]
    progress: Optional[Any]
    error: Optional[str]


def _dig(data: Dict[str, Any], *paths: str) -> Any:
    """Return the first non-empty value found at any dotted path."""
    for path in paths:
        node: Any = data
        for part in path.split("."):
            if not isinstance(node, dict):
                node = None
                break
            node = node.get(part)
        if node:
            return node
    return None


def _error_message(resp: httpx.Response, fallback: str) -> str:
    try:
        body = resp.json()
    except ValueError:
        return fallback
    if isinstance(body, dict):
        return body.get("message") or body.get("error") or fallback
    return fallback


def _json_body(resp: httpx.Response) -> Dict[str, Any]:
    try:
        data = resp.json()
    except ValueError:
        raise UpstreamProviderError("Invalid response from deAPI", status=resp.status_code)
    if not isinstance(data, dict):
        raise UpstreamProviderError("Invalid response from deAPI", status=resp.status_code)
    return data


def _seed() -> int:
    return random.randint(0, 2147483646)


class DeapiClient:
    """deAPI client: video transcription, image and video generation, async job status."""

    def __init__(
        self,
        pool: KeyPool,
        base_url: str = settings.DEAPI_BASE_URL,
        model: str = settings.DEAPI_TRANSCRIBE_MODEL,
        poll_interval: float = settings.TRANSCRIBE_POLL_INTERVAL_SECONDS,
        max_poll_attempts: int = settings.TRANSCRIBE_POLL_MAX_ATTEMPTS,
        timeout: float = settings.PROVIDER_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        image_model: str = settings.DEAPI_IMAGE_MODEL,
        video_model: str = settings.DEAPI_VIDEO_MODEL,
        image_poll_attempts: int = settings.IMAGE_POLL_MAX_ATTEMPTS,
        video_poll_attempts: int = settings.VIDEO_POLL_MAX_ATTEMPTS,
    ):
        self.pool = pool
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.poll_interval = poll_interval
        self.max_poll_attempts = max_poll_attempts
        self.timeout = timeout
        self.transport = transport
        self.image_model = image_model
        self.video_model = video_model
        self.image_poll_attempts = image_poll_attempts
        self.video_poll_attempts = video_poll_attempts

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self.transport)

    @staticmethod
    def _headers(api_key: str) -> Dict[str, str]:
        return {"Accept": "application/json", "Authorization": f"Bearer {api_key}"}

    async def _post(self, path: str, api_key: str, fallback_error: str, **kwargs) -> Dict[str, Any]:
        try:
            async with self._client() as client:
                resp = await client.post(path, headers=self._headers(api_key), **kwargs)
        except httpx.HTTPError as e:
            raise UpstreamProviderError(f"deAPI request failed: {e}")

        if resp.status_code >= 400:
            raise UpstreamProviderError(_error_message(resp, fallback_error), status=resp.status_code)
        return _json_body(resp)

    async def transcribe_video(self, video_url: str) -> TranscriptionResult:
        attempts = 0

        async def attempt(api_key: str) -> TranscriptionResult:
            nonlocal attempts
            attempts += 1
            payload = {
                "model": self.model,
                "include_ts": False,
                "return_result_in_response": True,
                "video_url": video_url,
            }
            data = await self._post("/vid2txt", api_key, "Failed to transcribe video", json=payload)

            text = _dig(data, "text", "transcription", "result")
            if text:
                return TranscriptionResult(text=text, request_id=data.get("request_id") or "immediate", attempts=attempts)

            request_id = _dig(data, "data.request_id", "request_id")
            if request_id:
                logger.info(f"[deAPI] Polling transcription request {request_id}")
                text = await self.poll_transcription(str(request_id), api_key)
                return TranscriptionResult(text=text, request_id=str(request_id), attempts=attempts)

            raise UpstreamProviderError("No transcription or request ID in response")

        return await self.pool.run(attempt)

    async def poll_transcription(self, request_id: str, api_key: str) -> str:
        async with self._client() as client:
            for _ in range(self.max_poll_attempts):
                await asyncio.sleep(self.poll_interval)
                try:
                    resp = await client.get(f"/requests/{request_id}", headers=self._headers(api_key))
                    data = resp.json() if resp.status_code < 400 else None
                except (httpx.HTTPError, ValueError) as e:
                    logger.warning(f"[deAPI] Poll for {request_id} failed: {e}")
                    continue
                if not isinstance(data, dict):
                    continue

                status = _dig(data, "data.status", "status")
                if status in DONE_STATUSES:
                    return _dig(data, "data.result.text", "data.text", "result.text") or ""
                if status in FAILED_STATUSES:
                    raise UpstreamProviderError(_dig(data, "data.error") or "Transcription failed")

        raise UpstreamProviderError("Transcription timed out")

    async def poll_job(self, request_id: str, api_key: str, max_attempts: int,
                       failed_message: str, timeout_message: str) -> Dict[str, Any]:
        """
        Poll request-status until the job is done and return its final payload.

        Rate-limited and unreadable polls are skipped; a failed job raises with
        the provider's error when it gives one.
        """
        async with self._client() as client:
            for _ in range(max_attempts):
                await asyncio.sleep(self.poll_interval)
                try:
                    resp = await client.get(f"/request-status/{request_id}", headers=self._headers(api_key))
                except httpx.HTTPError as e:
                    logger.warning(f"[deAPI] Status check for {request_id} failed: {e}")
                    continue
                if resp.status_code == 429:
                    continue
                if resp.status_code >= 400:
                    raise UpstreamProviderError(f"Status check failed: {resp.status_code}", status=resp.status_code)

                try:
                    data = resp.json()
                except ValueError:
                    continue
                if not isinstance(data, dict) or data.get("message") == "Too Many Attempts.":
                    continue

                status = _dig(data, "data.status", "status")
                if status in JOB_DONE_STATUSES:
                    return data
                if status in FAILED_STATUSES:
                    raise UpstreamProviderError(_dig(data, "data.error", "error") or failed_message)

        raise UpstreamProviderError(timeout_message)

    async def generate_image(self, prompt: str, width: int = 1024, height: int = 1024) -> ImageResult:
        attempts = 0

        async def attempt(api_key: str) -> ImageResult:
            nonlocal attempts
            attempts += 1
            payload = {
                "prompt": prompt,
                "negative_prompt": IMAGE_NEGATIVE_PROMPT,
                "model": self.image_model,
                "width": width,
                "height": height,
                "guidance": 7.5,
                "steps": 4,
                "seed": _seed(),
            }
            data = await self._post("/txt2img", api_key, "Failed to generate image", json=payload)

            image_url = _dig(data, "image", "url", "result.url", "output", "data.image")
            if image_url:
                return ImageResult(image_url=image_url, request_id=None, attempts=attempts)

            request_id = _dig(data, "data.request_id", "request_id")
            if not request_id:
                raise UpstreamProviderError("No image URL in response")

            logger.info(f"[deAPI] Polling image request {request_id}")
            result = await self.poll_job(
                str(request_id), api_key, self.image_poll_attempts,
                "Image generation failed", "Image generation timed out",
            )
            image_url = _dig(result, "data.result_url", "data.image", "image", "url", "result.url", "output")
            if not image_url:
                raise UpstreamProviderError("No image URL in response")
            return ImageResult(image_url=image_url, request_id=str(request_id), attempts=attempts)

        return await self.pool.run(attempt)

    async def image_to_video(self, image: bytes, filename: str, content_type: str,
                             options: VideoOptions) -> VideoResult:
        attempts = 0

        async def attempt(api_key: str) -> VideoResult:
            nonlocal attempts
            attempts += 1
            form = {
                "model": self.video_model,
                "prompt": options.prompt,
                "negative_prompt": VIDEO_NEGATIVE_PROMPT,
                "width": str(options.width),
                "height": str(options.height),
                "frames": str(options.frames),
                "fps": str(options.fps),
                "steps": str(options.steps),
                "guidance": "7.5",
                "seed": str(_seed()),
                "return_result_in_response": "false",
            }
            files = {"first_frame_image": (filename, image, content_type)}
            data = await self._post("/img2video", api_key, "Failed to generate video", data=form, files=files)

            video_url = _dig(data, "video_url", "url")
            if video_url:
                return VideoResult(video_url=video_url, request_id=None, attempts=attempts)

            request_id = _dig(data, "data.request_id", "request_id")
            if not request_id:
                raise UpstreamProviderError("No video URL or request ID in response")

            logger.info(f"[deAPI] Polling video request {request_id}")
            result = await self.poll_job(
                str(request_id), api_key, self.video_poll_attempts,
                "Video generation failed", "Timeout waiting for video generation",
            )
            video_url = _dig(
                result, "data.result_url", "result_url", "data.video_url", "video_url", "data.url", "url",
            )
            if not video_url:
                raise UpstreamProviderError("No video URL found in result")
            return VideoResult(video_url=video_url, request_id=str(request_id), attempts=attempts)

        return await self.pool.run(attempt)

    async def job_status(self, request_id: str) -> JobStatus:
        api_key = self.pool.random_key()
        try:
            async with self._client() as client:
                resp = await client.get(f"/request-status/{request_id}", headers=self._headers(api_key))
        except httpx.HTTPError as e:
            raise UpstreamProviderError(f"deAPI request failed: {e}")

        if resp.status_code >= 400:
            raise UpstreamProviderError(
                _error_message(resp, f"API error: {resp.status_code}"), status=resp.status_code
            )

        data = _json_body(resp)
        return JobStatus(
            request_id=request_id,
            status=_dig(data, "data.status", "status"),
            video_url=_dig(
                data, "data.result_url", "result_url", "data.video_url", "video_url",
                "data.url", "url", "output.video_url", "result.video_url",
            ),
            progress=_dig(data, "data.progress", "progress"),
            error=_dig(data, "data.error", "error"),
        )


def build_deapi_client() -> DeapiClient:
    return DeapiClient(KeyPool("deapi", provider_keys("DEAPI_API_KEY")))
