import logging
from dataclasses import dataclass
from typing import Dict, List, Optional
import httpx
from clients.key_pool import KeyPool, RotationOutcome
from core.config import settings, provider_keys
from core.exceptions import ConfigurationError, UpstreamProviderError

logger = logging.getLogger(__name__)


@dataclass
class ChatProvider:
    name: str
    base_url: str
    model: str
    pool: KeyPool


@dataclass
class TextGenerationResult:
    text: str
    provider: str
    attempts: int


class TextGenerationClient:
    """
    Chat completion against OpenAI-compatible vendors.

    Providers are tried in order; inside a provider every key is tried at most
    once, rotating on rate-limit and auth failures.
    """

    def __init__(
        self,
        providers: List[ChatProvider],
        timeout: float = settings.PROVIDER_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.providers = providers
        self.timeout = timeout
        self.transport = transport

    async def _complete(self, provider: ChatProvider, api_key: str, messages: List[Dict[str, str]],
                        max_tokens: int, temperature: float) -> str:
        payload = {
            "model": provider.model,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        headers = {"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                resp = await client.post(f"{provider.base_url}/chat/completions", json=payload, headers=headers)
        except httpx.HTTPError as e:
            raise UpstreamProviderError(f"{provider.name} request failed: {e}")

        if resp.status_code >= 400:
            raise UpstreamProviderError(f"{provider.name} API error: {resp.status_code}", status=resp.status_code)

        try:
            data = resp.json()
            return data["choices"][0]["message"]["content"] or ""
        except (ValueError, KeyError, IndexError, TypeError):
            raise UpstreamProviderError(f"{provider.name} returned an unexpected response")

    async def generate(self, messages: List[Dict[str, str]], max_tokens: int = 1500,
                       temperature: float = 0.8) -> TextGenerationResult:
        available = [p for p in self.providers if len(p.pool)]
        if not available:
            raise ConfigurationError("No text generation provider keys configured")

        outcome = RotationOutcome()
        for provider in available:
            try:
                text = await provider.pool.run(
                    lambda key, p=provider: self._complete(p, key, messages, max_tokens, temperature),
                    outcome=outcome,
                )
                logger.info(f"[TextGeneration] Success with {provider.name} after {outcome.attempts} attempts")
                return TextGenerationResult(text=text, provider=provider.name, attempts=outcome.attempts)
            except UpstreamProviderError as e:
                logger.warning(f"[TextGeneration] {provider.name} failed, switching provider: {e.message}")

        logger.error(f"[TextGeneration] All providers failed, last error: {outcome.last_error}")
        raise UpstreamProviderError(
            "Generation Failed - All AI providers encountered issues",
            details=outcome.details(providers=len(available)),
        )


def build_text_client() -> TextGenerationClient:
    return TextGenerationClient([
        ChatProvider("groq", settings.GROQ_BASE_URL, settings.GROQ_MODEL, KeyPool("groq", provider_keys("GROQ_API_KEY"))),
        ChatProvider("openrouter", settings.OPENROUTER_BASE_URL, settings.OPENROUTER_MODEL,
                     KeyPool("openrouter", provider_keys("OPENROUTER_API_KEY"))),
    ])
