from pydantic import field_validator
from typing import Optional, List, Dict
from pydantic_settings import BaseSettings
import logging
import os

logger = logging.getLogger(__name__)

class Settings(BaseSettings):
    API_PREFIX: str = "/api"
    ENVIRONMENT: str = "development"

    # Database settings
    SQLALCHEMY_DATABASE_URL: str

    # Hosted auth (Supabase) settings
    SUPABASE_URL: Optional[str] = None
    SUPABASE_ANON_KEY: Optional[str] = None
    SUPABASE_SERVICE_ROLE_KEY: Optional[str] = None
    AUTH_TIMEOUT_SECONDS: float = 10.0

    # Comma separated list of admin emails
    ADMIN_EMAILS: str = ""

    # Credit settings
    CREDIT_LIMIT_MONTHLY: int = 100
    DEFAULT_TOOL_CREDITS: int = 1
    TOOL_CREDITS: Dict[str, int] = {
        "simple-script": 10,
        "faceless-script": 10,
        "summarize": 2,
        "tts": 3,
        "generate-image": 5,
        "image-to-video": 10,
        "text-to-video": 10,
        "faceless-video": 10,
    }
    ENTRY_PACK_CODE: str = "pack_10"
    PRO_USD_THRESHOLD: float = 10.0
    PRO_CREDITS_THRESHOLD: int = 6000
    USAGE_SCAN_LIMIT: int = 5000
    MAX_CHARGE_ATTEMPTS: int = 5
    MIN_TX_HASH_LENGTH: int = 10

    # Text generation providers (OpenAI compatible)
    GROQ_BASE_URL: str = "https://api.groq.com/openai/v1"
    GROQ_MODEL: str = "llama-3.3-70b-versatile"
    OPENROUTER_BASE_URL: str = "https://openrouter.ai/api/v1"
    OPENROUTER_MODEL: str = "openai/gpt-4o-mini"
    PROVIDER_TIMEOUT_SECONDS: float = 60.0

    # deAPI settings (transcription, video jobs)
    DEAPI_BASE_URL: str = "https://api.deapi.ai/api/v1/client"
    DEAPI_TRANSCRIBE_MODEL: str = "WhisperLargeV3"
    TRANSCRIBE_POLL_INTERVAL_SECONDS: float = 3.0
    TRANSCRIBE_POLL_MAX_ATTEMPTS: int = 60
    DEAPI_IMAGE_MODEL: str = "Flux1schnell"
    DEAPI_VIDEO_MODEL: str = "Ltxv_13B_0_9_8_Distilled_FP8"
    IMAGE_POLL_MAX_ATTEMPTS: int = 60
    VIDEO_POLL_MAX_ATTEMPTS: int = 120

    # Rate limiting
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_DEFAULT: str = "200/minute"

    FAST_STARTUP: bool = False

    class Config:
        env_file = ".env"
        env_file_encoding = 'utf-8'
        case_sensitive = True
        extra = "allow"

    @field_validator("API_PREFIX")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @property
    def admin_emails(self) -> List[str]:
        return [e.strip().lower() for e in self.ADMIN_EMAILS.split(",") if e.strip()]


def provider_keys(prefix: str) -> List[str]:
    """
    Collect API keys for a provider from the environment.

    The unnumbered key comes first, then PREFIX_1, PREFIX_2, ... until the
    first gap.
    """
    keys = []
    base = os.environ.get(prefix)
    if base:
        keys.append(base)

    index = 1
    while True:
        value = os.environ.get(f"{prefix}_{index}")
        if not value:
            break
        keys.append(value)
        index += 1

    logger.info(f"Found {len(keys)} keys for {prefix}")
    return keys


settings = Settings()
