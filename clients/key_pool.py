import logging
import random
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional, TypeVar
from core.exceptions import ConfigurationError, UpstreamProviderError

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_STATUSES = (429, 401, 403)


def is_retryable(error: Exception) -> bool:
    """Rate limits and rejected keys are worth another key; anything else is not."""
    return isinstance(error, UpstreamProviderError) and error.status in RETRYABLE_STATUSES


def mask_key(key: str) -> str:
    return f"{key[:10]}..."


@dataclass
class RotationOutcome:
    attempts: int = 0
    rate_limit_errors: int = 0
    key_errors: int = 0
    server_errors: int = 0
    last_error: Optional[Exception] = None

    def record(self, error: Exception):
        self.last_error = error
        status = getattr(error, "status", None)
        if status == 429:
            self.rate_limit_errors += 1
        elif status in (401, 403):
            self.key_errors += 1
        else:
            self.server_errors += 1

    def details(self, providers: int = 1) -> dict:
        return {
            "totalAttempts": self.attempts,
            "providers": providers,
            "keyErrors": self.key_errors,
            "rateLimitErrors": self.rate_limit_errors,
            "serverErrors": self.server_errors,
        }


@dataclass
class KeyPool:
    """A provider's API keys, handed out in a shuffled order per request."""

    provider: str
    keys: List[str] = field(default_factory=list)
    rng: random.Random = field(default_factory=random.Random)

    def __len__(self) -> int:
        return len(self.keys)

    def shuffled(self) -> List[str]:
        order = list(self.keys)
        self.rng.shuffle(order)
        return order

    def random_key(self) -> str:
        if not self.keys:
            raise ConfigurationError(f"{self.provider} key not configured")
        return self.rng.choice(self.keys)

    async def run(
        self,
        call: Callable[[str], Awaitable[T]],
        retryable: Callable[[Exception], bool] = is_retryable,
        outcome: Optional[RotationOutcome] = None,
    ) -> T:
        """
        Try `call` with each key at most once.

        Stops at the first success. A failure that `retryable` rejects is raised
        immediately. When every key has failed, raises an aggregate
        UpstreamProviderError carrying the attempt counts.
        """
        if not self.keys:
            raise ConfigurationError(
                f"{self.provider} key not configured",
                extra={"details": RotationOutcome().details()},
            )

        outcome = outcome or RotationOutcome()
        order = self.shuffled()
        for index, key in enumerate(order, start=1):
            outcome.attempts += 1
            try:
                logger.info(f"[{self.provider}] Trying key {index}/{len(order)} ({mask_key(key)})")
                return await call(key)
            except Exception as e:
                outcome.record(e)
                if not retryable(e):
                    logger.error(f"[{self.provider}] Non-retryable failure on key {index}: {e}")
                    raise
                logger.warning(f"[{self.provider}] Key {index}/{len(order)} failed, rotating: {e}")

        logger.error(f"[{self.provider}] All {len(order)} keys failed")
        raise UpstreamProviderError(
            "Generation Failed - All AI providers encountered issues",
            details=outcome.details(),
        )
