from __future__ import annotations
"""Base generation service — unified retry, timeout, and call metrics."""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, TypeVar

from anidirector.errors import GenerationError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class GenResult(Generic[T]):
    """Standardized generation result."""
    data: T
    provider: str
    latency_ms: int
    retries_used: int


@dataclass
class GenServiceConfig:
    """Configuration for a generation service."""
    max_retries: int = 1
    retry_delay: float = 2.0
    timeout: float = 180.0


class BaseGenService(ABC, Generic[T]):
    """Abstract base class for all calls into the generative collaborator.

    Provides:
    - A bounded retry, only for transient GenerationErrors
    - Timeout enforcement (a timeout counts as transient)
    - Translation of unexpected exceptions into permanent GenerationErrors
    - Call metrics
    """

    service_name: str = "unknown"
    config: GenServiceConfig

    def __init__(
        self,
        config: GenServiceConfig | None = None,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.config = config or GenServiceConfig()
        self._sleep = sleep
        self._total_calls = 0
        self._total_errors = 0
        self._total_retries = 0
        self._total_latency_ms = 0

    async def execute(self, **kwargs: Any) -> GenResult[T]:
        """Unified execution entry point with retry/metrics."""
        self._total_calls += 1
        start = time.monotonic()
        attempts = self.config.max_retries + 1

        for attempt in range(attempts):
            try:
                result = await asyncio.wait_for(
                    self._generate(**kwargs),
                    timeout=self.config.timeout,
                )
            except GenerationError as e:
                error = e
            except asyncio.TimeoutError:
                error = GenerationError(
                    f"{self.service_name} timed out after {self.config.timeout}s",
                    status_code=408,
                    transient=True,
                )
            except Exception as e:
                error = GenerationError(f"{self.service_name} failed: {e}")
                error.__cause__ = e
            else:
                latency = int((time.monotonic() - start) * 1000)
                self._total_latency_ms += latency
                return GenResult(
                    data=result,
                    provider=self.service_name,
                    latency_ms=latency,
                    retries_used=attempt,
                )

            if not error.transient or attempt + 1 >= attempts:
                self._total_errors += 1
                raise error

            self._total_retries += 1
            logger.warning(
                "%s attempt %d/%d failed (transient): %s; retrying in %.1fs",
                self.service_name, attempt + 1, attempts, error, self.config.retry_delay,
            )
            await self._sleep(self.config.retry_delay)

        raise GenerationError(f"{self.service_name}: no attempts made")

    @abstractmethod
    async def _generate(self, **kwargs: Any) -> T:
        """Subclass implements the actual collaborator call."""
        ...

    def get_metrics(self) -> dict[str, Any]:
        """Return usage statistics for this service."""
        succeeded = self._total_calls - self._total_errors
        return {
            "service": self.service_name,
            "total_calls": self._total_calls,
            "total_errors": self._total_errors,
            "total_retries": self._total_retries,
            "error_rate": round(self._total_errors / max(self._total_calls, 1), 3),
            "avg_latency_ms": (
                round(self._total_latency_ms / succeeded) if succeeded > 0 else 0
            ),
        }
