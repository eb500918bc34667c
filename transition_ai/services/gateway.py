"""
External Service Gateway — circuit breaker, concurrency limiter, retry, timeout.

Every call to the search service goes through here:
  1. Circuit breaker (fail-fast while the provider is down)
  2. Concurrency semaphore
  3. Timeout enforcement
  4. Retry with exponential backoff + jitter on transient errors

Usage:
    gw = get_gateway()
    result = await gw.execute("perplexity", client.chat.completions.create, model=..., ...)
"""
import asyncio
import time
import random
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Coroutine, Dict, Optional

from transition_ai.utils.logger import logger
from transition_ai.utils.metrics import inc, observe


@dataclass(frozen=True)
class ServiceConfig:
    max_concurrent: int = 5
    timeout_seconds: float = 45.0
    max_retries: int = 2
    circuit_failure_threshold: int = 5
    circuit_recovery_seconds: float = 30.0
    base_backoff_seconds: float = 1.0

    @classmethod
    def from_settings(cls, settings) -> "ServiceConfig":
        return cls(
            max_concurrent=settings.search_max_concurrent,
            timeout_seconds=settings.search_timeout_seconds,
            max_retries=settings.search_max_retries,
            circuit_failure_threshold=settings.circuit_failure_threshold,
            circuit_recovery_seconds=settings.circuit_recovery_seconds,
            base_backoff_seconds=settings.search_backoff_seconds,
        )


# ---------------------------------------------------------------------------
# Circuit Breaker
# ---------------------------------------------------------------------------

class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """Per-service circuit breaker (safe under asyncio's single-thread model)."""

    def __init__(self, service: str, config: ServiceConfig):
        self.service = service
        self.config = config
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.last_failure_time = 0.0
        self.half_open_successes = 0

    def allow_request(self) -> bool:
        if self.state == CircuitState.OPEN:
            elapsed = time.monotonic() - self.last_failure_time
            if elapsed < self.config.circuit_recovery_seconds:
                return False
            self.state = CircuitState.HALF_OPEN
            self.half_open_successes = 0
            logger.info("circuit.half_open", extra={"service": self.service})
        return True

    def record_success(self) -> None:
        if self.state == CircuitState.HALF_OPEN:
            self.half_open_successes += 1
            if self.half_open_successes < 2:
                return
            self.state = CircuitState.CLOSED
            logger.info("circuit.closed", extra={"service": self.service})
        self.failure_count = 0

    def record_failure(self) -> None:
        self.failure_count += 1
        self.last_failure_time = time.monotonic()
        tripped = (
            self.state == CircuitState.HALF_OPEN
            or self.failure_count >= self.config.circuit_failure_threshold
        )
        if tripped and self.state != CircuitState.OPEN:
            self.state = CircuitState.OPEN
            logger.warning(
                "circuit.open",
                extra={"service": self.service, "circuit_state": self.state.value},
            )


# ---------------------------------------------------------------------------
# Retryable error detection
# ---------------------------------------------------------------------------

_RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}


def is_retryable(exc: Exception) -> bool:
    """True for transient failures: rate limits, 5xx, timeouts, dropped connections."""
    status = getattr(exc, "status_code", None) or getattr(exc, "status", None)
    if isinstance(status, int) and status in _RETRYABLE_STATUS_CODES:
        return True
    if isinstance(exc, (asyncio.TimeoutError, ConnectionError)):
        return True
    name = type(exc).__name__.lower()
    return any(kw in name for kw in ("timeout", "connection", "ratelimit"))


class CircuitOpenError(Exception):
    """Raised when a circuit breaker is open and the request is rejected."""

    def __init__(self, service: str):
        self.service = service
        super().__init__(f"Circuit breaker OPEN for {service}, request rejected")


# ---------------------------------------------------------------------------
# Gateway
# ---------------------------------------------------------------------------

class ServiceGateway:
    """Applies circuit breaker -> semaphore -> timeout -> retry to async calls."""

    def __init__(self, configs: Dict[str, ServiceConfig]) -> None:
        self._configs = dict(configs)
        self._circuits = {name: CircuitBreaker(name, cfg) for name, cfg in self._configs.items()}
        self._semaphores: Dict[str, asyncio.Semaphore] = {}

    def _semaphore(self, service: str) -> asyncio.Semaphore:
        # Created lazily so the semaphore binds to the running loop
        if service not in self._semaphores:
            self._semaphores[service] = asyncio.Semaphore(self._configs[service].max_concurrent)
        return self._semaphores[service]

    async def execute(
        self,
        service: str,
        fn: Callable[..., Coroutine],
        *args: Any,
        **kwargs: Any,
    ) -> Any:
        cfg = self._configs.get(service)
        if cfg is None:
            return await fn(*args, **kwargs)

        cb = self._circuits[service]
        if not cb.allow_request():
            inc(f"{service}.rejected")
            raise CircuitOpenError(service)

        start = time.monotonic()
        attempt = 0
        while True:
            try:
                async with self._semaphore(service):
                    result = await asyncio.wait_for(fn(*args, **kwargs), timeout=cfg.timeout_seconds)
            except Exception as exc:
                cb.record_failure()
                inc(f"{service}.error")

                if attempt >= cfg.max_retries or not is_retryable(exc):
                    logger.error(
                        "gateway.failed",
                        extra={"service": service, "attempt": attempt + 1, "error": str(exc)[:200]},
                    )
                    raise

                backoff = cfg.base_backoff_seconds * (2 ** attempt)
                wait = backoff + random.uniform(0, backoff * 0.5)
                logger.warning(
                    "gateway.retry",
                    extra={
                        "service": service,
                        "attempt": attempt + 1,
                        "error": str(exc)[:200],
                        "wait_seconds": round(wait, 2),
                    },
                )
                await asyncio.sleep(wait)
                attempt += 1
                if not cb.allow_request():
                    raise CircuitOpenError(service) from exc
                continue

            cb.record_success()
            inc(f"{service}.success")
            observe(f"{service}.duration_ms", (time.monotonic() - start) * 1000)
            return result

    def get_circuit_states(self) -> Dict[str, str]:
        """Current breaker states, reported by /health."""
        return {svc: cb.state.value for svc, cb in self._circuits.items()}


_gateway: Optional[ServiceGateway] = None


def get_gateway() -> ServiceGateway:
    global _gateway
    if _gateway is None:
        from transition_ai.config import get_settings
        _gateway = ServiceGateway({"perplexity": ServiceConfig.from_settings(get_settings())})
    return _gateway
