"""Bounded exponential-backoff retry for flaky upstream calls."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

import httpx

from medireport.config.settings import Settings
from medireport.flows.errors import (
    MediReportError,
    RetryExhaustedError,
    UpstreamTransientError,
)

T = TypeVar("T")
logger = logging.getLogger(__name__)

TRANSIENT_STATUS_CODES = frozenset({429, 500, 502, 503, 504})
_TRANSIENT_MARKERS = ("Service Unavailable", "503")

RetryPredicate = Callable[[BaseException], bool]
Sleeper = Callable[[float], Awaitable[Any]]


def status_code_of(exc: BaseException) -> int | None:
    """Return the HTTP status carried by ``exc`` when the transport exposes one."""
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code
    for attr in ("status_code", "status", "code"):
        value = getattr(exc, attr, None)
        if isinstance(value, int) and 100 <= value <= 599:
            return value
    return None


def is_transient_error(exc: BaseException) -> bool:
    """Default retry predicate.

    Status codes win when available; the message heuristic only applies to
    errors that carry no status at all.
    """
    if isinstance(exc, MediReportError):
        return isinstance(exc, UpstreamTransientError)
    if isinstance(exc, httpx.TransportError):
        return True
    status_code = status_code_of(exc)
    if status_code is not None:
        return status_code in TRANSIENT_STATUS_CODES
    message = str(exc)
    return any(marker in message for marker in _TRANSIENT_MARKERS)


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay_ms: int = 1000
    backoff_multiplier: float = 2.0
    retry_predicate: RetryPredicate = field(default=is_transient_error, compare=False)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay_ms < 0:
            raise ValueError("base_delay_ms must be >= 0")
        if self.backoff_multiplier < 1:
            raise ValueError("backoff_multiplier must be >= 1")


def policy_from_settings(settings: Settings) -> RetryPolicy:
    return RetryPolicy(
        max_attempts=settings.retry_max_attempts,
        base_delay_ms=settings.retry_base_delay_ms,
        backoff_multiplier=settings.retry_backoff_multiplier,
    )


def delay_for_attempt(policy: RetryPolicy, attempt: int) -> float:
    """Seconds to wait after failed attempt number ``attempt`` (1-based)."""
    return policy.base_delay_ms * policy.backoff_multiplier ** (attempt - 1) / 1000.0


async def invoke(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    sleep: Sleeper = asyncio.sleep,
    label: str = "upstream",
) -> T:
    """Run ``operation`` under ``policy``.

    Non-transient failures propagate unchanged on first occurrence. When every
    attempt fails transiently, ``RetryExhaustedError`` is raised from the last
    error.
    """
    attempt = 1
    while True:
        try:
            return await operation()
        except Exception as exc:
            if not policy.retry_predicate(exc):
                raise
            if attempt >= policy.max_attempts:
                logger.warning(
                    "retry event=exhausted label=%s attempts=%d reason=%s",
                    label,
                    attempt,
                    exc,
                )
                raise RetryExhaustedError(exc, attempts=attempt) from exc
            delay_s = delay_for_attempt(policy, attempt)
            logger.warning(
                "retry event=transient_failure label=%s attempt=%d/%d delay_s=%.3f reason=%s",
                label,
                attempt,
                policy.max_attempts,
                delay_s,
                exc,
            )
            await sleep(delay_s)
            attempt += 1
