"""Retry with backoff for LLM calls, using tenacity.

Wraps a zero-argument coroutine factory and re-invokes it while failures look
like rate limits or provider overload. Delays grow exponentially unless the
provider supplied a retry hint. Terminal failures are re-raised unchanged.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import random
from collections.abc import Mapping
from typing import Any, Awaitable, Callable, List, Optional, TypeVar, Union

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
)

from prompt_retry.domain.classifiers.error_classifier import classify_error
from prompt_retry.domain.config.retry import RetryConfig
from prompt_retry.domain.models.classification import ErrorClassification
from prompt_retry.domain.models.retry_attempt import RetryAttemptRecord
from prompt_retry.exceptions import RetryCancelledError

logger = logging.getLogger(__name__)

T = TypeVar("T")

RetryHook = Callable[[RetryAttemptRecord], None]


def retry_config_from_dict(config: Mapping) -> RetryConfig:
    """Build a RetryConfig from a plain record (camelCase or snake_case keys)."""
    return RetryConfig.model_validate(dict(config))


def calculate_backoff_ms(attempt: int, config: RetryConfig, rng: Any = random) -> int:
    """Exponential delay before the retry that follows failed ``attempt``.

    Args:
        attempt: One-based index of the attempt that just failed
        config: Retry configuration
        rng: Source of uniform random numbers (``random`` module by default)

    Returns:
        Delay in milliseconds, within [0, max_delay_ms]
    """
    delay = min(config.max_delay_ms, config.min_delay_ms * 2 ** (attempt - 1))
    if config.jitter > 0:
        delay = delay * (1 + rng.uniform(-config.jitter, config.jitter))
    return int(min(config.max_delay_ms, max(0, round(delay))))


def resolve_delay_ms(
    attempt: int,
    config: RetryConfig,
    retry_after_ms: Optional[int] = None,
    rng: Any = random,
) -> int:
    """Pick the delay for the next retry, preferring the provider's hint."""
    if retry_after_ms is not None:
        return int(min(config.max_delay_ms, max(0, retry_after_ms)))
    return calculate_backoff_ms(attempt, config, rng)


async def wait_for_retry(seconds: float, signal: Optional[asyncio.Event] = None) -> None:
    """Sleep between attempts, aborting early if ``signal`` is set.

    Raises:
        RetryCancelledError: If the signal is set before or during the wait
    """
    if signal is None:
        await asyncio.sleep(seconds)
        return
    if signal.is_set():
        raise RetryCancelledError()
    try:
        await asyncio.wait_for(signal.wait(), timeout=seconds)
    except asyncio.TimeoutError:
        return
    raise RetryCancelledError()


class _RetryRun:
    """State for one ``run_with_retry`` call; never shared between calls."""

    def __init__(
        self,
        config: RetryConfig,
        signal: Optional[asyncio.Event],
        provider: Optional[str],
        model_id: Optional[str],
        on_retry: Optional[RetryHook],
    ):
        self.config = config
        self.signal = signal
        self.provider = provider
        self.model_id = model_id
        self.on_retry = on_retry
        self.history: List[RetryAttemptRecord] = []
        self._last: Optional[ErrorClassification] = None
        self._pending_delay_ms = 0

    @property
    def _context(self) -> str:
        parts = []
        if self.provider:
            parts.append(f"provider={self.provider}")
        if self.model_id:
            parts.append(f"model={self.model_id}")
        return (" " + " ".join(parts)) if parts else ""

    def should_retry(self, exception: BaseException) -> bool:
        if not isinstance(exception, Exception):
            return False
        self._last = classify_error(exception)
        if not self._last.retryable:
            logger.debug(
                f"[prompt-retry] non-retryable error, not retrying{self._context}: "
                f"{self._last.message}"
            )
        return self._last.retryable

    def compute_wait(self, retry_state: RetryCallState) -> float:
        retry_after_ms = self._last.retry_after_ms if self._last else None
        self._pending_delay_ms = resolve_delay_ms(
            retry_state.attempt_number, self.config, retry_after_ms
        )
        return self._pending_delay_ms / 1000

    def before_sleep(self, retry_state: RetryCallState) -> None:
        record = RetryAttemptRecord(
            attempt=retry_state.attempt_number,
            delay_ms=self._pending_delay_ms,
            error_message=self._last.message if self._last else "",
            provider=self.provider,
            model_id=self.model_id,
        )
        self.history.append(record)
        logger.info(
            f"[prompt-retry] retry attempt={record.attempt}/{self.config.attempts} "
            f"delay={record.delay_ms}ms{self._context}"
        )
        if self.on_retry is not None:
            self.on_retry(record)

    async def sleep(self, seconds: float) -> None:
        try:
            await wait_for_retry(seconds, self.signal)
        except RetryCancelledError as exc:
            if exc.attempt is None:
                exc.attempt = len(self.history)
                exc.delay_ms = self._pending_delay_ms
            logger.info(
                f"[prompt-retry] cancelled while waiting to retry "
                f"after attempt={exc.attempt}{self._context}"
            )
            raise

    def on_exhausted(self, retry_state: RetryCallState) -> Any:
        message = self._last.message if self._last else ""
        logger.warning(
            f"[prompt-retry] retries exhausted after {retry_state.attempt_number} "
            f"attempts{self._context}: {message}"
        )
        raise retry_state.outcome.exception()


async def run_with_retry(
    operation: Callable[[], Awaitable[T]],
    retry_config: Union[RetryConfig, Mapping, None] = None,
    signal: Optional[asyncio.Event] = None,
    *,
    provider: Optional[str] = None,
    model_id: Optional[str] = None,
    on_retry: Optional[RetryHook] = None,
) -> T:
    """Run ``operation`` and retry it on rate limit and overload errors.

    Args:
        operation: Zero-argument callable returning an awaitable (e.g. an LLM call)
        retry_config: Retry policy; None disables retry entirely
        signal: Event that aborts the loop when set during an inter-attempt wait
        provider: Provider id, used for log context only
        model_id: Model id, used for log context only
        on_retry: Optional callback invoked with each scheduled retry

    Returns:
        Result of the first successful attempt

    Raises:
        RetryCancelledError: If ``signal`` fires while waiting to retry
        Exception: The original error of the last attempt, unmodified
    """
    if retry_config is None:
        return await operation()
    if isinstance(retry_config, Mapping):
        retry_config = retry_config_from_dict(retry_config)

    run = _RetryRun(retry_config, signal, provider, model_id, on_retry)
    retrying = AsyncRetrying(
        stop=stop_after_attempt(retry_config.attempts),
        wait=run.compute_wait,
        retry=retry_if_exception(run.should_retry),
        before_sleep=run.before_sleep,
        retry_error_callback=run.on_exhausted,
        sleep=run.sleep,
        reraise=True,
    )

    async def _attempt() -> T:
        return await operation()

    return await retrying(_attempt)


def with_prompt_retry(
    retry_config: Union[RetryConfig, Mapping, None],
    *,
    provider: Optional[str] = None,
    model_id: Optional[str] = None,
    signal: Optional[asyncio.Event] = None,
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """Create a retry decorator for async LLM calls.

    Args:
        retry_config: Retry policy; None leaves the function unchanged in behavior
        provider: Provider id for log context
        model_id: Model id for log context
        signal: Optional cancellation event shared by all calls

    Returns:
        Retry decorator
    """

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func)
        async def wrapped(*args: Any, **kwargs: Any) -> T:
            return await run_with_retry(
                lambda: func(*args, **kwargs),
                retry_config,
                signal,
                provider=provider,
                model_id=model_id,
            )

        return wrapped

    return decorator
