"""Tests for retrying LLM calls with backoff"""

from __future__ import annotations

import asyncio
import functools
import logging
import random

import pytest

from prompt_retry.domain.config.retry import RetryConfig
from prompt_retry.exceptions import RetryCancelledError
from prompt_retry.infrastructure import retry as retry_module
from prompt_retry.infrastructure.retry import (
    calculate_backoff_ms,
    resolve_delay_ms,
    run_with_retry,
    wait_for_retry,
    with_prompt_retry,
)

FAST = RetryConfig(attempts=3, min_delay_ms=0, max_delay_ms=1000, jitter=0)


class FlakyOperation:
    """Async operation failing with the given errors before succeeding"""

    def __init__(self, errors, result="success"):
        self.errors = list(errors)
        self.result = result
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.result


class AlwaysFails:
    """Async operation that raises a fresh error on every call"""

    def __init__(self, message):
        self.message = message
        self.calls = 0
        self.raised = []

    async def __call__(self):
        self.calls += 1
        err = RuntimeError(self.message)
        self.raised.append(err)
        raise err


@pytest.fixture
def sleeps(monkeypatch):
    """Record inter-attempt delays instead of sleeping"""
    recorded = []

    async def fake_wait(seconds, signal=None):
        recorded.append(seconds)

    monkeypatch.setattr(retry_module, "wait_for_retry", fake_wait)
    return recorded


class TestCalculateBackoff:
    """Tests for exponential backoff calculation"""

    def test_delay_sequence_without_jitter(self):
        """Test 1s, 2s, 4s, 8s then capped at max"""
        config = RetryConfig(attempts=10, min_delay_ms=1000, max_delay_ms=10000, jitter=0)
        delays = [calculate_backoff_ms(attempt, config) for attempt in range(1, 7)]
        assert delays == [1000, 2000, 4000, 8000, 10000, 10000]

    def test_jitter_stays_within_bounds(self):
        """Test jittered delay stays within +/- jitter and below max"""
        config = RetryConfig(attempts=5, min_delay_ms=1000, max_delay_ms=60000, jitter=0.2)
        rng = random.Random(1234)
        for _ in range(200):
            delay = calculate_backoff_ms(2, config, rng)
            assert 1600 <= delay <= 2400

    def test_jitter_never_exceeds_max(self):
        """Test jitter cannot push the delay above max_delay_ms"""
        config = RetryConfig(attempts=5, min_delay_ms=1000, max_delay_ms=1000, jitter=1.0)
        rng = random.Random(99)
        for _ in range(200):
            assert 0 <= calculate_backoff_ms(3, config, rng) <= 1000

    def test_jitter_varies(self):
        """Test jittered delays vary"""
        config = RetryConfig(attempts=5, min_delay_ms=1000, max_delay_ms=60000, jitter=0.3)
        delays = {calculate_backoff_ms(2, config) for _ in range(20)}
        assert len(delays) > 1

    def test_retry_after_overrides_backoff(self):
        """Test provider hint replaces the computed delay"""
        config = RetryConfig(attempts=5, min_delay_ms=1000, max_delay_ms=60000, jitter=0.3)
        assert resolve_delay_ms(4, config, retry_after_ms=2000) == 2000

    def test_retry_after_capped_at_max(self):
        """Test provider hint is capped at max_delay_ms"""
        assert resolve_delay_ms(1, FAST, retry_after_ms=30000) == 1000


class TestRunWithRetry:
    """Tests for run_with_retry"""

    def test_succeeds_first_attempt(self, sleeps):
        """Test success on first call returns immediately"""
        op = FlakyOperation([])
        assert asyncio.run(run_with_retry(op, FAST)) == "success"
        assert op.calls == 1
        assert sleeps == []

    def test_retries_rate_limit_then_succeeds(self, sleeps):
        """Test TPM rate limit is retried until success"""
        op = FlakyOperation([RuntimeError("Rate limit exceeded: TPM limit")] * 2)
        config = RetryConfig(attempts=5, min_delay_ms=0, max_delay_ms=1000, jitter=0)
        assert asyncio.run(run_with_retry(op, config)) == "success"
        assert op.calls == 3

    def test_lambda_wrapped_operation_is_awaited(self, sleeps):
        """Test a plain callable returning a coroutine is awaited and retried"""
        calls = []

        async def llm_call(prompt):
            calls.append(prompt)
            if len(calls) == 1:
                raise RuntimeError("429 Too Many Requests")
            return "ok"

        assert asyncio.run(run_with_retry(lambda: llm_call("hi"), FAST)) == "ok"
        assert calls == ["hi", "hi"]

    def test_partial_operation_is_awaited(self, sleeps):
        """Test functools.partial operations are awaited"""
        op = FlakyOperation([RuntimeError("overloaded")])

        async def call(operation, suffix):
            return await operation() + suffix

        result = asyncio.run(run_with_retry(functools.partial(call, op, "!"), FAST))
        assert result == "success!"
        assert op.calls == 2

    def test_tpm_error_then_result(self, sleeps):
        """Test a TPM error followed by a result returns that result"""
        op = FlakyOperation([RuntimeError("TPM limit exceeded")], result={"success": True})
        assert asyncio.run(run_with_retry(op, FAST)) == {"success": True}
        assert op.calls == 2

    def test_non_retryable_error_raised_once(self, sleeps):
        """Test fatal error propagates unchanged after one call"""
        err = ValueError("Invalid API key")
        op = FlakyOperation([err, err, err])
        with pytest.raises(ValueError, match="Invalid API key") as exc_info:
            asyncio.run(run_with_retry(op, RetryConfig.rate_limit_recovery()))
        assert exc_info.value is err
        assert op.calls == 1
        assert sleeps == []

    def test_exhausted_raises_last_error(self, sleeps):
        """Test retries stop at attempts and the last error is re-raised"""
        op = AlwaysFails("429: Too Many Requests - TPM limit")
        with pytest.raises(RuntimeError, match="Too Many Requests") as exc_info:
            asyncio.run(run_with_retry(op, FAST))
        assert op.calls == 3
        assert exc_info.value is op.raised[-1]
        assert len(sleeps) == 2

    def test_single_attempt_never_retries(self, sleeps):
        """Test attempts=1 makes the first failure terminal"""
        op = AlwaysFails("Rate limit exceeded")
        with pytest.raises(RuntimeError):
            asyncio.run(run_with_retry(op, RetryConfig(attempts=1, min_delay_ms=0)))
        assert op.calls == 1
        assert sleeps == []

    def test_no_config_disables_retry(self, sleeps):
        """Test missing config runs the operation exactly once"""
        op = AlwaysFails("Rate limit exceeded")
        with pytest.raises(RuntimeError, match="Rate limit exceeded"):
            asyncio.run(run_with_retry(op))
        assert op.calls == 1

    def test_backoff_delays_applied(self, sleeps):
        """Test exponential delays are passed to the sleep"""
        op = FlakyOperation([RuntimeError("Rate limit: TPM limit")] * 3)
        config = RetryConfig(attempts=5, min_delay_ms=1000, max_delay_ms=10000, jitter=0)
        assert asyncio.run(run_with_retry(op, config)) == "success"
        assert sleeps == [1.0, 2.0, 4.0]

    def test_retry_after_hint_used(self, sleeps):
        """Test retry_after in the error overrides the backoff"""
        err = RuntimeError("overloaded")
        err.retry_after = 2
        op = FlakyOperation([err])
        config = RetryConfig(attempts=3, min_delay_ms=100, max_delay_ms=60000, jitter=0.3)
        asyncio.run(run_with_retry(op, config))
        assert sleeps == [2.0]

    def test_accepts_plain_record(self, sleeps):
        """Test camelCase record is accepted as config"""
        op = FlakyOperation([RuntimeError("429 Too Many Requests")])
        record = {"attempts": 2, "minDelayMs": 0, "maxDelayMs": 0, "jitter": 0}
        assert asyncio.run(run_with_retry(op, record)) == "success"
        assert op.calls == 2

    def test_on_retry_records(self, sleeps):
        """Test on_retry receives one record per retry"""
        records = []
        op = FlakyOperation([RuntimeError("rate limit exceeded")] * 2)
        config = RetryConfig(attempts=3, min_delay_ms=500, max_delay_ms=5000, jitter=0)
        asyncio.run(
            run_with_retry(op, config, provider="openai", model_id="gpt-4o", on_retry=records.append)
        )
        assert [(r.attempt, r.delay_ms) for r in records] == [(1, 500), (2, 1000)]
        assert records[0].error_message == "rate limit exceeded"
        assert records[0].provider == "openai"
        assert records[0].model_id == "gpt-4o"

    def test_concurrent_calls_are_independent(self, sleeps):
        """Test parallel calls keep separate attempt counters"""

        async def run_both():
            first = FlakyOperation([RuntimeError("429")] * 2, result="a")
            second = FlakyOperation([], result="b")
            results = await asyncio.gather(
                run_with_retry(first, FAST), run_with_retry(second, FAST)
            )
            return results, first.calls, second.calls

        results, first_calls, second_calls = asyncio.run(run_both())
        assert results == ["a", "b"]
        assert first_calls == 3
        assert second_calls == 1


class TestLogging:
    """Tests for retry log events"""

    def test_retry_scheduled_logged_at_info(self, sleeps, caplog):
        """Test scheduled retry is logged with attempt and delay"""
        op = FlakyOperation([RuntimeError("429 Too Many Requests")])
        config = RetryConfig(attempts=3, min_delay_ms=250, max_delay_ms=1000, jitter=0)
        with caplog.at_level(logging.INFO, logger="prompt_retry.infrastructure.retry"):
            asyncio.run(run_with_retry(op, config, provider="anthropic"))
        messages = [r.getMessage() for r in caplog.records if r.levelno == logging.INFO]
        assert any("attempt=1/3" in m and "delay=250ms" in m for m in messages)
        assert any("provider=anthropic" in m for m in messages)

    def test_exhausted_logged_at_warning(self, sleeps, caplog):
        """Test exhausted retries are logged as warning"""
        op = AlwaysFails("rate limit exceeded")
        with caplog.at_level(logging.INFO, logger="prompt_retry.infrastructure.retry"):
            with pytest.raises(RuntimeError):
                asyncio.run(run_with_retry(op, FAST))
        warnings = [r.getMessage() for r in caplog.records if r.levelno == logging.WARNING]
        assert len(warnings) == 1
        assert "rate limit exceeded" in warnings[0]

    def test_non_retryable_logged_at_debug(self, sleeps, caplog):
        """Test short-circuited errors are logged at debug"""
        op = AlwaysFails("Invalid API key")
        with caplog.at_level(logging.DEBUG, logger="prompt_retry.infrastructure.retry"):
            with pytest.raises(RuntimeError):
                asyncio.run(run_with_retry(op, FAST))
        debug = [r.getMessage() for r in caplog.records if r.levelno == logging.DEBUG]
        assert any("Invalid API key" in m for m in debug)


class TestCancellation:
    """Tests for cancelling the wait between attempts"""

    def test_signal_during_wait_aborts(self):
        """Test setting the signal during the wait stops retrying"""
        op = AlwaysFails("429 Too Many Requests")
        config = RetryConfig(attempts=5, min_delay_ms=5000, max_delay_ms=5000, jitter=0)

        async def run():
            signal = asyncio.Event()
            asyncio.get_running_loop().call_later(0.05, signal.set)
            await run_with_retry(op, config, signal)

        with pytest.raises(RetryCancelledError) as exc_info:
            asyncio.run(run())
        assert op.calls == 1
        assert exc_info.value.attempt == 1
        assert exc_info.value.delay_ms == 5000

    def test_signal_already_set_aborts_before_retry(self):
        """Test a pre-set signal prevents any retry"""
        op = AlwaysFails("rate limit exceeded")

        async def run():
            signal = asyncio.Event()
            signal.set()
            await run_with_retry(op, FAST, signal)

        with pytest.raises(RetryCancelledError):
            asyncio.run(run())
        assert op.calls == 1

    def test_unset_signal_does_not_interfere(self):
        """Test retries proceed normally when the signal never fires"""
        op = FlakyOperation([RuntimeError("rate limit exceeded")])

        async def run():
            return await run_with_retry(op, FAST, asyncio.Event())

        assert asyncio.run(run()) == "success"
        assert op.calls == 2

    def test_wait_for_retry_returns_after_timeout(self):
        """Test cancellable wait returns normally when not cancelled"""
        asyncio.run(wait_for_retry(0.01, asyncio.Event()))


class TestDecorator:
    """Tests for with_prompt_retry"""

    def test_decorated_function_retries(self, sleeps):
        """Test decorator retries with call arguments preserved"""
        calls = []

        @with_prompt_retry(FAST, provider="mock")
        async def generate(prompt, *, suffix=""):
            calls.append(prompt)
            if len(calls) < 2:
                raise RuntimeError("overloaded_error")
            return prompt + suffix

        assert asyncio.run(generate("hi", suffix="!")) == "hi!"
        assert calls == ["hi", "hi"]
        assert generate.__name__ == "generate"
