"""Tests for the shared retry/backoff policy."""

import asyncio

import pytest
from pydantic import ValidationError

from app.core.config import Settings
from app.core.retry import RetryPolicy, is_retryable_error
from tests.fakes.fake_provider import RecordingSleep, TransientProviderError


class _StatusError(Exception):
    def __init__(self, status_code: int):
        super().__init__(f"HTTP {status_code}")
        self.status_code = status_code


class TestIsRetryableError:
    @pytest.mark.parametrize("status", [429, 503, 504, 529])
    def test_status_codes(self, status):
        assert is_retryable_error(_StatusError(status))

    @pytest.mark.parametrize(
        "message",
        [
            "Rate limit exceeded",
            "The model is overloaded",
            "Service Unavailable",
            "Request timed out",
            "RESOURCE_EXHAUSTED: quota",
        ],
    )
    def test_transient_messages(self, message):
        assert is_retryable_error(RuntimeError(message))

    @pytest.mark.parametrize("status", [400, 401, 404, 500])
    def test_other_status_codes(self, status):
        assert not is_retryable_error(_StatusError(status))

    def test_plain_errors(self):
        assert not is_retryable_error(ValueError("invalid prompt"))

    def test_cancellation_never_retryable(self):
        assert not is_retryable_error(asyncio.CancelledError())


class TestRetryPolicy:
    def test_delays_grow_exponentially(self):
        policy = RetryPolicy(max_attempts=4, base_delay=1.0)
        assert [policy.delay_for(i) for i in range(3)] == [1.0, 2.0, 4.0]

    def test_zero_attempts_rejected(self):
        with pytest.raises(ValueError, match="at least 1"):
            RetryPolicy(max_attempts=0)

    @pytest.mark.parametrize("key", ["GENERATION_MAX_ATTEMPTS", "PLANNER_MAX_ATTEMPTS"])
    def test_settings_reject_zero_attempts(self, key, monkeypatch):
        monkeypatch.setenv(key, "0")
        with pytest.raises(ValidationError):
            Settings()

    @pytest.mark.asyncio
    async def test_succeeds_after_retryable_failures(self):
        sleep = RecordingSleep()
        policy = RetryPolicy(max_attempts=3, base_delay=1.0, sleep=sleep)
        outcomes = [TransientProviderError(), TransientProviderError(), "ok"]
        calls = []

        async def fn():
            calls.append(1)
            outcome = outcomes.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome

        assert await policy.run(fn) == "ok"
        assert len(calls) == 3
        assert sleep.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_non_retryable_fails_immediately(self):
        sleep = RecordingSleep()
        policy = RetryPolicy(max_attempts=3, sleep=sleep)
        calls = []

        async def fn():
            calls.append(1)
            raise ValueError("bad request")

        with pytest.raises(ValueError, match="bad request"):
            await policy.run(fn)
        assert len(calls) == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_exhausted_attempts_raise_last_error(self):
        sleep = RecordingSleep()
        policy = RetryPolicy(max_attempts=2, base_delay=0.5, sleep=sleep)
        errors = [TransientProviderError("overloaded 1"), TransientProviderError("overloaded 2")]

        async def fn():
            raise errors.pop(0)

        with pytest.raises(TransientProviderError, match="overloaded 2"):
            await policy.run(fn)
        assert sleep.delays == [0.5]

    @pytest.mark.asyncio
    async def test_cancellation_not_retried(self):
        sleep = RecordingSleep()
        policy = RetryPolicy(max_attempts=3, sleep=sleep)
        calls = []

        async def fn():
            calls.append(1)
            raise asyncio.CancelledError()

        with pytest.raises(asyncio.CancelledError):
            await policy.run(fn)
        assert len(calls) == 1
        assert sleep.delays == []
