"""Tests for the retry policy."""

from __future__ import annotations

from unittest.mock import AsyncMock, Mock

import pytest

from agentrelay.config.schema import RetryConfig
from agentrelay.retry import RetryPolicy
from tests.utils import RecordingSleep


class TestRetryPolicyDelays:
    """Tests for backoff delay computation."""

    def test_default_delays_double(self) -> None:
        policy = RetryPolicy()
        assert policy.delay_for(1) == 1.0
        assert policy.delay_for(2) == 2.0
        assert policy.delay_for(3) == 4.0

    def test_custom_base_and_multiplier(self) -> None:
        policy = RetryPolicy(base_delay=0.5, multiplier=3.0)
        assert policy.delay_for(1) == 0.5
        assert policy.delay_for(2) == 1.5

    def test_jitter_stays_in_bounds(self) -> None:
        policy = RetryPolicy(jitter=0.2)
        for _ in range(50):
            assert 0.8 <= policy.delay_for(1) <= 1.2

    @pytest.mark.parametrize(
        "kwargs",
        [{"max_attempts": 0}, {"base_delay": -1.0}, {"jitter": 1.0}, {"jitter": -0.1}],
    )
    def test_invalid_values_rejected(self, kwargs) -> None:
        with pytest.raises(ValueError):
            RetryPolicy(**kwargs)

    def test_from_config(self) -> None:
        sleep = RecordingSleep()
        policy = RetryPolicy.from_config(
            RetryConfig(max_attempts=5, base_delay=0.25, multiplier=4.0), sleep=sleep
        )
        assert policy.max_attempts == 5
        assert policy.base_delay == 0.25
        assert policy.multiplier == 4.0
        assert policy.sleep is sleep


class TestRetryPolicyRun:
    """Tests for RetryPolicy.run()."""

    @pytest.mark.asyncio
    async def test_success_first_try_does_not_sleep(self) -> None:
        sleep = RecordingSleep()
        operation = AsyncMock(return_value="ok")

        result = await RetryPolicy(sleep=sleep).run(operation)

        assert result == "ok"
        assert operation.await_count == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("failures", [0, 1, 2])
    async def test_transient_failures_take_k_plus_one_attempts(self, failures) -> None:
        sleep = RecordingSleep()
        operation = AsyncMock(side_effect=[OSError("busy")] * failures + ["ok"])

        result = await RetryPolicy(sleep=sleep).run(operation)

        assert result == "ok"
        assert operation.await_count == failures + 1
        assert sleep.delays == [1.0, 2.0][:failures]

    @pytest.mark.asyncio
    async def test_exhaustion_reraises_last_error(self) -> None:
        sleep = RecordingSleep()
        errors = [OSError("first"), OSError("second"), OSError("third")]
        operation = AsyncMock(side_effect=errors)

        with pytest.raises(OSError, match="third"):
            await RetryPolicy(sleep=sleep).run(operation)

        assert operation.await_count == 3
        assert sleep.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_on_retry_called_before_each_sleep(self) -> None:
        sleep = RecordingSleep()
        on_retry = Mock()
        error = OSError("busy")
        operation = AsyncMock(side_effect=[error, error, "ok"])

        await RetryPolicy(sleep=sleep).run(operation, on_retry)

        assert on_retry.call_args_list[0].args == (1, error, 1.0)
        assert on_retry.call_args_list[1].args == (2, error, 2.0)

    @pytest.mark.asyncio
    async def test_single_attempt_policy_never_sleeps(self) -> None:
        sleep = RecordingSleep()
        operation = AsyncMock(side_effect=OSError("down"))

        with pytest.raises(OSError):
            await RetryPolicy(max_attempts=1, sleep=sleep).run(operation)

        assert sleep.delays == []
