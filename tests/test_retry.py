import logging
from unittest.mock import AsyncMock, patch

import pytest

from echonet_local.gateway import GatewayTimeout
from echonet_local.retry import (
    READ_MAX_ATTEMPTS,
    WRITE_MAX_ATTEMPTS,
    RetryExecutor,
    RetryExhaustedError,
    backoff_delay,
)


def test_backoff_grows_as_attempts_are_consumed():
    assert [backoff_delay(5, remaining) for remaining in (5, 4, 3, 2)] == [1, 2, 3, 4]


def test_reads_get_a_larger_budget_than_writes():
    assert READ_MAX_ATTEMPTS > WRITE_MAX_ATTEMPTS >= 1


class TestRetryExecutor:
    @pytest.mark.asyncio
    async def test_first_success_returns_without_sleeping(self):
        operation = AsyncMock(return_value={'ok': True})
        with patch('echonet_local.retry.asyncio.sleep', new_callable=AsyncMock) as sleep:
            result = await RetryExecutor().execute(operation, 3)
        assert result == {'ok': True}
        operation.assert_awaited_once()
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_always_failing_operation_stops_after_budget(self, caplog):
        operation = AsyncMock(side_effect=GatewayTimeout("no answer"))
        with patch('echonet_local.retry.asyncio.sleep', new_callable=AsyncMock) as sleep:
            with caplog.at_level(logging.DEBUG, logger='echonet-local'):
                with pytest.raises(RetryExhaustedError) as exc_info:
                    await RetryExecutor().execute(operation, 3, "Get 0x80")

        assert operation.await_count == 3
        # Delays before the 2nd and 3rd attempts only
        assert [c.args[0] for c in sleep.await_args_list] == [1, 2]
        assert exc_info.value.attempts == 3
        assert isinstance(exc_info.value.last_error, GatewayTimeout)
        assert "Get 0x80" in str(exc_info.value)
        assert sum("retrying" in r.message for r in caplog.records) == 2

    @pytest.mark.asyncio
    async def test_recovers_after_transient_failures(self):
        operation = AsyncMock(side_effect=[GatewayTimeout("1"), GatewayTimeout("2"), 42])
        with patch('echonet_local.retry.asyncio.sleep', new_callable=AsyncMock) as sleep:
            result = await RetryExecutor(delay_unit=0.5).execute(operation, 5)
        assert result == 42
        assert [c.args[0] for c in sleep.await_args_list] == [0.5, 1.0]

    @pytest.mark.asyncio
    async def test_each_call_has_a_fresh_budget(self):
        executor = RetryExecutor(delay_unit=0)
        failing = AsyncMock(side_effect=GatewayTimeout("x"))
        for _ in range(2):
            with pytest.raises(RetryExhaustedError):
                await executor.execute(failing, 2)
        assert failing.await_count == 4

    @pytest.mark.asyncio
    async def test_single_attempt_never_sleeps(self):
        operation = AsyncMock(side_effect=GatewayTimeout("x"))
        with patch('echonet_local.retry.asyncio.sleep', new_callable=AsyncMock) as sleep:
            with pytest.raises(RetryExhaustedError):
                await RetryExecutor().execute(operation, 1)
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_rejects_empty_budget(self):
        with pytest.raises(ValueError):
            await RetryExecutor().execute(AsyncMock(), 0)
