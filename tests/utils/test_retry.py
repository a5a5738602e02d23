"""Tests for the conflict retry helper."""

import pytest
from unittest.mock import AsyncMock

from neo_storage.core.exceptions import BusyError, StaleStateError, ValidationError
from neo_storage.utils.retry import ConflictRetryPolicy, retry_on_conflict

FAST = ConflictRetryPolicy(max_attempts=3, initial_delay_ms=0, max_delay_ms=0, jitter=False)


@pytest.mark.asyncio
async def test_retries_until_success():
    operation = AsyncMock(side_effect=[BusyError("resource:a", 0.1), StaleStateError("Resource", "a", "x"), "done"])

    assert await retry_on_conflict(operation, FAST) == "done"
    assert operation.await_count == 3


@pytest.mark.asyncio
async def test_gives_up_after_max_attempts():
    operation = AsyncMock(side_effect=BusyError("resource:a", 0.1))

    with pytest.raises(BusyError):
        await retry_on_conflict(operation, FAST)

    assert operation.await_count == 3


@pytest.mark.asyncio
async def test_other_errors_are_not_retried():
    operation = AsyncMock(side_effect=ValidationError("bad name"))

    with pytest.raises(ValidationError):
        await retry_on_conflict(operation, FAST)

    assert operation.await_count == 1


def test_backoff_is_capped():
    policy = ConflictRetryPolicy(initial_delay_ms=100, max_delay_ms=300, jitter=False)

    assert [policy.calculate_delay(n) for n in range(0, 5)] == [0.0, 0.1, 0.2, 0.3, 0.3]


def test_invalid_policy():
    with pytest.raises(ValueError):
        ConflictRetryPolicy(max_attempts=0)
