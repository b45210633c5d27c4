import random

import pytest

from conftest import RecordingSleep, fixed_jitter
from weather_server.services.errors import (
    DataNotFoundError,
    RateLimitError,
    ServiceUnavailableError,
    ValidationError,
)
from weather_server.services.retry import (
    JITTER_MAX,
    JITTER_MIN,
    RetryAttempt,
    RetryExecutor,
    RetryPolicy,
    RetryState,
    backoff_delay,
    call_with_retry,
)


class FlakyOperation:
    """Fails with the given errors in order, then returns a value."""

    def __init__(self, *errors: Exception, result: object = "ok") -> None:
        self.errors = list(errors)
        self.result = result
        self.calls = 0

    async def __call__(self) -> object:
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.result


class AlwaysFails:
    def __init__(self, error: Exception) -> None:
        self.error = error
        self.calls = 0

    async def __call__(self) -> object:
        self.calls += 1
        raise self.error


def make_executor(max_retries: int = 3, **kwargs) -> tuple[RetryExecutor, RecordingSleep]:
    sleep = RecordingSleep()
    executor = RetryExecutor(RetryPolicy(max_retries=max_retries), name="test", sleep=sleep, **kwargs)
    return executor, sleep


@pytest.mark.asyncio
async def test_success_first_try_does_not_sleep() -> None:
    executor, sleep = make_executor()
    operation = FlakyOperation()

    assert await executor.run(operation) == "ok"
    assert operation.calls == 1
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_recovers_after_transient_failures() -> None:
    executor, sleep = make_executor(rng=fixed_jitter(1.0))
    operation = FlakyOperation(RateLimitError("NOAA"), ServiceUnavailableError("NOAA"))

    assert await executor.run(operation) == "ok"
    assert operation.calls == 3
    assert sleep.delays == [1.0, 2.0]


@pytest.mark.asyncio
async def test_non_retryable_error_makes_one_attempt() -> None:
    executor, sleep = make_executor()
    error = DataNotFoundError("NOAA", "missing")
    operation = AlwaysFails(error)

    with pytest.raises(DataNotFoundError) as exc_info:
        await executor.run(operation)

    assert exc_info.value is error
    assert operation.calls == 1
    assert sleep.delays == []


@pytest.mark.asyncio
@pytest.mark.parametrize("max_retries", [0, 1, 3, 5])
async def test_retryable_error_exhausts_budget(max_retries) -> None:
    executor, sleep = make_executor(max_retries=max_retries)
    error = RateLimitError("NOAA", retry_after=5)
    operation = AlwaysFails(error)

    with pytest.raises(RateLimitError) as exc_info:
        await executor.run(operation)

    assert exc_info.value is error
    assert operation.calls == max_retries + 1
    assert len(sleep.delays) == max_retries


@pytest.mark.asyncio
async def test_unknown_untyped_error_is_not_retried() -> None:
    executor, _ = make_executor()
    operation = AlwaysFails(KeyError("properties"))

    with pytest.raises(KeyError):
        await executor.run(operation)
    assert operation.calls == 1


@pytest.mark.asyncio
async def test_untyped_transient_error_is_retried() -> None:
    executor, _ = make_executor(max_retries=2)
    operation = FlakyOperation(ConnectionRefusedError("ECONNREFUSED"))

    assert await executor.run(operation) == "ok"
    assert operation.calls == 2


@pytest.mark.asyncio
async def test_delays_stay_within_jitter_bounds() -> None:
    executor, sleep = make_executor(max_retries=6, rng=random.Random(3).uniform)
    operation = AlwaysFails(ServiceUnavailableError("OpenMeteo"))

    with pytest.raises(ServiceUnavailableError):
        await executor.run(operation)

    for n, delay in enumerate(sleep.delays):
        assert 0.5 * 2**n <= delay <= 1.0 * 2**n


@pytest.mark.asyncio
async def test_on_retry_reports_attempts() -> None:
    attempts: list[RetryAttempt] = []
    executor, _ = make_executor(max_retries=2, rng=fixed_jitter(0.5), on_retry=attempts.append)
    operation = AlwaysFails(RateLimitError("NOAA"))

    with pytest.raises(RateLimitError):
        await executor.run(operation)

    assert [a.attempt_number for a in attempts] == [0, 1]
    assert [a.base_delay for a in attempts] == [1.0, 2.0]
    assert [a.jittered_delay for a in attempts] == [0.5, 1.0]


@pytest.mark.asyncio
async def test_call_with_retry_shortcut() -> None:
    operation = FlakyOperation(result=42)
    assert await call_with_retry(operation, RetryPolicy(max_retries=0)) == 42


@pytest.mark.parametrize("attempt", range(8))
def test_backoff_delay_bounds(attempt) -> None:
    rng = random.Random(attempt)
    for _ in range(200):
        base, delay = backoff_delay(attempt, 1.0, rng.uniform)
        assert base == 2**attempt
        assert JITTER_MIN * base <= delay <= JITTER_MAX * base


def test_backoff_delay_scales_with_base_unit() -> None:
    base, delay = backoff_delay(3, base_delay=0.25, rng=fixed_jitter(0.5))
    assert base == 2.0
    assert delay == 1.0


def test_jitter_spreads_delays() -> None:
    rng = random.Random(11)
    delays = {backoff_delay(2, 1.0, rng.uniform)[1] for _ in range(100)}
    assert len(delays) > 50


def test_policy_rejects_negative_values() -> None:
    with pytest.raises(ValueError):
        RetryPolicy(max_retries=-1)
    with pytest.raises(ValueError):
        RetryPolicy(base_delay=-1.0)


@pytest.mark.asyncio
async def test_validation_errors_never_retry() -> None:
    executor, _ = make_executor()
    operation = AlwaysFails(ValidationError("bad latitude", "latitude", 91))

    with pytest.raises(ValidationError):
        await executor.run(operation)
    assert operation.calls == 1


def test_next_state_transitions() -> None:
    executor, _ = make_executor(max_retries=2)

    assert executor.next_state(RateLimitError("NOAA"), 0) is RetryState.ATTEMPTING
    assert executor.next_state(RateLimitError("NOAA"), 1) is RetryState.ATTEMPTING
    assert executor.next_state(RateLimitError("NOAA"), 2) is RetryState.FAILED
    assert executor.next_state(DataNotFoundError("NOAA", "gone"), 0) is RetryState.FAILED
