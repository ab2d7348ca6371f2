import pytest

from app.services.lead_store import StoreError
from app.services.lead_writer import (
    Attempting,
    Failed,
    RetryingLeadWriter,
    RetryPolicy,
    Retrying,
    Succeeded,
    WriteTrace,
)

PAYLOAD = {"name": "Ana Souza", "email": "ana@example.com", "phone": "11988887777"}


def test_policy_backoff_is_linear_and_capped() -> None:
    policy = RetryPolicy(max_attempts=3, base_delay=2.0)
    error = StoreError("timeout")

    first = policy.after_failure(1, error)
    assert first == Retrying(attempt=2, delay=2.0, error=error)

    second = policy.after_failure(2, error)
    assert second == Retrying(attempt=3, delay=4.0, error=error)

    assert policy.after_failure(3, error) == Failed(error=error, attempts=3)


def test_policy_never_retries_unique_violation() -> None:
    policy = RetryPolicy()
    assert isinstance(policy.after_failure(1, StoreError("x", code="23505")), Failed)
    assert isinstance(policy.after_failure(1, StoreError("duplicate key value violates unique constraint")), Failed)


def test_success_on_first_attempt_does_not_sleep(store) -> None:
    sleeps = []
    writer = RetryingLeadWriter(store, sleep=sleeps.append)

    outcome = writer.write(PAYLOAD)

    assert isinstance(outcome, Succeeded)
    assert outcome.attempts == 1
    assert outcome.record["id"] == "lead-1"
    assert len(store.insert_calls) == 1
    assert sleeps == []


def test_recovers_after_transient_failure(store) -> None:
    store.insert_failures = [StoreError("503"), None]
    sleeps = []
    outcome = RetryingLeadWriter(store, sleep=sleeps.append).write(PAYLOAD)

    assert isinstance(outcome, Succeeded)
    assert outcome.attempts == 2
    assert sleeps == [2.0]


def test_three_failures_exhaust_attempts_with_increasing_delay(store) -> None:
    store.insert_failures = [StoreError("503")] * 3
    sleeps = []
    trace = WriteTrace()

    outcome = RetryingLeadWriter(store, sleep=sleeps.append).write(PAYLOAD, trace=trace)

    assert isinstance(outcome, Failed)
    assert not outcome.duplicate
    assert outcome.attempts == 3
    assert len(store.insert_calls) == 3
    assert sleeps == [2.0, 4.0]
    assert trace.delays == [2.0, 4.0]
    assert isinstance(trace.states[0], Attempting)
    assert trace.states[-1] is outcome


def test_duplicate_on_insert_fails_immediately(store) -> None:
    store.insert_failures = [StoreError("duplicate", code="23505")]
    sleeps = []

    outcome = RetryingLeadWriter(store, sleep=sleeps.append).write(PAYLOAD)

    assert isinstance(outcome, Failed)
    assert outcome.duplicate
    assert len(store.insert_calls) == 1
    assert sleeps == []


@pytest.mark.parametrize("max_attempts", [1, 5])
def test_max_attempts_is_configurable(store, max_attempts: int) -> None:
    store.insert_failures = [StoreError("503")] * max_attempts
    sleeps = []
    writer = RetryingLeadWriter(store, policy=RetryPolicy(max_attempts=max_attempts), sleep=sleeps.append)

    outcome = writer.write(PAYLOAD)

    assert outcome.attempts == max_attempts
    assert len(sleeps) == max_attempts - 1
