from __future__ import annotations

from typing import List

import pytest

from mountaingraph.utils.retry import RetryPolicy, run_with_retry


def test_step_config_counts_first_attempt() -> None:
    policy = RetryPolicy.from_step_config(limit=3, delay=10, backoff="exponential")

    assert policy.max_attempts == 4
    assert [policy.delay_for(n) for n in (1, 2, 3)] == [10, 20, 40]


def test_constant_backoff_keeps_delay() -> None:
    policy = RetryPolicy.from_step_config(limit=2, delay=5, backoff="constant")

    assert policy.delay_for(1) == policy.delay_for(2) == 5


def test_linear_backoff_grows_by_initial_delay() -> None:
    policy = RetryPolicy.from_step_config(limit=3, delay=5, backoff="linear")

    assert [policy.delay_for(n) for n in (1, 2, 3)] == [5, 10, 15]


def test_unknown_backoff_rejected() -> None:
    with pytest.raises(ValueError, match="Unsupported backoff"):
        RetryPolicy.from_step_config(limit=1, delay=1, backoff="random")


def test_max_delay_caps_growth() -> None:
    policy = RetryPolicy(max_attempts=5, initial_delay=1, backoff_multiplier=2, max_delay=8)

    assert policy.delay_for(5) == 8


def test_invalid_policy_values() -> None:
    with pytest.raises(ValueError):
        RetryPolicy(max_attempts=0)
    with pytest.raises(ValueError):
        RetryPolicy(initial_delay=-1)


def test_retries_until_success() -> None:
    sleeps: List[float] = []
    outcomes = iter([RuntimeError("boom"), RuntimeError("again"), "ok"])

    def operation() -> str:
        outcome = next(outcomes)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    policy = RetryPolicy(max_attempts=4, initial_delay=10, backoff_multiplier=2)
    result = run_with_retry(operation, policy, sleep_fn=sleeps.append)

    assert result == "ok"
    assert sleeps == [10, 20]


def test_reraises_last_error_when_exhausted() -> None:
    sleeps: List[float] = []
    calls = {"n": 0}

    def operation() -> None:
        calls["n"] += 1
        raise ValueError(f"failure {calls['n']}")

    policy = RetryPolicy(max_attempts=3, initial_delay=1, backoff_multiplier=2)
    with pytest.raises(ValueError, match="failure 3"):
        run_with_retry(operation, policy, sleep_fn=sleeps.append)

    assert calls["n"] == 3
    # no sleep after the final attempt
    assert sleeps == [1, 2]


def test_non_matching_errors_propagate_immediately() -> None:
    calls = {"n": 0}

    def operation() -> None:
        calls["n"] += 1
        raise KeyError("not retried")

    with pytest.raises(KeyError):
        run_with_retry(
            operation,
            RetryPolicy(max_attempts=3),
            retry_on=(ValueError,),
            sleep_fn=lambda _: None,
        )
    assert calls["n"] == 1
