"""Tests for RetryPolicy backoff computation."""

import random

import pytest

from crossstore.shared.utils.retry import RetryPolicy


def test_delay_grows_exponentially_and_caps() -> None:
    policy = RetryPolicy(max_attempts=6, base_delay=0.1, max_delay=0.5, jitter=0.0)
    assert [policy.delay_for(n) for n in range(1, 6)] == [0.1, 0.2, 0.4, 0.5, 0.5]


def test_jitter_stays_within_bounds() -> None:
    policy = RetryPolicy(base_delay=0.1, max_delay=2.0, jitter=0.2, rng=random.Random(7))
    for attempt in range(1, 10):
        delay = policy.delay_for(attempt)
        base = min(2.0, 0.1 * 2 ** (attempt - 1))
        assert base <= delay <= base + 0.2


def test_max_total_wait_bounds_blocking() -> None:
    policy = RetryPolicy(max_attempts=3, base_delay=0.1, max_delay=1.0, jitter=0.05)
    assert policy.max_total_wait == pytest.approx(0.1 + 0.05 + 0.2 + 0.05)


def test_from_milliseconds() -> None:
    policy = RetryPolicy.from_milliseconds(5, 100, 2000, 200)
    assert policy.max_attempts == 5
    assert policy.base_delay == pytest.approx(0.1)
    assert policy.max_delay == pytest.approx(2.0)
    assert policy.jitter == pytest.approx(0.2)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"max_attempts": 0},
        {"base_delay": -1},
        {"jitter": -0.1},
        {"base_delay": 1.0, "max_delay": 0.5},
    ],
)
def test_invalid_policy_rejected(kwargs) -> None:
    with pytest.raises(ValueError):
        RetryPolicy(**kwargs)
