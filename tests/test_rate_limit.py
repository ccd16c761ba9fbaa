from __future__ import annotations

import random

import pytest

from lead_navigator.errors import AuthenticationWallError
from lead_navigator.models import AutomationSettings
from lead_navigator.rate_limit import DelayPolicy, RetryPolicy


def test_delay_policy_from_settings_randomizes_within_bounds() -> None:
    sleeps = []
    settings = AutomationSettings(min_delay_ms=100, max_delay_ms=300, randomize_delays=True)
    policy = DelayPolicy.from_settings(settings, sleep=sleeps.append, rng=random.Random(7))

    delays = [policy.wait() for _ in range(20)]

    assert all(100 <= delay <= 300 for delay in delays)
    assert sleeps == [delay / 1000.0 for delay in delays]


def test_delay_policy_without_randomization_uses_minimum() -> None:
    policy = DelayPolicy(min_delay_ms=250, max_delay_ms=900, randomize=False, sleep=lambda seconds: None)

    assert policy.next_delay_ms() == 250


def test_zero_delay_does_not_sleep() -> None:
    sleeps = []
    policy = DelayPolicy(sleep=sleeps.append)

    assert policy.wait() == 0
    assert sleeps == []


def test_retry_policy_retries_then_succeeds() -> None:
    calls = []
    sleeps = []

    def flaky() -> str:
        calls.append(1)
        if len(calls) < 3:
            raise RuntimeError("net::ERR_TIMED_OUT")
        return "loaded"

    policy = RetryPolicy.from_settings(
        AutomationSettings(retry_attempts=2, retry_backoff_ms=500), sleep=sleeps.append
    )

    assert policy.run(flaky, description="navigation") == "loaded"
    assert len(calls) == 3
    assert sleeps == [0.5, 0.5]


def test_retry_policy_reraises_last_error() -> None:
    policy = RetryPolicy(attempts=2, sleep=lambda seconds: None)

    def always_fails() -> None:
        raise RuntimeError("still broken")

    with pytest.raises(RuntimeError, match="still broken"):
        policy.run(always_fails)


def test_retry_policy_gives_up_immediately_on_listed_errors() -> None:
    calls = []
    policy = RetryPolicy(attempts=5, sleep=lambda seconds: None, give_up_on=(AuthenticationWallError,))

    def walled() -> None:
        calls.append(1)
        raise AuthenticationWallError("login required")

    with pytest.raises(AuthenticationWallError):
        policy.run(walled)
    assert len(calls) == 1
