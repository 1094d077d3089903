from __future__ import annotations

import threading

import pytest


def _policy(**kwargs):
    from hltb_resolver.utils import RetryPolicy

    sleeps: list[float] = []
    stats: dict[str, int] = {}
    p = RetryPolicy(jitter_ratio=0.0, sleep=sleeps.append, stats=stats, **kwargs)
    return p, sleeps, stats


def test_retriable_failures_are_retried_up_to_max() -> None:
    from hltb_resolver.errors import NetworkError

    p, sleeps, stats = _policy(max_retries=3)
    calls = {"n": 0}

    def fn():
        calls["n"] += 1
        raise NetworkError("HTTP 503", status_code=503)

    with pytest.raises(NetworkError):
        p.execute("k", fn)
    assert calls["n"] == 4
    assert sleeps == [1.0, 2.0, 4.0]
    assert stats["retry_attempts"] == 3
    assert stats["retry_exhausted"] == 1
    assert p.attempts("k") == 0


def test_terminal_failures_are_not_retried() -> None:
    from hltb_resolver.errors import NetworkError

    p, sleeps, stats = _policy()
    calls = {"n": 0}

    def fn():
        calls["n"] += 1
        raise NetworkError("HTTP 404", status_code=404)

    with pytest.raises(NetworkError):
        p.execute("k", fn)
    assert calls["n"] == 1
    assert sleeps == []
    assert "retry_attempts" not in stats


def test_success_after_transient_failures_resets_attempts() -> None:
    import requests

    p, sleeps, stats = _policy(max_retries=3)
    outcomes = [requests.exceptions.Timeout("slow"), requests.exceptions.ConnectionError("down"), "ok"]

    def fn():
        out = outcomes.pop(0)
        if isinstance(out, Exception):
            raise out
        return out

    assert p.execute("k", fn) == "ok"
    assert stats["retry_attempts"] == 2
    assert len(sleeps) == 2
    assert p.attempts("k") == 0


def test_delay_is_exponential_capped_and_honors_retry_after() -> None:
    from hltb_resolver.errors import RateLimitError

    p, _sleeps, _stats = _policy(base_delay_s=1.0, max_delay_s=30.0)
    assert p.compute_delay(0) == 1.0
    assert p.compute_delay(1) == 2.0
    assert p.compute_delay(2) == 4.0
    assert p.compute_delay(10) == 30.0
    assert p.compute_delay(0, RateLimitError("slow down", retry_after_s=20)) == 20.0
    assert p.compute_delay(0, RateLimitError("slow down", retry_after_s=120)) == 30.0


def test_jitter_stays_within_ratio() -> None:
    from hltb_resolver.utils import RetryPolicy

    p = RetryPolicy(base_delay_s=2.0, jitter_ratio=0.25)
    for _ in range(20):
        assert 2.0 <= p.compute_delay(0) <= 2.5


def test_classification() -> None:
    import requests

    from hltb_resolver.errors import NetworkError, RateLimitError, ScrapingError
    from hltb_resolver.utils import RetryPolicy

    assert RetryPolicy.is_retriable(RateLimitError("x", retry_after_s=1))
    assert RetryPolicy.is_retriable(NetworkError("x"))
    assert RetryPolicy.is_retriable(NetworkError("x", status_code=0))
    assert RetryPolicy.is_retriable(NetworkError("x", status_code=500))
    assert RetryPolicy.is_retriable(requests.exceptions.Timeout())
    assert not RetryPolicy.is_retriable(NetworkError("x", status_code=400))
    assert not RetryPolicy.is_retriable(ScrapingError("x"))
    assert not RetryPolicy.is_retriable(ValueError("x"))


def test_cancellation_before_and_during_backoff() -> None:
    from hltb_resolver.errors import NetworkError, RequestCancelledError

    p, _sleeps, _stats = _policy()
    ev = threading.Event()
    ev.set()
    calls = {"n": 0}

    def never():
        calls["n"] += 1
        return "unreachable"

    with pytest.raises(RequestCancelledError):
        p.execute("k", never, cancel_event=ev)
    assert calls["n"] == 0

    ev2 = threading.Event()

    def cancel_then_fail():
        calls["n"] += 1
        ev2.set()
        raise NetworkError("HTTP 503", status_code=503)

    with pytest.raises(RequestCancelledError):
        p.execute("k", cancel_then_fail, cancel_event=ev2)
    assert calls["n"] == 1
