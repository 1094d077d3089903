from __future__ import annotations

import pytest


class _Clock:
    def __init__(self, t: float = 0.0):
        self.t = t
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.t

    def sleep(self, s: float) -> None:
        self.sleeps.append(s)
        self.t += s


def test_bucket_allows_capacity_then_blocks_until_refill() -> None:
    from hltb_resolver.utils import RateLimiter

    clock = _Clock()
    rl = RateLimiter(3, 60.0, clock=clock, sleep=clock.sleep)
    for _ in range(3):
        rl.wait()
    assert clock.sleeps == []
    assert rl.available == 0

    rl.wait()
    assert clock.sleeps == [60.0]
    assert rl.waits == 1
    assert rl.available == 2


def test_partial_window_wait_sleeps_only_the_remainder() -> None:
    from hltb_resolver.utils import RateLimiter

    clock = _Clock()
    rl = RateLimiter(2, 10.0, clock=clock, sleep=clock.sleep)
    rl.wait()
    rl.wait()
    clock.t = 4.0
    rl.wait()
    assert clock.sleeps == [6.0]


def test_try_acquire_does_not_block() -> None:
    from hltb_resolver.utils import RateLimiter

    clock = _Clock()
    rl = RateLimiter(1, 60.0, clock=clock, sleep=clock.sleep)
    assert rl.try_acquire()
    assert not rl.try_acquire()
    clock.t = 59.9
    assert not rl.try_acquire()
    clock.t = 60.0
    assert rl.try_acquire()
    assert clock.sleeps == []


def test_capacity_must_be_positive() -> None:
    from hltb_resolver.utils import RateLimiter

    with pytest.raises(ValueError):
        RateLimiter(0, 60.0)
