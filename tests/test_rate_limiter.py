import asyncio
import random
import time

import pytest

from mulinker_app.config import RateLimitSettings
from mulinker_app.providers.base import AdaptiveRateLimiter


def test_initial_delay_never_below_floor():
    limiter = AdaptiveRateLimiter(min_delay=1.0, initial_delay=0.5)
    assert limiter.current_delay == 1.0


def test_from_settings_defaults():
    limiter = AdaptiveRateLimiter.from_settings(RateLimitSettings())
    assert limiter.min_delay == 1.0
    assert limiter.current_delay == 1.5
    assert limiter.increment == 1.0
    assert limiter.cooldown == 2.0


def test_penalize_grows_delay_up_to_ceiling():
    limiter = AdaptiveRateLimiter(min_delay=1.0, initial_delay=1.5, increment=1.0, max_delay=3.0)
    assert limiter.penalize() == limiter.cooldown
    assert limiter.current_delay == 2.5
    limiter.penalize()
    limiter.penalize()
    assert limiter.current_delay == 3.0


def test_reward_decays_toward_floor():
    limiter = AdaptiveRateLimiter(
        min_delay=1.0, initial_delay=1.15, decay_step=0.1, decay_probability=1.0
    )
    limiter.reward()
    assert limiter.current_delay == pytest.approx(1.05)
    limiter.reward()
    assert limiter.current_delay == 1.0
    limiter.reward()
    assert limiter.current_delay == 1.0


def test_reward_is_probabilistic():
    limiter = AdaptiveRateLimiter(
        min_delay=1.0, initial_delay=2.0, decay_probability=0.0, rng=random.Random(7)
    )
    for _ in range(20):
        limiter.reward()
    assert limiter.current_delay == 2.0


def test_snapshot():
    limiter = AdaptiveRateLimiter(min_delay=0.5, initial_delay=0.75)
    state = limiter.snapshot()
    assert state.min_delay == 0.5
    assert state.current_delay == 0.75
    assert state.last_request_at is None


@pytest.mark.asyncio
async def test_first_acquire_does_not_wait():
    limiter = AdaptiveRateLimiter(min_delay=0.5, initial_delay=0.5)
    started = time.monotonic()
    await limiter.acquire()
    assert time.monotonic() - started < 0.2
    assert limiter.last_request is not None


@pytest.mark.asyncio
async def test_consecutive_acquires_are_spaced():
    limiter = AdaptiveRateLimiter(min_delay=0.05, initial_delay=0.05)
    started = time.monotonic()
    await limiter.acquire()
    await limiter.acquire()
    assert time.monotonic() - started >= 0.045


@pytest.mark.asyncio
async def test_concurrent_acquires_are_serialized():
    limiter = AdaptiveRateLimiter(min_delay=0.05, initial_delay=0.05)
    stamps = []

    async def worker():
        await limiter.acquire()
        stamps.append(time.monotonic())

    await asyncio.gather(*(worker() for _ in range(3)))
    stamps.sort()
    assert stamps[1] - stamps[0] >= 0.045
    assert stamps[2] - stamps[1] >= 0.045
