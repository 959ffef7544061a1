"""
Tests for the rolling-window rate limiter.

Property: within any trailing window no more than max_requests admissions
are recorded, and a denial only happens while the window is full.
"""
import asyncio

import pytest
from hypothesis import given, settings, strategies as st

from rate_limiter import RateLimiter
from conftest import FakeClock


def make_limiter(max_requests, clock, window=60.0):
    async def fake_sleep(seconds):
        clock.advance(seconds)
        await asyncio.sleep(0)

    return RateLimiter(max_requests, window=window, clock=clock, sleep=fake_sleep)


def test_rejects_non_positive_limit():
    with pytest.raises(ValueError):
        RateLimiter(0)


@settings(max_examples=200)
@given(
    max_requests=st.integers(min_value=1, max_value=5),
    gaps=st.lists(st.floats(min_value=0, max_value=30, allow_nan=False), min_size=1, max_size=60),
)
def test_window_never_exceeds_limit(max_requests, gaps):
    """
    Property: for any arrival pattern, admissions inside a trailing window
    never exceed max_requests, and try_acquire only refuses when full.
    """
    clock = FakeClock(0.0)
    limiter = RateLimiter(max_requests, window=60.0, clock=clock)
    admitted = []

    for gap in gaps:
        clock.advance(gap)
        recent = [t for t in admitted if t > clock.now - 60.0]

        if limiter.try_acquire():
            assert len(recent) < max_requests
            admitted.append(clock.now)
        else:
            assert len(recent) == max_requests

        assert limiter.in_window() == len([t for t in admitted if t > clock.now - 60.0])
        assert limiter.in_window() <= max_requests


def test_slot_frees_when_window_passes(clock):
    limiter = make_limiter(1, clock)

    assert limiter.try_acquire()
    assert not limiter.try_acquire()

    clock.advance(59.9)
    assert not limiter.try_acquire()

    clock.advance(0.1)
    assert limiter.try_acquire()


async def test_third_caller_waits_for_window(clock):
    limiter = make_limiter(2, clock)
    start = clock.now
    admitted_at = {}

    async def caller(name):
        await limiter.acquire()
        admitted_at[name] = clock.now

    await asyncio.gather(caller("a"), caller("b"), caller("c"))

    assert admitted_at["a"] == start
    assert admitted_at["b"] == start
    assert start + 60.0 - 1e-6 <= admitted_at["c"] <= start + 60.2
    assert limiter.in_window() == 1


async def test_cancelled_before_acquire_records_nothing():
    limiter = RateLimiter(5)

    task = asyncio.create_task(limiter.acquire())
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert limiter.in_window() == 0


async def test_cancel_while_waiting():
    limiter = RateLimiter(1, poll_interval=0.01)
    assert limiter.try_acquire()

    task = asyncio.create_task(limiter.acquire())
    await asyncio.sleep(0.05)
    assert not task.done()

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert limiter.in_window() == 1


async def test_deadline_raises_timeout():
    limiter = RateLimiter(1, poll_interval=0.01)
    assert limiter.try_acquire()

    with pytest.raises(TimeoutError):
        async with asyncio.timeout(0.05):
            await limiter.acquire()
    assert limiter.in_window() == 1


async def test_zero_deadline_takes_no_slot():
    limiter = RateLimiter(1)

    with pytest.raises(TimeoutError):
        async with asyncio.timeout(0):
            await limiter.acquire()
    assert limiter.in_window() == 0
