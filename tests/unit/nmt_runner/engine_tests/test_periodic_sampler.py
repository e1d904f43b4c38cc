"""Tests for PeriodicSampler lifecycle and schedule."""

import threading
import time

import pytest

from nmt_common.errors import ConfigurationError
from nmt_runner.engine.sampler import PeriodicSampler, SamplerState

pytestmark = [pytest.mark.unit, pytest.mark.unit_runner]


class CountingCapture:
    def __init__(self, fail: bool = False):
        self.calls = 0
        self.fail = fail
        self.threads = []

    def __call__(self):
        self.calls += 1
        self.threads.append(threading.current_thread().name)
        if self.fail:
            raise RuntimeError("boom")


def test_rejects_non_positive_interval():
    sampler = PeriodicSampler(CountingCapture())
    with pytest.raises(ConfigurationError):
        sampler.start(0)
    assert sampler.state is SamplerState.IDLE


def test_first_capture_waits_one_interval():
    capture = CountingCapture()
    sampler = PeriodicSampler(capture)
    sampler.start(0.5)
    time.sleep(0.1)
    sampler.stop()
    assert capture.calls == 0
    assert sampler.state is SamplerState.STOPPED


@pytest.mark.slow
def test_fixed_rate_capture_count():
    capture = CountingCapture()
    sampler = PeriodicSampler(capture)
    sampler.start(0.1)
    time.sleep(0.55)
    sampler.stop()
    # floor(0.55 / 0.1) == 5, allow one tick of scheduler jitter
    assert 4 <= capture.calls <= 5
    assert sampler.capture_count == capture.calls
    assert set(capture.threads) == {"nmt-sampler"}


@pytest.mark.slow
def test_capture_errors_do_not_stop_the_loop():
    capture = CountingCapture(fail=True)
    sampler = PeriodicSampler(capture)
    sampler.start(0.05)
    time.sleep(0.2)
    sampler.stop()
    assert capture.calls >= 2
    assert sampler.capture_count == capture.calls


def test_no_capture_after_stop_returns():
    capture = CountingCapture()
    sampler = PeriodicSampler(capture)
    sampler.start(0.02)
    time.sleep(0.05)
    sampler.stop()
    seen = capture.calls
    time.sleep(0.08)
    assert capture.calls == seen


def test_stop_is_idempotent_and_start_after_stop_fails():
    sampler = PeriodicSampler(CountingCapture())
    sampler.stop()
    sampler.stop()
    assert sampler.state is SamplerState.STOPPED
    with pytest.raises(RuntimeError):
        sampler.start(1)


def test_second_start_while_running_is_ignored():
    capture = CountingCapture()
    sampler = PeriodicSampler(capture)
    sampler.start(5)
    first_thread = sampler._thread
    sampler.start(1)
    assert sampler._thread is first_thread
    assert sampler.interval_seconds == 5
    sampler.stop()


def test_stuck_capture_is_abandoned_after_grace():
    entered = threading.Event()
    release = threading.Event()

    def stuck():
        entered.set()
        release.wait(5.0)

    sampler = PeriodicSampler(stuck, grace_seconds=0.05)
    sampler.start(0.01)
    try:
        assert entered.wait(2.0)
        started = time.monotonic()
        sampler.stop()
        assert time.monotonic() - started < 1.0
        assert sampler.abandoned is True
    finally:
        release.set()
