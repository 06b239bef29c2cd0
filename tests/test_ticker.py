import threading
import time

import pytest

from latency_lab.ticker import Ticker


def test_ticks_until_scope_exits():
    fired = threading.Event()
    calls = []

    def callback():
        calls.append(time.monotonic())
        if len(calls) >= 3:
            fired.set()

    with Ticker(callback, interval=0.01) as ticker:
        assert ticker.active
        assert fired.wait(2)

    count = len(calls)
    assert not ticker.active
    time.sleep(0.05)
    assert len(calls) == count
    assert ticker.ticks == count


def test_cancel_on_exception_path():
    calls = []
    with pytest.raises(RuntimeError):
        with Ticker(lambda: calls.append(1), interval=0.01) as ticker:
            raise RuntimeError("run failed")

    assert not ticker.active
    count = len(calls)
    time.sleep(0.05)
    assert len(calls) == count


def test_cancel_is_idempotent():
    ticker = Ticker(lambda: None, interval=0.01).start()
    ticker.cancel()
    ticker.cancel()
    assert not ticker.active


def test_rejects_non_positive_interval():
    with pytest.raises(ValueError):
        Ticker(lambda: None, interval=0)


def test_cannot_start_twice():
    ticker = Ticker(lambda: None, interval=0.01).start()
    try:
        with pytest.raises(RuntimeError):
            ticker.start()
    finally:
        ticker.cancel()


def test_failing_callback_does_not_stop_ticking():
    recovered = threading.Event()
    calls = []

    def callback():
        calls.append(1)
        if len(calls) == 1:
            raise OSError("stdout closed")
        recovered.set()

    with Ticker(callback, interval=0.01):
        assert recovered.wait(2)

    assert len(calls) >= 2
