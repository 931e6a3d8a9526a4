import threading

import pytest

from voxgate.audio.scheduler import ManualScheduler, ThreadScheduler, Ticker


def test_manual_scheduler_runs_ticks_in_order():
    scheduler = ManualScheduler()
    calls: list[tuple[str, float]] = []
    scheduler.every(250, lambda: calls.append(("chunk", scheduler.now())))
    scheduler.every(100, lambda: calls.append(("sample", scheduler.now())))
    scheduler.advance(500)
    assert calls == [
        ("sample", 100.0),
        ("sample", 200.0),
        ("chunk", 250.0),
        ("sample", 300.0),
        ("sample", 400.0),
        ("chunk", 500.0),
        ("sample", 500.0),
    ]
    assert scheduler.now() == 500.0


def test_cancel_drops_pending_ticks():
    scheduler = ManualScheduler()
    hits = []
    ticker = scheduler.every(100, lambda: hits.append(scheduler.now()))
    scheduler.advance(250)
    ticker.cancel()
    scheduler.advance(500)
    assert hits == [100.0, 200.0]
    assert scheduler.active_tickers() == []


def test_ticker_can_cancel_itself_mid_run():
    scheduler = ManualScheduler()
    hits = []

    def tick():
        hits.append(scheduler.now())
        if len(hits) == 2:
            handle.cancel()

    handle = scheduler.every(50, tick)
    scheduler.advance(1000)
    assert hits == [50.0, 100.0]


def test_late_tick_skips_missed_periods():
    ticker = Ticker(100, lambda: None)
    ticker.advance_from(100.0, now=100.0)
    assert ticker.next_due == 200.0
    ticker.advance_from(200.0, now=455.0)
    assert ticker.next_due == 500.0


def test_ticker_rejects_non_positive_interval():
    with pytest.raises(ValueError):
        Ticker(0, lambda: None)


def test_tick_errors_are_contained():
    scheduler = ManualScheduler()
    hits = []

    def flaky():
        hits.append(scheduler.now())
        raise RuntimeError("boom")

    scheduler.every(100, flaky)
    scheduler.advance(300)
    assert hits == [100.0, 200.0, 300.0]


def test_thread_scheduler_call_runs_on_loop_thread():
    scheduler = ThreadScheduler()
    try:
        loop_thread = scheduler.call(threading.current_thread)
        assert loop_thread is not threading.current_thread()
        assert scheduler.call(lambda a, b: a + b, 2, 3) == 5
        with pytest.raises(KeyError):
            scheduler.call({}.__getitem__, "missing")
    finally:
        scheduler.shutdown()


def test_thread_scheduler_ticks_until_cancelled():
    scheduler = ThreadScheduler()
    fired = threading.Event()
    threads = []

    def tick():
        threads.append(threading.current_thread())
        if len(threads) >= 3:
            fired.set()

    try:
        ticker = scheduler.every(10, tick)
        assert fired.wait(timeout=2.0)
        ticker.cancel()
        count = scheduler.call(lambda: len(threads))
        assert scheduler.call(lambda: len(threads)) == count
        assert len(set(threads)) == 1
    finally:
        scheduler.shutdown()


def test_thread_scheduler_rejects_work_after_shutdown():
    scheduler = ThreadScheduler()
    scheduler.call(lambda: None)
    scheduler.shutdown()
    with pytest.raises(RuntimeError):
        scheduler.call(lambda: None)


def test_cancelled_ticker_is_dropped_from_queue():
    scheduler = ThreadScheduler(name="purge-test")
    try:
        first = scheduler.every(60000, lambda: None, name="idle")
        first.cancel()
        scheduler.every(60000, lambda: None, name="live")
        assert scheduler.pending() == 1
    finally:
        scheduler.shutdown()
