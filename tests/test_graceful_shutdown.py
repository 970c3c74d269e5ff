import threading
import time

import pytest

from topicbus.core import log
from topicbus.core.bus import InProcEventBus


def test_graceful_shutdown():
    log.setup("WARNING")
    bus = InProcEventBus(name="grace")
    ran = {"count": 0}
    bus.subscribe("noop", lambda m, meta: ran.__setitem__("count", ran["count"] + 1))
    bus.start()
    assert bus.running

    for i in range(20):
        bus.publish(("noop", {"i": i}))
    bus.join(timeout=2.0)

    t0 = time.perf_counter()
    bus.stop()
    # stop joins the worker with a timeout; an idle worker exits on its next poll
    assert time.perf_counter() - t0 < 1.0
    assert not bus.running
    assert ran["count"] == 20

    # idempotent
    bus.stop()


def test_join_times_out_when_not_started():
    bus = InProcEventBus(name="grace.idle")
    bus.publish("never", 1)
    assert bus.join(timeout=0.05) is False


def _workers(name):
    return [t for t in threading.enumerate() if t.name == f"EventBus-{name}" and t.is_alive()]


def test_restart_after_slow_stop_keeps_one_worker():
    bus = InProcEventBus(name="grace.restart")
    entered, release = threading.Event(), threading.Event()
    got = []

    def slow(m, meta):
        if m == "first":
            entered.set()
            release.wait(timeout=5.0)
        got.append(m)

    bus.subscribe("work", slow)
    bus.start()
    bus.publish("work", "first")
    assert entered.wait(timeout=2.0)

    bus.stop(timeout=0.1)
    assert not bus.running
    assert len(_workers("grace.restart")) == 1

    # the old worker is still inside a handler
    with pytest.raises(RuntimeError):
        bus.start(timeout=0.05)
    assert len(_workers("grace.restart")) == 1

    release.set()
    bus.start(timeout=2.0)
    try:
        bus.publish("work", "second")
        assert bus.join(timeout=2.0)
        assert len(_workers("grace.restart")) == 1
    finally:
        bus.stop()

    assert got == ["first", "second"]
