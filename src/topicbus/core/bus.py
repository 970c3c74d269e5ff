# src/core/bus.py
from __future__ import annotations
import queue
import threading
import time
from typing import Any, Optional

from topicbus.core import log
from topicbus.core.contracts import Event, Handler
from topicbus.core.metrics import gauge_set, inc
from topicbus.core.router import Router


class InProcEventBus:
    """
    Background-thread fan-out on top of a Router.

    publish() only enqueues; the worker thread emits each event through the router.
    A failing handler is logged and counted, and the worker moves on to the next event.
    Use Router.emit directly for synchronous, fail-fast dispatch with results.
    """

    def __init__(self, name: str = "bus", daemon: bool = True, router: Optional[Router] = None):
        self.name = name
        self.daemon = daemon
        self.l = log.get(self.name)
        self.router = router if router is not None else Router(name=f"{name}.router")
        self._q: "queue.Queue[Event]" = queue.Queue()
        self._th: threading.Thread | None = None
        self._stop_evt: threading.Event | None = None

    @property
    def running(self) -> bool:
        return self._stop_evt is not None and not self._stop_evt.is_set()

    def start(self, timeout: float = 1.0):
        """Launch the worker. A worker left over from a slow stop() is joined first;
        if it is still inside a handler after `timeout`, RuntimeError is raised."""
        if self.running: return
        old = self._th
        if old is not None and old.is_alive():
            old.join(timeout=timeout)
            if old.is_alive():
                raise RuntimeError(f"bus {self.name}: previous worker still delivering, cannot restart")
        self._stop_evt = threading.Event()
        self._th = threading.Thread(target=self._loop, args=(self._stop_evt,),
                                    name=f"EventBus-{self.name}", daemon=self.daemon)
        self._th.start()
        self.l.info("bus start (daemon=%s)", self.daemon)

    def stop(self, timeout: float = 1.0):
        """Signal the worker and wait up to `timeout`. The worker finishes its current
        event before exiting; until then start() refuses to launch another one."""
        if not self.running: return
        self._stop_evt.set()
        th = self._th
        if th and th.is_alive() and threading.current_thread() is not th:
            th.join(timeout=timeout)
        if th is not None and not th.is_alive():
            self._th = None
        self.l.info("bus stop (pending=%d)", self._q.qsize())

    def subscribe(self, pattern: str, fn: Handler):
        self.router.subscribe(pattern, fn)
        return self

    @staticmethod
    def _to_event(a: Any, b: Any) -> Event:
        if isinstance(a, Event):
            return a
        if b is None and hasattr(a, "topic"):
            return Event(topic=str(a.topic), data=getattr(a, "data", None))
        if b is None and isinstance(a, tuple) and len(a) == 2:
            return Event(topic=str(a[0]), data=a[1])
        return Event(topic=str(a), data=b)

    def publish(self, a: Any, b: Optional[Any] = None):
        """
        Accepts:
        - publish(Event) or any object with .topic (and optionally .data)
        - publish((topic, data))
        - publish(topic, data)
        """
        ev = self._to_event(a, b)
        self._q.put(ev)
        inc("bus_publish_total", 1, bus=self.name)
        gauge_set("bus_queue_depth", float(self._q.qsize()), bus=self.name)

    def pending(self) -> int:
        return self._q.qsize()

    def join(self, timeout: float = 5.0) -> bool:
        """Wait until every published event has been delivered. False on timeout."""
        deadline = time.monotonic() + timeout
        while self._q.unfinished_tasks:
            if time.monotonic() >= deadline:
                return False
            time.sleep(0.005)
        return True

    def _deliver(self, ev: Event) -> None:
        try:
            results = self.router.emit_message(ev.topic, ev.data)
            inc("bus_deliver_total", float(len(results)), bus=self.name)
        except Exception as e:
            inc("bus_deliver_errors_total", 1, bus=self.name)
            self.l.error("deliver error topic=%s err=%s", ev.topic, e, exc_info=True)

    def _loop(self, stop_evt: threading.Event):
        while not stop_evt.is_set():
            try:
                ev = self._q.get(timeout=0.1)
            except queue.Empty:
                continue
            try:
                self._deliver(ev)
            finally:
                self._q.task_done()
                gauge_set("bus_queue_depth", float(self._q.qsize()), bus=self.name)
