
from __future__ import annotations

import logging
import threading
import time
from collections import deque
from statistics import mean
from typing import Any, Deque, Dict, List, Optional, Tuple

# name + sorted (k, v) label pairs
MetricKey = Tuple[str, Tuple[Tuple[str, str], ...]]

_HIST_MAXLEN = 2048


def _key(name: str, labels: Dict[str, Any]) -> MetricKey:
    return name, tuple(sorted((str(k), str(v)) for k, v in labels.items()))


def _pct(vals: List[float], q: float) -> float:
    idx = max(0, min(len(vals) - 1, int(round((len(vals) - 1) * q))))
    return vals[idx]


class _Scalar:
    """Counter or gauge cell."""
    __slots__ = ("value", "lock")

    def __init__(self) -> None:
        self.value = 0.0
        self.lock = threading.Lock()


class _Hist:
    __slots__ = ("values", "lock")

    def __init__(self) -> None:
        self.values: Deque[float] = deque(maxlen=_HIST_MAXLEN)
        self.lock = threading.Lock()

    def summary(self) -> Dict[str, float]:
        with self.lock:
            vals = sorted(self.values)
        if not vals:
            return {"count": 0.0, "min": 0.0, "max": 0.0, "mean": 0.0, "p50": 0.0, "p90": 0.0, "p99": 0.0}
        return {
            "count": float(len(vals)),
            "min": vals[0],
            "max": vals[-1],
            "mean": mean(vals),
            "p50": _pct(vals, 0.50),
            "p90": _pct(vals, 0.90),
            "p99": _pct(vals, 0.99),
        }


# ---------------- Registry ----------------

_lock = threading.Lock()
_counters: Dict[MetricKey, _Scalar] = {}
_gauges: Dict[MetricKey, _Scalar] = {}
_hists: Dict[MetricKey, _Hist] = {}


def _cell(store: dict, factory, name: str, labels: Dict[str, Any]):
    key = _key(name, labels)
    cell = store.get(key)
    if cell is None:
        with _lock:
            cell = store.setdefault(key, factory())
    return cell


# ---------------- Public API ----------------

def inc_counter(name: str, n: float = 1.0, **labels: Any) -> None:
    c = _cell(_counters, _Scalar, name, labels)
    with c.lock:
        c.value += n


def set_gauge(name: str, v: float, **labels: Any) -> None:
    g = _cell(_gauges, _Scalar, name, labels)
    with g.lock:
        g.value = float(v)


def observe_hist(name: str, v: float, **labels: Any) -> None:
    h = _cell(_hists, _Hist, name, labels)
    with h.lock:
        h.values.append(float(v))


# short aliases used by the bus/router code
inc = inc_counter
gauge_set = set_gauge


def counter_value(name: str, **labels: Any) -> float:
    c = _counters.get(_key(name, labels))
    return 0.0 if c is None else c.value


def gauge_value(name: str, **labels: Any) -> float:
    g = _gauges.get(_key(name, labels))
    return 0.0 if g is None else g.value


def snapshot_all() -> dict:
    """{"counters": [...], "gauges": [...], "hists": [...]}, one row per name+labels."""
    with _lock:
        counters, gauges, hists = list(_counters.items()), list(_gauges.items()), list(_hists.items())
    return {
        "counters": [{"name": n, "labels": dict(lb), "value": c.value} for (n, lb), c in counters],
        "gauges": [{"name": n, "labels": dict(lb), "value": g.value} for (n, lb), g in gauges],
        "hists": [{"name": n, "labels": dict(lb), **h.summary()} for (n, lb), h in hists],
    }


def _log_snapshot(logger: logging.Logger, json_mode: bool) -> None:
    snap = snapshot_all()
    for kind, rows in snap.items():
        for row in rows:
            if json_mode:
                logger.info({"type": kind[:-1], **row})
            elif kind == "hists":
                logger.info(
                    "[hist] %s %s n=%d p50=%.3f p90=%.3f p99=%.3f max=%.3f",
                    row["name"], row["labels"], int(row["count"]),
                    row["p50"], row["p90"], row["p99"], row["max"],
                )
            else:
                logger.info("[%s] %s %s value=%.3f", kind[:-1], row["name"], row["labels"], row["value"])


def force_emit(logger: Optional[logging.Logger] = None, json_mode: bool = False) -> None:
    """Log a snapshot right now (tests, shutdown hooks)."""
    _log_snapshot(logger or logging.getLogger("topicbus.metrics"), json_mode)


# ---------------- Exporter (log every N seconds) ----------------

class _Exporter(threading.Thread):
    def __init__(self, interval_sec: float, json_mode: bool, logger: Optional[logging.Logger]):
        super().__init__(name="metrics-exporter", daemon=True)
        self.interval = float(interval_sec)
        self.json_mode = bool(json_mode)
        self.log = logger or logging.getLogger("topicbus.metrics")
        self.stop_evt = threading.Event()

    def run(self) -> None:
        while not self.stop_evt.wait(max(0.5, self.interval)):
            _log_snapshot(self.log, self.json_mode)


_EXPORTER: Optional[_Exporter] = None


def start_exporter(interval_sec: float = 5.0, json_mode: bool = False, logger: Optional[logging.Logger] = None) -> None:
    global _EXPORTER
    if _EXPORTER is not None:
        return
    _EXPORTER = _Exporter(interval_sec, json_mode, logger)
    _EXPORTER.start()


def stop_exporter(timeout: float = 1.0) -> None:
    global _EXPORTER
    if _EXPORTER is not None:
        _EXPORTER.stop_evt.set()
        _EXPORTER.join(timeout=timeout)
        _EXPORTER = None


class Timer:
    """Context manager: elapsed milliseconds go into a histogram."""
    def __init__(self, hist_name: str, **labels: Any) -> None:
        self.hist_name = hist_name
        self.labels = labels
        self.elapsed_ms = 0.0
        self._t0 = 0.0

    def __enter__(self):
        self._t0 = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.elapsed_ms = (time.perf_counter() - self._t0) * 1000.0
        observe_hist(self.hist_name, self.elapsed_ms, **self.labels)
        return False
