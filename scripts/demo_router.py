import argparse
import os
import time

from topicbus.core import log
from topicbus.core.bus import InProcEventBus
from topicbus.core.metrics import force_emit, start_exporter, stop_exporter
from topicbus.core.router import Router


def on_metrics(msg, meta):
    return f"metrics <- {meta.topic} {msg}"


def on_changed(msg, meta):
    return f"changed <- {'/'.join(meta.words)}"


def on_any_single(msg, meta):
    return f"one-word <- {meta.topic}"


def build(router: Router) -> Router:
    return (
        router.subscribe("metrics.#", on_metrics)
        .subscribe("#.changed", on_changed)
        .subscribe("*", on_any_single)
    )


def main():
    ap = argparse.ArgumentParser(description="emit a few topics through a topicbus router")
    ap.add_argument("topics", nargs="*", default=["metrics.changed", "metrics", "ads.changed", "x"])
    ap.add_argument("--threaded", action="store_true", help="deliver via InProcEventBus worker thread")
    ap.add_argument("--metrics", action="store_true", help="dump metrics at exit")
    args = ap.parse_args()

    log.setup()
    start_exporter(interval_sec=float(os.getenv("METRICS_INTERVAL", "5")),
                   json_mode=(os.getenv("LOG_JSON", "0") == "1"))
    l = log.get("demo")

    if args.threaded:
        bus = InProcEventBus(name="demo")
        build(bus.router)
        bus.start()
        for t in args.topics:
            bus.publish(t, {"ts": time.time()})
        bus.join(timeout=2.0)
        bus.stop()
    else:
        router = build(Router(name="demo"))
        for t in args.topics:
            for r in router.emit(t, {"ts": time.time()}):
                l.info("%s", r)

    if args.metrics:
        force_emit()
    stop_exporter()


if __name__ == "__main__":
    main()
