import pytest

from topicbus.core.metrics import counter_value
from topicbus.core.router import Router


class Boom(RuntimeError):
    pass


def test_handler_failure_aborts_the_emit():
    calls = []
    bus = Router(name="errors.failfast")

    def h1(m, meta):
        calls.append("h1")
        return 1

    def h2(m, meta):
        calls.append("h2")
        raise Boom("h2 failed")

    def h3(m, meta):
        calls.append("h3")
        return 3

    bus.subscribe("a", h1).subscribe("a", h2).subscribe("#", h3)

    with pytest.raises(Boom, match="h2 failed"):
        bus.emit("a")
    assert calls == ["h1", "h2"]
    assert counter_value("router_handler_errors_total", router="errors.failfast", fn="h2") == 1


def test_router_is_usable_after_a_failure():
    bus = Router()
    state = {"fail": True}

    def flaky(m, meta):
        if state["fail"]:
            raise ValueError("first call")
        return "ok"

    bus.subscribe("x", flaky)
    with pytest.raises(ValueError):
        bus.emit("x")
    state["fail"] = False
    assert bus.emit("x") == ["ok"]


def test_wrapped_handler_isolates_its_own_errors():
    bus = Router()

    def guarded(fn):
        def run(m, meta):
            try:
                return fn(m, meta)
            except Exception as e:
                return e
        return run

    def bad(m, meta):
        raise KeyError(m)

    bus.subscribe("k", guarded(bad)).subscribe("k", lambda m, _meta: m)
    first, second = bus.emit("k", "v")
    assert isinstance(first, KeyError)
    assert second == "v"
