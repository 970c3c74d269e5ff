
# tests/conftest.py
import os
import logging
import pytest

from topicbus.core import log
from topicbus.core.metrics import start_exporter, stop_exporter

@pytest.fixture(scope="session", autouse=True)
def _bootstrap_logging_and_metrics():
    # Setup logging (reads LOG_LEVEL / LOG_JSON / .env if available)
    log.setup()

    interval = float(os.getenv("METRICS_INTERVAL_TEST", "1.0"))
    json_mode = (os.getenv("LOG_JSON", "0") == "1")
    start_exporter(interval_sec=interval, json_mode=json_mode,
                   logger=logging.getLogger("topicbus.metrics"))
    yield
    stop_exporter()


@pytest.fixture
def spies():
    """spy1/spy2/spy3 append their suffix to the message."""
    def spy1(what, meta):
        return what + "1"

    def spy2(what, meta):
        return what + "2"

    def spy3(what, meta):
        return what + "3"

    return spy1, spy2, spy3