# tests/conftest.py
import os
import logging
import pytest

from singularity.adapters.dom import Element, Environment
from singularity.adapters.lookup import TargetResolver
from singularity.config import ServiceConfig
from singularity.core import log, metrics
from singularity.core.clock import VirtualScheduler
from singularity.service import UnifiedEventService


@pytest.fixture(scope="session", autouse=True)
def _bootstrap_logging_and_metrics():
    # reads LOG_LEVEL / LOG_JSON / .env
    log.setup()

    interval = float(os.getenv("METRICS_INTERVAL_TEST", "1.0"))
    json_mode = (os.getenv("LOG_JSON", "0") == "1")
    metrics.start_exporter(interval_sec=interval, json_mode=json_mode,
                           logger=logging.getLogger("metrics"))
    yield
    metrics.stop_exporter()


@pytest.fixture(autouse=True)
def _fresh_metrics():
    metrics.reset()
    yield


@pytest.fixture
def env():
    env = Environment()
    main = env.document.body.append(Element("div", id="main", classes=("scroller",)))
    main.append(Element("a", classes=("link",)))
    env.document.body.append(Element("aside", classes=("sidebar", "scroller")))
    return env


@pytest.fixture
def clock():
    return VirtualScheduler()


@pytest.fixture
def make_service(env, clock):
    made = []

    def _make(interval=0.0, **kw):
        svc = UnifiedEventService(TargetResolver(env), clock, config=ServiceConfig(), interval=interval, **kw)
        made.append(svc)
        return svc

    yield _make
    for svc in made:
        svc.teardown()


@pytest.fixture
def service(make_service):
    return make_service()
