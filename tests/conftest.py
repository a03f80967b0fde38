import os

import pytest

from services.telemetry import metrics
from tests.fakes.configs import make_config, make_symbol
from tests.fakes.fake_venue import FakeVenue


@pytest.fixture(scope="session", autouse=True)
def env_offline(tmp_path_factory):
    os.environ["AUDIT_LOG_DIR"] = str(tmp_path_factory.mktemp("audit"))
    os.environ.pop("ALERT_WEBHOOK_URL", None)
    return os.environ["AUDIT_LOG_DIR"]


@pytest.fixture(autouse=True)
def reset_metrics():
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def symbol_config():
    return make_symbol()


@pytest.fixture
def strategy_config(symbol_config):
    return make_config(symbol_config)


@pytest.fixture
def venue() -> FakeVenue:
    return FakeVenue()
