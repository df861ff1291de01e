import pytest

from tests.helpers import FixedClock
from trust_safety.config.settings import Settings
from trust_safety.metrics.sink import InMemoryMetricsSink


@pytest.fixture()
def settings() -> Settings:
    return Settings(_env_file=None, upload_min_bytes=16, storage_root="/tmp/trust-safety-test")


@pytest.fixture()
def metrics() -> InMemoryMetricsSink:
    return InMemoryMetricsSink()


@pytest.fixture()
def clock() -> FixedClock:
    return FixedClock()
