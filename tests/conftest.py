# tests/conftest.py

from datetime import datetime, timezone

import pytest

from costverify.models.prometheus import SampleSeries
from costverify.models.resources import ResourceInterval


@pytest.fixture(autouse=True)
def mock_settings_env_vars(monkeypatch):
    """
    Pytest fixture to mock environment variables for the config module.

    Runs for every test so endpoints and thresholds are predictable and
    isolated from the developer's environment or .env file.
    """
    monkeypatch.setenv("PROMETHEUS_URL", "http://prometheus.test:9090")
    monkeypatch.setenv("OPENCOST_URL", "http://opencost.test:9003")
    monkeypatch.delenv("APPROX_THRESHOLD", raising=False)
    monkeypatch.delenv("SHOW_DIFF", raising=False)
    monkeypatch.delenv("PROMETHEUS_BEARER_TOKEN", raising=False)


def _ts(hour: int, minute: int = 0) -> datetime:
    return datetime(2024, 1, 1, hour, minute, tzinfo=timezone.utc)


@pytest.fixture
def day_window():
    """2024-01-01 00:00 to 2024-01-02 00:00 UTC."""
    return ResourceInterval(start=_ts(0), end=datetime(2024, 1, 2, tzinfo=timezone.utc))


@pytest.fixture
def make_series():
    """Factory building a SampleSeries from labels and (timestamp, value) pairs."""

    def _make(values, **labels):
        item = {"metric": labels}
        if isinstance(values, list):
            item["values"] = [[t, str(v)] for t, v in values]
        else:
            item["value"] = [1704067200, str(values)]
        return SampleSeries.from_result(item)

    return _make
