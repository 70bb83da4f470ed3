import json
from datetime import datetime, timezone
from typing import Callable

import pytest
from prometheus_client import CollectorRegistry

from ramtrend.metrics import PipelineMetrics

# 2023-11-14T22:13:20Z
BASE_TIME = 1_700_000_000


def instant(epoch: "int") -> "str":
    """
    formats epoch seconds like cAdvisor does, with nanoseconds.
    """
    dt = datetime.fromtimestamp(epoch, tz=timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S") + ".123456789Z"


@pytest.fixture()
def registry() -> "CollectorRegistry":
    """
    fresh Prometheus registry to avoid cross-test state.
    """
    return CollectorRegistry()


@pytest.fixture()
def metrics(registry: "CollectorRegistry") -> "PipelineMetrics":
    return PipelineMetrics(registry=registry)


@pytest.fixture()
def make_event() -> "Callable[..., bytes]":
    """
    builds a raw cAdvisor event payload.
    """

    def _make(
        machine: "str" = "node-1",
        container: "str" = "web",
        epoch: "int" = BASE_TIME,
        usage: "int" = 1024,
        timestamp: "str | None" = None,
    ) -> "bytes":
        event = {
            "machine_name": machine,
            "container_name": container,
            "timestamp": timestamp if timestamp is not None else instant(epoch),
            "container_stats": {"memory": {"usage": usage}},
        }
        return json.dumps(event).encode()

    return _make
