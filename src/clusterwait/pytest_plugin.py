"""
clusterwait - pytest plugin

Gates integration tests on a Kafka cluster being ready. Enable it from a
`conftest.py` with::

    pytest_plugins = "clusterwait.pytest_plugin"

and request the `kafka_cluster_ready` fixture from the tests that need the cluster.

Copyright (c) 2024 Aiven Ltd
See LICENSE for details
"""

from __future__ import annotations

from clusterwait.config import Config
from clusterwait.readiness import await_cluster_ready
from clusterwait.typing import ReadinessMode
from clusterwait.wait_timeout import WaitTimeout

import pytest

KAFKA_BOOTSTRAP_SERVERS_OPT = "--kafka-bootstrap-servers"
KAFKA_EXPECTED_BROKERS_OPT = "--kafka-expected-brokers"
KAFKA_READINESS_TIMEOUT_OPT = "--kafka-readiness-timeout"
KAFKA_READINESS_MODE_OPT = "--kafka-readiness-mode"


def split_by_comma(arg: str) -> list[str]:
    return arg.split(",")


def pytest_addoption(parser: pytest.Parser) -> None:
    group = parser.getgroup("clusterwait", "Kafka cluster readiness")
    group.addoption(
        KAFKA_BOOTSTRAP_SERVERS_OPT,
        type=split_by_comma,
        help=(
            "Kafka servers to be used for testing, format is comma separated "
            "list of <server>:<port>. Tests requiring the cluster are skipped if not given."
        ),
    )
    group.addoption(
        KAFKA_EXPECTED_BROKERS_OPT,
        type=int,
        default=1,
        help="Number of brokers the cluster must have before the tests start.",
    )
    group.addoption(
        KAFKA_READINESS_TIMEOUT_OPT,
        type=WaitTimeout,
        default=WaitTimeout.default(),
        help=WaitTimeout.__doc__,
    )
    group.addoption(
        KAFKA_READINESS_MODE_OPT,
        choices=[mode.value for mode in ReadinessMode],
        default=ReadinessMode.brokers.value,
        help="How the readiness of the brokers is determined.",
    )


@pytest.fixture(scope="session", name="kafka_cluster_config")
def fixture_kafka_cluster_config(request: pytest.FixtureRequest) -> Config:
    bootstrap_servers: list[str] | None = request.config.getoption(KAFKA_BOOTSTRAP_SERVERS_OPT)
    if not bootstrap_servers:
        pytest.skip(f"Kafka cluster not given, use {KAFKA_BOOTSTRAP_SERVERS_OPT}")

    timeout: WaitTimeout = request.config.getoption(KAFKA_READINESS_TIMEOUT_OPT)
    return Config(
        bootstrap_uri=",".join(bootstrap_servers),
        expected_broker_count=request.config.getoption(KAFKA_EXPECTED_BROKERS_OPT),
        wait_timeout=timeout.duration,
        readiness_mode=request.config.getoption(KAFKA_READINESS_MODE_OPT),
    )


@pytest.fixture(scope="session", name="kafka_cluster_ready")
def fixture_kafka_cluster_ready(kafka_cluster_config: Config) -> Config:
    await_cluster_ready(kafka_cluster_config)
    return kafka_cluster_config
