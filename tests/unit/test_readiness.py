"""
Copyright (c) 2024 Aiven Ltd
See LICENSE for details
"""
from __future__ import annotations

from _pytest.logging import LogCaptureFixture
from aiokafka.errors import KafkaTimeoutError, NoBrokersAvailable
from clusterwait.config import Config, InvalidConfiguration
from clusterwait.errors import BrokerShortfallError
from clusterwait.kafka.admin import BrokerNode, ClusterDescription
from clusterwait.readiness import await_expected_broker_count_in_cluster, ProbeState
from clusterwait.utils import Timeout
from tests.utils import broker, cluster_view, FAST_POLL_INTERVAL, FakeCluster, SHORT_TIMEOUT

import logging
import pytest


def await_brokers(cluster: FakeCluster, bootstrap_uri: str, expected_broker_count: int) -> None:
    await_expected_broker_count_in_cluster(
        Config(bootstrap_uri=bootstrap_uri),
        SHORT_TIMEOUT,
        expected_broker_count,
        poll_interval=FAST_POLL_INTERVAL,
        admin_factory=cluster.admin_factory,
    )


class TestProbeState:
    def test_from_bootstrap_splits_on_comma(self) -> None:
        state = ProbeState.from_bootstrap("a:9092, b:9092,,a:9092")

        assert state.to_probe == {"a:9092", "b:9092"}
        assert state.known_ready == set()

    def test_discover_skips_known_ready_and_queued(self) -> None:
        state = ProbeState.from_bootstrap("a:9092")
        state.mark_ready("a:9092")

        new_addresses = state.discover([broker("a:9092", 0), broker("b:9092", 1), broker("b:9092", 1)])

        assert new_addresses == {"b:9092"}
        assert state.to_probe == {"b:9092"}
        assert state.discover([broker("b:9092", 1)]) == set()

    @pytest.mark.parametrize(
        "empty_node",
        [
            BrokerNode(id=-1, host="", port=-1),
            BrokerNode(id=3, host="", port=9092),
            BrokerNode(id=-1, host="c", port=9092),
            BrokerNode(id=3, host="c", port=-1),
        ],
    )
    def test_discover_ignores_empty_nodes(self, empty_node: BrokerNode) -> None:
        state = ProbeState()

        assert state.discover([empty_node]) == set()
        assert state.to_probe == set()

    def test_discover_skips_unresponsive(self) -> None:
        state = ProbeState.from_bootstrap("a:9092")
        state.mark_unresponsive("a:9092")

        assert state.discover([broker("a:9092", 0)]) == set()
        assert state.to_probe == set()
        assert state.unresponsive == {"a:9092"}

    def test_known_ready_has_no_duplicates_and_never_shrinks(self) -> None:
        state = ProbeState.from_bootstrap("a:9092,b:9092")
        sizes = []
        for address in ("a:9092", "a:9092", "b:9092"):
            state.mark_ready(address)
            state.discover([broker("a:9092", 0), broker("b:9092", 1)])
            sizes.append(len(state.known_ready))

        assert sizes == [1, 1, 2]
        assert state.known_ready == {"a:9092", "b:9092"}
        assert state.to_probe == set()

    def test_next_candidate(self) -> None:
        state = ProbeState.from_bootstrap("a:9092")
        assert state.next_candidate() == "a:9092"
        state.mark_ready("a:9092")
        assert state.next_candidate() is None


class TestAwaitExpectedBrokerCountInCluster:
    def test_discovers_and_probes_peers(self) -> None:
        full_view = cluster_view("a:9092", "b:9092", "c:9092")
        cluster = FakeCluster({"a:9092": [full_view], "b:9092": [full_view], "c:9092": [full_view]})

        await_brokers(cluster, "a:9092,b:9092", expected_broker_count=3)

        assert sorted(cluster.probed_addresses) == ["a:9092", "b:9092", "c:9092"]
        assert all(admin.closed for admin in cluster.admins)

    def test_single_bootstrap_server_finds_whole_cluster(self) -> None:
        full_view = cluster_view("a:9092", "b:9092", "c:9092")
        cluster = FakeCluster({"a:9092": [full_view], "b:9092": [full_view], "c:9092": [full_view]})

        await_brokers(cluster, "a:9092", expected_broker_count=3)

        assert cluster.probed_addresses[0] == "a:9092"
        assert sorted(cluster.probed_addresses) == ["a:9092", "b:9092", "c:9092"]

    def test_expected_count_below_cluster_size(self) -> None:
        full_view = cluster_view("a:9092", "b:9092", "c:9092")
        cluster = FakeCluster({"a:9092": [full_view], "b:9092": [full_view], "c:9092": [full_view]})

        await_brokers(cluster, "a:9092", expected_broker_count=2)

        assert len(cluster.probed_addresses) == 2

    def test_waits_for_cluster_to_form(self) -> None:
        full_view = cluster_view("a:9092", "b:9092")
        cluster = FakeCluster(
            {
                "a:9092": [cluster_view("a:9092"), cluster_view("a:9092"), full_view],
                "b:9092": [full_view],
            }
        )

        await_brokers(cluster, "a:9092", expected_broker_count=2)

        assert cluster.admins[0].describe_calls == 3
        assert cluster.probed_addresses == ["a:9092", "b:9092"]

    def test_too_few_brokers_fails_after_exhausting_addresses(self) -> None:
        cluster = FakeCluster({"a:9092": [cluster_view("a:9092")]})

        with pytest.raises(BrokerShortfallError, match=r"^Too few broker\(s\) became ready \(0\), expected 5\.") as exc_info:
            await_brokers(cluster, "a:9092", expected_broker_count=5)

        error = exc_info.value
        assert isinstance(error, ValueError)
        assert (error.observed, error.expected, error.deficit) == (0, 5, 5)
        assert error.unresponsive == {"a:9092"}
        assert isinstance(error.__cause__, Timeout)
        assert cluster.admins[0].closed

    def test_unreachable_bootstrap_server_is_skipped(self) -> None:
        cluster = FakeCluster({"a:9092": [cluster_view("a:9092")]})

        await_brokers(cluster, "unreachable:9092,a:9092", expected_broker_count=1)

        assert "a:9092" in cluster.probed_addresses

    def test_transient_errors_are_retried(self, caplog: LogCaptureFixture) -> None:
        cluster = FakeCluster(
            {
                "a:9092": [
                    KafkaTimeoutError(),
                    NoBrokersAvailable(),
                    RuntimeError("connection reset"),
                    cluster_view("a:9092"),
                ],
            }
        )

        with caplog.at_level(logging.WARNING, logger="clusterwait.readiness"):
            await_brokers(cluster, "a:9092", expected_broker_count=1)

        assert cluster.admins[0].describe_calls == 4
        messages = [record.getMessage() for record in caplog.records]
        assert "Kafka timed out describing the cluster via a:9092" in messages

    def test_unknown_controller_counts_as_failed_attempt(self) -> None:
        cluster = FakeCluster(
            {
                "a:9092": [
                    cluster_view("a:9092", "b:9092", controller_id=None),
                    cluster_view("a:9092"),
                ],
            }
        )

        await_brokers(cluster, "a:9092", expected_broker_count=1)

        assert cluster.probed_addresses == ["a:9092"], "Peers seen without a controller are not probed"

    def test_empty_nodes_are_neither_probed_nor_counted(self) -> None:
        view = ClusterDescription(
            controller_id=0,
            nodes=(broker("a:9092", 0), BrokerNode(id=-1, host="", port=-1), broker("b:9092", 1)),
        )
        cluster = FakeCluster({"a:9092": [view], "b:9092": [view]})

        await_brokers(cluster, "a:9092", expected_broker_count=2)

        assert sorted(cluster.probed_addresses) == ["a:9092", "b:9092"]

    def test_accepts_connection_config_mapping(self) -> None:
        cluster = FakeCluster({"a:9092": [cluster_view("a:9092")]})

        await_expected_broker_count_in_cluster(
            {"bootstrap.servers": "a:9092", "client.id": "test"},
            "PT0.1S",
            1,
            poll_interval=FAST_POLL_INTERVAL,
            admin_factory=cluster.admin_factory,
        )

        assert cluster.probed_addresses == ["a:9092"]

    def test_connection_config_requires_bootstrap_servers(self) -> None:
        with pytest.raises(InvalidConfiguration):
            await_expected_broker_count_in_cluster({"bootstrap.servers": " , "}, SHORT_TIMEOUT, 1)

    def test_expected_broker_count_must_be_positive(self) -> None:
        with pytest.raises(ValueError, match="Expected broker count must be at least 1, got 0"):
            await_expected_broker_count_in_cluster(Config(bootstrap_uri="a:9092"), SHORT_TIMEOUT, 0)
