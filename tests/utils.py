"""
Copyright (c) 2024 Aiven Ltd
See LICENSE for details
"""
from __future__ import annotations

from aiokafka.errors import KafkaTimeoutError, KafkaUnavailableError, UnknownTopicOrPartitionError
from clusterwait.config import Config
from clusterwait.kafka.admin import BrokerNode, ClusterDescription
from clusterwait.typing import BrokerId
from clusterwait.wait_timeout import WaitTimeout
from collections.abc import Sequence
from typing import Union

import time

ClusterResponse = Union[ClusterDescription, Exception]
ReplicaResponse = Union[set[int], Exception]

SHORT_TIMEOUT = WaitTimeout.of(milliseconds=100)
FAST_POLL_INTERVAL = 0.005


def broker(address: str, broker_id: int) -> BrokerNode:
    host, _, port = address.rpartition(":")
    return BrokerNode(id=BrokerId(broker_id), host=host, port=int(port))


def cluster_view(*addresses: str, controller_id: int | None = 0) -> ClusterDescription:
    return ClusterDescription(
        controller_id=controller_id,
        nodes=tuple(broker(address, broker_id) for broker_id, address in enumerate(addresses)),
        cluster_id="test-cluster",
    )


class FakeAdminClient:
    def __init__(self, cluster: FakeCluster, bootstrap_uri: str) -> None:
        self.cluster = cluster
        self.bootstrap_uri = bootstrap_uri
        self.describe_calls = 0
        self.closed = False

    def describe_cluster_state(self, timeout: float = 10.0) -> ClusterDescription:
        assert not self.closed, "Admin client used after close"
        self.describe_calls += 1
        responses = self.cluster.views.get(self.bootstrap_uri)
        if not responses:
            raise KafkaUnavailableError()
        response = responses.pop(0) if len(responses) > 1 else responses[0]
        if isinstance(response, Exception):
            raise response
        return response

    def new_topic(
        self,
        name: str,
        *,
        num_partitions: int = 1,
        replication_factor: int = 1,
        request_timeout: float = 20.0,
    ) -> object:
        assert not self.closed, "Admin client used after close"
        self.cluster.create_calls.append((name, num_partitions, replication_factor))
        self.cluster.create_request_timeouts.append(request_timeout)
        if self.cluster.create_delay > 0:
            # A real client gives up on the request after `request_timeout`
            time.sleep(min(self.cluster.create_delay, request_timeout))
            if self.cluster.create_delay > request_timeout:
                raise KafkaTimeoutError()
        if self.cluster.create_errors:
            raise self.cluster.create_errors.pop(0)
        self.cluster.topics.add(name)
        return name

    def describe_topic_replicas(self, name: str, timeout: float = 1.0) -> set[int]:
        assert not self.closed, "Admin client used after close"
        if not self.cluster.replica_reports:
            raise UnknownTopicOrPartitionError()
        reports = self.cluster.replica_reports
        report = reports.pop(0) if len(reports) > 1 else reports[0]
        if isinstance(report, Exception):
            raise report
        return set(report)

    def delete_topic(self, name: str) -> None:
        self.cluster.deleted_topics.append(name)
        if self.cluster.delete_error is not None:
            raise self.cluster.delete_error
        self.cluster.topics.discard(name)

    def close(self) -> None:
        self.closed = True


class FakeCluster:
    """In-memory stand-in for a cluster, reached through `admin_factory`.

    `views` maps a bootstrap address to the responses its admin client returns, in
    order; the last response repeats. Addresses missing from `views` are unreachable.
    """

    def __init__(self, views: dict[str, Sequence[ClusterResponse]] | None = None) -> None:
        self.views: dict[str, list[ClusterResponse]] = {address: list(responses) for address, responses in (views or {}).items()}
        self.admins: list[FakeAdminClient] = []
        self.create_calls: list[tuple[str, int, int]] = []
        self.create_errors: list[Exception] = []
        self.create_delay = 0.0
        self.create_request_timeouts: list[float] = []
        self.replica_reports: list[ReplicaResponse] = []
        self.topics: set[str] = set()
        self.deleted_topics: list[str] = []
        self.delete_error: Exception | None = None

    def admin_factory(self, config: Config) -> FakeAdminClient:
        admin = FakeAdminClient(self, config.bootstrap_uri)
        self.admins.append(admin)
        return admin

    @property
    def probed_addresses(self) -> list[str]:
        return [admin.bootstrap_uri for admin in self.admins]
