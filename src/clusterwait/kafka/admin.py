"""
Copyright (c) 2024 Aiven Ltd
See LICENSE for details
"""

from __future__ import annotations

from clusterwait.constants import DESCRIBE_CLUSTER_TIMEOUT_S, DESCRIBE_TOPIC_TIMEOUT_S, TOPIC_CREATION_TIMEOUT_S
from clusterwait.kafka.common import (
    _KafkaConfigMixin,
    future_result,
    KafkaClientParams,
    raise_from_kafkaexception,
    single_futmap_result,
)
from clusterwait.typing import BrokerId, Endpoint
from collections.abc import Iterable, Sequence
from concurrent.futures import Future
from confluent_kafka import TopicCollection
from confluent_kafka.admin import AdminClient, NewTopic
from confluent_kafka.error import KafkaException
from dataclasses import dataclass, field
from typing import Any
from typing_extensions import Unpack

__all__ = (
    "BrokerNode",
    "ClusterDescription",
    "KafkaAdminClient",
    "NewTopic",
)


@dataclass(frozen=True)
class BrokerNode:
    id: BrokerId
    host: str
    port: int
    rack: str | None = None

    @classmethod
    def from_node(cls, node: Any) -> BrokerNode:
        """Convert a `confluent_kafka.Node`, which may be missing fields while the cluster forms."""
        return cls(
            id=BrokerId(node.id if node.id is not None else -1),
            host=node.host or "",
            port=node.port if node.port is not None else -1,
            rack=node.rack,
        )

    @property
    def is_empty(self) -> bool:
        return self.id < 0 or not self.host or self.port < 0

    @property
    def address(self) -> Endpoint:
        if ":" in self.host:
            return Endpoint(f"[{self.host}]:{self.port}")
        return Endpoint(f"{self.host}:{self.port}")


@dataclass(frozen=True)
class ClusterDescription:
    controller_id: int | None
    nodes: Sequence[BrokerNode] = field(default_factory=tuple)
    cluster_id: str | None = None

    @property
    def live_nodes(self) -> list[BrokerNode]:
        return [node for node in self.nodes if not node.is_empty]


class KafkaAdminClient(_KafkaConfigMixin, AdminClient):
    def __init__(
        self,
        bootstrap_servers: Iterable[str] | str,
        **params: Unpack[KafkaClientParams],
    ) -> None:
        super().__init__(bootstrap_servers, **params)

    def describe_cluster_state(self, timeout: float = DESCRIBE_CLUSTER_TIMEOUT_S) -> ClusterDescription:
        """Fetch the controller and the broker list as seen by the bootstrap server.

        A controller node with a negative id means the broker does not know the
        controller yet, which is reported as `controller_id=None`.
        """
        self.log.debug("Describing cluster")
        future: Future = self.describe_cluster(request_timeout=timeout)
        try:
            result = future_result(future, timeout=timeout)
        except KafkaException as exc:
            raise_from_kafkaexception(exc)

        controller = result.controller
        controller_id = controller.id if controller is not None and controller.id >= 0 else None
        return ClusterDescription(
            controller_id=controller_id,
            nodes=tuple(BrokerNode.from_node(node) for node in result.nodes),
            cluster_id=result.cluster_id,
        )

    def new_topic(
        self,
        name: str,
        *,
        num_partitions: int = 1,
        replication_factor: int = 1,
        config: dict[str, str] | None = None,
        request_timeout: float = TOPIC_CREATION_TIMEOUT_S,
    ) -> NewTopic:
        new_topic = NewTopic(
            topic=name,
            num_partitions=num_partitions,
            replication_factor=replication_factor,
            config=config if config is not None else {},
        )
        self.log.info("Creating new topic %s with replication factor %s", new_topic, replication_factor)
        futmap: dict[str, Future] = self.create_topics([new_topic], request_timeout=request_timeout)
        try:
            single_futmap_result(futmap, timeout=request_timeout)
            return new_topic
        except KafkaException as exc:
            raise_from_kafkaexception(exc)

    def describe_topic_replicas(self, name: str, timeout: float = DESCRIBE_TOPIC_TIMEOUT_S) -> set[BrokerId]:
        """Returns the distinct broker ids holding a replica of any partition of the topic."""
        self.log.debug("Describing topic '%s'", name)
        futmap: dict[str, Future] = self.describe_topics(TopicCollection([name]), request_timeout=timeout)
        try:
            description = single_futmap_result(futmap, timeout=timeout)
        except KafkaException as exc:
            raise_from_kafkaexception(exc)

        return {
            BrokerId(replica.id)
            for partition in description.partitions
            for replica in partition.replicas
            if replica is not None and replica.id is not None and replica.id >= 0
        }

    def delete_topic(self, name: str) -> None:
        self.log.info("Deleting topic '%s'", name)
        futmap = self.delete_topics([name])
        try:
            single_futmap_result(futmap)
        except KafkaException as exc:
            raise_from_kafkaexception(exc)

    def close(self) -> None:
        """Serve outstanding callbacks so errors reported by librdkafka get logged.

        `AdminClient` has no explicit close; the native handle is destroyed when the
        last reference to the client goes away.
        """
        self._activate_callbacks()
        if self._errors:
            self.log.debug("Closing admin client with errors: %s", self._errors)
        self._errors.clear()
