"""
clusterwait - cluster readiness probes

Block until a Kafka cluster that is still forming shows the expected number of
brokers. Two probes are available:

* `await_expected_broker_count_in_cluster` connects to every broker it can find,
  starting from the bootstrap servers and following the peers each broker reports,
  until the expected number of brokers each report a cluster at least that big.
* `await_expected_broker_count_in_cluster_via_topic` creates a topic replicated to
  every expected broker and waits until the replicas are assigned.

Copyright (c) 2024 Aiven Ltd
See LICENSE for details
"""

from __future__ import annotations

from aiokafka.errors import (
    InvalidReplicationFactorError,
    KafkaError,
    KafkaTimeoutError,
    KafkaUnavailableError,
    NoBrokersAvailable,
    TopicAlreadyExistsError,
    UnknownTopicOrPartitionError,
)
from clusterwait.config import Config, validate_config
from clusterwait.constants import (
    CONSISTENCY_TEST_NUM_PARTITIONS,
    CONSISTENCY_TEST_TOPIC,
    DEFAULT_POLL_INTERVAL_S,
    DESCRIBE_CLUSTER_TIMEOUT_S,
    DESCRIBE_TOPIC_TIMEOUT_S,
    MIN_REQUEST_TIMEOUT_S,
    TOPIC_CREATION_TIMEOUT_S,
)
from clusterwait.errors import BrokerShortfallError, ClusterNotReadyError, TopicCreationError
from clusterwait.kafka.admin import BrokerNode, ClusterDescription
from clusterwait.kafka_utils import kafka_admin_from_config
from clusterwait.typing import BrokerId, Endpoint, ReadinessMode
from clusterwait.utils import Expiration, split_bootstrap_servers, Timeout, wait_until
from clusterwait.wait_timeout import WaitTimeout
from collections.abc import Callable, Iterable, Mapping
from contextlib import closing
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Protocol, Union

import functools
import logging

LOG = logging.getLogger(__name__)

# Errors a forming cluster reports while not enough brokers have registered yet.
# `KafkaTimeoutError` is not flagged retriable by aiokafka.
TRANSIENT_TOPIC_CREATION_ERRORS = (
    InvalidReplicationFactorError,
    KafkaTimeoutError,
    KafkaUnavailableError,
    NoBrokersAvailable,
)

TimeoutValue = Union[WaitTimeout, timedelta, str]


class ClusterAdmin(Protocol):
    def describe_cluster_state(self, timeout: float = ...) -> ClusterDescription:
        ...

    def new_topic(
        self,
        name: str,
        *,
        num_partitions: int = ...,
        replication_factor: int = ...,
        request_timeout: float = ...,
    ) -> object:
        ...

    def describe_topic_replicas(self, name: str, timeout: float = ...) -> set[BrokerId]:
        ...

    def delete_topic(self, name: str) -> None:
        ...

    def close(self) -> None:
        ...


AdminFactory = Callable[[Config], ClusterAdmin]


@dataclass
class ProbeState:
    """Bookkeeping of the endpoint expansion probe.

    `known_ready` only ever grows. An address is in at most one of the three sets.
    """

    to_probe: set[Endpoint] = field(default_factory=set)
    known_ready: set[Endpoint] = field(default_factory=set)
    unresponsive: set[Endpoint] = field(default_factory=set)

    @classmethod
    def from_bootstrap(cls, bootstrap_servers: Iterable[str] | str) -> ProbeState:
        return cls(to_probe={Endpoint(server) for server in split_bootstrap_servers(bootstrap_servers)})

    def next_candidate(self) -> Endpoint | None:
        return next(iter(self.to_probe), None)

    def discover(self, nodes: Iterable[BrokerNode]) -> set[Endpoint]:
        """Queue the addresses of the given nodes for probing, returns the newly queued ones.

        Empty nodes and addresses already probed are skipped.
        """
        addresses = {node.address for node in nodes if not node.is_empty}
        new_addresses = addresses - self.known_ready - self.unresponsive - self.to_probe
        self.to_probe.update(new_addresses)
        return new_addresses

    def mark_ready(self, address: Endpoint) -> None:
        self.to_probe.discard(address)
        self.known_ready.add(address)

    def mark_unresponsive(self, address: Endpoint) -> None:
        self.to_probe.discard(address)
        self.unresponsive.add(address)


def _as_config(connection_config: Config | Mapping[str, object]) -> Config:
    if isinstance(connection_config, Config):
        validate_config(connection_config)
        return connection_config
    return Config.from_mapping(connection_config)


def _check_expected_broker_count(expected_broker_count: int) -> None:
    if expected_broker_count < 1:
        raise ValueError(f"Expected broker count must be at least 1, got {expected_broker_count}")


def _bounded_request_timeout(request_timeout: float, expiration: Expiration) -> float:
    """A single Kafka request must not outlive the wait it is part of."""
    return max(min(request_timeout, expiration.remaining), MIN_REQUEST_TIMEOUT_S)


def _describe_peers(
    admin: ClusterAdmin,
    address: Endpoint,
    state: ProbeState,
    request_timeout: float,
    expiration: Expiration,
) -> list[BrokerNode]:
    LOG.debug("Describing cluster using address: %s", address)
    try:
        description = admin.describe_cluster_state(timeout=_bounded_request_timeout(request_timeout, expiration))
    except KafkaTimeoutError:
        LOG.warning("Kafka timed out describing the cluster via %s", address)
        return []
    except KafkaError as exc:
        LOG.warning("Describing the cluster via %s failed: %r", address, exc)
        return []

    if description.controller_id is None:
        LOG.debug("%s does not know the controller yet", address)
        return []

    nodes = description.live_nodes
    LOG.debug("%s sees peers: %s", address, [node.address for node in nodes])
    discovered = state.discover(nodes)
    if discovered:
        LOG.info("Discovered broker(s) %s via %s", sorted(discovered), address)
    LOG.debug("To probe: %s, known ready: %s", sorted(state.to_probe), sorted(state.known_ready))
    return nodes


def await_expected_broker_count_in_cluster(
    connection_config: Config | Mapping[str, object],
    timeout: TimeoutValue,
    expected_broker_count: int,
    *,
    poll_interval: float = DEFAULT_POLL_INTERVAL_S,
    request_timeout: float = DESCRIBE_CLUSTER_TIMEOUT_S,
    admin_factory: AdminFactory = kafka_admin_from_config,
) -> None:
    """Wait until `expected_broker_count` brokers each report a cluster at least that big.

    Every address is probed through its own admin client. While a broker is polled,
    the peers it reports are queued for probing as well, so a single bootstrap
    server is enough to find the whole cluster. `timeout` bounds the wait for each
    broker; a broker that does not report enough peers in time is given up on.

    Raises `BrokerShortfallError` when every known address was probed and fewer
    than `expected_broker_count` of them became ready.
    """
    config = _as_config(connection_config)
    wait_timeout = WaitTimeout.coerce(timeout)
    _check_expected_broker_count(expected_broker_count)

    state = ProbeState.from_bootstrap(config.bootstrap_uri)
    last_timeout: Timeout | None = None
    while len(state.known_ready) < expected_broker_count:
        address = state.next_candidate()
        if address is None:
            raise BrokerShortfallError(
                observed=len(state.known_ready),
                expected=expected_broker_count,
                unresponsive=state.unresponsive,
            ) from last_timeout

        expiration = Expiration.from_timeout(timeout=wait_timeout.seconds)
        with closing(admin_factory(config.for_bootstrap_server(address))) as admin:
            try:
                wait_until(
                    functools.partial(_describe_peers, admin, address, state, request_timeout, expiration),
                    lambda nodes: len(nodes) >= expected_broker_count,
                    timeout=expiration.remaining,
                    poll_interval=poll_interval,
                    description=f"{address} to report at least {expected_broker_count} broker(s)",
                )
            except Timeout as exc:
                LOG.warning("Giving up on %s: %s", address, exc)
                state.mark_unresponsive(address)
                last_timeout = exc
                continue

        state.mark_ready(address)
        LOG.info("%s is ready, %d of %d broker(s) ready", address, len(state.known_ready), expected_broker_count)


def _reuse_or_drop_existing_topic(
    admin: ClusterAdmin,
    topic_name: str,
    replication_factor: int,
    expiration: Expiration,
) -> bool:
    """Check a topic left behind by an earlier run, returns True if it can be reused.

    A topic replicated to a different number of brokers can never satisfy the check,
    so it is deleted and creation is retried.
    """
    try:
        replica_ids = admin.describe_topic_replicas(
            topic_name,
            timeout=_bounded_request_timeout(DESCRIBE_TOPIC_TIMEOUT_S, expiration),
        )
    except UnknownTopicOrPartitionError:
        LOG.debug("Topic %s is being deleted", topic_name)
        return False
    except KafkaError as exc:
        LOG.warning("Unexpected failure describing existing topic: %s due to %r", topic_name, exc)
        return False

    if len(replica_ids) == replication_factor:
        LOG.debug("Topic %s already exists, reusing it", topic_name)
        return True

    LOG.warning(
        "Topic %s already exists with replicas on broker(s) %s, expected %d, recreating it",
        topic_name,
        sorted(replica_ids),
        replication_factor,
    )
    try:
        admin.delete_topic(topic_name)
    except KafkaError as exc:
        LOG.warning("Failed to delete topic %s: %r", topic_name, exc)
    return False


def _create_consistency_topic(
    admin: ClusterAdmin,
    topic_name: str,
    replication_factor: int,
    *,
    expiration: Expiration,
    poll_interval: float,
) -> None:
    def attempt() -> bool:
        try:
            admin.new_topic(
                topic_name,
                num_partitions=CONSISTENCY_TEST_NUM_PARTITIONS,
                replication_factor=replication_factor,
                request_timeout=_bounded_request_timeout(TOPIC_CREATION_TIMEOUT_S, expiration),
            )
        except TopicAlreadyExistsError:
            return _reuse_or_drop_existing_topic(admin, topic_name, replication_factor, expiration)
        except KafkaError as exc:
            LOG.warning("Failed to create topic: %s due to %r", topic_name, exc)
            if exc.retriable or isinstance(exc, TRANSIENT_TOPIC_CREATION_ERRORS):
                return False
            raise TopicCreationError(f"Failed to create topic: {topic_name} due to {exc!r}") from exc
        return True

    try:
        wait_until(
            attempt,
            timeout=expiration.remaining,
            poll_interval=poll_interval,
            ignored_exceptions=(),
            description=f"topic {topic_name} to be created",
        )
    except Timeout as exc:
        raise ClusterNotReadyError(
            f"Could not create topic {topic_name} with replication factor {replication_factor}: {exc}"
        ) from exc


def await_expected_broker_count_in_cluster_via_topic(
    connection_config: Config | Mapping[str, object],
    timeout: TimeoutValue,
    expected_broker_count: int,
    *,
    topic_name: str = CONSISTENCY_TEST_TOPIC,
    poll_interval: float = DEFAULT_POLL_INTERVAL_S,
    request_timeout: float = DESCRIBE_TOPIC_TIMEOUT_S,
    admin_factory: AdminFactory = kafka_admin_from_config,
) -> None:
    """Wait until a topic replicated to `expected_broker_count` brokers has all its replicas.

    The topic is created with a single partition and a replication factor equal to
    the expected broker count, and deleted again once the replicas span that many
    distinct brokers. `timeout` bounds the whole call, Kafka requests included.
    """
    config = _as_config(connection_config)
    wait_timeout = WaitTimeout.coerce(timeout)
    _check_expected_broker_count(expected_broker_count)
    expiration = Expiration.from_timeout(timeout=wait_timeout.seconds)

    with closing(admin_factory(config)) as admin:
        LOG.debug("Creating topic: %s via %s", topic_name, config.bootstrap_uri)
        _create_consistency_topic(
            admin,
            topic_name,
            expected_broker_count,
            expiration=expiration,
            poll_interval=poll_interval,
        )

        LOG.debug("Waiting for %s to be replicated to %d brokers", topic_name, expected_broker_count)
        last_seen: set[BrokerId] = set()

        def describe_replicas() -> set[BrokerId]:
            nonlocal last_seen
            try:
                last_seen = admin.describe_topic_replicas(
                    topic_name,
                    timeout=_bounded_request_timeout(request_timeout, expiration),
                )
            except UnknownTopicOrPartitionError:
                LOG.debug("Cluster quorum test topic (%s) doesn't exist yet", topic_name)
                last_seen = set()
            except KafkaError as exc:
                LOG.warning("Unexpected failure describing topic: %s due to %r", topic_name, exc)
                last_seen = set()
            else:
                LOG.debug("Replicas of %s are on broker(s) %s", topic_name, sorted(last_seen))
            return last_seen

        try:
            wait_until(
                describe_replicas,
                lambda replica_ids: len(replica_ids) == expected_broker_count,
                timeout=expiration.remaining,
                poll_interval=poll_interval,
                description=f"{topic_name} to be replicated to {expected_broker_count} broker(s)",
            )
        except Timeout as exc:
            raise BrokerShortfallError(observed=len(last_seen), expected=expected_broker_count) from exc

        try:
            admin.delete_topic(topic_name)
        except KafkaError as exc:
            LOG.warning("Failed to delete topic %s: %r", topic_name, exc)


def await_cluster_ready(config: Config, *, admin_factory: AdminFactory = kafka_admin_from_config) -> None:
    """Run the probe selected by `config.readiness_mode` with the configured limits."""
    timeout = WaitTimeout(config.wait_timeout)
    poll_interval = config.poll_interval.total_seconds()
    request_timeout = config.metadata_request_timeout.total_seconds()
    LOG.info(
        "Waiting up to %s for %d broker(s) at %s (%s)",
        timeout,
        config.expected_broker_count,
        config.bootstrap_uri,
        config.readiness_mode,
    )
    if config.readiness_mode == ReadinessMode.topic:
        await_expected_broker_count_in_cluster_via_topic(
            config,
            timeout,
            config.expected_broker_count,
            topic_name=config.consistency_topic,
            poll_interval=poll_interval,
            request_timeout=request_timeout,
            admin_factory=admin_factory,
        )
    else:
        await_expected_broker_count_in_cluster(
            config,
            timeout,
            config.expected_broker_count,
            poll_interval=poll_interval,
            request_timeout=request_timeout,
            admin_factory=admin_factory,
        )
