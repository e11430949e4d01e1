"""
clusterwait - configuration validation

Copyright (c) 2024 Aiven Ltd
See LICENSE for details
"""

from __future__ import annotations

from clusterwait.constants import (
    CONSISTENCY_TEST_TOPIC,
    DEFAULT_POLL_INTERVAL_S,
    DEFAULT_WAIT_TIMEOUT_S,
    DESCRIBE_CLUSTER_TIMEOUT_S,
)
from clusterwait.kafka.common import KafkaClientParams
from clusterwait.typing import ReadinessMode
from clusterwait.utils import split_bootstrap_servers
from collections.abc import Mapping
from datetime import timedelta
from pydantic_settings import BaseSettings, SettingsConfigDict

import logging

LOG = logging.getLogger(__name__)

# librdkafka style connection keys accepted next to the field names
KAFKA_CONFIG_KEYS: dict[str, str] = {
    "bootstrap.servers": "bootstrap_uri",
    "client.id": "client_id",
    "security.protocol": "security_protocol",
    "sasl.mechanism": "sasl_mechanism",
    "sasl.mechanisms": "sasl_mechanism",
    "sasl.username": "sasl_plain_username",
    "sasl.password": "sasl_plain_password",
    "ssl.ca.location": "ssl_cafile",
    "ssl.certificate.location": "ssl_certfile",
    "ssl.key.location": "ssl_keyfile",
    "ssl.crl.location": "ssl_crlfile",
    "socket.timeout.ms": "socket_timeout_ms",
    "metadata.max.age.ms": "metadata_max_age_ms",
}


class InvalidConfiguration(Exception):
    pass


class Config(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="clusterwait_", env_ignore_empty=True, env_nested_delimiter="__")

    bootstrap_uri: str = "127.0.0.1:9092"
    client_id: str = "clusterwait"
    security_protocol: str = "PLAINTEXT"
    sasl_mechanism: str | None = None
    sasl_plain_username: str | None = None
    sasl_plain_password: str | None = None
    ssl_cafile: str | None = None
    ssl_certfile: str | None = None
    ssl_keyfile: str | None = None
    ssl_crlfile: str | None = None
    socket_timeout_ms: int | None = None
    metadata_max_age_ms: int | None = None

    expected_broker_count: int = 1
    readiness_mode: ReadinessMode = ReadinessMode.brokers
    wait_timeout: timedelta = timedelta(seconds=DEFAULT_WAIT_TIMEOUT_S)
    poll_interval: timedelta = timedelta(seconds=DEFAULT_POLL_INTERVAL_S)
    metadata_request_timeout: timedelta = timedelta(seconds=DESCRIBE_CLUSTER_TIMEOUT_S)
    consistency_topic: str = CONSISTENCY_TEST_TOPIC

    log_handler: str | None = "stdout"
    log_level: str = "INFO"
    log_format: str = "%(name)-20s\t%(threadName)s\t%(levelname)-8s\t%(message)s"

    @classmethod
    def from_mapping(cls, connection_config: Mapping[str, object]) -> Config:
        """Build a config from field names or librdkafka style keys, eg. `bootstrap.servers`."""
        values: dict[str, object] = {}
        for key, value in connection_config.items():
            field_name = KAFKA_CONFIG_KEYS.get(key, key)
            if field_name not in cls.model_fields:
                LOG.debug("Ignoring unknown connection config key %r", key)
                continue
            values[field_name] = value
        config = cls(**values)
        validate_config(config)
        return config

    def bootstrap_servers(self) -> list[str]:
        return split_bootstrap_servers(self.bootstrap_uri)

    def for_bootstrap_server(self, bootstrap_server: str) -> Config:
        """Returns a copy of this config connecting through a single bootstrap server."""
        return self.model_copy(update={"bootstrap_uri": bootstrap_server})

    def to_kafka_params(self) -> KafkaClientParams:
        return KafkaClientParams(
            client_id=self.client_id,
            security_protocol=self.security_protocol,
            sasl_mechanism=self.sasl_mechanism,
            sasl_plain_username=self.sasl_plain_username,
            sasl_plain_password=self.sasl_plain_password,
            ssl_cafile=self.ssl_cafile,
            ssl_certfile=self.ssl_certfile,
            ssl_keyfile=self.ssl_keyfile,
            ssl_crlfile=self.ssl_crlfile,
            socket_timeout_ms=self.socket_timeout_ms,
            metadata_max_age_ms=self.metadata_max_age_ms,
        )


def validate_config(config: Config) -> None:
    if not config.bootstrap_servers():
        raise InvalidConfiguration("'bootstrap_uri' must contain at least one <host>:<port> address")

    if config.expected_broker_count < 1:
        raise InvalidConfiguration(f"'expected_broker_count' must be at least 1, got {config.expected_broker_count}")

    for name in ("wait_timeout", "poll_interval", "metadata_request_timeout"):
        if getattr(config, name) <= timedelta(0):
            raise InvalidConfiguration(f"'{name}' must be positive, got {getattr(config, name)}")
