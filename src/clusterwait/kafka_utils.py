"""
Copyright (c) 2024 Aiven Ltd
See LICENSE for details
"""

from .config import Config
from clusterwait.kafka.admin import KafkaAdminClient


def kafka_admin_from_config(config: Config) -> KafkaAdminClient:
    """Admin client connecting through `config.bootstrap_uri`.

    Creating the client does not contact the cluster, so it succeeds while the
    brokers are still starting; the readiness probes poll the client instead.
    """
    return KafkaAdminClient(bootstrap_servers=config.bootstrap_uri, **config.to_kafka_params())
