"""
clusterwait - constants

Copyright (c) 2024 Aiven Ltd
See LICENSE for details
"""
from typing import Final

CONSISTENCY_TEST_TOPIC: Final = "__clusterwait_consistency_test"
CONSISTENCY_TEST_NUM_PARTITIONS: Final = 1

DEFAULT_POLL_INTERVAL_S: Final = 0.5
DEFAULT_WAIT_TIMEOUT_S: Final = 60.0
DESCRIBE_CLUSTER_TIMEOUT_S: Final = 10.0
DESCRIBE_TOPIC_TIMEOUT_S: Final = 1.0
TOPIC_CREATION_TIMEOUT_S: Final = 20.0
MIN_REQUEST_TIMEOUT_S: Final = 0.1
