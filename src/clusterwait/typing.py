"""
Copyright (c) 2024 Aiven Ltd
See LICENSE for details
"""

from __future__ import annotations

from enum import Enum, unique
from typing import NewType

# `host:port`, IPv6 hosts in brackets
Endpoint = NewType("Endpoint", str)
BrokerId = NewType("BrokerId", int)


class StrEnum(str, Enum):
    def __str__(self) -> str:
        return str(self.value)


@unique
class ReadinessMode(StrEnum, Enum):
    brokers = "brokers"
    topic = "topic"
