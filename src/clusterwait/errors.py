"""
clusterwait - errors

Copyright (c) 2024 Aiven Ltd
See LICENSE for details
"""

from __future__ import annotations

from collections.abc import Iterable


class ClusterNotReadyError(Exception):
    pass


class BrokerShortfallError(ClusterNotReadyError, ValueError):
    """Fewer brokers became ready than expected.

    Derives from `ValueError` because the caller asked for more brokers than the
    cluster could show, which is an invalid argument from the point of view of the
    probe.
    """

    def __init__(self, observed: int, expected: int, unresponsive: Iterable[str] = ()) -> None:
        self.observed = observed
        self.expected = expected
        self.unresponsive = frozenset(unresponsive)
        message = f"Too few broker(s) became ready ({observed}), expected {expected}."
        if self.unresponsive:
            message += f" Unresponsive: {', '.join(sorted(self.unresponsive))}."
        super().__init__(message)

    @property
    def deficit(self) -> int:
        return self.expected - self.observed


class TopicCreationError(ClusterNotReadyError):
    pass
