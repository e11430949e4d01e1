"""
clusterwait - utils

Copyright (c) 2024 Aiven Ltd
See LICENSE for details
"""
from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import TypeVar

import logging
import time

LOG = logging.getLogger(__name__)

T = TypeVar("T")


class Timeout(Exception):
    pass


@dataclass(frozen=True)
class Expiration:
    start_time: float
    deadline: float

    @classmethod
    def from_timeout(cls, timeout: float) -> Expiration:
        start_time = time.monotonic()
        deadline = start_time + timeout
        return cls(start_time, deadline)

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self.start_time

    @property
    def remaining(self) -> float:
        return max(0.0, self.deadline - time.monotonic())

    def is_expired(self) -> bool:
        return time.monotonic() > self.deadline

    def raise_timeout_if_expired(self, msg_format: str, *args: object, **kwargs: object) -> None:
        """Raise `Timeout` if this object is expired.

        Note:
            This method is supposed to be used in a loop, e.g.:

                expiration = Expiration.from_timeout(timeout=60)
                while is_data_ready(data):
                    expiration.raise_timeout_if_expired("something about", data)
                    data = gather_data()

            The exception message should be meaningful, so it may format data
            into the message itself. However formatting is expensive and should
            be done only when the deadline is expired, so this uses a similar
            interface to `logging.<level>()`.
        """
        if self.is_expired():
            raise Timeout(msg_format.format(*args, **kwargs))


def wait_until(
    attempt: Callable[[], T],
    predicate: Callable[[T], bool] = bool,
    *,
    timeout: float,
    poll_interval: float,
    poll_delay: float = 0.0,
    ignored_exceptions: tuple[type[Exception], ...] = (Exception,),
    description: str = "condition",
) -> T:
    """Call `attempt` until its result satisfies `predicate` or `timeout` seconds pass.

    The first attempt happens after `poll_delay` seconds, following attempts every
    `poll_interval` seconds. Exceptions listed in `ignored_exceptions` count as a
    failed attempt, anything else propagates. Raises `Timeout` once the deadline is
    crossed without a successful attempt; the attempt that straddles the deadline is
    still evaluated.
    """
    expiration = Expiration.from_timeout(timeout=timeout)
    if poll_delay > 0:
        time.sleep(poll_delay)

    attempts = 0
    while True:
        attempts += 1
        try:
            result = attempt()
        except ignored_exceptions as exc:
            LOG.debug("Attempt %d waiting for %s failed: %r", attempts, description, exc)
        else:
            if predicate(result):
                return result

        expiration.raise_timeout_if_expired(
            "Gave up waiting for {description} after {attempts} attempt(s) in {elapsed:.1f}s",
            description=description,
            attempts=attempts,
            elapsed=expiration.elapsed,
        )
        time.sleep(min(poll_interval, expiration.remaining))


def split_bootstrap_servers(bootstrap_servers: Iterable[str] | str) -> list[str]:
    """Split a comma separated `host:port` list, dropping blanks and duplicates."""
    if isinstance(bootstrap_servers, str):
        bootstrap_servers = bootstrap_servers.split(",")
    servers: list[str] = []
    for server in bootstrap_servers:
        server = server.strip()
        if server and server not in servers:
            servers.append(server)
    return servers
