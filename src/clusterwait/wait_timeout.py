"""
Copyright (c) 2024 Aiven Ltd
See LICENSE for details
"""
from __future__ import annotations

from datetime import timedelta
from functools import cached_property
from isodate import duration_isoformat, parse_duration
from typing import Final

__all__ = ("WaitTimeout",)


class WaitTimeout:
    """Specifies how long to wait for the cluster to become ready.

    The value must be given in ISO8601 duration format (e.g. `PT1.5S` for 1,500
    milliseconds) or as a `timedelta`, and must be positive. Defaults to one minute.
    """

    def __init__(self, value: str | timedelta) -> None:
        duration = value if isinstance(value, timedelta) else parse_duration(value)
        # parse_duration() returns Duration objects for values that cannot be
        # represented by a datetime.timedelta.
        if not isinstance(duration, timedelta):
            raise ValueError(f"Wait timeout must be less than one year, got: {duration}")
        if duration <= timedelta(0):
            raise ValueError(f"Wait timeout must be positive, got: {duration}")
        self.__value: Final = duration

    @classmethod
    def default(cls) -> WaitTimeout:
        return cls(timedelta(minutes=1))

    @classmethod
    def of(cls, minutes: int = 0, seconds: float = 0, milliseconds: int = 0) -> WaitTimeout:
        """Convenience function to avoid importing ``timedelta``."""
        return WaitTimeout(timedelta(minutes=minutes, seconds=seconds, milliseconds=milliseconds))

    @classmethod
    def coerce(cls, value: WaitTimeout | timedelta | str) -> WaitTimeout:
        return value if isinstance(value, WaitTimeout) else cls(value)

    def __str__(self) -> str:
        """Returns the ISO8601 formatted value of this wait timeout."""
        return duration_isoformat(self.__value)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(value='{self}')"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, WaitTimeout):
            return NotImplemented
        return self.__value == other.__value

    def __hash__(self) -> int:
        return hash(self.__value)

    @property
    def duration(self) -> timedelta:
        return self.__value

    @cached_property
    def seconds(self) -> float:
        return self.__value.total_seconds()

    @cached_property
    def milliseconds(self) -> int:
        """Returns this wait timeout in milliseconds, anything smaller than a milliseconds is ignored (no rounding)."""
        return self.__value // timedelta(milliseconds=1)
