from __future__ import annotations

from datetime import datetime, time
from typing import Optional

from models.base import Money, TimestampedModel

DEFAULT_WINDOW_START = "07:45"
DEFAULT_WINDOW_END = "17:45"


def _parse_clock(value: str) -> time:
    hours, minutes = value.split(":")[:2]
    return time(int(hours), int(minutes))


def within_window(moment: datetime, window_start: Optional[str], window_end: Optional[str]) -> bool:
    """Checks the wall-clock part of a datetime against an inclusive HH:MM window."""
    start = _parse_clock(window_start or DEFAULT_WINDOW_START)
    end = _parse_clock(window_end or DEFAULT_WINDOW_END)
    clock = moment.time().replace(second=0, microsecond=0)
    return start <= clock <= end


class Vehicle(TimestampedModel):
    """
    The parts of a listed vehicle the rental core depends on: ownership,
    price per day, visibility and the daily pickup/return windows.
    """
    id: int
    user_id: int
    title: Optional[str] = None
    price: Money
    is_hidden: bool = False
    time_pickup_start: Optional[str] = None
    time_pickup_end: Optional[str] = None
    time_return_start: Optional[str] = None
    time_return_end: Optional[str] = None

    @property
    def owner_id(self) -> int:
        return self.user_id

    def allows_pickup_at(self, moment: datetime) -> bool:
        return within_window(moment, self.time_pickup_start, self.time_pickup_end)

    def allows_return_at(self, moment: datetime) -> bool:
        return within_window(moment, self.time_return_start, self.time_return_end)
