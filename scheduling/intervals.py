"""
Half-open time intervals.

An interval is ``[start, end)``: it contains ``start`` and stops just before
``end``. Two intervals overlap when ``a.start < b.end and b.start < a.end``,
so an appointment ending at 10:30 does not collide with one starting at 10:30.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta

from .exceptions import ValidationError


@dataclass(frozen=True)
class Interval:
    start: datetime
    end: datetime

    def __post_init__(self):
        if self.start is None or self.end is None:
            raise ValidationError("Interval start and end are required.", code="invalid_interval")
        if self.end <= self.start:
            raise ValidationError("Interval end must be after its start.", code="invalid_interval")

    @classmethod
    def from_duration(cls, start: datetime, minutes: int) -> "Interval":
        if minutes is None or minutes <= 0:
            raise ValidationError("Duration must be a positive number of minutes.", code="invalid_duration")
        return cls(start, start + timedelta(minutes=minutes))

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    @property
    def duration_minutes(self) -> int:
        return int(self.duration.total_seconds() // 60)

    def overlaps(self, other: "Interval") -> bool:
        return overlaps(self, other)

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment < self.end

    def __str__(self):
        return f"[{self.start.isoformat()}, {self.end.isoformat()})"


@dataclass(frozen=True)
class Block:
    """A period the provider cannot be booked for reasons other than appointments."""

    interval: Interval
    reason: str = "Unavailable"


def overlaps(a: Interval, b: Interval) -> bool:
    return a.start < b.end and b.start < a.end


def adjacent(a: Interval, b: Interval) -> bool:
    """True when one interval ends exactly where the other begins."""
    return a.end == b.start or b.end == a.start


def interval_of(appointment) -> Interval:
    """Interval occupied by an appointment-like object (scheduled_at, end_time)."""
    return Interval(appointment.scheduled_at, appointment.end_time)
