"""
Recurrence expansion.

A pattern repeats the base appointment every ``interval`` days, weeks or
months. Each occurrence is computed from the base start (not from the
previous occurrence) so monthly series anchored on the 31st land on the
last day of shorter months and come back to the 31st afterwards.

Termination:
    until - last local date an occurrence may fall on (inclusive)
    count - total occurrences in the series, the base included

Expansion only produces candidate intervals. Booking them, and deciding what
to do when one conflicts, is the booking coordinator's job.
"""

from dataclasses import dataclass
from datetime import date, timedelta
from typing import List, Optional

from dateutil.relativedelta import relativedelta

from .constants import Frequency
from .exceptions import ValidationError
from .intervals import Interval


@dataclass(frozen=True)
class RecurrencePattern:
    frequency: str
    interval: int = 1
    until: Optional[date] = None
    count: Optional[int] = None

    def __post_init__(self):
        try:
            object.__setattr__(self, "frequency", Frequency(str(self.frequency).upper()))
        except ValueError:
            raise ValidationError(
                f"Unknown recurrence frequency '{self.frequency}'.", code="invalid_recurrence"
            )
        if self.interval is None or int(self.interval) < 1:
            raise ValidationError("Recurrence interval must be at least 1.", code="invalid_recurrence")
        object.__setattr__(self, "interval", int(self.interval))

        if self.until is None and self.count is None:
            raise ValidationError(
                "Recurrence needs an end date or an occurrence count.", code="invalid_recurrence"
            )
        if self.count is not None and int(self.count) < 1:
            raise ValidationError("Occurrence count must be at least 1.", code="invalid_recurrence")

    @classmethod
    def from_dict(cls, data) -> "RecurrencePattern":
        if not isinstance(data, dict):
            raise ValidationError("Recurrence must be an object.", code="invalid_recurrence")
        until = data.get("until")
        if isinstance(until, str):
            try:
                until = date.fromisoformat(until)
            except ValueError:
                raise ValidationError("Recurrence 'until' must be YYYY-MM-DD.", code="invalid_recurrence")
        return cls(
            frequency=data.get("frequency", ""),
            interval=data.get("interval", 1),
            until=until,
            count=data.get("count"),
        )

    def as_dict(self):
        return {
            "frequency": str(self.frequency),
            "interval": self.interval,
            "until": self.until.isoformat() if self.until else None,
            "count": self.count,
        }

    def offset(self, k: int):
        steps = self.interval * k
        if self.frequency == Frequency.DAILY:
            return timedelta(days=steps)
        if self.frequency == Frequency.WEEKLY:
            return timedelta(weeks=steps)
        return relativedelta(months=steps)


@dataclass(frozen=True)
class RecurrenceInstance:
    sequence: int  # 1 for the first repeat after the base
    interval: Interval

    @property
    def scheduled_at(self):
        return self.interval.start


def expand(base_appointment, pattern: RecurrencePattern, *, max_occurrences: int = 104, tz=None) -> List[RecurrenceInstance]:
    """
    Future occurrences of ``base_appointment`` described by ``pattern``.

    Args:
        base_appointment: Object with ``scheduled_at`` and ``duration_minutes``.
        pattern: The repeat rule.
        max_occurrences: Upper bound on the series size (base included).
        tz: Zone used to read ``until`` against; defaults to the start's zone.

    Raises:
        ValidationError: the pattern would exceed ``max_occurrences`` or ends
            before it starts.
    """
    start = base_appointment.scheduled_at
    duration = base_appointment.duration_minutes
    local_start = start.astimezone(tz) if tz is not None and start.tzinfo else start

    if pattern.until is not None and pattern.until < local_start.date():
        raise ValidationError("Recurrence end date is before the first appointment.", code="invalid_recurrence")
    if pattern.count is not None and pattern.count > max_occurrences:
        raise ValidationError(
            f"Recurrence may not exceed {max_occurrences} occurrences.", code="recurrence_too_long"
        )

    instances = []
    k = 1
    while True:
        if pattern.count is not None and k >= pattern.count:
            break
        # Offsets are applied in local wall time so a 10:00 series stays at 10:00 across DST.
        candidate_local = local_start + pattern.offset(k)
        if pattern.until is not None and candidate_local.date() > pattern.until:
            break
        if k + 1 > max_occurrences:
            raise ValidationError(
                f"Recurrence may not exceed {max_occurrences} occurrences.", code="recurrence_too_long"
            )
        candidate = candidate_local.astimezone(start.tzinfo) if start.tzinfo else candidate_local
        instances.append(RecurrenceInstance(sequence=k, interval=Interval.from_duration(candidate, duration)))
        k += 1

    return instances
