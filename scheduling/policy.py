"""
Working-hours policy.

A plain value object describing when a provider can be booked. It is always
passed explicitly; nothing in this module reads settings. See
``scheduling.config.policy_from_settings`` for the configured default.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .exceptions import ValidationError
from .intervals import Interval

DEFAULT_OPEN_HOUR = 9
DEFAULT_CLOSE_HOUR = 17
DEFAULT_ALLOWED_WEEKDAYS = frozenset({0, 1, 2, 3, 4})  # Monday-Friday
DEFAULT_SLOT_GRANULARITY_MINUTES = 30


@dataclass(frozen=True)
class WorkingHoursPolicy:
    open_hour: int = DEFAULT_OPEN_HOUR
    close_hour: int = DEFAULT_CLOSE_HOUR
    allowed_weekdays: frozenset = field(default=DEFAULT_ALLOWED_WEEKDAYS)
    slot_granularity_minutes: int = DEFAULT_SLOT_GRANULARITY_MINUTES
    timezone_name: str = "UTC"

    def __post_init__(self):
        if not (0 <= self.open_hour < self.close_hour <= 24):
            raise ValidationError(
                f"Invalid working hours {self.open_hour}-{self.close_hour}.",
                code="invalid_policy",
            )
        if self.slot_granularity_minutes <= 0:
            raise ValidationError("Slot granularity must be positive.", code="invalid_policy")

        weekdays = frozenset(int(day) for day in self.allowed_weekdays)
        if not weekdays <= frozenset(range(7)):
            raise ValidationError("Weekdays must be between 0 (Monday) and 6 (Sunday).", code="invalid_policy")
        object.__setattr__(self, "allowed_weekdays", weekdays)

        try:
            ZoneInfo(self.timezone_name)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValidationError(f"Unknown time zone '{self.timezone_name}'.", code="invalid_policy")

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone_name)

    def localize(self, moment: datetime) -> datetime:
        """Express ``moment`` in the policy's zone. Naive values are taken as local."""
        if moment.tzinfo is None:
            return moment.replace(tzinfo=self.tzinfo)
        return moment.astimezone(self.tzinfo)

    def is_working_day(self, day: date) -> bool:
        return day.weekday() in self.allowed_weekdays

    def opening(self, day: date) -> datetime:
        return datetime.combine(day, time.min, tzinfo=self.tzinfo) + timedelta(hours=self.open_hour)

    def closing(self, day: date) -> datetime:
        return datetime.combine(day, time.min, tzinfo=self.tzinfo) + timedelta(hours=self.close_hour)

    def working_interval(self, day: date) -> Interval:
        return Interval(self.opening(day), self.closing(day))

    def working_minutes(self, day: date) -> int:
        if not self.is_working_day(day):
            return 0
        return (self.close_hour - self.open_hour) * 60

    def describe(self) -> str:
        return f"{self.open_hour:02d}:00-{self.close_hour:02d}:00"


def is_within_policy(interval: Interval, policy: WorkingHoursPolicy) -> bool:
    """
    True when the whole interval sits inside one working day.

    The start must fall on an allowed weekday in ``[open, close)``. The end
    must fall on that same day and no later than ``close``, so 16:30-17:00 is
    bookable under a 09:00-17:00 policy while 16:45-17:15 is not.
    """
    start = policy.localize(interval.start)
    end = policy.localize(interval.end)
    day = start.date()

    if not policy.is_working_day(day):
        return False

    opening = policy.opening(day)
    closing = policy.closing(day)

    if not (opening <= start < closing):
        return False
    return opening < end <= closing
