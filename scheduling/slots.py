"""
Slot generation engine for a provider's day view.

Partitions the policy's working window on a date into fixed-width slots and
classifies each one as booked, blocked or available:

1. Booked    - any live appointment overlaps the slot.
2. Blocked   - a provider block (time off) overlaps the slot.
3. Available - everything else.

The day is partitioned the same way whether or not it is a working day;
``ProviderSchedule.working_day`` tells callers which it is. Bookings on a
non-working day are still rejected by the conflict detector.

If more than one appointment overlaps the same slot the data is already
inconsistent (the booking coordinator never allows it). The slot is still
reported as booked with a single deterministic occupant, the earliest
``scheduled_at`` with ties broken by lowest id, and the collision is logged
and recorded on ``ProviderSchedule.anomalies``.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional

from .conflicts import occupies_calendar
from .intervals import Block, Interval, interval_of, overlaps
from .policy import WorkingHoursPolicy

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TimeSlot:
    start: datetime
    end: datetime
    available: bool
    appointment_id: Optional[int] = None
    blocked_reason: Optional[str] = None

    @property
    def state(self) -> str:
        if self.appointment_id is not None:
            return "booked"
        if self.blocked_reason:
            return "blocked"
        return "available"

    @property
    def interval(self) -> Interval:
        return Interval(self.start, self.end)


@dataclass(frozen=True)
class SlotAnomaly:
    """More than one live appointment claims the same slot."""

    slot_start: datetime
    appointment_ids: tuple
    occupant_id: int


@dataclass
class ProviderSchedule:
    provider_id: int
    date: date
    working_day: bool = True
    available: List[TimeSlot] = field(default_factory=list)
    booked: List[TimeSlot] = field(default_factory=list)
    blocked: List[TimeSlot] = field(default_factory=list)
    anomalies: List[SlotAnomaly] = field(default_factory=list)

    @property
    def slots(self) -> List[TimeSlot]:
        """All slots of the day in time order."""
        return sorted(self.available + self.booked + self.blocked, key=lambda slot: slot.start)


def partition_day(day: date, policy: WorkingHoursPolicy) -> List[Interval]:
    """Contiguous slot intervals covering [open, close); a trailing partial slot is dropped."""
    step = timedelta(minutes=policy.slot_granularity_minutes)
    closing = policy.closing(day)
    current = policy.opening(day)

    intervals = []
    while current + step <= closing:
        intervals.append(Interval(current, current + step))
        current += step
    return intervals


def _occupant(candidates):
    return min(candidates, key=lambda appt: (appt.scheduled_at, appt.id or 0))


def build_schedule(
    provider_id,
    day: date,
    policy: WorkingHoursPolicy,
    existing_appointments: Iterable,
    blocks: Iterable[Block] = (),
) -> ProviderSchedule:
    """
    Build the free/busy view for one provider and date.

    Args:
        provider_id: The provider whose calendar is shown.
        day: The calendar date (in the policy's time zone).
        policy: Working-hours policy to partition.
        existing_appointments: Appointment-like objects; other providers and
            cancelled/rescheduled rows are ignored.
        blocks: Provider blocks (time off) supplied by the caller.

    Returns:
        ProviderSchedule with ordered available/booked/blocked lists.
    """
    live = [
        appt
        for appt in existing_appointments
        if appt.provider_id == provider_id and occupies_calendar(appt)
    ]
    blocks = list(blocks)
    schedule = ProviderSchedule(provider_id=provider_id, date=day, working_day=policy.is_working_day(day))

    for slot_interval in partition_day(day, policy):
        claimants = [appt for appt in live if overlaps(interval_of(appt), slot_interval)]

        if claimants:
            occupant = _occupant(claimants)
            if len(claimants) > 1:
                ids = tuple(sorted(appt.id for appt in claimants))
                schedule.anomalies.append(
                    SlotAnomaly(slot_start=slot_interval.start, appointment_ids=ids, occupant_id=occupant.id)
                )
                logger.warning(
                    "[SCHEDULE] Overlapping appointments in one slot provider_id=%s slot=%s "
                    "appointment_ids=%s occupant_id=%s",
                    provider_id,
                    slot_interval.start.isoformat(),
                    ids,
                    occupant.id,
                )
            schedule.booked.append(
                TimeSlot(
                    start=slot_interval.start,
                    end=slot_interval.end,
                    available=False,
                    appointment_id=occupant.id,
                )
            )
            continue

        reason = None
        for block in blocks:
            if overlaps(block.interval, slot_interval):
                reason = block.reason
                break

        if reason:
            schedule.blocked.append(
                TimeSlot(start=slot_interval.start, end=slot_interval.end, available=False, blocked_reason=reason)
            )
        else:
            schedule.available.append(TimeSlot(start=slot_interval.start, end=slot_interval.end, available=True))

    return schedule


def first_fit(schedule: ProviderSchedule, duration_minutes: int) -> Optional[Interval]:
    """
    First run of contiguous available slots covering ``duration_minutes``.

    The returned interval starts at a slot boundary and lasts exactly the
    requested duration. A non-working day never fits.
    """
    if not schedule.working_day:
        return None
    needed = timedelta(minutes=duration_minutes)
    run_start = None
    run_end = None

    for slot in schedule.slots:
        if not slot.available:
            run_start = run_end = None
            continue
        if run_start is None or slot.start != run_end:
            run_start = slot.start
        run_end = slot.end
        if run_end - run_start >= needed:
            return Interval(run_start, run_start + needed)
    return None
