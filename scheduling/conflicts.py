"""
Conflict detection.

Given a provider, a candidate interval and the provider's existing bookings,
return every reason the candidate cannot be booked. The result is a list, not
a boolean: callers treat any non-empty list as "rejected" and surface the
details so the user can pick another time.

Pure function of its inputs. Appointment-like objects only need ``id``,
``provider_id``, ``patient_id``, ``status``, ``scheduled_at`` and
``end_time`` attributes.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional

from .constants import NON_BLOCKING_STATUSES, ConflictKind
from .intervals import Block, Interval, interval_of, overlaps
from .policy import WorkingHoursPolicy, is_within_policy


@dataclass(frozen=True)
class Conflict:
    kind: str
    message: str
    appointment_id: Optional[int] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None

    def as_dict(self):
        return {
            "kind": str(self.kind),
            "message": self.message,
            "appointment_id": self.appointment_id,
            "start": self.start.isoformat() if self.start else None,
            "end": self.end.isoformat() if self.end else None,
        }


def occupies_calendar(appointment) -> bool:
    return appointment.status not in NON_BLOCKING_STATUSES


def _live_overlapping(candidate, appointments, exclude_id):
    hits = [
        appt
        for appt in appointments
        if occupies_calendar(appt)
        and (exclude_id is None or appt.id != exclude_id)
        and overlaps(interval_of(appt), candidate)
    ]
    return sorted(hits, key=lambda appt: (appt.scheduled_at, appt.id or 0))


def _fmt(moment: datetime, policy: WorkingHoursPolicy) -> str:
    return policy.localize(moment).strftime("%H:%M")


def detect_conflicts(
    provider_id,
    candidate: Interval,
    existing_appointments: Iterable,
    policy: WorkingHoursPolicy,
    exclude_id=None,
    *,
    patient_id=None,
    patient_appointments: Iterable = (),
    blocks: Iterable[Block] = (),
) -> List[Conflict]:
    """
    Return all conflicts for ``candidate`` on ``provider_id``'s calendar.

    Order: OVERLAP (by start), DOUBLE_BOOKING (by start), UNAVAILABLE,
    OUTSIDE_HOURS.
    """
    conflicts = []

    same_provider = [appt for appt in existing_appointments if appt.provider_id == provider_id]
    for appt in _live_overlapping(candidate, same_provider, exclude_id):
        conflicts.append(
            Conflict(
                kind=ConflictKind.OVERLAP,
                message=(
                    f"Overlaps with existing appointment {appt.id} from "
                    f"{_fmt(appt.scheduled_at, policy)} to {_fmt(appt.end_time, policy)}."
                ),
                appointment_id=appt.id,
                start=appt.scheduled_at,
                end=appt.end_time,
            )
        )

    # The same patient cannot be in two places at once, even with different providers.
    if patient_id is not None:
        elsewhere = [
            appt
            for appt in patient_appointments
            if appt.patient_id == patient_id and appt.provider_id != provider_id
        ]
        for appt in _live_overlapping(candidate, elsewhere, exclude_id):
            conflicts.append(
                Conflict(
                    kind=ConflictKind.DOUBLE_BOOKING,
                    message=(
                        f"Patient already has appointment {appt.id} with another provider from "
                        f"{_fmt(appt.scheduled_at, policy)} to {_fmt(appt.end_time, policy)}."
                    ),
                    appointment_id=appt.id,
                    start=appt.scheduled_at,
                    end=appt.end_time,
                )
            )

    for block in sorted(blocks, key=lambda b: b.interval.start):
        if overlaps(block.interval, candidate):
            conflicts.append(
                Conflict(
                    kind=ConflictKind.UNAVAILABLE,
                    message=f"Provider is unavailable: {block.reason}",
                    start=block.interval.start,
                    end=block.interval.end,
                )
            )

    if not is_within_policy(candidate, policy):
        conflicts.append(
            Conflict(
                kind=ConflictKind.OUTSIDE_HOURS,
                message=f"Appointment must be on a working day between {policy.describe()}.",
            )
        )

    return conflicts


def has_outside_hours(conflicts: Iterable[Conflict]) -> bool:
    return any(conflict.kind == ConflictKind.OUTSIDE_HOURS for conflict in conflicts)
