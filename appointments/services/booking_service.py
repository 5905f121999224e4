"""
Appointment booking coordinator.

The only code that writes appointments. Handles the complete booking flow:
1. Validate patient, provider and the requested interval
2. Reject times in the past
3. Quick conflict pre-check without locks (fail fast)
4. Acquire the per-provider lock, then lock the provider row
5. Re-check conflicts under the lock
6. Create the appointment at SCHEDULED
7. Request a reminder after the transaction commits

Conflict check and insert for one provider never interleave with another
mutation of the same provider: the in-process lock serializes threads and
select_for_update() on the provider row serializes processes. If the lock
cannot be acquired in time the call fails with ProviderBusyError and
nothing is written.

Lifecycle actions lock the appointment row inside a transaction and never
retry on failure.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from functools import partial
from typing import List, Optional

from django.db import DatabaseError, transaction
from django.utils import timezone

from appointments.models import Appointment
from providers.services import get_active_provider, get_provider_blocks, policy_for_provider, read_with_retry
from scheduling.config import get_setting
from scheduling.conflicts import Conflict, detect_conflicts, has_outside_hours
from scheduling.constants import AppointmentStatus, AppointmentType, Priority
from scheduling.exceptions import (
    BookingError,
    ConflictError,
    InternalError,
    InvalidTransitionError,
    OutsideWorkingHoursError,
    PastDateError,
    ValidationError,
)
from scheduling.intervals import Interval
from scheduling.lifecycle import ACTION_TARGETS, LifecycleAction, next_status
from scheduling.locks import provider_locks
from scheduling.recurrence import RecurrencePattern, expand

from . import persistence
from .reminder_service import schedule_reminder, withdraw_reminders

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = (
    "appointment_type",
    "priority",
    "location",
    "virtual_meeting_url",
    "notes",
    "metadata",
)


@dataclass
class SeriesOutcome:
    """What happened to one occurrence of a recurring series."""

    sequence: int
    scheduled_at: datetime
    appointment: Optional[Appointment] = None
    error: Optional[BookingError] = None

    @property
    def booked(self) -> bool:
        return self.appointment is not None


@dataclass
class SeriesBookingResult:
    base: Appointment
    outcomes: List[SeriesOutcome] = field(default_factory=list)

    @property
    def appointments(self) -> List[Appointment]:
        return [self.base] + [outcome.appointment for outcome in self.outcomes if outcome.booked]

    @property
    def skipped(self) -> List[SeriesOutcome]:
        return [outcome for outcome in self.outcomes if not outcome.booked]


# ── Internal helpers ─────────────────────────────────────────────────────────


def _actor(user):
    return user if getattr(user, "is_authenticated", False) else None


def _lock_timeout():
    return float(get_setting("LOCK_TIMEOUT_SECONDS"))


def _candidate_interval(scheduled_at, duration_minutes) -> Interval:
    if scheduled_at is None:
        raise ValidationError("scheduled_at is required.", code="invalid_interval")
    if timezone.is_naive(scheduled_at):
        scheduled_at = timezone.make_aware(scheduled_at)
    try:
        duration_minutes = int(duration_minutes)
    except (TypeError, ValueError):
        raise ValidationError("Duration must be a positive number of minutes.", code="invalid_duration")
    return Interval.from_duration(scheduled_at, duration_minutes)


def _lookup(func, *args):
    """Run an identity or appointment lookup; a database failure becomes InternalError."""
    try:
        return func(*args)
    except DatabaseError as exc:
        logger.error("[BOOKING] Lookup %s failed args=%s: %r", func.__name__, args, exc)
        raise InternalError("Could not load booking data. Please try again.") from exc


def _reject_past(interval: Interval):
    if interval.start < timezone.now():
        raise PastDateError()


def _choice(value, choices, name):
    if value in (None, ""):
        return None
    try:
        return choices(str(value).upper())
    except ValueError:
        raise ValidationError(f"Unknown {name} '{value}'.", code=f"invalid_{name}")


def _detect(provider, interval, exclude_id=None, patient_id=None) -> List[Conflict]:
    policy = policy_for_provider(provider)
    existing = persistence.provider_appointments_in_window(provider.id, interval.start, interval.end)
    patient_appointments = ()
    if patient_id is not None:
        patient_appointments = persistence.patient_appointments_in_window(patient_id, interval.start, interval.end)
    blocks = get_provider_blocks(provider.id, interval.start, interval.end)
    return detect_conflicts(
        provider.id,
        interval,
        existing,
        policy,
        exclude_id,
        patient_id=patient_id,
        patient_appointments=patient_appointments,
        blocks=blocks,
    )


def _raise_for_conflicts(conflicts):
    if has_outside_hours(conflicts):
        raise OutsideWorkingHoursError(conflicts)
    if conflicts:
        raise ConflictError(conflicts)


def _book(provider, patient, interval, fields, actor, *, exclude_id=None, on_locked=None):
    """
    Conflict-check and insert one appointment under the provider lock.

    ``on_locked`` runs inside the transaction after the re-check and before
    the insert; rescheduling uses it to retire the original appointment.
    """
    try:
        # Quick pre-check before acquiring lock (fail fast)
        _raise_for_conflicts(_detect(provider, interval, exclude_id, patient.id))

        with provider_locks.hold(provider.id, _lock_timeout()):
            with transaction.atomic():
                provider = persistence.lock_provider(provider.id)

                # Re-check under the lock; another booking may have landed meanwhile.
                _raise_for_conflicts(_detect(provider, interval, exclude_id, patient.id))

                extra = on_locked() if on_locked else {}
                appointment = persistence.insert_appointment(
                    patient=patient,
                    provider=provider,
                    scheduled_at=interval.start,
                    duration_minutes=interval.duration_minutes,
                    status=AppointmentStatus.SCHEDULED,
                    created_by=actor,
                    updated_by=actor,
                    **fields,
                    **extra,
                )
                transaction.on_commit(partial(schedule_reminder, appointment.id))
    except DatabaseError as exc:
        logger.error("[BOOKING] Write failed provider_id=%s: %r", provider.id, exc)
        raise InternalError("Could not save the appointment. Please try again.") from exc

    logger.info(
        "[BOOKING] Booked appointment_id=%s ref=%s provider_id=%s patient_id=%s at=%s",
        appointment.id,
        appointment.reference_code,
        provider.id,
        patient.id,
        appointment.scheduled_at.isoformat(),
    )
    return appointment


def _booking_fields(
    appointment_type=None,
    priority=None,
    location="",
    virtual_meeting_url="",
    notes="",
    metadata=None,
):
    return {
        "appointment_type": _choice(appointment_type, AppointmentType, "appointment_type")
        or AppointmentType.CONSULTATION,
        "priority": _choice(priority, Priority, "priority") or Priority.MEDIUM,
        "location": location or "",
        "virtual_meeting_url": virtual_meeting_url or "",
        "notes": notes or "",
        "metadata": metadata or {},
    }


# ── Public API ───────────────────────────────────────────────────────────────


def create_appointment(
    *,
    patient_id,
    provider_id,
    scheduled_at,
    duration_minutes,
    appointment_type=None,
    priority=None,
    location="",
    virtual_meeting_url="",
    notes="",
    metadata=None,
    actor=None,
) -> Appointment:
    """
    Book a single appointment.

    Returns:
        The created Appointment, at SCHEDULED.

    Raises:
        ValidationError: bad interval or field values.
        PastDateError: the start is in the past.
        OutsideWorkingHoursError: the interval fails the provider's working hours.
        NotFoundError: unknown or inactive patient / provider.
        ConflictError: the interval collides with existing bookings.
        ProviderBusyError: the provider lock was not acquired in time.
        InternalError: the write failed.
    """
    interval = _candidate_interval(scheduled_at, duration_minutes)
    _reject_past(interval)
    fields = _booking_fields(appointment_type, priority, location, virtual_meeting_url, notes, metadata)

    patient = _lookup(persistence.get_active_patient, patient_id)
    provider = _lookup(get_active_provider, provider_id)

    return _book(provider, patient, interval, fields, _actor(actor))


def create_recurring_series(
    *,
    patient_id,
    provider_id,
    scheduled_at,
    duration_minutes,
    recurrence,
    appointment_type=None,
    priority=None,
    location="",
    virtual_meeting_url="",
    notes="",
    metadata=None,
    actor=None,
) -> SeriesBookingResult:
    """
    Book the base appointment and every occurrence of its repeat rule.

    The base must book or the whole call fails. Each later occurrence goes
    through the same checks on its own; one that conflicts is skipped and
    reported in ``outcomes`` while the rest of the series is still booked.
    Nothing is rolled back.
    """
    pattern = recurrence if isinstance(recurrence, RecurrencePattern) else RecurrencePattern.from_dict(recurrence)
    interval = _candidate_interval(scheduled_at, duration_minutes)
    _reject_past(interval)
    fields = _booking_fields(appointment_type, priority, location, virtual_meeting_url, notes, metadata)

    patient = _lookup(persistence.get_active_patient, patient_id)
    provider = _lookup(get_active_provider, provider_id)
    policy = policy_for_provider(provider)

    # Expand before booking anything so an over-long pattern writes nothing.
    instances = expand(
        Appointment(scheduled_at=interval.start, duration_minutes=interval.duration_minutes),
        pattern,
        max_occurrences=int(get_setting("RECURRENCE_MAX_OCCURRENCES")),
        tz=policy.tzinfo,
    )

    actor = _actor(actor)
    base = _book(provider, patient, interval, dict(fields, recurrence=pattern.as_dict()), actor)
    result = SeriesBookingResult(base=base)

    for instance in instances:
        try:
            appointment = _book(provider, patient, instance.interval, dict(fields, series_parent=base), actor)
        except BookingError as exc:
            logger.info(
                "[BOOKING] Skipped occurrence %s of series base_id=%s at=%s code=%s",
                instance.sequence,
                base.id,
                instance.scheduled_at.isoformat(),
                exc.code,
            )
            result.outcomes.append(
                SeriesOutcome(sequence=instance.sequence, scheduled_at=instance.scheduled_at, error=exc)
            )
            continue
        result.outcomes.append(
            SeriesOutcome(sequence=instance.sequence, scheduled_at=instance.scheduled_at, appointment=appointment)
        )

    logger.info(
        "[BOOKING] Series base_id=%s booked=%s skipped=%s",
        base.id,
        len(result.appointments),
        len(result.skipped),
    )
    return result


def reschedule_appointment(
    appointment_id,
    new_scheduled_at,
    duration_minutes=None,
    actor=None,
    reason="",
    updates=None,
) -> Appointment:
    """
    Move an appointment to a new time.

    The original becomes RESCHEDULED and a replacement is booked at
    SCHEDULED, pointing back at it. The new interval is conflict-checked
    against everything except the original. ``updates`` overrides
    descriptive fields on the replacement; the original keeps its values.

    Returns:
        The replacement Appointment.
    """
    current = _lookup(persistence.get_appointment, appointment_id)
    next_status(current.status, LifecycleAction.RESCHEDULE)

    interval = _candidate_interval(
        new_scheduled_at,
        current.duration_minutes if duration_minutes is None else duration_minutes,
    )
    _reject_past(interval)
    provider = _lookup(get_active_provider, current.provider_id)
    actor = _actor(actor)
    fields = {name: getattr(current, name) for name in EDITABLE_FIELDS}
    fields.update(updates or {})
    fields["series_parent_id"] = current.series_parent_id
    fields["recurrence"] = current.recurrence

    def retire_original():
        original = persistence.lock_appointment(appointment_id)
        original.status = next_status(original.status, LifecycleAction.RESCHEDULE)
        now = timezone.now()
        original.status_changed_at = now
        original.status_changed_by = actor
        original.updated_by = actor
        if reason:
            original.metadata = dict(original.metadata or {}, reschedule_reason=reason)
        original.save(update_fields=["status", "status_changed_at", "status_changed_by", "updated_by", "metadata", "updated_at"])
        transaction.on_commit(partial(withdraw_reminders, original.id))
        return {"rescheduled_from": original}

    replacement = _book(
        provider,
        current.patient,
        interval,
        fields,
        actor,
        exclude_id=current.id,
        on_locked=retire_original,
    )
    logger.info(
        "[BOOKING] Rescheduled appointment_id=%s -> appointment_id=%s",
        appointment_id,
        replacement.id,
    )
    return replacement


def _apply_transition(appointment_id, action, actor, **changes) -> Appointment:
    actor = _actor(actor)
    try:
        with transaction.atomic():
            appointment = persistence.lock_appointment(appointment_id)
            previous = appointment.status
            appointment.status = next_status(previous, action)

            now = timezone.now()
            appointment.status_changed_at = now
            appointment.status_changed_by = actor
            appointment.updated_by = actor
            update_fields = ["status", "status_changed_at", "status_changed_by", "updated_by", "updated_at"]

            if action == LifecycleAction.CANCEL:
                appointment.cancelled_at = now
                appointment.cancelled_by = actor
                appointment.cancellation_reason = changes["reason"]
                update_fields += ["cancelled_at", "cancelled_by", "cancellation_reason"]
            elif action == LifecycleAction.COMPLETE:
                appointment.completed_at = now
                appointment.completed_by = actor
                update_fields += ["completed_at", "completed_by"]
                if changes.get("notes") is not None:
                    appointment.notes = changes["notes"]
                    update_fields.append("notes")

            appointment.save(update_fields=update_fields)

            if action in (LifecycleAction.CANCEL, LifecycleAction.NO_SHOW):
                transaction.on_commit(partial(withdraw_reminders, appointment.id))
    except DatabaseError as exc:
        logger.error("[BOOKING] Transition %s failed appointment_id=%s: %r", action, appointment_id, exc)
        raise InternalError("Could not update the appointment. Please try again.") from exc

    logger.info(
        "[BOOKING] appointment_id=%s %s -> %s by user_id=%s",
        appointment.id,
        previous,
        appointment.status,
        actor.id if actor else None,
    )
    return appointment


def cancel_appointment(appointment_id, reason, actor=None) -> Appointment:
    """
    Cancel an appointment. The interval is freed immediately.

    Raises:
        ValidationError: blank reason.
        InvalidTransitionError: the appointment is already closed.
        NotFoundError: unknown appointment.
    """
    if not reason or not str(reason).strip():
        raise ValidationError("A cancellation reason is required.", code="reason_required")
    return _apply_transition(appointment_id, LifecycleAction.CANCEL, actor, reason=str(reason).strip())


def complete_appointment(appointment_id, notes=None, actor=None) -> Appointment:
    return _apply_transition(appointment_id, LifecycleAction.COMPLETE, actor, notes=notes)


def transition_appointment(appointment_id, action, actor=None, reason=None, notes=None) -> Appointment:
    """
    Apply a lifecycle action by name.

    RESCHEDULE needs a new time and must go through reschedule_appointment().
    """
    try:
        action = LifecycleAction(str(action).upper())
    except ValueError:
        raise InvalidTransitionError(f"Unknown lifecycle action '{action}'.", action=action)

    if action == LifecycleAction.RESCHEDULE:
        raise ValidationError("Rescheduling requires a new time.", code="reschedule_requires_time")
    if action == LifecycleAction.CANCEL:
        return cancel_appointment(appointment_id, reason, actor=actor)
    if action == LifecycleAction.COMPLETE:
        return complete_appointment(appointment_id, notes=notes, actor=actor)
    return _apply_transition(appointment_id, action, actor)


def update_appointment(appointment_id, changes, actor=None) -> Appointment:
    """
    Apply a partial update.

    Descriptive fields are updated in place. A new time or duration goes
    through reschedule_appointment() and the replacement is returned.
    A status change goes through the matching lifecycle action.
    Either the whole update is written or none of it is.
    """
    changes = dict(changes or {})
    unknown = set(changes) - set(EDITABLE_FIELDS) - {"scheduled_at", "duration_minutes", "status", "reason"}
    if unknown:
        raise ValidationError(f"Cannot update field(s): {', '.join(sorted(unknown))}.", code="invalid_field")

    moves = "scheduled_at" in changes or "duration_minutes" in changes
    if moves and "status" in changes:
        raise ValidationError("Change the time and the status in separate requests.", code="invalid_update")

    plain = {name: changes[name] for name in EDITABLE_FIELDS if name in changes}
    if "appointment_type" in plain:
        plain["appointment_type"] = _choice(plain["appointment_type"], AppointmentType, "appointment_type")
    if "priority" in plain:
        plain["priority"] = _choice(plain["priority"], Priority, "priority")
    plain = {name: value for name, value in plain.items() if value is not None}

    appointment = _lookup(persistence.get_appointment, appointment_id)

    # A move carries the edits onto the replacement inside the booking transaction.
    if moves:
        return reschedule_appointment(
            appointment.id,
            changes.get("scheduled_at", appointment.scheduled_at),
            changes.get("duration_minutes", appointment.duration_minutes),
            actor=actor,
            reason=changes.get("reason", ""),
            updates=plain,
        )

    target = None
    if "status" in changes and changes["status"] != appointment.status:
        target = _choice(changes["status"], AppointmentStatus, "status")
        actions = [action for action, status in ACTION_TARGETS.items() if status == target]
        if not actions:
            raise InvalidTransitionError(f"Cannot move an appointment to {target}.", current_status=appointment.status)

    try:
        with transaction.atomic():
            if plain:
                appointment = persistence.lock_appointment(appointment_id)
                if appointment.is_terminal:
                    raise InvalidTransitionError(
                        f"Appointment is {appointment.get_status_display().lower()} and can no longer be edited.",
                        current_status=appointment.status,
                    )
                for name, value in plain.items():
                    setattr(appointment, name, value)
                appointment.updated_by = _actor(actor)
                appointment.save(update_fields=list(plain) + ["updated_by", "updated_at"])

            if target is not None:
                appointment = transition_appointment(
                    appointment.id,
                    actions[0],
                    actor=actor,
                    reason=changes.get("reason"),
                    notes=changes.get("notes"),
                )
    except DatabaseError as exc:
        logger.error("[BOOKING] Update failed appointment_id=%s: %r", appointment_id, exc)
        raise InternalError("Could not update the appointment. Please try again.") from exc

    return appointment


def check_conflicts(provider_id, scheduled_at, duration_minutes, exclude_id=None, patient_id=None) -> List[Conflict]:
    """
    Report every reason the interval could not be booked, without booking.

    Read-only: takes no locks, so the answer may be stale by the time a
    booking is attempted.
    """
    interval = _candidate_interval(scheduled_at, duration_minutes)
    provider = read_with_retry(get_active_provider, provider_id)
    return read_with_retry(_detect, provider, interval, exclude_id, patient_id)
