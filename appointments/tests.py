"""
Tests for the appointment booking coordinator.

Covers:
- Booking service (happy path, validations, conflicts, time off)
- Lifecycle actions (confirm, check-in, start, complete, cancel, no-show)
- Rescheduling and partial updates
- Recurring series (skip-and-continue)
- Conflict dry runs
"""

from datetime import datetime, time, timedelta
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.db import DatabaseError, OperationalError
from django.test import TestCase, override_settings
from django.utils import timezone

from appointments.models import Appointment, AppointmentReminder
from appointments.services import (
    cancel_appointment,
    check_conflicts,
    complete_appointment,
    create_appointment,
    create_recurring_series,
    reschedule_appointment,
    transition_appointment,
    update_appointment,
)
from patients.models import Patient
from providers.models import Provider, ProviderTimeOff
from scheduling.constants import AppointmentStatus, ConflictKind
from scheduling.exceptions import (
    ConflictError,
    InternalError,
    InvalidTransitionError,
    NotFoundError,
    OutsideWorkingHoursError,
    PastDateError,
    ProviderBusyError,
    ValidationError,
)
from scheduling.locks import provider_locks

User = get_user_model()


class SchedulingTestMixin:
    """Shared setup for booking tests."""

    def setUp(self):
        self.user = User.objects.create_user(username="frontdesk", password="testpass123")

        self.provider = Provider.objects.create(first_name="Ahmad", last_name="Khalil", specialty="General Practice")
        self.other_provider = Provider.objects.create(first_name="Lina", last_name="Saleh", specialty="Dermatology")

        self.patient = Patient.objects.create(first_name="Ali", last_name="Hassan", email="ali@example.com")
        self.patient2 = Patient.objects.create(first_name="Sara", last_name="Odeh", email="sara@example.com")

        # Find next Monday for consistent test dates
        today = timezone.localdate()
        days_ahead = 0 - today.weekday()  # Monday is 0
        if days_ahead <= 0:
            days_ahead += 7
        self.next_monday = today + timedelta(days=days_ahead)

    def at(self, hour, minute=0, day=None):
        """Aware datetime on the test Monday, in the project time zone."""
        day = day or self.next_monday
        return datetime.combine(day, time(hour, minute), tzinfo=timezone.get_current_timezone())

    def book(self, hour, minute=0, duration=30, patient=None, provider=None, day=None, **kwargs):
        return create_appointment(
            patient_id=(patient or self.patient).id,
            provider_id=(provider or self.provider).id,
            scheduled_at=self.at(hour, minute, day),
            duration_minutes=duration,
            actor=self.user,
            **kwargs,
        )


# ═══════════════════════════════════════════════════════════════════
#  Booking
# ═══════════════════════════════════════════════════════════════════


class CreateAppointmentTests(SchedulingTestMixin, TestCase):
    def test_successful_booking(self):
        """Happy path: a free slot is booked at SCHEDULED."""
        appointment = self.book(10, notes="Annual checkup", appointment_type="FOLLOW_UP")

        self.assertIsNotNone(appointment.id)
        self.assertEqual(appointment.patient, self.patient)
        self.assertEqual(appointment.provider, self.provider)
        self.assertEqual(appointment.status, AppointmentStatus.SCHEDULED)
        self.assertEqual(appointment.appointment_type, "FOLLOW_UP")
        self.assertEqual(appointment.priority, "MEDIUM")
        self.assertEqual(appointment.notes, "Annual checkup")
        self.assertEqual(appointment.created_by, self.user)
        self.assertRegex(appointment.reference_code, r"^APT-\d{8}-[0-9A-F]{6}$")

    def test_end_time_is_derived(self):
        appointment = self.book(10, duration=45)
        self.assertEqual(appointment.end_time, self.at(10, 45))

        appointment.duration_minutes = 60
        appointment.save(update_fields=["duration_minutes"])
        appointment.refresh_from_db()
        self.assertEqual(appointment.end_time, self.at(11))

    def test_reference_code_uses_appointment_date(self):
        appointment = self.book(10)
        self.assertIn(self.next_monday.strftime("%Y%m%d"), appointment.reference_code)

    def test_past_time_raises_error(self):
        with self.assertRaises(PastDateError):
            create_appointment(
                patient_id=self.patient.id,
                provider_id=self.provider.id,
                scheduled_at=timezone.now() - timedelta(days=1),
                duration_minutes=30,
            )
        self.assertEqual(Appointment.objects.count(), 0)

    def test_invalid_duration_raises_error(self):
        with self.assertRaises(ValidationError):
            self.book(10, duration=0)

    def test_unknown_appointment_type_raises_error(self):
        with self.assertRaises(ValidationError) as ctx:
            self.book(10, appointment_type="SPA_DAY")
        self.assertEqual(ctx.exception.code, "invalid_appointment_type")

    def test_last_slot_of_day_is_bookable(self):
        appointment = self.book(16, 30)
        self.assertEqual(appointment.end_time, self.at(17))

    def test_running_past_close_is_outside_hours(self):
        with self.assertRaises(OutsideWorkingHoursError) as ctx:
            self.book(16, 45)
        self.assertEqual(ctx.exception.code, "outside_working_hours")
        self.assertEqual([c.kind for c in ctx.exception.conflicts], [ConflictKind.OUTSIDE_HOURS])
        self.assertEqual(Appointment.objects.count(), 0)

    def test_weekend_is_outside_hours(self):
        with self.assertRaises(OutsideWorkingHoursError):
            self.book(10, day=self.next_monday + timedelta(days=5))

    def test_provider_hours_override(self):
        self.provider.close_hour = 12
        self.provider.save()
        with self.assertRaises(OutsideWorkingHoursError):
            self.book(13)
        self.assertIsNotNone(self.book(11, 30))

    def test_slot_already_booked_raises_error(self):
        first = self.book(10)
        with self.assertRaises(ConflictError) as ctx:
            self.book(10, 15, patient=self.patient2)

        self.assertEqual(ctx.exception.code, "slot_unavailable")
        self.assertEqual(ctx.exception.conflicts[0].kind, ConflictKind.OVERLAP)
        self.assertEqual(ctx.exception.conflicts[0].appointment_id, first.id)
        self.assertEqual(Appointment.objects.count(), 1)

    def test_back_to_back_bookings_allowed(self):
        self.book(10)
        self.book(10, 30, patient=self.patient2)
        self.book(9, 30, patient=self.patient2)
        self.assertEqual(Appointment.objects.count(), 3)

    def test_cancelled_slot_can_be_rebooked(self):
        first = self.book(10)
        cancel_appointment(first.id, "Patient request", actor=self.user)
        second = self.book(10, patient=self.patient2)
        self.assertEqual(second.status, AppointmentStatus.SCHEDULED)

    def test_same_time_with_other_provider_allowed(self):
        self.book(10)
        appointment = self.book(10, patient=self.patient2, provider=self.other_provider)
        self.assertEqual(appointment.provider, self.other_provider)

    def test_patient_cannot_be_double_booked(self):
        self.book(10)
        with self.assertRaises(ConflictError) as ctx:
            self.book(10, provider=self.other_provider)
        self.assertEqual([c.kind for c in ctx.exception.conflicts], [ConflictKind.DOUBLE_BOOKING])

    def test_time_off_blocks_booking(self):
        ProviderTimeOff.objects.create(
            provider=self.provider, start_at=self.at(13), end_at=self.at(15), reason="Conference"
        )
        with self.assertRaises(ConflictError) as ctx:
            self.book(14)
        self.assertEqual(ctx.exception.conflicts[0].kind, ConflictKind.UNAVAILABLE)

    def test_unknown_patient_raises_not_found(self):
        with self.assertRaises(NotFoundError) as ctx:
            create_appointment(
                patient_id=99999, provider_id=self.provider.id, scheduled_at=self.at(10), duration_minutes=30
            )
        self.assertEqual(ctx.exception.code, "patient_not_found")

    def test_inactive_provider_raises_not_found(self):
        self.provider.is_active = False
        self.provider.save()
        with self.assertRaises(NotFoundError):
            self.book(10)

    def test_provider_busy_fails_closed(self):
        with override_settings(SCHEDULING={"LOCK_TIMEOUT_SECONDS": 0.05}):
            with provider_locks.hold(self.provider.id, timeout=1):
                with self.assertRaises(ProviderBusyError):
                    self.book(10)
        self.assertEqual(Appointment.objects.count(), 0)

    def test_database_failure_is_internal_error(self):
        with patch(
            "appointments.services.persistence.insert_appointment",
            side_effect=DatabaseError("disk I/O error"),
        ):
            with self.assertRaises(InternalError):
                self.book(10)
        self.assertEqual(Appointment.objects.count(), 0)

    def test_read_failure_before_lock_is_internal_error(self):
        with patch(
            "appointments.services.persistence.provider_appointments_in_window",
            side_effect=OperationalError("db gone"),
        ):
            with self.assertRaises(InternalError):
                self.book(10)
        self.assertEqual(Appointment.objects.count(), 0)

    def test_lookup_failure_is_internal_error(self):
        with patch(
            "appointments.services.persistence.get_active_patient",
            side_effect=OperationalError("db gone"),
        ):
            with self.assertRaises(InternalError):
                self.book(10)

    def test_reminder_requested_after_commit(self):
        with self.captureOnCommitCallbacks(execute=True) as callbacks:
            appointment = self.book(10)
        self.assertEqual(len(callbacks), 1)
        self.assertTrue(AppointmentReminder.objects.filter(appointment=appointment).exists())

    def test_reminder_not_requested_when_booking_fails(self):
        self.book(10)
        with self.captureOnCommitCallbacks(execute=True) as callbacks:
            with self.assertRaises(ConflictError):
                self.book(10, patient=self.patient2)
        self.assertEqual(callbacks, [])


# ═══════════════════════════════════════════════════════════════════
#  Lifecycle
# ═══════════════════════════════════════════════════════════════════


class LifecycleServiceTests(SchedulingTestMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.appointment = self.book(10)

    def test_full_visit(self):
        for action, expected in (
            ("CONFIRM", AppointmentStatus.CONFIRMED),
            ("CHECK_IN", AppointmentStatus.CHECKED_IN),
            ("START", AppointmentStatus.IN_PROGRESS),
        ):
            appointment = transition_appointment(self.appointment.id, action, actor=self.user)
            self.assertEqual(appointment.status, expected)
            self.assertEqual(appointment.status_changed_by, self.user)
            self.assertIsNotNone(appointment.status_changed_at)

        appointment = complete_appointment(self.appointment.id, notes="All good", actor=self.user)
        self.assertEqual(appointment.status, AppointmentStatus.COMPLETED)
        self.assertEqual(appointment.notes, "All good")
        self.assertEqual(appointment.completed_by, self.user)
        self.assertIsNotNone(appointment.completed_at)

    def test_cancel_records_reason(self):
        appointment = cancel_appointment(self.appointment.id, "  Feeling better  ", actor=self.user)
        self.assertEqual(appointment.status, AppointmentStatus.CANCELLED)
        self.assertEqual(appointment.cancellation_reason, "Feeling better")
        self.assertEqual(appointment.cancelled_by, self.user)
        self.assertIsNotNone(appointment.cancelled_at)

    def test_cancel_requires_reason(self):
        for reason in ("", "   ", None):
            with self.subTest(reason=reason):
                with self.assertRaises(ValidationError) as ctx:
                    cancel_appointment(self.appointment.id, reason)
                self.assertEqual(ctx.exception.code, "reason_required")
        self.appointment.refresh_from_db()
        self.assertEqual(self.appointment.status, AppointmentStatus.SCHEDULED)

    def test_terminal_appointment_cannot_change(self):
        cancel_appointment(self.appointment.id, "Patient request")
        for call in (
            lambda: cancel_appointment(self.appointment.id, "Again"),
            lambda: complete_appointment(self.appointment.id),
            lambda: transition_appointment(self.appointment.id, "CONFIRM"),
        ):
            with self.assertRaises(InvalidTransitionError):
                call()
        self.appointment.refresh_from_db()
        self.assertEqual(self.appointment.status, AppointmentStatus.CANCELLED)

    def test_no_show_not_allowed_after_start(self):
        transition_appointment(self.appointment.id, "START")
        with self.assertRaises(InvalidTransitionError):
            transition_appointment(self.appointment.id, "NO_SHOW")

    def test_no_show_keeps_the_slot_occupied(self):
        transition_appointment(self.appointment.id, "NO_SHOW")
        with self.assertRaises(ConflictError):
            self.book(10, patient=self.patient2)

    def test_backward_transition_rejected(self):
        transition_appointment(self.appointment.id, "CHECK_IN")
        with self.assertRaises(InvalidTransitionError):
            transition_appointment(self.appointment.id, "CONFIRM")

    def test_reschedule_action_needs_a_time(self):
        with self.assertRaises(ValidationError):
            transition_appointment(self.appointment.id, "RESCHEDULE")

    def test_unknown_action(self):
        with self.assertRaises(InvalidTransitionError):
            transition_appointment(self.appointment.id, "TELEPORT")

    def test_unknown_appointment(self):
        with self.assertRaises(NotFoundError):
            transition_appointment(99999, "CONFIRM")

    def test_cancel_withdraws_pending_reminders(self):
        AppointmentReminder.objects.create(
            appointment=self.appointment, remind_at=self.appointment.scheduled_at - timedelta(hours=1)
        )
        with self.captureOnCommitCallbacks(execute=True):
            cancel_appointment(self.appointment.id, "Patient request")
        reminder = AppointmentReminder.objects.get(appointment=self.appointment)
        self.assertEqual(reminder.status, AppointmentReminder.Status.CANCELLED)


# ═══════════════════════════════════════════════════════════════════
#  Rescheduling and updates
# ═══════════════════════════════════════════════════════════════════


class RescheduleTests(SchedulingTestMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.appointment = self.book(10, location="Room 4", priority="HIGH")

    def test_reschedule_creates_replacement(self):
        replacement = reschedule_appointment(self.appointment.id, self.at(14), actor=self.user, reason="Clash")

        self.appointment.refresh_from_db()
        self.assertEqual(self.appointment.status, AppointmentStatus.RESCHEDULED)
        self.assertEqual(self.appointment.metadata["reschedule_reason"], "Clash")
        self.assertEqual(replacement.status, AppointmentStatus.SCHEDULED)
        self.assertEqual(replacement.rescheduled_from, self.appointment)
        self.assertEqual(replacement.scheduled_at, self.at(14))
        self.assertEqual(replacement.duration_minutes, 30)
        self.assertEqual(replacement.location, "Room 4")
        self.assertEqual(replacement.priority, "HIGH")
        self.assertNotEqual(replacement.reference_code, self.appointment.reference_code)

    def test_old_slot_is_freed(self):
        reschedule_appointment(self.appointment.id, self.at(14))
        self.assertIsNotNone(self.book(10, patient=self.patient2))

    def test_can_shift_within_own_slot(self):
        replacement = reschedule_appointment(self.appointment.id, self.at(10, 15), duration_minutes=45)
        self.assertEqual(replacement.end_time, self.at(11))

    def test_conflicting_reschedule_leaves_original(self):
        self.book(14, patient=self.patient2)
        with self.assertRaises(ConflictError):
            reschedule_appointment(self.appointment.id, self.at(14))
        self.appointment.refresh_from_db()
        self.assertEqual(self.appointment.status, AppointmentStatus.SCHEDULED)
        self.assertEqual(Appointment.objects.count(), 2)

    def test_reschedule_into_past_rejected(self):
        with self.assertRaises(PastDateError):
            reschedule_appointment(self.appointment.id, timezone.now() - timedelta(hours=2))

    def test_series_base_keeps_its_recurrence(self):
        series = create_recurring_series(
            patient_id=self.patient.id,
            provider_id=self.provider.id,
            scheduled_at=self.at(11),
            duration_minutes=30,
            recurrence={"frequency": "WEEKLY", "count": 2},
        )
        replacement = reschedule_appointment(series.base.id, self.at(13))
        self.assertEqual(replacement.recurrence, series.base.recurrence)
        self.assertEqual(replacement.recurrence["frequency"], "WEEKLY")

    def test_terminal_appointment_cannot_be_rescheduled(self):
        complete_appointment(self.appointment.id)
        with self.assertRaises(InvalidTransitionError):
            reschedule_appointment(self.appointment.id, self.at(14))


class UpdateAppointmentTests(SchedulingTestMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.appointment = self.book(10)

    def test_descriptive_fields_updated_in_place(self):
        appointment = update_appointment(
            self.appointment.id, {"location": "Room 2", "priority": "urgent"}, actor=self.user
        )
        self.assertEqual(appointment.id, self.appointment.id)
        self.assertEqual(appointment.location, "Room 2")
        self.assertEqual(appointment.priority, "URGENT")
        self.assertEqual(appointment.updated_by, self.user)

    def test_time_change_reschedules(self):
        appointment = update_appointment(self.appointment.id, {"scheduled_at": self.at(15)})
        self.assertNotEqual(appointment.id, self.appointment.id)
        self.assertEqual(appointment.rescheduled_from_id, self.appointment.id)

    def test_status_change_runs_lifecycle(self):
        appointment = update_appointment(self.appointment.id, {"status": "CONFIRMED"})
        self.assertEqual(appointment.status, AppointmentStatus.CONFIRMED)

    def test_status_cancel_needs_reason(self):
        with self.assertRaises(ValidationError):
            update_appointment(self.appointment.id, {"status": "CANCELLED"})
        appointment = update_appointment(self.appointment.id, {"status": "CANCELLED", "reason": "Travel"})
        self.assertEqual(appointment.cancellation_reason, "Travel")

    def test_unknown_field_rejected(self):
        with self.assertRaises(ValidationError):
            update_appointment(self.appointment.id, {"end_time": self.at(12)})

    def test_terminal_appointment_not_editable(self):
        complete_appointment(self.appointment.id)
        with self.assertRaises(InvalidTransitionError):
            update_appointment(self.appointment.id, {"notes": "late note"})

    def test_move_carries_descriptive_changes_to_replacement(self):
        replacement = update_appointment(self.appointment.id, {"notes": "Bring scans", "scheduled_at": self.at(15)})
        self.assertEqual(replacement.notes, "Bring scans")
        self.appointment.refresh_from_db()
        self.assertEqual(self.appointment.notes, "")

    def test_rejected_move_writes_nothing(self):
        self.book(15, patient=self.patient2)
        with self.assertRaises(ConflictError):
            update_appointment(self.appointment.id, {"notes": "changed", "scheduled_at": self.at(15)})

        self.appointment.refresh_from_db()
        self.assertEqual(self.appointment.notes, "")
        self.assertEqual(self.appointment.status, AppointmentStatus.SCHEDULED)

    def test_rejected_status_change_writes_nothing(self):
        with self.assertRaises(ValidationError):
            update_appointment(self.appointment.id, {"priority": "HIGH", "status": "CANCELLED"})

        self.appointment.refresh_from_db()
        self.assertEqual(self.appointment.priority, "MEDIUM")
        self.assertEqual(self.appointment.status, AppointmentStatus.SCHEDULED)


# ═══════════════════════════════════════════════════════════════════
#  Recurring series
# ═══════════════════════════════════════════════════════════════════


class RecurringSeriesTests(SchedulingTestMixin, TestCase):
    def create_series(self, recurrence, hour=10):
        return create_recurring_series(
            patient_id=self.patient.id,
            provider_id=self.provider.id,
            scheduled_at=self.at(hour),
            duration_minutes=30,
            recurrence=recurrence,
            actor=self.user,
        )

    def test_weekly_series(self):
        result = self.create_series({"frequency": "WEEKLY", "count": 3})

        self.assertEqual(len(result.appointments), 3)
        self.assertEqual(result.skipped, [])
        self.assertEqual(result.base.recurrence["frequency"], "WEEKLY")
        for outcome in result.outcomes:
            self.assertEqual(outcome.appointment.series_parent, result.base)
        self.assertEqual(
            [a.scheduled_at for a in result.appointments],
            [self.at(10) + timedelta(weeks=k) for k in range(3)],
        )

    def test_conflicting_occurrence_is_skipped(self):
        self.book(10, patient=self.patient2, day=self.next_monday + timedelta(weeks=1))

        result = self.create_series({"frequency": "WEEKLY", "count": 3})

        self.assertEqual(len(result.appointments), 2)
        self.assertEqual(len(result.skipped), 1)
        skipped = result.skipped[0]
        self.assertEqual(skipped.sequence, 1)
        self.assertIsInstance(skipped.error, ConflictError)

    def test_weekend_occurrences_are_skipped(self):
        result = self.create_series({"frequency": "DAILY", "count": 7})
        self.assertEqual(len(result.appointments), 5)
        self.assertTrue(all(isinstance(o.error, OutsideWorkingHoursError) for o in result.skipped))

    def test_overlong_series_writes_nothing(self):
        with override_settings(SCHEDULING={"RECURRENCE_MAX_OCCURRENCES": 5}):
            with self.assertRaises(ValidationError) as ctx:
                self.create_series({"frequency": "DAILY", "count": 6})
        self.assertEqual(ctx.exception.code, "recurrence_too_long")
        self.assertEqual(Appointment.objects.count(), 0)

    def test_invalid_pattern_rejected(self):
        with self.assertRaises(ValidationError):
            self.create_series({"frequency": "WEEKLY"})
        self.assertEqual(Appointment.objects.count(), 0)

    def test_base_conflict_fails_whole_call(self):
        self.book(10, patient=self.patient2)
        with self.assertRaises(ConflictError):
            self.create_series({"frequency": "WEEKLY", "count": 3})
        self.assertEqual(Appointment.objects.count(), 1)


# ═══════════════════════════════════════════════════════════════════
#  Conflict dry run
# ═══════════════════════════════════════════════════════════════════


class CheckConflictsTests(SchedulingTestMixin, TestCase):
    def test_reports_without_writing(self):
        existing = self.book(10)
        conflicts = check_conflicts(self.provider.id, self.at(10, 15), 30)
        self.assertEqual([c.appointment_id for c in conflicts], [existing.id])
        self.assertEqual(Appointment.objects.count(), 1)

    def test_free_interval(self):
        self.assertEqual(check_conflicts(self.provider.id, self.at(11), 30), [])

    def test_exclude_id(self):
        existing = self.book(10)
        self.assertEqual(check_conflicts(self.provider.id, self.at(10), 30, exclude_id=existing.id), [])

    def test_reports_every_kind(self):
        self.book(16, 30, patient=self.patient2)
        self.book(16, 30, provider=self.other_provider)
        conflicts = check_conflicts(self.provider.id, self.at(16, 45), 30, patient_id=self.patient.id)
        self.assertEqual(
            [c.kind for c in conflicts],
            [ConflictKind.OVERLAP, ConflictKind.DOUBLE_BOOKING, ConflictKind.OUTSIDE_HOURS],
        )

    def test_unknown_provider(self):
        with self.assertRaises(NotFoundError):
            check_conflicts(99999, self.at(10), 30)
