"""
Tests for the scheduling engine building blocks.

Covers:
- Interval model (half-open overlap, adjacency, validation)
- Working-hours policy (boundaries, weekdays, time zones, settings)
- Conflict detection (overlap, double booking, time off, outside hours)
- Per-provider lock registry
"""

import threading
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone as dt_timezone
from typing import Optional
from zoneinfo import ZoneInfo

from django.test import SimpleTestCase, override_settings

from scheduling.config import get_setting, policy_from_settings
from scheduling.conflicts import detect_conflicts, has_outside_hours
from scheduling.constants import AppointmentStatus, ConflictKind
from scheduling.exceptions import (
    BookingError,
    ConflictError,
    ProviderBusyError,
    ValidationError,
)
from scheduling.intervals import Block, Interval, adjacent, interval_of, overlaps
from scheduling.locks import ProviderLockRegistry
from scheduling.policy import WorkingHoursPolicy, is_within_policy

UTC = dt_timezone.utc

# 2030-03-18 is a Monday.
MONDAY = date(2030, 3, 18)
SATURDAY = date(2030, 3, 23)


def at(hour, minute=0, day=MONDAY, tz=UTC):
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=tz)


@dataclass
class FakeAppointment:
    """Appointment-like object for engine tests."""

    id: int
    scheduled_at: datetime
    duration_minutes: int = 30
    provider_id: int = 1
    patient_id: int = 100
    status: str = AppointmentStatus.SCHEDULED

    @property
    def end_time(self) -> Optional[datetime]:
        return self.scheduled_at + timedelta(minutes=self.duration_minutes)


def appt(id, hour, minute=0, duration=30, **kwargs):
    return FakeAppointment(id=id, scheduled_at=at(hour, minute), duration_minutes=duration, **kwargs)


# ═══════════════════════════════════════════════════════════════════
#  Interval Model
# ═══════════════════════════════════════════════════════════════════


class IntervalTests(SimpleTestCase):
    def test_end_before_start_rejected(self):
        with self.assertRaises(ValidationError) as ctx:
            Interval(at(10), at(9))
        self.assertEqual(ctx.exception.code, "invalid_interval")

    def test_empty_interval_rejected(self):
        with self.assertRaises(ValidationError):
            Interval(at(10), at(10))

    def test_missing_bound_rejected(self):
        with self.assertRaises(ValidationError):
            Interval(None, at(10))

    def test_touching_intervals_do_not_overlap(self):
        first = Interval(at(10), at(10, 30))
        second = Interval(at(10, 30), at(11))
        self.assertFalse(overlaps(first, second))
        self.assertFalse(overlaps(second, first))
        self.assertTrue(adjacent(first, second))

    def test_partial_overlap(self):
        self.assertTrue(overlaps(Interval(at(10), at(10, 30)), Interval(at(10, 15), at(10, 45))))

    def test_containment_overlaps(self):
        self.assertTrue(Interval(at(9), at(12)).overlaps(Interval(at(10), at(10, 30))))

    def test_from_duration(self):
        interval = Interval.from_duration(at(9), 45)
        self.assertEqual(interval.end, at(9, 45))
        self.assertEqual(interval.duration_minutes, 45)

    def test_from_duration_rejects_non_positive(self):
        for minutes in (0, -15, None):
            with self.subTest(minutes=minutes):
                with self.assertRaises(ValidationError):
                    Interval.from_duration(at(9), minutes)

    def test_contains_is_half_open(self):
        interval = Interval(at(9), at(9, 30))
        self.assertTrue(interval.contains(at(9)))
        self.assertFalse(interval.contains(at(9, 30)))

    def test_interval_of_appointment(self):
        interval = interval_of(appt(1, 14, duration=60))
        self.assertEqual((interval.start, interval.end), (at(14), at(15)))


# ═══════════════════════════════════════════════════════════════════
#  Working-Hours Policy
# ═══════════════════════════════════════════════════════════════════


class WorkingHoursPolicyTests(SimpleTestCase):
    def setUp(self):
        self.policy = WorkingHoursPolicy()

    def test_defaults(self):
        self.assertEqual(self.policy.open_hour, 9)
        self.assertEqual(self.policy.close_hour, 17)
        self.assertEqual(self.policy.allowed_weekdays, frozenset({0, 1, 2, 3, 4}))
        self.assertEqual(self.policy.slot_granularity_minutes, 30)

    def test_last_slot_ending_at_close_is_within(self):
        self.assertTrue(is_within_policy(Interval(at(16, 30), at(17)), self.policy))

    def test_ending_after_close_is_outside(self):
        self.assertFalse(is_within_policy(Interval(at(16, 45), at(17, 15)), self.policy))

    def test_starting_before_open_is_outside(self):
        self.assertFalse(is_within_policy(Interval(at(8, 30), at(9, 30)), self.policy))

    def test_first_slot_is_within(self):
        self.assertTrue(is_within_policy(Interval(at(9), at(9, 30)), self.policy))

    def test_weekend_is_outside(self):
        self.assertFalse(is_within_policy(Interval(at(10, day=SATURDAY), at(10, 30, day=SATURDAY)), self.policy))

    def test_spanning_midnight_is_outside(self):
        policy = WorkingHoursPolicy(open_hour=0, close_hour=24, allowed_weekdays=range(7))
        self.assertFalse(is_within_policy(Interval(at(23, 30), at(0, 30, day=MONDAY + timedelta(days=1))), policy))

    def test_evaluated_in_policy_time_zone(self):
        berlin = WorkingHoursPolicy(timezone_name="Europe/Berlin")
        # 08:00 UTC is 09:00 in Berlin in March (CET, UTC+1).
        self.assertTrue(is_within_policy(Interval(at(8), at(8, 30)), berlin))
        # 16:30 UTC is 17:30 in Berlin.
        self.assertFalse(is_within_policy(Interval(at(16, 30), at(17)), berlin))

    def test_naive_datetimes_are_taken_as_local(self):
        naive = datetime(2030, 3, 18, 10, 0)
        self.assertTrue(is_within_policy(Interval(naive, naive + timedelta(minutes=30)), self.policy))

    def test_invalid_hours_rejected(self):
        with self.assertRaises(ValidationError) as ctx:
            WorkingHoursPolicy(open_hour=17, close_hour=9)
        self.assertEqual(ctx.exception.code, "invalid_policy")

    def test_invalid_weekday_rejected(self):
        with self.assertRaises(ValidationError):
            WorkingHoursPolicy(allowed_weekdays={0, 7})

    def test_unknown_time_zone_rejected(self):
        with self.assertRaises(ValidationError):
            WorkingHoursPolicy(timezone_name="Mars/Olympus_Mons")

    def test_working_minutes(self):
        self.assertEqual(self.policy.working_minutes(MONDAY), 480)
        self.assertEqual(self.policy.working_minutes(SATURDAY), 0)

    def test_opening_and_closing_are_local(self):
        policy = WorkingHoursPolicy(timezone_name="Europe/Berlin")
        self.assertEqual(policy.opening(MONDAY), datetime(2030, 3, 18, 9, tzinfo=ZoneInfo("Europe/Berlin")))


@override_settings(
    TIME_ZONE="UTC",
    SCHEDULING={"OPEN_HOUR": 8, "CLOSE_HOUR": 12, "ALLOWED_WEEKDAYS": [5, 6]},
)
class SchedulingConfigTests(SimpleTestCase):
    def test_policy_reads_settings(self):
        policy = policy_from_settings()
        self.assertEqual((policy.open_hour, policy.close_hour), (8, 12))
        self.assertEqual(policy.allowed_weekdays, frozenset({5, 6}))

    def test_missing_keys_fall_back_to_defaults(self):
        self.assertEqual(get_setting("SLOT_GRANULARITY_MINUTES"), 30)
        self.assertEqual(get_setting("RECURRENCE_MAX_OCCURRENCES"), 104)

    def test_overrides_win_and_none_is_ignored(self):
        policy = policy_from_settings(open_hour=10, close_hour=None)
        self.assertEqual((policy.open_hour, policy.close_hour), (10, 12))

    @override_settings(TIME_ZONE="America/New_York")
    def test_policy_uses_project_time_zone(self):
        self.assertEqual(policy_from_settings().timezone_name, "America/New_York")


# ═══════════════════════════════════════════════════════════════════
#  Conflict Detector
# ═══════════════════════════════════════════════════════════════════


class ConflictDetectionTests(SimpleTestCase):
    def setUp(self):
        self.policy = WorkingHoursPolicy()
        self.existing = [appt(1, 10), appt(2, 11, duration=60)]

    def detect(self, start, end, **kwargs):
        return detect_conflicts(1, Interval(start, end), self.existing, self.policy, **kwargs)

    def test_free_interval_has_no_conflicts(self):
        self.assertEqual(self.detect(at(9), at(9, 30)), [])

    def test_boundary_touching_is_not_a_conflict(self):
        self.assertEqual(self.detect(at(10, 30), at(11)), [])
        self.assertEqual(self.detect(at(9, 30), at(10)), [])

    def test_overlap_reported_with_appointment_id(self):
        conflicts = self.detect(at(10, 15), at(10, 45))
        self.assertEqual(len(conflicts), 1)
        self.assertEqual(conflicts[0].kind, ConflictKind.OVERLAP)
        self.assertEqual(conflicts[0].appointment_id, 1)
        self.assertIn("10:00", conflicts[0].message)

    def test_every_overlap_reported_in_start_order(self):
        conflicts = self.detect(at(10), at(12))
        self.assertEqual([c.appointment_id for c in conflicts], [1, 2])

    def test_cancelled_and_rescheduled_do_not_block(self):
        self.existing = [
            appt(1, 10, status=AppointmentStatus.CANCELLED),
            appt(2, 10, status=AppointmentStatus.RESCHEDULED),
        ]
        self.assertEqual(self.detect(at(10), at(10, 30)), [])

    def test_completed_and_no_show_still_block(self):
        for status in (AppointmentStatus.COMPLETED, AppointmentStatus.NO_SHOW, AppointmentStatus.IN_PROGRESS):
            with self.subTest(status=status):
                self.existing = [appt(1, 10, status=status)]
                self.assertEqual(len(self.detect(at(10), at(10, 30))), 1)

    def test_exclude_id_skips_the_appointment_being_moved(self):
        self.assertEqual(self.detect(at(10, 15), at(10, 45), exclude_id=1), [])

    def test_other_providers_are_ignored(self):
        self.existing = [appt(1, 10, provider_id=2)]
        self.assertEqual(self.detect(at(10), at(10, 30)), [])

    def test_outside_hours_reported(self):
        conflicts = self.detect(at(16, 45), at(17, 15))
        self.assertEqual([c.kind for c in conflicts], [ConflictKind.OUTSIDE_HOURS])
        self.assertTrue(has_outside_hours(conflicts))

    def test_outside_hours_comes_after_overlaps(self):
        self.existing = [appt(1, 16, 30)]
        conflicts = self.detect(at(16, 45), at(17, 15))
        self.assertEqual([c.kind for c in conflicts], [ConflictKind.OVERLAP, ConflictKind.OUTSIDE_HOURS])

    def test_patient_double_booking_with_another_provider(self):
        elsewhere = appt(9, 10, provider_id=2, patient_id=100)
        conflicts = self.detect(at(9, 45), at(10, 15), patient_id=100, patient_appointments=[elsewhere])
        kinds = [c.kind for c in conflicts]
        self.assertEqual(kinds, [ConflictKind.OVERLAP, ConflictKind.DOUBLE_BOOKING])
        self.assertEqual(conflicts[1].appointment_id, 9)

    def test_double_booking_ignores_other_patients(self):
        elsewhere = appt(9, 9, provider_id=2, patient_id=200)
        self.assertEqual(self.detect(at(9), at(9, 30), patient_id=100, patient_appointments=[elsewhere]), [])

    def test_time_off_reported_as_unavailable(self):
        block = Block(Interval(at(13), at(15)), reason="Training")
        conflicts = self.detect(at(14), at(14, 30), blocks=[block])
        self.assertEqual(len(conflicts), 1)
        self.assertEqual(conflicts[0].kind, ConflictKind.UNAVAILABLE)
        self.assertIn("Training", conflicts[0].message)

    def test_conflict_as_dict(self):
        data = self.detect(at(10), at(10, 30))[0].as_dict()
        self.assertEqual(data["kind"], "OVERLAP")
        self.assertEqual(data["appointment_id"], 1)
        self.assertEqual(data["start"], at(10).isoformat())

    def test_detection_is_deterministic(self):
        first = self.detect(at(10), at(12))
        self.existing.reverse()
        self.assertEqual(first, self.detect(at(10), at(12)))


class ExceptionTests(SimpleTestCase):
    def test_conflict_error_carries_conflicts(self):
        error = ConflictError(["a", "b"])
        self.assertEqual(error.conflicts, ["a", "b"])
        self.assertEqual(error.code, "slot_unavailable")
        self.assertIsInstance(error, BookingError)

    def test_provider_busy_is_internal(self):
        error = ProviderBusyError()
        self.assertEqual(error.code, "provider_busy")
        self.assertIn("busy", error.message)


# ═══════════════════════════════════════════════════════════════════
#  Provider lock registry
# ═══════════════════════════════════════════════════════════════════


class ProviderLockRegistryTests(SimpleTestCase):
    def setUp(self):
        self.registry = ProviderLockRegistry()

    def test_lock_is_released_after_block(self):
        with self.registry.hold(1, timeout=1):
            self.assertTrue(self.registry.is_held(1))
        self.assertFalse(self.registry.is_held(1))

    def test_released_on_error(self):
        with self.assertRaises(RuntimeError):
            with self.registry.hold(1, timeout=1):
                raise RuntimeError("boom")
        self.assertFalse(self.registry.is_held(1))

    def test_timeout_fails_closed(self):
        holding = threading.Event()
        release = threading.Event()

        def holder():
            with self.registry.hold(1, timeout=1):
                holding.set()
                release.wait(5)

        thread = threading.Thread(target=holder)
        thread.start()
        try:
            holding.wait(5)
            with self.assertRaises(ProviderBusyError):
                with self.registry.hold(1, timeout=0.05):
                    pass
        finally:
            release.set()
            thread.join()

    def test_providers_do_not_block_each_other(self):
        with self.registry.hold(1, timeout=1):
            with self.registry.hold(2, timeout=0.05):
                self.assertTrue(self.registry.is_held(2))

    def test_lock_entries_are_dropped_when_idle(self):
        for provider_id in range(50):
            with self.registry.hold(provider_id, timeout=1):
                self.assertEqual(len(self.registry), 1)
        self.assertEqual(len(self.registry), 0)

    def test_entry_dropped_after_timeout(self):
        holding = threading.Event()
        release = threading.Event()

        def holder():
            with self.registry.hold(1, timeout=1):
                holding.set()
                release.wait(5)

        thread = threading.Thread(target=holder)
        thread.start()
        try:
            holding.wait(5)
            with self.assertRaises(ProviderBusyError):
                with self.registry.hold(1, timeout=0.05):
                    pass
            self.assertEqual(len(self.registry), 1)
        finally:
            release.set()
            thread.join()
        self.assertEqual(len(self.registry), 0)

    def test_is_held_does_not_create_entries(self):
        self.assertFalse(self.registry.is_held(7))
        self.assertEqual(len(self.registry), 0)
