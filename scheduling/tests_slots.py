"""
Tests for the slot generator / day view.
"""

from datetime import timedelta

from django.test import SimpleTestCase

from scheduling.constants import AppointmentStatus
from scheduling.intervals import Block, Interval
from scheduling.policy import WorkingHoursPolicy
from scheduling.slots import build_schedule, first_fit, partition_day
from scheduling.tests import MONDAY, SATURDAY, FakeAppointment, appt, at


class PartitionTests(SimpleTestCase):
    def test_default_day_has_sixteen_slots(self):
        slots = partition_day(MONDAY, WorkingHoursPolicy())
        self.assertEqual(len(slots), 16)
        self.assertEqual(slots[0].start, at(9))
        self.assertEqual(slots[-1].end, at(17))

    def test_slots_are_contiguous(self):
        slots = partition_day(MONDAY, WorkingHoursPolicy())
        for previous, current in zip(slots, slots[1:]):
            self.assertEqual(previous.end, current.start)

    def test_trailing_partial_slot_dropped(self):
        policy = WorkingHoursPolicy(open_hour=9, close_hour=10, slot_granularity_minutes=25)
        self.assertEqual(len(partition_day(MONDAY, policy)), 2)


class BuildScheduleTests(SimpleTestCase):
    def setUp(self):
        self.policy = WorkingHoursPolicy()

    def test_empty_day_is_all_available(self):
        schedule = build_schedule(1, MONDAY, self.policy, [])
        self.assertEqual(len(schedule.available), 16)
        self.assertEqual(schedule.booked, [])
        self.assertEqual(schedule.blocked, [])

    def test_booked_slot_carries_appointment_id(self):
        schedule = build_schedule(1, MONDAY, self.policy, [appt(5, 10)])
        self.assertEqual(len(schedule.booked), 1)
        slot = schedule.booked[0]
        self.assertEqual((slot.start, slot.appointment_id, slot.available), (at(10), 5, False))
        self.assertEqual(slot.state, "booked")
        self.assertEqual(len(schedule.available), 15)

    def test_long_appointment_books_every_covered_slot(self):
        schedule = build_schedule(1, MONDAY, self.policy, [appt(5, 10, duration=60)])
        self.assertEqual([slot.start for slot in schedule.booked], [at(10), at(10, 30)])

    def test_off_grid_appointment_books_both_touched_slots(self):
        schedule = build_schedule(1, MONDAY, self.policy, [appt(5, 10, 15)])
        self.assertEqual([slot.start for slot in schedule.booked], [at(10), at(10, 30)])

    def test_cancelled_appointments_free_the_slot(self):
        schedule = build_schedule(1, MONDAY, self.policy, [appt(5, 10, status=AppointmentStatus.CANCELLED)])
        self.assertEqual(schedule.booked, [])

    def test_other_provider_ignored(self):
        schedule = build_schedule(1, MONDAY, self.policy, [appt(5, 10, provider_id=2)])
        self.assertEqual(schedule.booked, [])

    def test_weekend_still_has_sixteen_available_slots(self):
        schedule = build_schedule(1, SATURDAY, self.policy, [])
        self.assertEqual(len(schedule.slots), 16)
        self.assertEqual(len(schedule.available), 16)
        self.assertEqual(schedule.blocked, [])
        self.assertFalse(schedule.working_day)

    def test_working_day_flag(self):
        self.assertTrue(build_schedule(1, MONDAY, self.policy, []).working_day)

    def test_weekend_booking_shows_as_booked(self):
        schedule = build_schedule(1, SATURDAY, self.policy, [FakeAppointment(id=5, scheduled_at=at(10, day=SATURDAY))])
        self.assertEqual([slot.appointment_id for slot in schedule.booked], [5])
        self.assertEqual(len(schedule.available), 15)

    def test_time_off_blocks_slots(self):
        block = Block(Interval(at(13), at(14)), reason="Lunch meeting")
        schedule = build_schedule(1, MONDAY, self.policy, [], blocks=[block])
        self.assertEqual([slot.start for slot in schedule.blocked], [at(13), at(13, 30)])
        self.assertEqual(schedule.blocked[0].blocked_reason, "Lunch meeting")
        self.assertEqual(schedule.blocked[0].state, "blocked")

    def test_booked_wins_over_blocked(self):
        block = Block(Interval(at(10), at(11)), reason="Admin")
        schedule = build_schedule(1, MONDAY, self.policy, [appt(5, 10)], blocks=[block])
        self.assertEqual([slot.start for slot in schedule.booked], [at(10)])
        self.assertEqual([slot.start for slot in schedule.blocked], [at(10, 30)])

    def test_slots_property_is_time_ordered(self):
        schedule = build_schedule(1, MONDAY, self.policy, [appt(5, 12)])
        starts = [slot.start for slot in schedule.slots]
        self.assertEqual(starts, sorted(starts))
        self.assertEqual(len(starts), 16)

    def test_overlapping_appointments_pick_earliest_and_record_anomaly(self):
        existing = [appt(8, 10, 15), appt(7, 10), appt(6, 10)]
        with self.assertLogs("scheduling.slots", level="WARNING") as logs:
            schedule = build_schedule(1, MONDAY, self.policy, existing)

        first = schedule.booked[0]
        # 10:00 ties between ids 6 and 7; lowest id wins.
        self.assertEqual(first.appointment_id, 6)
        self.assertEqual(schedule.anomalies[0].appointment_ids, (6, 7, 8))
        self.assertEqual(schedule.anomalies[0].occupant_id, 6)
        self.assertIn("[SCHEDULE]", logs.output[0])

    def test_slot_count_independent_of_bookings(self):
        existing = [appt(i, 9 + i // 2, 30 * (i % 2)) for i in range(16)]
        schedule = build_schedule(1, MONDAY, self.policy, existing)
        self.assertEqual(len(schedule.booked), 16)
        self.assertEqual(len(schedule.slots), 16)


class FirstFitTests(SimpleTestCase):
    def setUp(self):
        self.policy = WorkingHoursPolicy()

    def test_first_free_slot(self):
        schedule = build_schedule(1, MONDAY, self.policy, [appt(1, 9)])
        self.assertEqual(first_fit(schedule, 30), Interval(at(9, 30), at(10)))

    def test_needs_contiguous_run(self):
        existing = [appt(1, 9, 30), appt(2, 10, 30)]
        schedule = build_schedule(1, MONDAY, self.policy, existing)
        # 09:00 and 10:00 are single free slots; 11:00-12:00 is the first hour.
        self.assertEqual(first_fit(schedule, 60), Interval(at(11), at(12)))

    def test_duration_is_exact_not_rounded(self):
        schedule = build_schedule(1, MONDAY, self.policy, [])
        found = first_fit(schedule, 45)
        self.assertEqual(found.end - found.start, timedelta(minutes=45))

    def test_nothing_fits(self):
        schedule = build_schedule(1, SATURDAY, self.policy, [])
        self.assertIsNone(first_fit(schedule, 30))
        self.assertIsNone(first_fit(build_schedule(1, MONDAY, self.policy, []), 9 * 60))
