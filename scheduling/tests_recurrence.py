"""
Tests for recurrence expansion.
"""

from datetime import date, datetime, timedelta
from types import SimpleNamespace
from zoneinfo import ZoneInfo

from django.test import SimpleTestCase

from scheduling.constants import Frequency
from scheduling.exceptions import ValidationError
from scheduling.recurrence import RecurrencePattern, expand
from scheduling.tests import UTC, at


def base(start, duration=30):
    return SimpleNamespace(scheduled_at=start, duration_minutes=duration)


class RecurrencePatternTests(SimpleTestCase):
    def test_requires_termination(self):
        with self.assertRaises(ValidationError) as ctx:
            RecurrencePattern(Frequency.WEEKLY)
        self.assertEqual(ctx.exception.code, "invalid_recurrence")

    def test_rejects_bad_interval_and_frequency(self):
        with self.assertRaises(ValidationError):
            RecurrencePattern(Frequency.DAILY, interval=0, count=3)
        with self.assertRaises(ValidationError):
            RecurrencePattern("HOURLY", count=3)

    def test_from_dict(self):
        pattern = RecurrencePattern.from_dict({"frequency": "weekly", "interval": 2, "until": "2030-06-30"})
        self.assertEqual(pattern.frequency, Frequency.WEEKLY)
        self.assertEqual(pattern.interval, 2)
        self.assertEqual(pattern.until, date(2030, 6, 30))
        self.assertEqual(pattern.as_dict()["until"], "2030-06-30")

    def test_from_dict_rejects_bad_date(self):
        with self.assertRaises(ValidationError):
            RecurrencePattern.from_dict({"frequency": "DAILY", "until": "June"})


class ExpandTests(SimpleTestCase):
    def test_count_includes_the_base(self):
        instances = expand(base(at(10)), RecurrencePattern(Frequency.WEEKLY, count=4))
        self.assertEqual([i.sequence for i in instances], [1, 2, 3])
        self.assertEqual(
            [i.scheduled_at for i in instances],
            [at(10) + timedelta(weeks=k) for k in (1, 2, 3)],
        )

    def test_duration_preserved(self):
        instances = expand(base(at(10), duration=45), RecurrencePattern(Frequency.DAILY, count=3))
        self.assertTrue(all(i.interval.duration_minutes == 45 for i in instances))

    def test_until_is_inclusive(self):
        pattern = RecurrencePattern(Frequency.DAILY, interval=2, until=date(2030, 3, 24))
        instances = expand(base(at(10)), pattern)
        self.assertEqual(
            [i.scheduled_at.date() for i in instances],
            [date(2030, 3, 20), date(2030, 3, 22), date(2030, 3, 24)],
        )

    def test_count_of_one_is_only_the_base(self):
        self.assertEqual(expand(base(at(10)), RecurrencePattern(Frequency.DAILY, count=1)), [])

    def test_monthly_clamps_to_month_end_without_drift(self):
        start = datetime(2030, 1, 31, 10, tzinfo=UTC)
        instances = expand(base(start), RecurrencePattern(Frequency.MONTHLY, count=4))
        self.assertEqual(
            [i.scheduled_at.date() for i in instances],
            [date(2030, 2, 28), date(2030, 3, 31), date(2030, 4, 30)],
        )

    def test_weekly_keeps_wall_clock_across_dst(self):
        berlin = ZoneInfo("Europe/Berlin")
        # Clocks go forward in Berlin on 2030-03-31.
        start = datetime(2030, 3, 25, 10, tzinfo=berlin)
        instances = expand(base(start), RecurrencePattern(Frequency.WEEKLY, count=2), tz=berlin)
        moved = instances[0].scheduled_at.astimezone(berlin)
        self.assertEqual((moved.date(), moved.hour), (date(2030, 4, 1), 10))

    def test_too_many_occurrences_rejected(self):
        with self.assertRaises(ValidationError) as ctx:
            expand(base(at(10)), RecurrencePattern(Frequency.DAILY, count=11), max_occurrences=10)
        self.assertEqual(ctx.exception.code, "recurrence_too_long")

    def test_until_far_away_rejected(self):
        pattern = RecurrencePattern(Frequency.DAILY, until=date(2032, 1, 1))
        with self.assertRaises(ValidationError):
            expand(base(at(10)), pattern, max_occurrences=104)

    def test_until_before_start_rejected(self):
        with self.assertRaises(ValidationError):
            expand(base(at(10)), RecurrencePattern(Frequency.DAILY, until=date(2030, 1, 1)))
