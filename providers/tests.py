"""
Tests for provider calendar reads.

Covers:
- Day schedule (service + API)
- Next available slot search
- Workload / utilization
- Read retries on transient database errors
- Provider and time-off model validation
"""

from datetime import date, timedelta
from unittest.mock import patch

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import OperationalError
from django.test import TestCase, override_settings
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APIClient

from appointments.services import cancel_appointment
from appointments.tests import SchedulingTestMixin
from scheduling.exceptions import InternalError, NotFoundError, ValidationError

from .models import Provider, ProviderTimeOff
from .services import (
    find_next_available_slot,
    get_provider_schedule,
    get_provider_workload,
    policy_for_provider,
)


# ═══════════════════════════════════════════════════════════════════
#  Day schedule
# ═══════════════════════════════════════════════════════════════════


class ProviderScheduleTests(SchedulingTestMixin, TestCase):
    def test_empty_day_has_sixteen_free_slots(self):
        schedule = get_provider_schedule(self.provider.id, self.next_monday)

        self.assertEqual(len(schedule.available), 16)
        self.assertEqual(schedule.booked, [])
        self.assertEqual(schedule.available[0].start, self.at(9))
        self.assertEqual(schedule.available[-1].end, self.at(17))

    def test_booked_slots(self):
        appointment = self.book(10, duration=60)
        schedule = get_provider_schedule(self.provider.id, self.next_monday)

        self.assertEqual(len(schedule.booked), 2)
        self.assertEqual(len(schedule.available), 14)
        self.assertTrue(all(slot.appointment_id == appointment.id for slot in schedule.booked))

    def test_cancelled_appointment_frees_slot(self):
        appointment = self.book(10)
        cancel_appointment(appointment.id, "Patient request", actor=self.user)
        schedule = get_provider_schedule(self.provider.id, self.next_monday)
        self.assertEqual(len(schedule.available), 16)

    def test_other_provider_not_shown(self):
        self.book(10, provider=self.other_provider)
        schedule = get_provider_schedule(self.provider.id, self.next_monday)
        self.assertEqual(schedule.booked, [])

    def test_time_off_is_blocked(self):
        ProviderTimeOff.objects.create(
            provider=self.provider, start_at=self.at(13), end_at=self.at(14), reason="Staff meeting"
        )
        schedule = get_provider_schedule(self.provider.id, self.next_monday)

        self.assertEqual(len(schedule.blocked), 2)
        self.assertEqual(schedule.blocked[0].blocked_reason, "Staff meeting")
        self.assertEqual(len(schedule.available), 14)

    def test_weekend_has_sixteen_unblocked_slots(self):
        schedule = get_provider_schedule(self.provider.id, self.next_monday + timedelta(days=5))
        self.assertFalse(schedule.working_day)
        self.assertEqual(len(schedule.available), 16)
        self.assertEqual(schedule.blocked, [])

    def test_provider_hours_override(self):
        self.provider.open_hour = 8
        self.provider.close_hour = 12
        self.provider.save()
        schedule = get_provider_schedule(self.provider.id, self.next_monday)
        self.assertEqual(len(schedule.available), 8)
        self.assertEqual(schedule.available[0].start, self.at(8))

    def test_inactive_provider_not_found(self):
        self.provider.is_active = False
        self.provider.save()
        with self.assertRaises(NotFoundError):
            get_provider_schedule(self.provider.id, self.next_monday)


class ReadRetryTests(SchedulingTestMixin, TestCase):
    def test_transient_error_is_retried(self):
        with patch("providers.services._load_day", side_effect=[OperationalError("database is locked"), ([], [])]) as load:
            schedule = get_provider_schedule(self.provider.id, self.next_monday)

        self.assertEqual(load.call_count, 2)
        self.assertEqual(len(schedule.available), 16)

    @override_settings(SCHEDULING={"READ_RETRY_ATTEMPTS": 2})
    def test_persistent_error_raises_internal_error(self):
        with patch("providers.services._load_day", side_effect=OperationalError("database is locked")) as load:
            with self.assertRaises(InternalError):
                get_provider_schedule(self.provider.id, self.next_monday)
        self.assertEqual(load.call_count, 2)

    def test_other_errors_are_not_retried(self):
        with patch("providers.services._load_day", side_effect=KeyError("boom")) as load:
            with self.assertRaises(KeyError):
                get_provider_schedule(self.provider.id, self.next_monday)
        self.assertEqual(load.call_count, 1)


# ═══════════════════════════════════════════════════════════════════
#  Next available slot
# ═══════════════════════════════════════════════════════════════════


class NextAvailableSlotTests(SchedulingTestMixin, TestCase):
    def test_first_slot_of_empty_day(self):
        found = find_next_available_slot(self.provider.id, 30, start_from=self.next_monday)
        self.assertEqual(found.start, self.at(9))
        self.assertEqual(found.end, self.at(9, 30))

    def test_skips_booked_slots(self):
        self.book(9)
        self.book(9, 30, patient=self.patient2)
        found = find_next_available_slot(self.provider.id, 30, start_from=self.next_monday)
        self.assertEqual(found.start, self.at(10))

    def test_needs_contiguous_free_slots(self):
        self.book(9, 30)
        found = find_next_available_slot(self.provider.id, 60, start_from=self.next_monday)
        self.assertEqual(found.start, self.at(10))
        self.assertEqual(found.duration_minutes, 60)

    def test_rolls_over_to_next_working_day(self):
        ProviderTimeOff.objects.create(
            provider=self.provider, start_at=self.at(0), end_at=self.at(23, 59), reason="Annual leave"
        )
        found = find_next_available_slot(self.provider.id, 30, start_from=self.next_monday)
        self.assertEqual(found.start, self.at(9, day=self.next_monday + timedelta(days=1)))

    def test_weekend_start_moves_to_monday(self):
        saturday = self.next_monday + timedelta(days=5)
        found = find_next_available_slot(self.provider.id, 30, start_from=saturday)
        self.assertEqual(found.start, self.at(9, day=self.next_monday + timedelta(days=7)))

    def test_respects_start_time(self):
        found = find_next_available_slot(self.provider.id, 30, start_from=self.at(13, 10))
        self.assertEqual(found.start, self.at(13, 30))

    @override_settings(SCHEDULING={"NEXT_AVAILABLE_SEARCH_DAYS": 3})
    def test_nothing_fits(self):
        self.assertIsNone(find_next_available_slot(self.provider.id, 600, start_from=self.next_monday))

    def test_invalid_duration(self):
        with self.assertRaises(ValidationError):
            find_next_available_slot(self.provider.id, 0)


# ═══════════════════════════════════════════════════════════════════
#  Workload
# ═══════════════════════════════════════════════════════════════════


class ProviderWorkloadTests(SchedulingTestMixin, TestCase):
    def test_utilization_over_working_week(self):
        self.book(9, duration=60)
        self.book(14, duration=60, day=self.next_monday + timedelta(days=2), patient=self.patient2)
        cancelled = self.book(11, duration=60)
        cancel_appointment(cancelled.id, "Patient request", actor=self.user)

        workload = get_provider_workload(
            self.provider.id, self.next_monday, self.next_monday + timedelta(days=6)
        )

        self.assertEqual(workload.working_hours, 40.0)
        self.assertEqual(workload.booked_hours, 2.0)
        self.assertEqual(workload.utilization, 5.0)
        self.assertEqual(workload.appointment_count, 2)
        self.assertEqual(workload.by_status, {"SCHEDULED": 2})

    def test_weekend_only_range(self):
        saturday = self.next_monday + timedelta(days=5)
        workload = get_provider_workload(self.provider.id, saturday, saturday + timedelta(days=1))
        self.assertEqual(workload.working_hours, 0)
        self.assertEqual(workload.utilization, 0.0)

    def test_inverted_range(self):
        with self.assertRaises(ValidationError) as ctx:
            get_provider_workload(self.provider.id, self.next_monday, self.next_monday - timedelta(days=1))
        self.assertEqual(ctx.exception.code, "invalid_range")


# ═══════════════════════════════════════════════════════════════════
#  API
# ═══════════════════════════════════════════════════════════════════


class ProviderAPITests(SchedulingTestMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.client = APIClient()
        self.client.force_authenticate(user=self.user)

    def url(self, name, provider=None):
        return reverse(f"providers:{name}", args=[(provider or self.provider).id])

    def test_schedule(self):
        appointment = self.book(10)
        response = self.client.get(self.url("api_provider_schedule"), {"date": self.next_monday.isoformat()})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data["slots"]), 16)
        self.assertEqual(len(response.data["available"]), 15)
        self.assertEqual(response.data["booked"][0]["appointment_id"], appointment.id)
        self.assertEqual(response.data["booked"][0]["state"], "booked")
        self.assertTrue(response.data["working_day"])

    def test_schedule_requires_date(self):
        response = self.client.get(self.url("api_provider_schedule"))
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("date", response.data)

    def test_schedule_invalid_date(self):
        response = self.client.get(self.url("api_provider_schedule"), {"date": "18/03/2030"})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_schedule_unknown_provider(self):
        response = self.client.get(
            reverse("providers:api_provider_schedule", args=[99999]), {"date": self.next_monday.isoformat()}
        )
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data["code"], "provider_not_found")

    def test_unauthenticated_returns_forbidden(self):
        self.client.force_authenticate(user=None)
        response = self.client.get(self.url("api_provider_schedule"), {"date": self.next_monday.isoformat()})
        self.assertIn(response.status_code, [
            status.HTTP_401_UNAUTHORIZED,
            status.HTTP_403_FORBIDDEN,
        ])

    def test_next_available(self):
        response = self.client.get(
            self.url("api_provider_next_available"),
            {"duration": 45, "from": self.next_monday.isoformat()},
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["result"]["duration_minutes"], 45)

    @override_settings(SCHEDULING={"NEXT_AVAILABLE_SEARCH_DAYS": 2})
    def test_next_available_none(self):
        response = self.client.get(
            self.url("api_provider_next_available"),
            {"duration": 600, "from": self.next_monday.isoformat()},
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIsNone(response.data["result"])

    def test_next_available_bad_duration(self):
        response = self.client.get(self.url("api_provider_next_available"), {"duration": "soon"})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("duration", response.data)

    def test_workload(self):
        self.book(9, duration=60)
        response = self.client.get(
            self.url("api_provider_workload"),
            {"start": self.next_monday.isoformat(), "end": (self.next_monday + timedelta(days=4)).isoformat()},
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["working_hours"], 40.0)
        self.assertEqual(response.data["booked_hours"], 1.0)
        self.assertEqual(response.data["utilization"], 2.5)

    def test_workload_defaults_to_current_week(self):
        response = self.client.get(self.url("api_provider_workload"))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        start = date.fromisoformat(response.data["start_date"])
        end = date.fromisoformat(response.data["end_date"])
        self.assertEqual(start.weekday(), 0)
        self.assertEqual((end - start).days, 6)


# ═══════════════════════════════════════════════════════════════════
#  Models
# ═══════════════════════════════════════════════════════════════════


class ProviderModelTests(SchedulingTestMixin, TestCase):
    def test_display_name(self):
        self.assertEqual(self.provider.display_name, "Dr. Ahmad Khalil")
        provider = Provider(first_name="Rana", last_name="Aziz", title="")
        self.assertEqual(str(provider), "Rana Aziz")

    def test_close_before_open_rejected(self):
        provider = Provider(first_name="Rana", last_name="Aziz", open_hour=14, close_hour=10)
        with self.assertRaises(DjangoValidationError):
            provider.full_clean()

    def test_invalid_hours_are_not_saved(self):
        with self.assertRaises(DjangoValidationError):
            Provider.objects.create(first_name="Rana", last_name="Aziz", open_hour=14, close_hour=10)
        self.assertFalse(Provider.objects.filter(last_name="Aziz").exists())

    def test_out_of_range_hour_is_not_saved(self):
        self.provider.close_hour = 25
        with self.assertRaises(DjangoValidationError):
            self.provider.save()
        self.provider.refresh_from_db()
        self.assertIsNone(self.provider.close_hour)

    def test_time_off_end_before_start_rejected(self):
        with self.assertRaises(DjangoValidationError):
            ProviderTimeOff.objects.create(provider=self.provider, start_at=self.at(14), end_at=self.at(13))

    def test_policy_uses_clinic_defaults(self):
        policy = policy_for_provider(self.provider)
        self.assertEqual((policy.open_hour, policy.close_hour), (9, 17))
        self.assertEqual(policy.slot_granularity_minutes, 30)

    def test_policy_overrides(self):
        self.provider.open_hour = 7
        self.provider.slot_granularity_minutes = 15
        policy = policy_for_provider(self.provider)
        self.assertEqual(policy.open_hour, 7)
        self.assertEqual(policy.close_hour, 17)
        self.assertEqual(policy.slot_granularity_minutes, 15)
