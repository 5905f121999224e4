"""
API endpoint tests for the appointment booking views.
"""

from datetime import timedelta
from unittest.mock import patch

from django.test import TestCase
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APIClient

from appointments.models import Appointment
from appointments.tests import SchedulingTestMixin
from scheduling.constants import AppointmentStatus
from scheduling.exceptions import ProviderBusyError


class AppointmentAPITestMixin(SchedulingTestMixin):
    def setUp(self):
        super().setUp()
        self.client = APIClient()
        self.client.force_authenticate(user=self.user)

    def detail_url(self, appointment, name="api_appointment_detail"):
        return reverse(f"appointments:{name}", args=[appointment.id])


class CreateAppointmentAPITests(AppointmentAPITestMixin, TestCase):
    """Tests for POST /appointments/api/."""

    def setUp(self):
        super().setUp()
        self.url = reverse("appointments:api_create_appointment")

    def _payload(self, **overrides):
        payload = {
            "patient_id": self.patient.id,
            "provider_id": self.provider.id,
            "scheduled_at": self.at(9).isoformat(),
            "duration_minutes": 30,
            "appointment_type": "CONSULTATION",
            "notes": "Test booking",
        }
        payload.update(overrides)
        return payload

    def test_successful_api_booking(self):
        response = self.client.post(self.url, self._payload(), format="json")

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertIn("id", response.data)
        self.assertEqual(response.data["status"], "SCHEDULED")
        self.assertEqual(response.data["provider_name"], "Dr. Ahmad Khalil")
        self.assertEqual(response.data["patient_name"], "Ali Hassan")
        self.assertIn("CONFIRM", response.data["allowed_actions"])
        self.assertTrue(response.data["reference_code"].startswith("APT-"))

    def test_unauthenticated_returns_forbidden(self):
        self.client.force_authenticate(user=None)
        response = self.client.post(self.url, self._payload(), format="json")
        self.assertIn(response.status_code, [
            status.HTTP_401_UNAUTHORIZED,
            status.HTTP_403_FORBIDDEN,
        ])

    def test_missing_fields_returns_400(self):
        response = self.client.post(self.url, {}, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("patient_id", response.data)

    def test_slot_unavailable_returns_409(self):
        self.client.post(self.url, self._payload(), format="json")

        response = self.client.post(self.url, self._payload(patient_id=self.patient2.id), format="json")

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data["code"], "slot_unavailable")
        self.assertEqual(response.data["conflicts"][0]["kind"], "OVERLAP")
        self.assertEqual(Appointment.objects.count(), 1)

    def test_past_date_returns_400(self):
        yesterday = timezone.now() - timedelta(days=1)
        response = self.client.post(self.url, self._payload(scheduled_at=yesterday.isoformat()), format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["code"], "past_date")

    def test_outside_hours_returns_400_with_conflicts(self):
        response = self.client.post(self.url, self._payload(scheduled_at=self.at(18).isoformat()), format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["code"], "outside_working_hours")
        self.assertEqual(response.data["conflicts"][0]["kind"], "OUTSIDE_HOURS")

    def test_unknown_patient_returns_404(self):
        response = self.client.post(self.url, self._payload(patient_id=99999), format="json")
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data["code"], "patient_not_found")

    def test_provider_busy_returns_503(self):
        with patch("appointments.api_views.create_appointment", side_effect=ProviderBusyError()):
            response = self.client.post(self.url, self._payload(), format="json")
        self.assertEqual(response.status_code, status.HTTP_503_SERVICE_UNAVAILABLE)
        self.assertEqual(response.data["code"], "provider_busy")

    def test_recurring_series(self):
        response = self.client.post(
            self.url,
            self._payload(recurrence={"frequency": "WEEKLY", "count": 3}),
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data["booked_count"], 3)
        self.assertEqual(response.data["skipped_count"], 0)
        self.assertEqual(response.data["base"]["recurrence"]["frequency"], "WEEKLY")
        self.assertEqual(len(response.data["outcomes"]), 2)

    def test_recurrence_without_end_returns_400(self):
        response = self.client.post(
            self.url,
            self._payload(recurrence={"frequency": "WEEKLY"}),
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(Appointment.objects.count(), 0)


class AppointmentDetailAPITests(AppointmentAPITestMixin, TestCase):
    """Tests for GET/PATCH /appointments/api/<id>/."""

    def test_get_appointment(self):
        appointment = self.book(10)
        response = self.client.get(self.detail_url(appointment))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["reference_code"], appointment.reference_code)

    def test_get_unknown_returns_404(self):
        response = self.client.get(reverse("appointments:api_appointment_detail", args=[99999]))
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data["code"], "appointment_not_found")

    def test_patch_descriptive_fields(self):
        appointment = self.book(10)
        response = self.client.patch(
            self.detail_url(appointment), {"location": "Room 4", "priority": "HIGH"}, format="json"
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["id"], appointment.id)
        self.assertEqual(response.data["location"], "Room 4")
        self.assertEqual(response.data["priority"], "HIGH")

    def test_patch_time_returns_replacement(self):
        appointment = self.book(10)
        response = self.client.patch(
            self.detail_url(appointment), {"scheduled_at": self.at(14).isoformat()}, format="json"
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertNotEqual(response.data["id"], appointment.id)
        self.assertEqual(response.data["rescheduled_from"], appointment.id)

    def test_patch_empty_returns_400(self):
        appointment = self.book(10)
        response = self.client.patch(self.detail_url(appointment), {}, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class LifecycleAPITests(AppointmentAPITestMixin, TestCase):
    """Tests for the cancel / complete / reschedule / transition endpoints."""

    def test_cancel(self):
        appointment = self.book(10)
        response = self.client.post(
            self.detail_url(appointment, "api_cancel_appointment"), {"reason": "Patient request"}, format="json"
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["status"], "CANCELLED")
        self.assertEqual(response.data["cancellation_reason"], "Patient request")
        self.assertEqual(response.data["allowed_actions"], [])

    def test_cancel_without_reason_returns_400(self):
        appointment = self.book(10)
        response = self.client.post(self.detail_url(appointment, "api_cancel_appointment"), {}, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        appointment.refresh_from_db()
        self.assertEqual(appointment.status, AppointmentStatus.SCHEDULED)

    def test_cancel_twice_returns_400(self):
        appointment = self.book(10)
        url = self.detail_url(appointment, "api_cancel_appointment")
        self.client.post(url, {"reason": "Patient request"}, format="json")
        response = self.client.post(url, {"reason": "Again"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["code"], "invalid_transition")

    def test_complete(self):
        appointment = self.book(10)
        response = self.client.post(
            self.detail_url(appointment, "api_complete_appointment"), {"notes": "All good"}, format="json"
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["status"], "COMPLETED")
        self.assertIsNotNone(response.data["completed_at"])

    def test_reschedule(self):
        appointment = self.book(10)
        response = self.client.post(
            self.detail_url(appointment, "api_reschedule_appointment"),
            {"scheduled_at": self.at(15).isoformat(), "reason": "Doctor running late"},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data["status"], "SCHEDULED")
        self.assertEqual(response.data["rescheduled_from"], appointment.id)
        appointment.refresh_from_db()
        self.assertEqual(appointment.status, AppointmentStatus.RESCHEDULED)

    def test_reschedule_into_conflict_returns_409(self):
        appointment = self.book(10)
        self.book(15, patient=self.patient2)
        response = self.client.post(
            self.detail_url(appointment, "api_reschedule_appointment"),
            {"scheduled_at": self.at(15).isoformat()},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

    def test_transition(self):
        appointment = self.book(10)
        url = self.detail_url(appointment, "api_transition_appointment")

        response = self.client.post(url, {"action": "CONFIRM"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["status"], "CONFIRMED")

        response = self.client.post(url, {"action": "CHECK_IN"}, format="json")
        self.assertEqual(response.data["status"], "CHECKED_IN")

    def test_backward_transition_returns_400(self):
        appointment = self.book(10)
        url = self.detail_url(appointment, "api_transition_appointment")
        self.client.post(url, {"action": "START"}, format="json")

        response = self.client.post(url, {"action": "CONFIRM"}, format="json")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["code"], "invalid_transition")

    def test_unknown_action_returns_400(self):
        appointment = self.book(10)
        response = self.client.post(
            self.detail_url(appointment, "api_transition_appointment"), {"action": "TELEPORT"}, format="json"
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class ConflictCheckAPITests(AppointmentAPITestMixin, TestCase):
    """Tests for POST /appointments/api/conflicts/."""

    def setUp(self):
        super().setUp()
        self.url = reverse("appointments:api_check_conflicts")

    def test_free_slot(self):
        response = self.client.post(
            self.url,
            {"provider_id": self.provider.id, "scheduled_at": self.at(10).isoformat(), "duration_minutes": 30},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data["available"])
        self.assertEqual(response.data["results"], [])

    def test_lists_every_conflict(self):
        existing = self.book(10)
        response = self.client.post(
            self.url,
            {"provider_id": self.provider.id, "scheduled_at": self.at(16, 30).isoformat(), "duration_minutes": 60},
            format="json",
        )
        self.assertFalse(response.data["available"])
        self.assertEqual([c["kind"] for c in response.data["results"]], ["OUTSIDE_HOURS"])

        response = self.client.post(
            self.url,
            {"provider_id": self.provider.id, "scheduled_at": self.at(10).isoformat(), "duration_minutes": 30},
            format="json",
        )
        self.assertEqual(response.data["results"][0]["appointment_id"], existing.id)

    def test_does_not_book(self):
        self.client.post(
            self.url,
            {"provider_id": self.provider.id, "scheduled_at": self.at(10).isoformat(), "duration_minutes": 30},
            format="json",
        )
        self.assertEqual(Appointment.objects.count(), 0)
