"""
Tests for reminder requests sent after booking.
"""

from datetime import timedelta
from unittest.mock import MagicMock, patch

import requests
from django.test import TestCase, override_settings
from django.utils import timezone

from appointments.models import AppointmentReminder
from appointments.services import (
    cancel_appointment,
    reschedule_appointment,
    schedule_reminder,
    withdraw_reminders,
)
from appointments.tests import SchedulingTestMixin

WEBHOOK = {"REMINDER_WEBHOOK_URL": "https://notify.example.com/reminders", "REMINDER_LEAD_MINUTES": 60}


class ScheduleReminderTests(SchedulingTestMixin, TestCase):
    def test_booking_requests_reminder_on_commit(self):
        with self.captureOnCommitCallbacks(execute=True) as callbacks:
            appointment = self.book(10)

        self.assertEqual(len(callbacks), 1)
        reminder = AppointmentReminder.objects.get(appointment=appointment)
        self.assertEqual(reminder.status, AppointmentReminder.Status.PENDING)

    def test_no_reminder_before_commit(self):
        with self.captureOnCommitCallbacks(execute=False):
            appointment = self.book(10)
        self.assertFalse(AppointmentReminder.objects.filter(appointment=appointment).exists())

    @override_settings(SCHEDULING={"REMINDER_LEAD_MINUTES": 60})
    def test_remind_at_is_lead_time_before_start(self):
        appointment = self.book(10)
        reminder = schedule_reminder(appointment.id)
        self.assertEqual(reminder.remind_at, self.at(9))

    def test_remind_at_never_in_the_past(self):
        appointment = self.book(10)
        with override_settings(SCHEDULING={"REMINDER_LEAD_MINUTES": 60 * 24 * 30}):
            before = timezone.now()
            reminder = schedule_reminder(appointment.id)
        self.assertGreaterEqual(reminder.remind_at, before)

    @override_settings(SCHEDULING=WEBHOOK)
    @patch("appointments.services.reminder_service.requests.post")
    def test_webhook_success_marks_sent(self, mock_post):
        mock_post.return_value = MagicMock(status_code=200)
        appointment = self.book(10)

        reminder = schedule_reminder(appointment.id)

        self.assertEqual(reminder.status, AppointmentReminder.Status.SENT)
        mock_post.assert_called_once()
        args, kwargs = mock_post.call_args
        self.assertEqual(args[0], WEBHOOK["REMINDER_WEBHOOK_URL"])
        payload = kwargs["json"]
        self.assertEqual(payload["appointment_id"], appointment.id)
        self.assertEqual(payload["reference_code"], appointment.reference_code)
        self.assertEqual(payload["patient_email"], "ali@example.com")
        self.assertEqual(payload["provider_name"], "Dr. Ahmad Khalil")

    @override_settings(SCHEDULING=WEBHOOK)
    @patch("appointments.services.reminder_service.requests.post")
    def test_webhook_failure_is_recorded_not_raised(self, mock_post):
        mock_post.side_effect = requests.ConnectionError("connection refused")

        with self.captureOnCommitCallbacks(execute=True):
            appointment = self.book(10)

        reminder = AppointmentReminder.objects.get(appointment=appointment)
        self.assertEqual(reminder.status, AppointmentReminder.Status.FAILED)
        self.assertIn("connection refused", reminder.last_error)
        appointment.refresh_from_db()
        self.assertEqual(appointment.status, "SCHEDULED")

    @override_settings(SCHEDULING=WEBHOOK)
    @patch("appointments.services.reminder_service.requests.post")
    def test_http_error_marks_failed(self, mock_post):
        response = MagicMock()
        response.raise_for_status.side_effect = requests.HTTPError("502 Bad Gateway")
        mock_post.return_value = response
        appointment = self.book(10)

        reminder = schedule_reminder(appointment.id)

        self.assertEqual(reminder.status, AppointmentReminder.Status.FAILED)

    def test_unknown_appointment_returns_none(self):
        self.assertIsNone(schedule_reminder(99999))


class WithdrawReminderTests(SchedulingTestMixin, TestCase):
    def test_cancel_withdraws_pending_reminders(self):
        with self.captureOnCommitCallbacks(execute=True):
            appointment = self.book(10)
        with self.captureOnCommitCallbacks(execute=True):
            cancel_appointment(appointment.id, "Patient request", actor=self.user)

        reminder = AppointmentReminder.objects.get(appointment=appointment)
        self.assertEqual(reminder.status, AppointmentReminder.Status.CANCELLED)

    def test_reschedule_moves_reminder_to_replacement(self):
        with self.captureOnCommitCallbacks(execute=True):
            original = self.book(10)
        with self.captureOnCommitCallbacks(execute=True):
            replacement = reschedule_appointment(original.id, self.at(14), actor=self.user)

        self.assertEqual(
            AppointmentReminder.objects.get(appointment=original).status,
            AppointmentReminder.Status.CANCELLED,
        )
        self.assertEqual(
            AppointmentReminder.objects.get(appointment=replacement).status,
            AppointmentReminder.Status.PENDING,
        )

    def test_past_and_failed_reminders_are_left_alone(self):
        appointment = self.book(10)
        failed = AppointmentReminder.objects.create(
            appointment=appointment,
            remind_at=timezone.now() + timedelta(hours=1),
            status=AppointmentReminder.Status.FAILED,
        )
        delivered = AppointmentReminder.objects.create(
            appointment=appointment,
            remind_at=timezone.now() - timedelta(hours=1),
            status=AppointmentReminder.Status.SENT,
        )

        self.assertEqual(withdraw_reminders(appointment.id), 0)
        failed.refresh_from_db()
        delivered.refresh_from_db()
        self.assertEqual(failed.status, AppointmentReminder.Status.FAILED)
        self.assertEqual(delivered.status, AppointmentReminder.Status.SENT)
