"""
Appointment reminder requests.

Fire-and-forget: a reminder is recorded locally and, when a webhook URL is
configured, handed to the notification service over HTTP. Any failure is
logged and stored on the reminder row; it never reaches the caller and
never undoes the booking.

Must be called inside transaction.on_commit() so that reminders are only
requested for appointments that actually exist.
"""

import logging
from datetime import timedelta

import requests
from django.db import DatabaseError
from django.utils import timezone

from appointments.models import Appointment, AppointmentReminder
from scheduling.config import get_setting

logger = logging.getLogger(__name__)


def _build_payload(appointment, reminder):
    return {
        "reminder_id": reminder.id,
        "appointment_id": appointment.id,
        "reference_code": appointment.reference_code,
        "patient_id": appointment.patient_id,
        "patient_name": appointment.patient.full_name,
        "patient_email": appointment.patient.email,
        "patient_phone": appointment.patient.phone,
        "provider_id": appointment.provider_id,
        "provider_name": appointment.provider.display_name,
        "scheduled_at": appointment.scheduled_at.isoformat(),
        "duration_minutes": appointment.duration_minutes,
        "location": appointment.location,
        "virtual_meeting_url": appointment.virtual_meeting_url,
        "remind_at": reminder.remind_at.isoformat(),
    }


def _deliver(appointment, reminder, url):
    timeout = float(get_setting("REMINDER_WEBHOOK_TIMEOUT"))
    try:
        response = requests.post(url, json=_build_payload(appointment, reminder), timeout=timeout)
        response.raise_for_status()
    except requests.RequestException as exc:
        logger.error(
            "[REMINDER] Webhook failed for appointment_id=%s reminder_id=%s: %r",
            appointment.id,
            reminder.id,
            exc,
        )
        reminder.status = AppointmentReminder.Status.FAILED
        reminder.last_error = str(exc)[:1000]
        reminder.save(update_fields=["status", "last_error", "updated_at"])
        return reminder

    reminder.status = AppointmentReminder.Status.SENT
    reminder.save(update_fields=["status", "updated_at"])
    logger.info(
        "[REMINDER] Sent to notification service appointment_id=%s reminder_id=%s",
        appointment.id,
        reminder.id,
    )
    return reminder


def schedule_reminder(appointment_id):
    """
    Request a reminder for a freshly booked appointment.

    Returns the AppointmentReminder, or None if it could not be recorded.
    """
    try:
        appointment = Appointment.objects.select_related("patient", "provider").get(id=appointment_id)
        lead = timedelta(minutes=int(get_setting("REMINDER_LEAD_MINUTES")))
        remind_at = max(appointment.scheduled_at - lead, timezone.now())
        reminder = AppointmentReminder.objects.create(appointment=appointment, remind_at=remind_at)
    except (Appointment.DoesNotExist, DatabaseError) as exc:
        logger.error("[REMINDER] Could not record reminder for appointment_id=%s: %r", appointment_id, exc)
        return None

    logger.info(
        "[REMINDER] Recorded reminder_id=%s appointment_id=%s remind_at=%s",
        reminder.id,
        appointment.id,
        remind_at.isoformat(),
    )

    url = get_setting("REMINDER_WEBHOOK_URL")
    if not url:
        logger.info("[REMINDER] No webhook configured; reminder_id=%s recorded only", reminder.id)
        return reminder

    return _deliver(appointment, reminder, url)


def withdraw_reminders(appointment_id):
    """Cancel reminders still pending for an appointment that no longer takes place."""
    try:
        count = AppointmentReminder.objects.filter(
            appointment_id=appointment_id,
            status__in=[AppointmentReminder.Status.PENDING, AppointmentReminder.Status.SENT],
            remind_at__gt=timezone.now(),
        ).update(status=AppointmentReminder.Status.CANCELLED, updated_at=timezone.now())
    except DatabaseError as exc:
        logger.error("[REMINDER] Could not withdraw reminders for appointment_id=%s: %r", appointment_id, exc)
        return 0

    if count:
        logger.info("[REMINDER] Withdrew %s reminder(s) for appointment_id=%s", count, appointment_id)
    return count
