"""
Database access used by the booking coordinator.

Every function here expects to run inside ``transaction.atomic()`` when it
locks rows. Nothing in this module decides whether a booking is allowed;
it only loads, locks and writes.
"""

import logging

from django.db import OperationalError, connection

from appointments.models import Appointment
from patients.models import Patient
from providers.models import Provider
from scheduling.config import get_setting
from scheduling.exceptions import NotFoundError, ProviderBusyError

logger = logging.getLogger(__name__)


def get_active_patient(patient_id) -> Patient:
    """
    Raises:
        NotFoundError: unknown or inactive patient.
    """
    try:
        return Patient.objects.get(id=patient_id, is_active=True)
    except (Patient.DoesNotExist, ValueError, TypeError):
        raise NotFoundError("Patient not found.", code="patient_not_found")


def get_appointment(appointment_id) -> Appointment:
    try:
        return Appointment.objects.select_related("patient", "provider").get(id=appointment_id)
    except (Appointment.DoesNotExist, ValueError, TypeError):
        raise NotFoundError("Appointment not found.", code="appointment_not_found")


def _set_db_lock_timeout():
    if connection.vendor != "postgresql":
        return
    timeout_ms = max(int(float(get_setting("LOCK_TIMEOUT_SECONDS")) * 1000), 1)
    with connection.cursor() as cursor:
        cursor.execute(f"SET LOCAL lock_timeout = '{timeout_ms}ms'")


def lock_provider(provider_id) -> Provider:
    """
    Lock the provider row for the rest of the transaction.

    Serializes bookings for one provider across processes. The row lock is
    bounded by LOCK_TIMEOUT_SECONDS on PostgreSQL.

    Raises:
        NotFoundError: unknown or inactive provider.
        ProviderBusyError: the row lock could not be acquired in time.
    """
    _set_db_lock_timeout()
    try:
        return Provider.objects.select_for_update().get(id=provider_id, is_active=True)
    except Provider.DoesNotExist:
        raise NotFoundError("Provider not found.", code="provider_not_found")
    except OperationalError as exc:
        logger.warning("[LOCK] Database lock wait failed provider_id=%s: %s", provider_id, exc)
        raise ProviderBusyError() from exc


def lock_appointment(appointment_id) -> Appointment:
    """
    Re-read the appointment with a row lock.

    Raises:
        NotFoundError: the appointment does not exist.
    """
    try:
        return Appointment.objects.select_for_update().get(id=appointment_id)
    except (Appointment.DoesNotExist, ValueError, TypeError):
        raise NotFoundError("Appointment not found.", code="appointment_not_found")


def provider_appointments_in_window(provider_id, start, end):
    """Live appointments of the provider overlapping [start, end)."""
    return list(
        Appointment.objects.live()
        .filter(provider_id=provider_id)
        .overlapping(start, end)
        .order_by("scheduled_at", "id")
    )


def patient_appointments_in_window(patient_id, start, end):
    """Live appointments of the patient, with any provider, overlapping [start, end)."""
    return list(
        Appointment.objects.live()
        .filter(patient_id=patient_id)
        .overlapping(start, end)
        .order_by("scheduled_at", "id")
    )


def insert_appointment(**fields) -> Appointment:
    """
    Create the appointment row.

    Callers must hold the provider lock and have re-checked conflicts
    inside the same transaction.
    """
    appointment = Appointment(**fields)
    appointment.save()
    return appointment
