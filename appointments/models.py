import uuid
from datetime import timedelta

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models

from patients.models import Patient
from providers.models import Provider
from scheduling.constants import (
    NON_BLOCKING_STATUSES,
    AppointmentStatus,
    AppointmentType,
    Priority,
)
from scheduling import lifecycle


def generate_reference_code(scheduled_at):
    """Human readable identifier, e.g. APT-20260316-4F9A1C."""
    return f"APT-{scheduled_at:%Y%m%d}-{uuid.uuid4().hex[:6].upper()}"


class AppointmentQuerySet(models.QuerySet):
    def live(self):
        """Appointments whose interval still occupies a calendar."""
        return self.exclude(status__in=NON_BLOCKING_STATUSES)

    def overlapping(self, start, end):
        """Half-open overlap with [start, end)."""
        return self.filter(scheduled_at__lt=end, end_time__gt=start)


class Appointment(models.Model):
    """Core appointment booking record. Rows are never deleted; cancelling keeps history."""

    Status = AppointmentStatus
    Type = AppointmentType
    Priority = Priority

    reference_code = models.CharField(max_length=32, unique=True, editable=False)
    patient = models.ForeignKey(Patient, on_delete=models.PROTECT, related_name="appointments")
    provider = models.ForeignKey(Provider, on_delete=models.PROTECT, related_name="appointments")
    appointment_type = models.CharField(
        max_length=20, choices=AppointmentType.choices, default=AppointmentType.CONSULTATION
    )
    status = models.CharField(max_length=20, choices=AppointmentStatus.choices, default=AppointmentStatus.SCHEDULED)
    priority = models.CharField(max_length=10, choices=Priority.choices, default=Priority.MEDIUM)

    scheduled_at = models.DateTimeField()
    duration_minutes = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    end_time = models.DateTimeField(editable=False, help_text="Derived from scheduled_at + duration_minutes.")

    location = models.CharField(max_length=255, blank=True)
    virtual_meeting_url = models.URLField(blank=True)
    notes = models.TextField(blank=True)
    metadata = models.JSONField(default=dict, blank=True)

    recurrence = models.JSONField(null=True, blank=True, help_text="Repeat rule; set on the first appointment of a series.")
    series_parent = models.ForeignKey(
        "self", on_delete=models.SET_NULL, null=True, blank=True, related_name="series_instances",
    )
    rescheduled_from = models.ForeignKey(
        "self", on_delete=models.SET_NULL, null=True, blank=True, related_name="replacements",
    )

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True,
        related_name="appointments_created",
    )
    updated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True,
        related_name="appointments_updated",
    )
    status_changed_at = models.DateTimeField(null=True, blank=True)
    status_changed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True,
        related_name="appointment_status_changes",
    )
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancelled_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True,
        related_name="appointments_cancelled",
    )
    cancellation_reason = models.TextField(blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    completed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True,
        related_name="appointments_completed",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = AppointmentQuerySet.as_manager()

    class Meta:
        ordering = ["scheduled_at", "id"]
        verbose_name = "Appointment"
        verbose_name_plural = "Appointments"
        indexes = [
            models.Index(fields=["provider", "scheduled_at"], name="appt_provider_start_idx"),
            models.Index(fields=["patient", "scheduled_at"], name="appt_patient_start_idx"),
            models.Index(fields=["status"], name="appt_status_idx"),
        ]

    def __str__(self):
        return f"{self.reference_code} {self.patient} with {self.provider} at {self.scheduled_at:%Y-%m-%d %H:%M}"

    def compute_end_time(self):
        return self.scheduled_at + timedelta(minutes=self.duration_minutes)

    def save(self, *args, **kwargs):
        # end_time is never set on its own.
        self.end_time = self.compute_end_time()
        if not self.reference_code:
            self.reference_code = generate_reference_code(self.scheduled_at)
        update_fields = kwargs.get("update_fields")
        if update_fields is not None and {"scheduled_at", "duration_minutes"} & set(update_fields):
            kwargs["update_fields"] = set(update_fields) | {"end_time"}
        super().save(*args, **kwargs)

    @property
    def is_terminal(self):
        return lifecycle.is_terminal(self.status)

    @property
    def occupies_calendar(self):
        return self.status not in NON_BLOCKING_STATUSES


class AppointmentReminder(models.Model):
    """
    Local record of a reminder requested for an appointment.

    Delivery is fire-and-forget: a failed request is recorded here and
    never affects the booking.
    """

    class Status(models.TextChoices):
        PENDING = "PENDING", "Pending"
        SENT = "SENT", "Sent"
        FAILED = "FAILED", "Failed"
        CANCELLED = "CANCELLED", "Cancelled"

    appointment = models.ForeignKey(Appointment, on_delete=models.CASCADE, related_name="reminders")
    remind_at = models.DateTimeField()
    status = models.CharField(max_length=10, choices=Status.choices, default=Status.PENDING)
    last_error = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["remind_at"]
        verbose_name = "Appointment Reminder"
        verbose_name_plural = "Appointment Reminders"

    def __str__(self):
        return f"Reminder for {self.appointment.reference_code} at {self.remind_at:%Y-%m-%d %H:%M} ({self.status})"
