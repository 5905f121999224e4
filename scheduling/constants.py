from django.db import models


class AppointmentStatus(models.TextChoices):
    SCHEDULED = "SCHEDULED", "Scheduled"
    CONFIRMED = "CONFIRMED", "Confirmed"
    CHECKED_IN = "CHECKED_IN", "Checked In"
    IN_PROGRESS = "IN_PROGRESS", "In Progress"
    COMPLETED = "COMPLETED", "Completed"
    CANCELLED = "CANCELLED", "Cancelled"
    NO_SHOW = "NO_SHOW", "No Show"
    RESCHEDULED = "RESCHEDULED", "Rescheduled"


class AppointmentType(models.TextChoices):
    CONSULTATION = "CONSULTATION", "Consultation"
    FOLLOW_UP = "FOLLOW_UP", "Follow-up"
    EMERGENCY = "EMERGENCY", "Emergency"
    ROUTINE_CHECKUP = "ROUTINE_CHECKUP", "Routine Checkup"
    PROCEDURE = "PROCEDURE", "Procedure"
    SURGERY = "SURGERY", "Surgery"
    THERAPY = "THERAPY", "Therapy"
    VACCINATION = "VACCINATION", "Vaccination"
    LAB_WORK = "LAB_WORK", "Lab Work"
    IMAGING = "IMAGING", "Imaging"


class Priority(models.TextChoices):
    LOW = "LOW", "Low"
    MEDIUM = "MEDIUM", "Medium"
    HIGH = "HIGH", "High"
    URGENT = "URGENT", "Urgent"


class ConflictKind(models.TextChoices):
    OVERLAP = "OVERLAP", "Overlap"
    DOUBLE_BOOKING = "DOUBLE_BOOKING", "Double booking"
    OUTSIDE_HOURS = "OUTSIDE_HOURS", "Outside working hours"
    UNAVAILABLE = "UNAVAILABLE", "Provider unavailable"


class Frequency(models.TextChoices):
    DAILY = "DAILY", "Daily"
    WEEKLY = "WEEKLY", "Weekly"
    MONTHLY = "MONTHLY", "Monthly"


# Statuses whose interval no longer occupies the provider's calendar.
# A RESCHEDULED instance has been replaced by a new SCHEDULED one.
NON_BLOCKING_STATUSES = frozenset(
    {
        AppointmentStatus.CANCELLED,
        AppointmentStatus.RESCHEDULED,
    }
)

BLOCKING_STATUSES = frozenset(
    status for status in AppointmentStatus if status not in NON_BLOCKING_STATUSES
)
