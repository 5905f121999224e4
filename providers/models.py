from django.core.exceptions import ValidationError
from django.db import models


class Provider(models.Model):
    """
    A clinician whose calendar the scheduler manages.

    Working hours default to the clinic-wide SCHEDULING setting. A provider
    may override any of them; blank fields fall back to the default.
    """

    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100)
    title = models.CharField(max_length=20, blank=True, default="Dr.")
    specialty = models.CharField(max_length=100, blank=True)
    email = models.EmailField(blank=True)
    phone = models.CharField(max_length=20, blank=True)
    is_active = models.BooleanField(
        default=True,
        help_text="Inactive providers cannot be booked.",
    )
    open_hour = models.PositiveSmallIntegerField(
        null=True,
        blank=True,
        help_text="Override the clinic opening hour (0-23).",
    )
    close_hour = models.PositiveSmallIntegerField(
        null=True,
        blank=True,
        help_text="Override the clinic closing hour (1-24).",
    )
    slot_granularity_minutes = models.PositiveIntegerField(
        null=True,
        blank=True,
        help_text="Override the default slot size in minutes.",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = "Provider"
        verbose_name_plural = "Providers"
        ordering = ["last_name", "first_name"]

    def __str__(self):
        return self.display_name

    @property
    def display_name(self):
        name = f"{self.first_name} {self.last_name}".strip()
        return f"{self.title} {name}".strip() if self.title else name

    def clean(self):
        super().clean()
        if self.open_hour is not None and self.open_hour > 23:
            raise ValidationError({"open_hour": "Opening hour must be between 0 and 23."})
        if self.close_hour is not None and not 1 <= self.close_hour <= 24:
            raise ValidationError({"close_hour": "Closing hour must be between 1 and 24."})
        if (
            self.open_hour is not None
            and self.close_hour is not None
            and self.open_hour >= self.close_hour
        ):
            raise ValidationError({"close_hour": "Closing hour must be after opening hour."})

    def save(self, *args, **kwargs):
        self.full_clean()
        super().save(*args, **kwargs)


class ProviderTimeOff(models.Model):
    """
    A period the provider cannot be booked (leave, training, admin time).

    Shown as blocked slots in the day view and reported as an UNAVAILABLE
    conflict when a booking overlaps it.
    """

    provider = models.ForeignKey(
        Provider,
        on_delete=models.CASCADE,
        related_name="time_off",
    )
    start_at = models.DateTimeField()
    end_at = models.DateTimeField()
    reason = models.CharField(max_length=255, blank=True, default="Time off")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = "Provider Time Off"
        verbose_name_plural = "Provider Time Off"
        ordering = ["start_at"]
        indexes = [
            models.Index(fields=["provider", "start_at"], name="provider_timeoff_start_idx"),
        ]

    def __str__(self):
        return f"{self.provider} off {self.start_at:%Y-%m-%d %H:%M} - {self.end_at:%Y-%m-%d %H:%M}"

    def clean(self):
        super().clean()
        if self.start_at and self.end_at and self.start_at >= self.end_at:
            raise ValidationError({"end_at": "End must be after start."})

    def save(self, *args, **kwargs):
        self.full_clean()
        super().save(*args, **kwargs)
