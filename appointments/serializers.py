from rest_framework import serializers

from scheduling.constants import AppointmentType, Frequency, Priority
from scheduling.lifecycle import LifecycleAction, allowed_actions

from .models import Appointment


class RecurrenceSerializer(serializers.Serializer):
    """Repeat rule for a series. Either ``until`` or ``count`` is required."""

    frequency = serializers.ChoiceField(choices=Frequency.choices)
    interval = serializers.IntegerField(min_value=1, default=1)
    until = serializers.DateField(required=False, allow_null=True)
    count = serializers.IntegerField(min_value=1, required=False, allow_null=True)

    def validate(self, attrs):
        if attrs.get("until") is None and attrs.get("count") is None:
            raise serializers.ValidationError("Provide 'until' or 'count' to end the series.")
        return attrs


class CreateAppointmentSerializer(serializers.Serializer):
    """
    Request serializer for booking an appointment.

    Validates the shape of the request before passing to the booking
    service for business-logic validation.
    """

    patient_id = serializers.IntegerField()
    provider_id = serializers.IntegerField()
    scheduled_at = serializers.DateTimeField(help_text="Start time, ISO 8601.")
    duration_minutes = serializers.IntegerField(min_value=1)
    appointment_type = serializers.ChoiceField(choices=AppointmentType.choices, required=False)
    priority = serializers.ChoiceField(choices=Priority.choices, required=False)
    location = serializers.CharField(required=False, allow_blank=True, default="")
    virtual_meeting_url = serializers.URLField(required=False, allow_blank=True, default="")
    notes = serializers.CharField(required=False, allow_blank=True, default="")
    metadata = serializers.DictField(required=False, default=dict)
    recurrence = RecurrenceSerializer(required=False, allow_null=True)


class UpdateAppointmentSerializer(serializers.Serializer):
    appointment_type = serializers.ChoiceField(choices=AppointmentType.choices, required=False)
    priority = serializers.ChoiceField(choices=Priority.choices, required=False)
    location = serializers.CharField(required=False, allow_blank=True)
    virtual_meeting_url = serializers.URLField(required=False, allow_blank=True)
    notes = serializers.CharField(required=False, allow_blank=True)
    metadata = serializers.DictField(required=False)
    scheduled_at = serializers.DateTimeField(required=False)
    duration_minutes = serializers.IntegerField(min_value=1, required=False)
    status = serializers.CharField(required=False)
    reason = serializers.CharField(required=False, allow_blank=True)


class CancelAppointmentSerializer(serializers.Serializer):
    reason = serializers.CharField(allow_blank=False, trim_whitespace=True)


class CompleteAppointmentSerializer(serializers.Serializer):
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True, default=None)


class RescheduleAppointmentSerializer(serializers.Serializer):
    scheduled_at = serializers.DateTimeField()
    duration_minutes = serializers.IntegerField(min_value=1, required=False, allow_null=True, default=None)
    reason = serializers.CharField(required=False, allow_blank=True, default="")


class TransitionAppointmentSerializer(serializers.Serializer):
    action = serializers.ChoiceField(choices=LifecycleAction.choices)
    reason = serializers.CharField(required=False, allow_blank=True, allow_null=True, default=None)
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True, default=None)


class ConflictCheckSerializer(serializers.Serializer):
    provider_id = serializers.IntegerField()
    scheduled_at = serializers.DateTimeField()
    duration_minutes = serializers.IntegerField(min_value=1)
    patient_id = serializers.IntegerField(required=False, allow_null=True, default=None)
    exclude_id = serializers.IntegerField(required=False, allow_null=True, default=None)


class ConflictSerializer(serializers.Serializer):
    kind = serializers.CharField()
    message = serializers.CharField()
    appointment_id = serializers.IntegerField(allow_null=True)
    start = serializers.DateTimeField(allow_null=True)
    end = serializers.DateTimeField(allow_null=True)


class AppointmentResponseSerializer(serializers.ModelSerializer):
    """
    Response serializer for an appointment.

    Returns the full appointment details after any booking or lifecycle call.
    """

    patient_name = serializers.CharField(source="patient.full_name", read_only=True)
    provider_name = serializers.CharField(source="provider.display_name", read_only=True)
    status_display = serializers.CharField(source="get_status_display", read_only=True)
    allowed_actions = serializers.SerializerMethodField()

    class Meta:
        model = Appointment
        fields = [
            "id",
            "reference_code",
            "patient",
            "patient_name",
            "provider",
            "provider_name",
            "appointment_type",
            "priority",
            "status",
            "status_display",
            "allowed_actions",
            "scheduled_at",
            "duration_minutes",
            "end_time",
            "location",
            "virtual_meeting_url",
            "notes",
            "metadata",
            "recurrence",
            "series_parent",
            "rescheduled_from",
            "status_changed_at",
            "cancelled_at",
            "cancellation_reason",
            "completed_at",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields

    def get_allowed_actions(self, obj):
        return [str(action) for action in allowed_actions(obj.status)]


class SeriesOutcomeSerializer(serializers.Serializer):
    sequence = serializers.IntegerField()
    scheduled_at = serializers.DateTimeField()
    booked = serializers.BooleanField()
    appointment = AppointmentResponseSerializer(allow_null=True)
    error = serializers.SerializerMethodField()

    def get_error(self, obj):
        if obj.error is None:
            return None
        body = {"detail": obj.error.message, "code": obj.error.code}
        conflicts = getattr(obj.error, "conflicts", None)
        if conflicts:
            body["conflicts"] = ConflictSerializer(conflicts, many=True).data
        return body


class SeriesBookingSerializer(serializers.Serializer):
    base = AppointmentResponseSerializer()
    outcomes = SeriesOutcomeSerializer(many=True)
    booked_count = serializers.SerializerMethodField()
    skipped_count = serializers.SerializerMethodField()

    def get_booked_count(self, obj):
        return len(obj.appointments)

    def get_skipped_count(self, obj):
        return len(obj.skipped)
