from rest_framework import serializers


class TimeSlotSerializer(serializers.Serializer):
    """Serializer for one slot of a provider's day view."""

    start = serializers.DateTimeField()
    end = serializers.DateTimeField()
    available = serializers.BooleanField()
    state = serializers.CharField()
    appointment_id = serializers.IntegerField(allow_null=True)
    blocked_reason = serializers.CharField(allow_null=True)


class SlotAnomalySerializer(serializers.Serializer):
    slot_start = serializers.DateTimeField()
    appointment_ids = serializers.ListField(child=serializers.IntegerField())
    occupant_id = serializers.IntegerField()


class ProviderScheduleSerializer(serializers.Serializer):
    provider_id = serializers.IntegerField()
    date = serializers.DateField()
    working_day = serializers.BooleanField()
    available = TimeSlotSerializer(many=True)
    booked = TimeSlotSerializer(many=True)
    blocked = TimeSlotSerializer(many=True)
    anomalies = SlotAnomalySerializer(many=True)
    slots = TimeSlotSerializer(many=True)


class IntervalSerializer(serializers.Serializer):
    start = serializers.DateTimeField()
    end = serializers.DateTimeField()
    duration_minutes = serializers.IntegerField()


class ProviderWorkloadSerializer(serializers.Serializer):
    provider_id = serializers.IntegerField()
    start_date = serializers.DateField()
    end_date = serializers.DateField()
    working_hours = serializers.FloatField()
    booked_hours = serializers.FloatField()
    utilization = serializers.FloatField()
    appointment_count = serializers.IntegerField()
    by_status = serializers.DictField(child=serializers.IntegerField())
