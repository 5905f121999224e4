from django.contrib import admin

from .models import Appointment, AppointmentReminder


class AppointmentReminderInline(admin.TabularInline):
    model = AppointmentReminder
    extra = 0
    readonly_fields = ["remind_at", "status", "last_error", "created_at"]
    can_delete = False


@admin.register(Appointment)
class AppointmentAdmin(admin.ModelAdmin):
    list_display = [
        "reference_code",
        "patient",
        "provider",
        "appointment_type",
        "scheduled_at",
        "duration_minutes",
        "status",
        "priority",
    ]
    list_filter = ["status", "appointment_type", "priority", "provider"]
    search_fields = ["reference_code", "patient__first_name", "patient__last_name", "provider__last_name"]
    raw_id_fields = [
        "patient",
        "provider",
        "series_parent",
        "rescheduled_from",
        "created_by",
        "updated_by",
        "status_changed_by",
        "cancelled_by",
        "completed_by",
    ]
    readonly_fields = ["reference_code", "end_time", "created_at", "updated_at"]
    date_hierarchy = "scheduled_at"
    inlines = [AppointmentReminderInline]

    def has_delete_permission(self, request, obj=None):
        # Appointments are cancelled, never deleted.
        return False


@admin.register(AppointmentReminder)
class AppointmentReminderAdmin(admin.ModelAdmin):
    list_display = ["appointment", "remind_at", "status", "updated_at"]
    list_filter = ["status"]
    raw_id_fields = ["appointment"]
