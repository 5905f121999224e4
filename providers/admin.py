from django.contrib import admin

from .models import Provider, ProviderTimeOff


class ProviderTimeOffInline(admin.TabularInline):
    model = ProviderTimeOff
    extra = 0
    fields = ["start_at", "end_at", "reason"]


@admin.register(Provider)
class ProviderAdmin(admin.ModelAdmin):
    list_display = ["display_name", "specialty", "open_hour", "close_hour", "is_active"]
    list_filter = ["is_active", "specialty"]
    search_fields = ["first_name", "last_name", "specialty", "email"]
    ordering = ["last_name", "first_name"]
    inlines = [ProviderTimeOffInline]

    fieldsets = (
        (None, {"fields": ("title", "first_name", "last_name", "specialty", "is_active")}),
        ("Contact", {"fields": ("email", "phone")}),
        ("Working hours override", {"fields": ("open_hour", "close_hour", "slot_granularity_minutes")}),
    )


@admin.register(ProviderTimeOff)
class ProviderTimeOffAdmin(admin.ModelAdmin):
    list_display = ["provider", "start_at", "end_at", "reason"]
    list_filter = ["provider"]
    raw_id_fields = ["provider"]
    date_hierarchy = "start_at"
