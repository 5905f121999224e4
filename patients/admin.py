from django.contrib import admin
from .models import Patient


@admin.register(Patient)
class PatientAdmin(admin.ModelAdmin):
    list_display = ["id", "first_name", "last_name", "date_of_birth", "phone", "is_active"]
    list_filter = ["is_active"]
    search_fields = ["first_name", "last_name", "email", "phone"]

    fieldsets = (
        ("Identity", {"fields": ("first_name", "last_name", "date_of_birth")}),
        ("Contact", {"fields": ("email", "phone")}),
        ("Status", {"fields": ("is_active",)}),
    )
