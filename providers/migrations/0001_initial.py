import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Provider",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("first_name", models.CharField(max_length=100)),
                ("last_name", models.CharField(max_length=100)),
                ("title", models.CharField(blank=True, default="Dr.", max_length=20)),
                ("specialty", models.CharField(blank=True, max_length=100)),
                ("email", models.EmailField(blank=True, max_length=254)),
                ("phone", models.CharField(blank=True, max_length=20)),
                ("is_active", models.BooleanField(default=True, help_text="Inactive providers cannot be booked.")),
                (
                    "open_hour",
                    models.PositiveSmallIntegerField(
                        blank=True, help_text="Override the clinic opening hour (0-23).", null=True
                    ),
                ),
                (
                    "close_hour",
                    models.PositiveSmallIntegerField(
                        blank=True, help_text="Override the clinic closing hour (1-24).", null=True
                    ),
                ),
                (
                    "slot_granularity_minutes",
                    models.PositiveIntegerField(
                        blank=True, help_text="Override the default slot size in minutes.", null=True
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
            options={
                "verbose_name": "Provider",
                "verbose_name_plural": "Providers",
                "ordering": ["last_name", "first_name"],
            },
        ),
        migrations.CreateModel(
            name="ProviderTimeOff",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("start_at", models.DateTimeField()),
                ("end_at", models.DateTimeField()),
                ("reason", models.CharField(blank=True, default="Time off", max_length=255)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "provider",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="time_off",
                        to="providers.provider",
                    ),
                ),
            ],
            options={
                "verbose_name": "Provider Time Off",
                "verbose_name_plural": "Provider Time Off",
                "ordering": ["start_at"],
                "indexes": [
                    models.Index(fields=["provider", "start_at"], name="provider_timeoff_start_idx"),
                ],
            },
        ),
    ]
