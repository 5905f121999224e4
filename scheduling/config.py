"""
Access to the ``SCHEDULING`` Django setting.

Values are read at call time so ``override_settings`` works in tests.
"""

from django.conf import settings

from .policy import (
    DEFAULT_ALLOWED_WEEKDAYS,
    DEFAULT_CLOSE_HOUR,
    DEFAULT_OPEN_HOUR,
    DEFAULT_SLOT_GRANULARITY_MINUTES,
    WorkingHoursPolicy,
)

DEFAULTS = {
    "OPEN_HOUR": DEFAULT_OPEN_HOUR,
    "CLOSE_HOUR": DEFAULT_CLOSE_HOUR,
    "ALLOWED_WEEKDAYS": sorted(DEFAULT_ALLOWED_WEEKDAYS),
    "SLOT_GRANULARITY_MINUTES": DEFAULT_SLOT_GRANULARITY_MINUTES,
    "LOCK_TIMEOUT_SECONDS": 5.0,
    "READ_RETRY_ATTEMPTS": 3,
    "RECURRENCE_MAX_OCCURRENCES": 104,
    "NEXT_AVAILABLE_SEARCH_DAYS": 30,
    "REMINDER_LEAD_MINUTES": 24 * 60,
    "REMINDER_WEBHOOK_URL": "",
    "REMINDER_WEBHOOK_TIMEOUT": 5.0,
}


def get_setting(name):
    configured = getattr(settings, "SCHEDULING", {}) or {}
    if name in configured:
        return configured[name]
    return DEFAULTS[name]


def policy_from_settings(**overrides) -> WorkingHoursPolicy:
    """Build the clinic-wide policy; keyword overrides win over settings."""
    values = {
        "open_hour": get_setting("OPEN_HOUR"),
        "close_hour": get_setting("CLOSE_HOUR"),
        "allowed_weekdays": frozenset(get_setting("ALLOWED_WEEKDAYS")),
        "slot_granularity_minutes": get_setting("SLOT_GRANULARITY_MINUTES"),
        "timezone_name": getattr(settings, "TIME_ZONE", None) or "UTC",
    }
    values.update({key: value for key, value in overrides.items() if value is not None})
    return WorkingHoursPolicy(**values)
