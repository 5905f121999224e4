# appointments/services package
#
# Public entry points are re-exported here:
#
#   from appointments.services import create_appointment, cancel_appointment
#   from appointments.services import schedule_reminder

from appointments.services.booking_service import (  # noqa: F401
    SeriesBookingResult,
    SeriesOutcome,
    cancel_appointment,
    check_conflicts,
    complete_appointment,
    create_appointment,
    create_recurring_series,
    reschedule_appointment,
    transition_appointment,
    update_appointment,
)
from appointments.services.reminder_service import (  # noqa: F401
    schedule_reminder,
    withdraw_reminders,
)
