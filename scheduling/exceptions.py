"""
Scheduling error taxonomy.

    BookingError
    ├── ValidationError           caller mistake, never retried
    │   ├── PastDateError
    │   ├── OutsideWorkingHoursError
    │   └── InvalidTransitionError
    ├── NotFoundError             unknown patient / provider / appointment
    ├── ConflictError             one or more detected conflicts
    └── InternalError             persistence or coordination failure
        └── ProviderBusyError     timed out waiting for the provider lock

Every error carries a human-readable ``message`` and a machine ``code`` so the
API layer can return ``{"detail": ..., "code": ...}`` bodies.
"""


class BookingError(Exception):
    """Base exception for scheduling failures."""

    def __init__(self, message, code="booking_error"):
        self.message = message
        self.code = code
        super().__init__(self.message)


class ValidationError(BookingError):
    """Raised for malformed requests: missing fields, bad intervals, bad values."""

    def __init__(self, message, code="validation_error"):
        super().__init__(message, code=code)


class PastDateError(ValidationError):
    """Raised when trying to book or move an appointment into the past."""

    def __init__(self, message="Cannot schedule appointments in the past."):
        super().__init__(message, code="past_date")


class OutsideWorkingHoursError(ValidationError):
    """Raised when the candidate interval fails the working-hours policy."""

    def __init__(self, conflicts, message="The requested time is outside working hours."):
        self.conflicts = list(conflicts)
        super().__init__(message, code="outside_working_hours")


class InvalidTransitionError(ValidationError):
    """Raised when a lifecycle action is not allowed from the current status."""

    def __init__(self, message, current_status=None, action=None):
        self.current_status = current_status
        self.action = action
        super().__init__(message, code="invalid_transition")


class NotFoundError(BookingError):
    """Raised when a referenced patient, provider or appointment does not exist."""

    def __init__(self, message, code="not_found"):
        super().__init__(message, code=code)


class ConflictError(BookingError):
    """Raised when the candidate booking collides with existing bookings."""

    def __init__(self, conflicts, message="This time slot is no longer available. Please select another slot."):
        self.conflicts = list(conflicts)
        super().__init__(message, code="slot_unavailable")


class InternalError(BookingError):
    """Raised when persistence or coordination fails."""

    def __init__(self, message="An internal scheduling error occurred.", code="internal_error"):
        super().__init__(message, code=code)


class ProviderBusyError(InternalError):
    """Raised when the per-provider lock could not be acquired in time."""

    def __init__(self, message="The provider's calendar is busy. Please try again."):
        super().__init__(message, code="provider_busy")
