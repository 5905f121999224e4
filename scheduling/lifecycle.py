"""
Appointment lifecycle state machine.

    SCHEDULED -> CONFIRMED -> CHECKED_IN -> IN_PROGRESS -> COMPLETED

Forward moves may skip intermediate states but never go backwards.
CANCEL, COMPLETE and RESCHEDULE are allowed from any non-terminal state.
NO_SHOW is allowed until the visit has started.
COMPLETED, CANCELLED, NO_SHOW and RESCHEDULED are terminal.
"""

from django.db import models

from .constants import AppointmentStatus
from .exceptions import InvalidTransitionError


class LifecycleAction(models.TextChoices):
    CONFIRM = "CONFIRM", "Confirm"
    CHECK_IN = "CHECK_IN", "Check in"
    START = "START", "Start"
    COMPLETE = "COMPLETE", "Complete"
    CANCEL = "CANCEL", "Cancel"
    NO_SHOW = "NO_SHOW", "Mark no-show"
    RESCHEDULE = "RESCHEDULE", "Reschedule"


INITIAL_STATUS = AppointmentStatus.SCHEDULED

TERMINAL_STATUSES = frozenset(
    {
        AppointmentStatus.COMPLETED,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.NO_SHOW,
        AppointmentStatus.RESCHEDULED,
    }
)

# Canonical forward path; position decides whether a move is "forward".
_FORWARD_PATH = (
    AppointmentStatus.SCHEDULED,
    AppointmentStatus.CONFIRMED,
    AppointmentStatus.CHECKED_IN,
    AppointmentStatus.IN_PROGRESS,
)

ACTION_TARGETS = {
    LifecycleAction.CONFIRM: AppointmentStatus.CONFIRMED,
    LifecycleAction.CHECK_IN: AppointmentStatus.CHECKED_IN,
    LifecycleAction.START: AppointmentStatus.IN_PROGRESS,
    LifecycleAction.COMPLETE: AppointmentStatus.COMPLETED,
    LifecycleAction.CANCEL: AppointmentStatus.CANCELLED,
    LifecycleAction.NO_SHOW: AppointmentStatus.NO_SHOW,
    LifecycleAction.RESCHEDULE: AppointmentStatus.RESCHEDULED,
}

_NO_SHOW_FROM = frozenset(
    {
        AppointmentStatus.SCHEDULED,
        AppointmentStatus.CONFIRMED,
        AppointmentStatus.CHECKED_IN,
    }
)

_TERMINAL_MESSAGES = {
    AppointmentStatus.COMPLETED: "Appointment is already completed.",
    AppointmentStatus.CANCELLED: "Appointment is already cancelled.",
    AppointmentStatus.NO_SHOW: "Appointment was marked as a no-show.",
    AppointmentStatus.RESCHEDULED: "Appointment was rescheduled; act on its replacement instead.",
}


def is_terminal(status) -> bool:
    return status in TERMINAL_STATUSES


def next_status(current, action):
    """
    Return the status ``action`` leads to from ``current``.

    Raises:
        InvalidTransitionError: the action is unknown or not allowed.
    """
    try:
        action = LifecycleAction(action)
        current = AppointmentStatus(current)
    except ValueError:
        raise InvalidTransitionError(
            f"Unknown lifecycle action '{action}' or status '{current}'.",
            current_status=current,
            action=action,
        )

    if current in TERMINAL_STATUSES:
        raise InvalidTransitionError(_TERMINAL_MESSAGES[current], current_status=current, action=action)

    target = ACTION_TARGETS[action]

    if action in (LifecycleAction.CANCEL, LifecycleAction.COMPLETE, LifecycleAction.RESCHEDULE):
        return target

    if action == LifecycleAction.NO_SHOW:
        if current not in _NO_SHOW_FROM:
            raise InvalidTransitionError(
                "Cannot mark a visit that has already started as a no-show.",
                current_status=current,
                action=action,
            )
        return target

    if _FORWARD_PATH.index(target) <= _FORWARD_PATH.index(current):
        raise InvalidTransitionError(
            f"Cannot {action.label.lower()} an appointment that is {current.label.lower()}.",
            current_status=current,
            action=action,
        )
    return target


def can_transition(current, action) -> bool:
    try:
        next_status(current, action)
    except InvalidTransitionError:
        return False
    return True


def allowed_actions(current):
    return [action for action in LifecycleAction if can_transition(current, action)]
