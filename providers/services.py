"""
Provider calendar read services.

Loads a provider's bookings and time off from the database and hands them to
the pure engine in ``scheduling``:

1. Resolve the provider and its working-hours policy (clinic default plus
   per-provider overrides)
2. Fetch live appointments and time off inside the requested window
3. Build the day view / search for a free run / sum up the workload

Reads take no locks and may be slightly stale. Transient database failures
are retried a bounded number of times before surfacing as ``InternalError``.
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta

from django.db import InterfaceError, OperationalError
from django.utils import timezone
from tenacity import RetryError, Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from appointments.models import Appointment
from scheduling.config import get_setting, policy_from_settings
from scheduling.exceptions import InternalError, NotFoundError, ValidationError
from scheduling.intervals import Block, Interval
from scheduling.policy import WorkingHoursPolicy
from scheduling.slots import ProviderSchedule, build_schedule, first_fit

from .models import Provider, ProviderTimeOff

logger = logging.getLogger(__name__)


@dataclass
class ProviderWorkload:
    provider_id: int
    start_date: date
    end_date: date
    working_hours: float
    booked_hours: float
    utilization: float
    appointment_count: int
    by_status: dict = field(default_factory=dict)


def get_active_provider(provider_id) -> Provider:
    """
    Raises:
        NotFoundError: unknown or inactive provider.
    """
    try:
        return Provider.objects.get(id=provider_id, is_active=True)
    except (Provider.DoesNotExist, ValueError, TypeError):
        raise NotFoundError("Provider not found.", code="provider_not_found")


def policy_for_provider(provider) -> WorkingHoursPolicy:
    return policy_from_settings(
        open_hour=provider.open_hour,
        close_hour=provider.close_hour,
        slot_granularity_minutes=provider.slot_granularity_minutes,
    )


def get_provider_blocks(provider_id, start, end):
    """Time off overlapping [start, end) as engine blocks."""
    time_off = ProviderTimeOff.objects.filter(
        provider_id=provider_id,
        start_at__lt=end,
        end_at__gt=start,
    ).order_by("start_at")
    return [Block(Interval(item.start_at, item.end_at), item.reason or "Time off") for item in time_off]


def read_with_retry(func, *args, **kwargs):
    """
    Call ``func`` retrying transient database errors.

    Raises:
        InternalError: the read still failed after READ_RETRY_ATTEMPTS tries.
    """
    attempts = max(int(get_setting("READ_RETRY_ATTEMPTS")), 1)
    try:
        for attempt in Retrying(
            stop=stop_after_attempt(attempts),
            wait=wait_exponential(multiplier=0.05, max=1),
            retry=retry_if_exception_type((OperationalError, InterfaceError)),
        ):
            with attempt:
                return func(*args, **kwargs)
    except RetryError as exc:
        cause = exc.last_attempt.exception()
        logger.error("[SCHEDULE] Read failed after %s attempts: %s", attempts, cause)
        raise InternalError("Could not load the provider's calendar. Please try again.") from cause


def _load_day(provider, day, policy):
    opening = policy.opening(day)
    closing = policy.closing(day)
    appointments = list(
        Appointment.objects.live()
        .filter(provider_id=provider.id)
        .overlapping(opening, closing)
        .order_by("scheduled_at", "id")
    )
    blocks = get_provider_blocks(provider.id, opening, closing)
    return appointments, blocks


def get_provider_schedule(provider_id, day: date) -> ProviderSchedule:
    """
    Free/busy/blocked view of one provider's day.

    Raises:
        NotFoundError: unknown or inactive provider.
        InternalError: the calendar could not be read.
    """
    provider = read_with_retry(get_active_provider, provider_id)
    policy = policy_for_provider(provider)
    appointments, blocks = read_with_retry(_load_day, provider, day, policy)
    return build_schedule(provider.id, day, policy, appointments, blocks)


def find_next_available_slot(provider_id, duration_minutes: int, start_from=None):
    """
    First bookable interval of ``duration_minutes`` on or after ``start_from``.

    Args:
        provider_id: Provider to search.
        duration_minutes: Required length; must fit in contiguous free slots.
        start_from: date or aware datetime; defaults to now. Slots starting
            before it (or before now) are skipped.

    Returns:
        An ``Interval`` or None when nothing fits within
        NEXT_AVAILABLE_SEARCH_DAYS days.
    """
    if duration_minutes is None or int(duration_minutes) <= 0:
        raise ValidationError("Duration must be a positive number of minutes.", code="invalid_duration")
    duration_minutes = int(duration_minutes)

    provider = read_with_retry(get_active_provider, provider_id)
    policy = policy_for_provider(provider)

    now = timezone.now()
    if start_from is None:
        earliest = now
    elif isinstance(start_from, datetime):
        earliest = max(policy.localize(start_from), now)
    else:
        earliest = max(datetime.combine(start_from, datetime.min.time(), tzinfo=policy.tzinfo), now)

    first_day = policy.localize(earliest).date()
    for offset in range(int(get_setting("NEXT_AVAILABLE_SEARCH_DAYS"))):
        day = first_day + timedelta(days=offset)
        if not policy.is_working_day(day):
            continue
        appointments, blocks = read_with_retry(_load_day, provider, day, policy)
        schedule = build_schedule(provider.id, day, policy, appointments, blocks)
        schedule = replace(schedule, available=[slot for slot in schedule.available if slot.start >= earliest])
        found = first_fit(schedule, duration_minutes)
        if found is not None:
            return found

    logger.info(
        "[SCHEDULE] No free %s-minute slot for provider_id=%s from %s",
        duration_minutes,
        provider.id,
        first_day,
    )
    return None


def get_provider_workload(provider_id, start_date: date, end_date: date) -> ProviderWorkload:
    """
    Booked versus working hours for a provider over an inclusive date range.

    Appointments are counted on the day they start. Cancelled and rescheduled
    appointments are ignored.
    """
    if end_date < start_date:
        raise ValidationError("End date must not be before start date.", code="invalid_range")

    provider = read_with_retry(get_active_provider, provider_id)
    policy = policy_for_provider(provider)

    window_start = datetime.combine(start_date, datetime.min.time(), tzinfo=policy.tzinfo)
    window_end = datetime.combine(end_date + timedelta(days=1), datetime.min.time(), tzinfo=policy.tzinfo)

    def load():
        return list(
            Appointment.objects.live().filter(
                provider_id=provider.id,
                scheduled_at__gte=window_start,
                scheduled_at__lt=window_end,
            ).values_list("status", "duration_minutes")
        )

    rows = read_with_retry(load)

    working_minutes = 0
    day = start_date
    while day <= end_date:
        working_minutes += policy.working_minutes(day)
        day += timedelta(days=1)

    booked_minutes = sum(minutes for _, minutes in rows)
    by_status = {}
    for status, _ in rows:
        by_status[status] = by_status.get(status, 0) + 1

    utilization = round(booked_minutes / working_minutes * 100, 1) if working_minutes else 0.0

    return ProviderWorkload(
        provider_id=provider.id,
        start_date=start_date,
        end_date=end_date,
        working_hours=round(working_minutes / 60, 2),
        booked_hours=round(booked_minutes / 60, 2),
        utilization=utilization,
        appointment_count=len(rows),
        by_status=by_status,
    )
