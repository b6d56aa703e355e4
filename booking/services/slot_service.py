import enum
import logging
from collections.abc import Iterator
from datetime import date, datetime, timedelta
from typing import NamedTuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from booking.core.clock import Clock, system_clock
from booking.core.config import BusinessRules, get_business_rules
from booking.core.errors import NotFoundError
from booking.core.timeutils import (
    day_of_week,
    format_display_time,
    get_zone,
    local_day_bounds,
    local_to_utc,
    parse_hhmm,
    utc_to_local,
)
from booking.models.appointment import ACTIVE_STATUSES, Appointment
from booking.models.availability import AvailabilityWindow, BlockedSlot
from booking.models.service import Service

logger = logging.getLogger(__name__)


class UnavailableReason(str, enum.Enum):
    OUTSIDE_HOURS = "outside_hours"
    BEYOND_BOOKING_WINDOW = "beyond_booking_window"
    INSUFFICIENT_NOTICE = "insufficient_notice"
    BLOCKED = "blocked"
    BOOKED = "booked"

    def message(self, rules: BusinessRules) -> str:
        """Reason text for the availability check."""
        if self is UnavailableReason.OUTSIDE_HOURS:
            return "Outside business hours"
        if self is UnavailableReason.BEYOND_BOOKING_WINDOW:
            return f"Cannot be booked more than {rules.max_advance_days} days in advance"
        if self is UnavailableReason.INSUFFICIENT_NOTICE:
            return f"Must be booked at least {rules.min_advance_hours} hours in advance"
        if self is UnavailableReason.BLOCKED:
            return "Time slot is blocked"
        return "Time slot conflicts with existing appointment"

    @property
    def slot_label(self) -> str:
        """Reason shown on a public slot grid; blocked and booked look alike."""
        if self is UnavailableReason.INSUFFICIENT_NOTICE:
            return "Insufficient advance notice"
        if self is UnavailableReason.OUTSIDE_HOURS:
            return "Outside business hours"
        return "Time slot unavailable"


class TimeSlot(NamedTuple):
    date_time: datetime
    available: bool
    reason: str | None
    display_time: str
    code: UnavailableReason | None = None


class BookedInterval(NamedTuple):
    appointment_id: int
    start: datetime
    duration: int


class DaySchedule(NamedTuple):
    """Everything needed to evaluate instants on one business-local day."""

    day: date
    windows: list[tuple[datetime, datetime]]  # naive UTC [open, close)
    blocked: list[tuple[datetime, int]]
    booked: list[BookedInterval]


def overlaps(start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime) -> bool:
    return start_a < end_b and start_b < end_a


def conflicts_with_buffer(
    start: datetime,
    duration: int,
    other_start: datetime,
    other_duration: int,
    buffer_minutes: int,
) -> bool:
    """requestedStart < otherEnd + buffer and otherStart - buffer < requestedEnd."""
    buffer = timedelta(minutes=buffer_minutes)
    return overlaps(
        start,
        start + timedelta(minutes=duration),
        other_start - buffer,
        other_start + timedelta(minutes=other_duration) + buffer,
    )


def evaluate_instant(
    instant: datetime,
    duration: int,
    schedule: DaySchedule,
    now: datetime,
    rules: BusinessRules,
) -> UnavailableReason | None:
    """Why `instant` cannot be booked for `duration` minutes, or None if it can.

    Shared by the slot grid and the single-instant check so both always agree.
    """
    end = instant + timedelta(minutes=duration)
    if not any(opens <= instant and end <= closes for opens, closes in schedule.windows):
        return UnavailableReason.OUTSIDE_HOURS
    if instant > now + timedelta(days=rules.max_advance_days):
        return UnavailableReason.BEYOND_BOOKING_WINDOW
    if instant < now + timedelta(hours=rules.min_advance_hours):
        return UnavailableReason.INSUFFICIENT_NOTICE
    occupied_end = end + timedelta(minutes=rules.buffer_minutes)
    for blocked_start, blocked_duration in schedule.blocked:
        if overlaps(instant, occupied_end, blocked_start, blocked_start + timedelta(minutes=blocked_duration)):
            return UnavailableReason.BLOCKED
    for booked in schedule.booked:
        if conflicts_with_buffer(instant, duration, booked.start, booked.duration, rules.buffer_minutes):
            return UnavailableReason.BOOKED
    return None


def candidate_starts(schedule: DaySchedule, duration: int, rules: BusinessRules) -> list[datetime]:
    """Grid starts aligned to each window's open time, de-duplicated and sorted."""
    step = timedelta(minutes=rules.slot_interval_minutes)
    length = timedelta(minutes=duration)
    starts: set[datetime] = set()
    for opens, closes in schedule.windows:
        current = opens
        while current + length <= closes:
            starts.add(current)
            current += step
    return sorted(starts)


def iter_time_slots(
    schedule: DaySchedule,
    duration: int,
    now: datetime,
    rules: BusinessRules,
) -> Iterator[TimeSlot]:
    """Lazily evaluate the day's grid; calling again restarts from the top."""
    tz = get_zone(rules.timezone)
    horizon = now + timedelta(days=rules.max_advance_days)
    for start in candidate_starts(schedule, duration, rules):
        if start > horizon:
            # past the booking window the date is simply not offered
            continue
        code = evaluate_instant(start, duration, schedule, now, rules)
        yield TimeSlot(
            date_time=start,
            available=code is None,
            reason=code.slot_label if code else None,
            display_time=format_display_time(start, tz),
            code=code,
        )


async def get_active_service(session: AsyncSession, service_id: int) -> Service:
    result = await session.execute(
        select(Service).where(Service.id == service_id, Service.is_active == True)  # noqa: E712
    )
    service = result.scalar_one_or_none()
    if not service:
        raise NotFoundError("Service not found or inactive")
    return service


async def get_service(session: AsyncSession, service_id: int) -> Service:
    """Look a service up whether or not it is still offered."""
    service = await session.get(Service, service_id)
    if not service:
        raise NotFoundError("Service")
    return service


async def get_active_windows(session: AsyncSession, dow: int) -> list[AvailabilityWindow]:
    result = await session.execute(
        select(AvailabilityWindow)
        .where(
            AvailabilityWindow.day_of_week == dow,
            AvailabilityWindow.is_active == True,  # noqa: E712
        )
        .order_by(AvailabilityWindow.start_time)
    )
    return list(result.scalars().all())


async def get_blocked_periods(
    session: AsyncSession, start_inclusive: datetime, end_exclusive: datetime
) -> list[tuple[datetime, int]]:
    result = await session.execute(
        select(BlockedSlot.date_time, BlockedSlot.duration).where(
            BlockedSlot.date_time >= start_inclusive,
            BlockedSlot.date_time < end_exclusive,
        )
    )
    return [(row[0], row[1]) for row in result.all()]


async def get_booked_intervals(
    session: AsyncSession,
    start_inclusive: datetime,
    end_exclusive: datetime,
    exclude_appointment_id: int | None = None,
) -> list[BookedInterval]:
    """Active appointments starting in the range, sized by their service."""
    q = (
        select(Appointment.id, Appointment.date_time, Service.duration)
        .join(Service, Service.id == Appointment.service_id)
        .where(
            Appointment.date_time >= start_inclusive,
            Appointment.date_time < end_exclusive,
            Appointment.status.in_(ACTIVE_STATUSES),
        )
        .order_by(Appointment.date_time)
    )
    if exclude_appointment_id is not None:
        q = q.where(Appointment.id != exclude_appointment_id)
    result = await session.execute(q)
    return [BookedInterval(row[0], row[1], row[2]) for row in result.all()]


async def load_day_schedule(
    session: AsyncSession,
    target_date: date,
    rules: BusinessRules,
    exclude_appointment_id: int | None = None,
) -> DaySchedule:
    tz = get_zone(rules.timezone)
    windows = await get_active_windows(session, day_of_week(target_date))
    if not windows:
        return DaySchedule(target_date, [], [], [])
    day_start, day_end = local_day_bounds(target_date, tz)
    # Anything starting up to one max-length booking earlier can still reach into the day
    lookback = timedelta(minutes=rules.max_duration + rules.buffer_minutes)
    lookahead = timedelta(minutes=rules.buffer_minutes)
    blocked = await get_blocked_periods(session, day_start - lookback, day_end + lookahead)
    booked = await get_booked_intervals(
        session, day_start - lookback, day_end + lookahead, exclude_appointment_id
    )
    spans = [
        (
            local_to_utc(target_date, parse_hhmm(w.start_time, "start_time"), tz),
            local_to_utc(target_date, parse_hhmm(w.end_time, "end_time"), tz),
        )
        for w in windows
    ]
    return DaySchedule(target_date, spans, blocked, booked)


def local_date_of(instant: datetime, rules: BusinessRules) -> date:
    return utc_to_local(instant, get_zone(rules.timezone)).date()


async def generate_time_slots(
    session: AsyncSession,
    target_date: date,
    service_id: int,
    *,
    clock: Clock = system_clock,
    rules: BusinessRules | None = None,
) -> list[TimeSlot]:
    """Full slot grid for a business-local date, each slot marked available or not.

    Raises NotFoundError when the service is missing or inactive. A day with no
    active availability window yields an empty list.
    """
    rules = rules or get_business_rules()
    logger.info("Generating time slots date=%s service_id=%s", target_date.isoformat(), service_id)
    service = await get_active_service(session, service_id)
    schedule = await load_day_schedule(session, target_date, rules)
    if not schedule.windows:
        logger.info("No availability found for day_of_week=%d", day_of_week(target_date))
        return []
    slots = list(iter_time_slots(schedule, service.duration, clock.now(), rules))
    logger.info(
        "Generated time slots date=%s total=%d available=%d",
        target_date.isoformat(),
        len(slots),
        sum(1 for s in slots if s.available),
    )
    return slots


async def get_available_slots(
    session: AsyncSession,
    target_date: date,
    service_id: int,
    *,
    clock: Clock = system_clock,
    rules: BusinessRules | None = None,
) -> list[datetime]:
    slots = await generate_time_slots(session, target_date, service_id, clock=clock, rules=rules)
    return [s.date_time for s in slots if s.available]
