import enum
import logging
from datetime import datetime, timedelta
from typing import NamedTuple

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from booking.core.clock import Clock, system_clock
from booking.core.config import BusinessRules, get_business_rules
from booking.core.errors import AppError, ValidationError
from booking.core.timeutils import (
    format_display_date,
    format_display_time,
    get_zone,
    local_day_bounds,
    to_naive_utc,
)
from booking.models.appointment import ACTIVE_STATUSES, Appointment, AppointmentStatus
from booking.models.service import Service
from booking.services.availability_service import is_time_slot_available
from booking.services.slot_service import (
    UnavailableReason,
    conflicts_with_buffer,
    generate_time_slots,
    local_date_of,
)

logger = logging.getLogger(__name__)


class ConflictType(str, enum.Enum):
    APPOINTMENT = "appointment"
    BLOCKED = "blocked"
    OUTSIDE_HOURS = "outside_hours"


class ConflictingAppointment(NamedTuple):
    id: int
    user_id: int
    date_time: datetime
    status: AppointmentStatus
    service_title: str
    service_duration: int


class SuggestedSlot(NamedTuple):
    date_time: datetime
    display_time: str


class ConflictReport(NamedTuple):
    has_conflict: bool
    conflict_type: ConflictType | None
    conflicting_appointments: list[ConflictingAppointment]
    reason: str
    suggested_alternatives: list[SuggestedSlot]


def classify(code: UnavailableReason) -> ConflictType:
    if code is UnavailableReason.OUTSIDE_HOURS:
        return ConflictType.OUTSIDE_HOURS
    if code is UnavailableReason.BLOCKED:
        return ConflictType.BLOCKED
    return ConflictType.APPOINTMENT


async def find_conflicting_appointments(
    session: AsyncSession,
    instant: datetime,
    duration_minutes: int,
    exclude_appointment_id: int | None,
    rules: BusinessRules,
) -> list[ConflictingAppointment]:
    """Same-day active appointments whose buffered interval overlaps the request."""
    day_start, day_end = local_day_bounds(local_date_of(instant, rules), get_zone(rules.timezone))
    q = (
        select(Appointment, Service.title, Service.duration)
        .join(Service, Service.id == Appointment.service_id)
        .where(
            Appointment.date_time >= day_start,
            Appointment.date_time < day_end,
            Appointment.status.in_(ACTIVE_STATUSES),
        )
        .order_by(Appointment.date_time)
    )
    if exclude_appointment_id is not None:
        q = q.where(Appointment.id != exclude_appointment_id)
    result = await session.execute(q)
    out: list[ConflictingAppointment] = []
    for appointment, title, duration in result.all():
        if conflicts_with_buffer(
            instant, duration_minutes, appointment.date_time, duration, rules.buffer_minutes
        ):
            out.append(
                ConflictingAppointment(
                    id=appointment.id,
                    user_id=appointment.user_id,
                    date_time=appointment.date_time,
                    status=appointment.status,
                    service_title=title,
                    service_duration=duration,
                )
            )
    return out


async def suggest_alternatives(
    session: AsyncSession,
    instant: datetime,
    service_id: int,
    *,
    clock: Clock,
    rules: BusinessRules,
) -> list[SuggestedSlot]:
    """First day (requested day, then up to the lookahead) with open slots."""
    tz = get_zone(rules.timezone)
    requested_day = local_date_of(instant, rules)
    for offset in range(rules.suggestion_lookahead_days + 1):
        day = requested_day + timedelta(days=offset)
        slots = await generate_time_slots(session, day, service_id, clock=clock, rules=rules)
        available = [s for s in slots if s.available][: rules.suggestion_limit]
        if not available:
            continue
        suggestions = []
        for slot in available:
            display = format_display_time(slot.date_time, tz)
            if offset == 1:
                display = f"Tomorrow {display}"
            elif offset > 1:
                display = f"{format_display_date(slot.date_time, tz)} {display}"
            suggestions.append(SuggestedSlot(slot.date_time, display))
        return suggestions
    return []


async def detect_conflicts(
    session: AsyncSession,
    instant: datetime,
    service_id: int,
    duration_minutes: int,
    exclude_appointment_id: int | None = None,
    *,
    clock: Clock = system_clock,
    rules: BusinessRules | None = None,
) -> ConflictReport:
    """Explain why a requested instant is unavailable and offer alternatives.

    Always returns a verdict: failures while building suggestions degrade to an
    empty list instead of failing the report.
    """
    rules = rules or get_business_rules()
    if not rules.min_duration <= duration_minutes <= rules.max_duration:
        raise ValidationError(
            f"Duration must be between {rules.min_duration} and {rules.max_duration} minutes",
            field="duration_minutes",
        )
    instant = to_naive_utc(instant)
    logger.info(
        "Checking appointment conflicts instant=%s service_id=%s exclude=%s",
        instant.isoformat(),
        service_id,
        exclude_appointment_id,
    )
    check = await is_time_slot_available(
        session, instant, service_id, exclude_appointment_id, clock=clock, rules=rules
    )
    if check.available:
        return ConflictReport(False, None, [], "", [])

    code = check.code or UnavailableReason.BOOKED
    conflicting: list[ConflictingAppointment] = []
    if code is UnavailableReason.BOOKED:
        conflicting = await find_conflicting_appointments(
            session, instant, duration_minutes, exclude_appointment_id, rules
        )

    try:
        suggestions = await suggest_alternatives(session, instant, service_id, clock=clock, rules=rules)
    except (AppError, SQLAlchemyError):
        logger.exception(
            "Failed to generate suggested alternatives instant=%s service_id=%s",
            instant.isoformat(),
            service_id,
        )
        suggestions = []

    report = ConflictReport(
        has_conflict=True,
        conflict_type=classify(code),
        conflicting_appointments=conflicting,
        reason=check.reason or "Time slot not available",
        suggested_alternatives=suggestions,
    )
    logger.info(
        "Conflict detection completed instant=%s type=%s conflicting=%d suggested=%d",
        instant.isoformat(),
        report.conflict_type.value,
        len(conflicting),
        len(suggestions),
    )
    return report
