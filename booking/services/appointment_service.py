import logging
from collections.abc import Sequence
from datetime import date, datetime
from typing import NamedTuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from booking.core.clock import Clock, system_clock
from booking.core.config import BusinessRules, get_business_rules
from booking.core.errors import (
    ConflictError,
    DataAccessError,
    NotFoundError,
    SlotUnavailableError,
    TerminalStatusError,
    ValidationError,
)
from booking.core.timeutils import day_of_week, to_naive_utc
from booking.models.appointment import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    Appointment,
    AppointmentStatus,
)
from booking.models.appointment_history import Actor, AppointmentHistory, HistoryAction
from booking.models.availability import AvailabilityWindow
from booking.services.availability_service import is_time_slot_available
from booking.services.conflict_service import find_conflicting_appointments
from booking.services.history_service import record_history
from booking.services.policy_service import cancellation_policy, rescheduling_policy
from booking.services.slot_service import (
    UnavailableReason,
    get_active_service,
    get_service,
    local_date_of,
)

logger = logging.getLogger(__name__)

MAX_REASON_LENGTH = 200
MAX_NOTES_LENGTH = 500

ALLOWED_TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    AppointmentStatus.PENDING: frozenset(
        {
            AppointmentStatus.CONFIRMED,
            AppointmentStatus.CANCELLED,
            AppointmentStatus.COMPLETED,
            AppointmentStatus.NO_SHOW,
        }
    ),
    AppointmentStatus.CONFIRMED: frozenset(
        {
            AppointmentStatus.PENDING,
            AppointmentStatus.CANCELLED,
            AppointmentStatus.COMPLETED,
            AppointmentStatus.NO_SHOW,
        }
    ),
}

_STATUS_ACTIONS = {
    AppointmentStatus.COMPLETED: HistoryAction.COMPLETED,
    AppointmentStatus.NO_SHOW: HistoryAction.NO_SHOW,
    AppointmentStatus.CANCELLED: HistoryAction.CANCELLED,
}


class RescheduleResult(NamedTuple):
    history_record: AppointmentHistory
    appointment: Appointment


def _check_length(value: str | None, limit: int, field: str) -> None:
    if value is not None and len(value) > limit:
        raise ValidationError(f"{field.capitalize()} must be at most {limit} characters", field=field)


def _check_id(value: int, field: str) -> None:
    if value is None or value < 1:
        raise ValidationError(f"Invalid {field}", field=field)


async def lock_schedule_day(session: AsyncSession, target_date: date) -> None:
    """Serialize writers for one weekday by locking its availability rows.

    Two concurrent bookings for the same day queue here, so the availability
    re-check that follows sees the other's committed row. SQLite has no row
    locks and ignores FOR UPDATE; the unique index still holds there.
    """
    await session.execute(
        select(AvailabilityWindow.id)
        .where(AvailabilityWindow.day_of_week == day_of_week(target_date))
        .with_for_update()
    )


async def _flush(session: AsyncSession, appointment_id: int | None) -> None:
    try:
        await session.flush()
    except SQLAlchemyError as e:
        logger.exception("Failed to write appointment id=%s", appointment_id)
        raise DataAccessError("Failed to save appointment") from e


async def _flush_occupying(session: AsyncSession, instant: datetime, rules: BusinessRules) -> None:
    """Flush a write that takes a start instant; a unique collision means it was just booked."""
    try:
        await session.flush()
    except IntegrityError as e:
        logger.warning("Booking collided on unique start instant=%s", instant.isoformat())
        raise SlotUnavailableError(
            UnavailableReason.BOOKED.message(rules), code=UnavailableReason.BOOKED.value
        ) from e
    except SQLAlchemyError as e:
        logger.exception("Failed to write appointment instant=%s", instant.isoformat())
        raise DataAccessError("Failed to save appointment") from e


async def _require_available(
    session: AsyncSession,
    instant: datetime,
    service_id: int,
    exclude_appointment_id: int | None,
    *,
    clock: Clock,
    rules: BusinessRules,
) -> None:
    check = await is_time_slot_available(
        session, instant, service_id, exclude_appointment_id, clock=clock, rules=rules
    )
    if check.available:
        return
    conflicting = []
    if check.code is UnavailableReason.BOOKED:
        service = await get_active_service(session, service_id)
        conflicting = await find_conflicting_appointments(
            session, instant, service.duration, exclude_appointment_id, rules
        )
    raise SlotUnavailableError(
        check.reason or "Time slot not available",
        code=check.code.value if check.code else None,
        conflicting_appointments=conflicting,
    )


async def get_appointment(session: AsyncSession, appointment_id: int) -> Appointment:
    result = await session.execute(select(Appointment).where(Appointment.id == appointment_id))
    appointment = result.scalar_one_or_none()
    if not appointment:
        raise NotFoundError("Appointment")
    return appointment


async def list_appointments(
    session: AsyncSession,
    start: datetime | None = None,
    end: datetime | None = None,
    statuses: Sequence[AppointmentStatus] | None = None,
    user_id: int | None = None,
) -> list[Appointment]:
    q = select(Appointment).order_by(Appointment.date_time, Appointment.id)
    if start is not None:
        q = q.where(Appointment.date_time >= to_naive_utc(start))
    if end is not None:
        q = q.where(Appointment.date_time < to_naive_utc(end))
    if statuses:
        q = q.where(Appointment.status.in_(list(statuses)))
    if user_id is not None:
        q = q.where(Appointment.user_id == user_id)
    result = await session.execute(q)
    return list(result.scalars().all())


async def book_appointment(
    session: AsyncSession,
    user_id: int,
    service_id: int,
    instant: datetime,
    notes: str | None = None,
    *,
    actor: Actor,
    clock: Clock = system_clock,
    rules: BusinessRules | None = None,
) -> Appointment:
    """Create a PENDING appointment after re-checking availability under the day lock."""
    rules = rules or get_business_rules()
    _check_id(user_id, "user_id")
    _check_id(service_id, "service_id")
    _check_length(notes, MAX_NOTES_LENGTH, "notes")
    instant = to_naive_utc(instant)

    await get_active_service(session, service_id)
    await lock_schedule_day(session, local_date_of(instant, rules))

    duplicate = await session.execute(
        select(Appointment.id).where(
            Appointment.user_id == user_id,
            Appointment.date_time == instant,
            Appointment.status.in_(ACTIVE_STATUSES),
        )
    )
    if duplicate.first() is not None:
        raise ConflictError("You already have an appointment at this time")

    await _require_available(session, instant, service_id, None, clock=clock, rules=rules)

    now = clock.now()
    appointment = Appointment(
        user_id=user_id,
        service_id=service_id,
        date_time=instant,
        status=AppointmentStatus.PENDING,
        notes=notes,
        created_at=now,
        updated_at=now,
    )
    session.add(appointment)
    await _flush_occupying(session, instant, rules)
    record_history(
        session,
        appointment,
        HistoryAction.CREATED,
        actor=actor,
        clock=clock,
        new_date_time=instant,
        new_status=AppointmentStatus.PENDING,
    )
    await _flush(session, appointment.id)
    logger.info(
        "Appointment booked id=%s user_id=%s service_id=%s instant=%s",
        appointment.id,
        user_id,
        service_id,
        instant.isoformat(),
    )
    return appointment


async def reschedule_appointment(
    session: AsyncSession,
    appointment_id: int,
    new_instant: datetime,
    reason: str | None = None,
    *,
    actor: Actor,
    clock: Clock = system_clock,
    rules: BusinessRules | None = None,
) -> RescheduleResult:
    """Move an appointment to a new instant and record the move.

    The history row and the appointment update share the caller's transaction:
    both are committed together or neither is. The moved appointment is reset
    to PENDING so the practice re-confirms it.
    """
    rules = rules or get_business_rules()
    _check_length(reason, MAX_REASON_LENGTH, "reason")
    new_instant = to_naive_utc(new_instant)

    appointment = await get_appointment(session, appointment_id)
    if appointment.status in TERMINAL_STATUSES:
        raise TerminalStatusError(
            f"Cannot reschedule {appointment.status.value.lower()} appointment",
            status=appointment.status.value,
        )

    await lock_schedule_day(session, local_date_of(new_instant, rules))
    await _require_available(
        session, new_instant, appointment.service_id, appointment.id, clock=clock, rules=rules
    )

    old_instant = appointment.date_time
    old_status = appointment.status
    entry = record_history(
        session,
        appointment,
        HistoryAction.RESCHEDULED,
        actor=actor,
        clock=clock,
        old_date_time=old_instant,
        new_date_time=new_instant,
        old_status=old_status,
        new_status=AppointmentStatus.PENDING,
        reason=reason,
    )
    appointment.date_time = new_instant
    appointment.status = AppointmentStatus.PENDING
    appointment.updated_at = clock.now()
    session.add(appointment)
    await _flush_occupying(session, new_instant, rules)
    logger.info(
        "Appointment rescheduled id=%s from=%s to=%s actor=%s",
        appointment.id,
        old_instant.isoformat(),
        new_instant.isoformat(),
        actor.name,
    )
    return RescheduleResult(history_record=entry, appointment=appointment)


async def client_reschedule_appointment(
    session: AsyncSession,
    appointment_id: int,
    user_id: int,
    new_instant: datetime,
    reason: str | None = None,
    *,
    actor: Actor,
    clock: Clock = system_clock,
    rules: BusinessRules | None = None,
) -> RescheduleResult:
    """Client-initiated move; only the owner may move it and only while policy allows."""
    appointment = await get_appointment(session, appointment_id)
    if appointment.user_id != user_id:
        raise NotFoundError("Appointment")
    if appointment.status in TERMINAL_STATUSES:
        raise TerminalStatusError(
            f"Cannot reschedule {appointment.status.value.lower()} appointment",
            status=appointment.status.value,
        )
    service = await get_service(session, appointment.service_id)
    policy = rescheduling_policy(appointment.date_time, service.price, clock.now())
    if not policy.can_reschedule:
        raise ValidationError(policy.message, field="date_time")
    return await reschedule_appointment(
        session, appointment_id, new_instant, reason, actor=actor, clock=clock, rules=rules
    )


async def cancel_appointment(
    session: AsyncSession,
    appointment_id: int,
    reason: str | None = None,
    *,
    actor: Actor,
    clock: Clock = system_clock,
) -> Appointment:
    _check_length(reason, MAX_REASON_LENGTH, "reason")
    appointment = await get_appointment(session, appointment_id)
    if appointment.status == AppointmentStatus.CANCELLED:
        raise ConflictError("Appointment is already cancelled")
    if appointment.status in TERMINAL_STATUSES:
        raise TerminalStatusError(
            f"Cannot cancel {appointment.status.value.lower()} appointment",
            status=appointment.status.value,
        )
    old_status = appointment.status
    record_history(
        session,
        appointment,
        HistoryAction.CANCELLED,
        actor=actor,
        clock=clock,
        old_status=old_status,
        new_status=AppointmentStatus.CANCELLED,
        reason=reason,
    )
    appointment.status = AppointmentStatus.CANCELLED
    appointment.cancellation_reason = reason
    appointment.updated_at = clock.now()
    session.add(appointment)
    await _flush(session, appointment.id)
    logger.info("Appointment cancelled id=%s actor=%s", appointment.id, actor.name)
    return appointment


async def client_cancel_appointment(
    session: AsyncSession,
    appointment_id: int,
    user_id: int,
    reason: str | None = None,
    *,
    actor: Actor,
    clock: Clock = system_clock,
) -> Appointment:
    """Owner cancellation; refused once the appointment has started."""
    appointment = await get_appointment(session, appointment_id)
    if appointment.user_id != user_id:
        raise NotFoundError("Appointment")
    service = await get_service(session, appointment.service_id)
    policy = cancellation_policy(appointment.date_time, service.price, clock.now())
    if appointment.status in ACTIVE_STATUSES and not policy.can_cancel:
        raise ValidationError(policy.message, field="date_time")
    return await cancel_appointment(
        session, appointment_id, reason or "Cancelled by user", actor=actor, clock=clock
    )


async def update_appointment_status(
    session: AsyncSession,
    appointment_id: int,
    new_status: AppointmentStatus,
    *,
    actor: Actor,
    clock: Clock = system_clock,
    reason: str | None = None,
) -> Appointment:
    _check_length(reason, MAX_REASON_LENGTH, "reason")
    appointment = await get_appointment(session, appointment_id)
    old_status = appointment.status
    if old_status in TERMINAL_STATUSES:
        raise TerminalStatusError(
            f"Cannot change status of {old_status.value.lower()} appointment",
            status=old_status.value,
        )
    if new_status not in ALLOWED_TRANSITIONS[old_status]:
        raise ValidationError(
            f"Cannot change status from {old_status.value} to {new_status.value}", field="status"
        )
    record_history(
        session,
        appointment,
        _STATUS_ACTIONS.get(new_status, HistoryAction.STATUS_CHANGED),
        actor=actor,
        clock=clock,
        old_status=old_status,
        new_status=new_status,
        reason=reason,
    )
    appointment.status = new_status
    if new_status == AppointmentStatus.CANCELLED:
        appointment.cancellation_reason = reason
    appointment.updated_at = clock.now()
    session.add(appointment)
    await _flush(session, appointment.id)
    logger.info(
        "Appointment status changed id=%s %s->%s actor=%s",
        appointment.id,
        old_status.value,
        new_status.value,
        actor.name,
    )
    return appointment


async def update_appointment_notes(
    session: AsyncSession,
    appointment_id: int,
    notes: str | None,
    *,
    actor: Actor,
    clock: Clock = system_clock,
) -> Appointment:
    _check_length(notes, MAX_NOTES_LENGTH, "notes")
    appointment = await get_appointment(session, appointment_id)
    record_history(session, appointment, HistoryAction.NOTES_UPDATED, actor=actor, clock=clock)
    appointment.notes = notes
    appointment.updated_at = clock.now()
    session.add(appointment)
    await _flush(session, appointment.id)
    return appointment
