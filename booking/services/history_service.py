from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from booking.core.clock import Clock, system_clock
from booking.core.errors import NotFoundError
from booking.models.appointment import Appointment, AppointmentStatus
from booking.models.appointment_history import Actor, AppointmentHistory, HistoryAction


def record_history(
    session: AsyncSession,
    appointment: Appointment,
    action: HistoryAction,
    *,
    actor: Actor,
    clock: Clock = system_clock,
    old_date_time: datetime | None = None,
    new_date_time: datetime | None = None,
    old_status: AppointmentStatus | None = None,
    new_status: AppointmentStatus | None = None,
    reason: str | None = None,
) -> AppointmentHistory:
    """Stage one audit row in the caller's transaction. Rows are never updated."""
    entry = AppointmentHistory(
        appointment_id=appointment.id,
        action=action,
        old_date_time=old_date_time,
        new_date_time=new_date_time,
        old_status=old_status,
        new_status=new_status,
        reason=reason,
        actor_id=actor.id,
        actor_name=actor.name,
        created_at=clock.now(),
    )
    session.add(entry)
    return entry


async def list_appointment_history(
    session: AsyncSession, appointment_id: int
) -> list[AppointmentHistory]:
    """Timeline for one appointment, newest first."""
    exists = await session.execute(select(Appointment.id).where(Appointment.id == appointment_id))
    if exists.scalar_one_or_none() is None:
        raise NotFoundError("Appointment")
    result = await session.execute(
        select(AppointmentHistory)
        .where(AppointmentHistory.appointment_id == appointment_id)
        .order_by(AppointmentHistory.created_at.desc(), AppointmentHistory.id.desc())
    )
    return list(result.scalars().all())
