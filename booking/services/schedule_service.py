import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from booking.core.clock import Clock, system_clock
from booking.core.config import BusinessRules, get_business_rules
from booking.core.errors import NotFoundError, ValidationError
from booking.core.timeutils import parse_hhmm, to_naive_utc
from booking.models.availability import (
    AvailabilityWindow,
    AvailabilityWindowCreate,
    BlockedSlot,
    BlockedSlotCreate,
)

logger = logging.getLogger(__name__)

MAX_BLOCK_REASON_LENGTH = 200


def _hhmm(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def validate_window(data: AvailabilityWindowCreate) -> tuple[int, int]:
    """Return (start, end) as minutes since midnight."""
    if not 0 <= data.day_of_week <= 6:
        raise ValidationError("Day of week must be between 0 (Sunday) and 6 (Saturday)", field="day_of_week")
    start = parse_hhmm(data.start_time, "start_time")
    end = parse_hhmm(data.end_time, "end_time")
    if end <= start:
        raise ValidationError("End time must be after start time", field="end_time")
    return start, end


async def create_availability_window(
    session: AsyncSession, data: AvailabilityWindowCreate
) -> AvailabilityWindow:
    start, end = validate_window(data)
    # always zero-padded HH:MM
    window = AvailabilityWindow(
        day_of_week=data.day_of_week,
        start_time=_hhmm(start),
        end_time=_hhmm(end),
        is_active=data.is_active,
    )
    session.add(window)
    await session.flush()
    await session.refresh(window)
    logger.info(
        "Availability window created id=%s day_of_week=%d %s-%s",
        window.id,
        window.day_of_week,
        window.start_time,
        window.end_time,
    )
    return window


async def list_availability_windows(
    session: AsyncSession, day: int | None = None, active_only: bool = False
) -> list[AvailabilityWindow]:
    q = select(AvailabilityWindow).order_by(AvailabilityWindow.day_of_week, AvailabilityWindow.start_time)
    if day is not None:
        q = q.where(AvailabilityWindow.day_of_week == day)
    if active_only:
        q = q.where(AvailabilityWindow.is_active == True)  # noqa: E712
    result = await session.execute(q)
    return list(result.scalars().all())


async def set_availability_window_active(
    session: AsyncSession, window_id: int, is_active: bool
) -> AvailabilityWindow:
    result = await session.execute(select(AvailabilityWindow).where(AvailabilityWindow.id == window_id))
    window = result.scalar_one_or_none()
    if not window:
        raise NotFoundError("Availability window")
    window.is_active = is_active
    session.add(window)
    await session.flush()
    return window


async def create_blocked_slot(
    session: AsyncSession,
    data: BlockedSlotCreate,
    *,
    clock: Clock = system_clock,
    rules: BusinessRules | None = None,
) -> BlockedSlot:
    """Block a period regardless of open hours. Existing bookings are left alone."""
    rules = rules or get_business_rules()
    if not rules.min_duration <= data.duration <= rules.max_duration:
        raise ValidationError(
            f"Duration must be between {rules.min_duration} and {rules.max_duration} minutes",
            field="duration",
        )
    if data.reason is not None and len(data.reason) > MAX_BLOCK_REASON_LENGTH:
        raise ValidationError(
            f"Reason must be at most {MAX_BLOCK_REASON_LENGTH} characters", field="reason"
        )
    blocked = BlockedSlot(
        date_time=to_naive_utc(data.date_time),
        duration=data.duration,
        reason=data.reason,
        created_at=clock.now(),
    )
    session.add(blocked)
    await session.flush()
    await session.refresh(blocked)
    logger.info(
        "Blocked slot created id=%s start=%s duration=%d",
        blocked.id,
        blocked.date_time.isoformat(),
        blocked.duration,
    )
    return blocked


async def list_blocked_slots(
    session: AsyncSession, start: datetime | None = None, end: datetime | None = None
) -> list[BlockedSlot]:
    q = select(BlockedSlot).order_by(BlockedSlot.date_time)
    if start is not None:
        q = q.where(BlockedSlot.date_time >= to_naive_utc(start))
    if end is not None:
        q = q.where(BlockedSlot.date_time < to_naive_utc(end))
    result = await session.execute(q)
    return list(result.scalars().all())


async def delete_blocked_slot(session: AsyncSession, blocked_id: int) -> None:
    result = await session.execute(select(BlockedSlot).where(BlockedSlot.id == blocked_id))
    blocked = result.scalar_one_or_none()
    if not blocked:
        raise NotFoundError("Blocked slot")
    await session.delete(blocked)
    await session.flush()
    logger.info("Blocked slot deleted id=%s", blocked_id)
