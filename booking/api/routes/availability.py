from datetime import datetime

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from booking.api.deps import get_clock, get_rules, get_session, require_admin
from booking.api.schemas.schedule import WindowActiveUpdate
from booking.core.clock import Clock
from booking.core.config import BusinessRules
from booking.models.appointment_history import Actor
from booking.models.availability import (
    AvailabilityWindowCreate,
    AvailabilityWindowPublic,
    BlockedSlotCreate,
    BlockedSlotPublic,
)
from booking.services.schedule_service import (
    create_availability_window,
    create_blocked_slot,
    delete_blocked_slot,
    list_availability_windows,
    list_blocked_slots,
    set_availability_window_active,
)

router = APIRouter(prefix="/availability", tags=["availability"])


@router.get("", response_model=list[AvailabilityWindowPublic])
async def list_windows(
    day_of_week: int | None = Query(None, ge=0, le=6),
    active_only: bool = Query(False),
    session: AsyncSession = Depends(get_session),
) -> list[AvailabilityWindowPublic]:
    rows = await list_availability_windows(session, day_of_week, active_only)
    return [AvailabilityWindowPublic.model_validate(w) for w in rows]


@router.post("", response_model=AvailabilityWindowPublic, status_code=status.HTTP_201_CREATED)
async def create_window(
    body: AvailabilityWindowCreate,
    session: AsyncSession = Depends(get_session),
    _admin: Actor = Depends(require_admin),
) -> AvailabilityWindowPublic:
    window = await create_availability_window(session, body)
    return AvailabilityWindowPublic.model_validate(window)


@router.get("/blocked", response_model=list[BlockedSlotPublic])
async def list_blocked(
    start: datetime | None = Query(None),
    end: datetime | None = Query(None),
    session: AsyncSession = Depends(get_session),
    _admin: Actor = Depends(require_admin),
) -> list[BlockedSlotPublic]:
    rows = await list_blocked_slots(session, start, end)
    return [BlockedSlotPublic.model_validate(b) for b in rows]


@router.post("/blocked", response_model=BlockedSlotPublic, status_code=status.HTTP_201_CREATED)
async def create_blocked(
    body: BlockedSlotCreate,
    session: AsyncSession = Depends(get_session),
    clock: Clock = Depends(get_clock),
    rules: BusinessRules = Depends(get_rules),
    _admin: Actor = Depends(require_admin),
) -> BlockedSlotPublic:
    blocked = await create_blocked_slot(session, body, clock=clock, rules=rules)
    return BlockedSlotPublic.model_validate(blocked)


@router.delete("/blocked/{blocked_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_blocked(
    blocked_id: int,
    session: AsyncSession = Depends(get_session),
    _admin: Actor = Depends(require_admin),
) -> None:
    await delete_blocked_slot(session, blocked_id)


@router.patch("/{window_id}", response_model=AvailabilityWindowPublic)
async def toggle_window(
    window_id: int,
    body: WindowActiveUpdate,
    session: AsyncSession = Depends(get_session),
    _admin: Actor = Depends(require_admin),
) -> AvailabilityWindowPublic:
    window = await set_availability_window_active(session, window_id, body.is_active)
    return AvailabilityWindowPublic.model_validate(window)
