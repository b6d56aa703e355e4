from datetime import date, timedelta

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from booking.api.deps import get_clock, get_rules, get_session
from booking.api.schemas.appointment import AvailableSlotsResponse, SlotInfo
from booking.core.clock import Clock
from booking.core.config import BusinessRules
from booking.services.slot_service import generate_time_slots, get_active_service

router = APIRouter(prefix="/slots", tags=["slots"])


@router.get("/available", response_model=AvailableSlotsResponse)
async def available_slots(
    date_param: date = Query(..., alias="date"),
    service_id: int = Query(..., gt=0),
    session: AsyncSession = Depends(get_session),
    clock: Clock = Depends(get_clock),
    rules: BusinessRules = Depends(get_rules),
) -> AvailableSlotsResponse:
    """All grid slots for a business-local date; each says whether it can be booked."""
    service = await get_active_service(session, service_id)
    slots = await generate_time_slots(session, date_param, service_id, clock=clock, rules=rules)
    length = timedelta(minutes=service.duration)
    return AvailableSlotsResponse(
        date=date_param.isoformat(),
        service_id=service_id,
        slots=[
            SlotInfo(
                start_utc=s.date_time,
                end_utc=s.date_time + length,
                available=s.available,
                reason=s.reason,
                display_time=s.display_time,
            )
            for s in slots
        ],
    )
