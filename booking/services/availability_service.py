import logging
from datetime import datetime
from typing import NamedTuple

from sqlalchemy.ext.asyncio import AsyncSession

from booking.core.clock import Clock, system_clock
from booking.core.config import BusinessRules, get_business_rules
from booking.core.timeutils import to_naive_utc
from booking.services.slot_service import (
    UnavailableReason,
    evaluate_instant,
    get_active_service,
    load_day_schedule,
    local_date_of,
)

logger = logging.getLogger(__name__)


class AvailabilityResult(NamedTuple):
    available: bool
    reason: str | None = None
    code: UnavailableReason | None = None


async def is_time_slot_available(
    session: AsyncSession,
    instant: datetime,
    service_id: int,
    exclude_appointment_id: int | None = None,
    *,
    clock: Clock = system_clock,
    rules: BusinessRules | None = None,
) -> AvailabilityResult:
    """Check one arbitrary instant (not only grid-aligned ones) for a service.

    `exclude_appointment_id` lets a reschedule ignore the appointment's own
    current booking. A missing or inactive service raises NotFoundError rather
    than reporting the slot as unavailable.
    """
    rules = rules or get_business_rules()
    instant = to_naive_utc(instant)
    service = await get_active_service(session, service_id)
    schedule = await load_day_schedule(
        session, local_date_of(instant, rules), rules, exclude_appointment_id
    )
    code = evaluate_instant(instant, service.duration, schedule, clock.now(), rules)
    if code is None:
        return AvailabilityResult(available=True)
    logger.debug(
        "Slot unavailable instant=%s service_id=%s code=%s", instant.isoformat(), service_id, code.value
    )
    return AvailabilityResult(available=False, reason=code.message(rules), code=code)
