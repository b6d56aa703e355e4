from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from booking.api.deps import get_clock, get_rules, get_session, require_admin
from booking.api.schemas.appointment import (
    AppointmentUpdateRequest,
    CancelRequest,
    RescheduleRequest,
    RescheduleResponse,
)
from booking.api.schemas.conflict import (
    AvailabilityResponse,
    CheckAvailabilityRequest,
    ConflictCheckRequest,
    ConflictingAppointmentInfo,
    ConflictReportResponse,
    SuggestedSlotInfo,
)
from booking.core.clock import Clock
from booking.core.config import BusinessRules
from booking.core.errors import ValidationError
from booking.models.appointment import AppointmentPublic, AppointmentStatus
from booking.models.appointment_history import Actor, AppointmentHistoryPublic
from booking.services.appointment_service import (
    cancel_appointment,
    get_appointment,
    list_appointments,
    reschedule_appointment,
    update_appointment_notes,
    update_appointment_status,
)
from booking.services.availability_service import is_time_slot_available
from booking.services.conflict_service import detect_conflicts
from booking.services.history_service import list_appointment_history

router = APIRouter(prefix="/admin/appointments", tags=["admin"])


@router.get("", response_model=list[AppointmentPublic])
async def list_all(
    start: datetime | None = Query(None),
    end: datetime | None = Query(None),
    status_filter: list[AppointmentStatus] | None = Query(None, alias="status"),
    user_id: int | None = Query(None),
    session: AsyncSession = Depends(get_session),
    _admin: Actor = Depends(require_admin),
) -> list[AppointmentPublic]:
    rows = await list_appointments(session, start, end, status_filter, user_id)
    return [AppointmentPublic.model_validate(a) for a in rows]


@router.post("/check-availability", response_model=AvailabilityResponse)
async def check_availability(
    body: CheckAvailabilityRequest,
    session: AsyncSession = Depends(get_session),
    clock: Clock = Depends(get_clock),
    rules: BusinessRules = Depends(get_rules),
    _admin: Actor = Depends(require_admin),
) -> AvailabilityResponse:
    result = await is_time_slot_available(
        session, body.date_time, body.service_id, body.exclude_appointment_id, clock=clock, rules=rules
    )
    return AvailabilityResponse(
        available=result.available,
        reason=result.reason,
        code=result.code.value if result.code else None,
    )


@router.post("/conflicts", response_model=ConflictReportResponse)
async def check_conflicts(
    body: ConflictCheckRequest,
    session: AsyncSession = Depends(get_session),
    clock: Clock = Depends(get_clock),
    rules: BusinessRules = Depends(get_rules),
    _admin: Actor = Depends(require_admin),
) -> ConflictReportResponse:
    report = await detect_conflicts(
        session,
        body.date_time,
        body.service_id,
        body.duration_minutes,
        body.exclude_appointment_id,
        clock=clock,
        rules=rules,
    )
    return ConflictReportResponse(
        has_conflict=report.has_conflict,
        conflict_type=report.conflict_type.value if report.conflict_type else None,
        conflicting_appointments=[
            ConflictingAppointmentInfo(**c._asdict()) for c in report.conflicting_appointments
        ],
        reason=report.reason,
        suggested_alternatives=[SuggestedSlotInfo(**s._asdict()) for s in report.suggested_alternatives],
    )


@router.post("/{appointment_id}/reschedule", response_model=RescheduleResponse)
async def reschedule(
    appointment_id: int,
    body: RescheduleRequest,
    session: AsyncSession = Depends(get_session),
    clock: Clock = Depends(get_clock),
    rules: BusinessRules = Depends(get_rules),
    actor: Actor = Depends(require_admin),
) -> RescheduleResponse:
    result = await reschedule_appointment(
        session, appointment_id, body.new_date_time, body.reason, actor=actor, clock=clock, rules=rules
    )
    return RescheduleResponse(
        appointment=AppointmentPublic.model_validate(result.appointment),
        history=AppointmentHistoryPublic.model_validate(result.history_record),
    )


@router.post("/{appointment_id}/cancel", response_model=AppointmentPublic)
async def cancel(
    appointment_id: int,
    body: CancelRequest,
    session: AsyncSession = Depends(get_session),
    clock: Clock = Depends(get_clock),
    actor: Actor = Depends(require_admin),
) -> AppointmentPublic:
    appointment = await cancel_appointment(session, appointment_id, body.reason, actor=actor, clock=clock)
    return AppointmentPublic.model_validate(appointment)


@router.patch("/{appointment_id}", response_model=AppointmentPublic)
async def update(
    appointment_id: int,
    body: AppointmentUpdateRequest,
    session: AsyncSession = Depends(get_session),
    clock: Clock = Depends(get_clock),
    actor: Actor = Depends(require_admin),
) -> AppointmentPublic:
    if body.status is None and "notes" not in body.model_fields_set:
        raise ValidationError("Nothing to update", field="status")
    appointment = await get_appointment(session, appointment_id)
    if body.status is not None and body.status != appointment.status:
        appointment = await update_appointment_status(
            session, appointment_id, body.status, actor=actor, clock=clock, reason=body.reason
        )
    if "notes" in body.model_fields_set and body.notes != appointment.notes:
        appointment = await update_appointment_notes(
            session, appointment_id, body.notes, actor=actor, clock=clock
        )
    return AppointmentPublic.model_validate(appointment)


@router.get("/{appointment_id}/history", response_model=list[AppointmentHistoryPublic])
async def history(
    appointment_id: int,
    session: AsyncSession = Depends(get_session),
    _admin: Actor = Depends(require_admin),
) -> list[AppointmentHistoryPublic]:
    rows = await list_appointment_history(session, appointment_id)
    return [AppointmentHistoryPublic.model_validate(h) for h in rows]
