from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from booking.api.deps import get_clock, get_current_actor, get_current_user_id, get_rules, get_session
from booking.api.schemas.appointment import (
    AppointmentDetail,
    BookAppointmentRequest,
    CancellationPolicyInfo,
    ReschedulingPolicyInfo,
    RescheduleRequest,
    RescheduleResponse,
)
from booking.core.clock import Clock
from booking.core.config import BusinessRules
from booking.core.errors import NotFoundError
from booking.models.appointment import AppointmentPublic
from booking.models.appointment_history import Actor, AppointmentHistoryPublic
from booking.services.appointment_service import (
    book_appointment,
    client_cancel_appointment,
    client_reschedule_appointment,
    get_appointment,
)
from booking.services.history_service import list_appointment_history
from booking.services.policy_service import can_reschedule, cancellation_policy, rescheduling_policy
from booking.services.slot_service import get_service

router = APIRouter(prefix="/appointments", tags=["appointments"])


@router.post("", response_model=AppointmentPublic, status_code=status.HTTP_201_CREATED)
async def book(
    body: BookAppointmentRequest,
    session: AsyncSession = Depends(get_session),
    user_id: int = Depends(get_current_user_id),
    actor: Actor = Depends(get_current_actor),
    clock: Clock = Depends(get_clock),
    rules: BusinessRules = Depends(get_rules),
) -> AppointmentPublic:
    appointment = await book_appointment(
        session, user_id, body.service_id, body.date_time, body.notes, actor=actor, clock=clock, rules=rules
    )
    return AppointmentPublic.model_validate(appointment)


@router.get("/{appointment_id}", response_model=AppointmentDetail)
async def get_my_appointment(
    appointment_id: int,
    session: AsyncSession = Depends(get_session),
    user_id: int = Depends(get_current_user_id),
    clock: Clock = Depends(get_clock),
) -> AppointmentDetail:
    appointment = await get_appointment(session, appointment_id)
    if appointment.user_id != user_id:
        raise NotFoundError("Appointment")
    service = await get_service(session, appointment.service_id)
    now = clock.now()
    cancellation = cancellation_policy(appointment.date_time, service.price, now)
    history = await list_appointment_history(session, appointment.id)
    return AppointmentDetail(
        appointment=AppointmentPublic.model_validate(appointment),
        can_reschedule=can_reschedule(appointment.status, appointment.date_time, now),
        cancellation=CancellationPolicyInfo(**cancellation._asdict()),
        history=[AppointmentHistoryPublic.model_validate(h) for h in history],
    )


@router.put("/{appointment_id}/reschedule", response_model=RescheduleResponse)
async def reschedule_my_appointment(
    appointment_id: int,
    body: RescheduleRequest,
    session: AsyncSession = Depends(get_session),
    user_id: int = Depends(get_current_user_id),
    actor: Actor = Depends(get_current_actor),
    clock: Clock = Depends(get_clock),
    rules: BusinessRules = Depends(get_rules),
) -> RescheduleResponse:
    # policy is computed against the original instant, before the move
    current = await get_appointment(session, appointment_id)
    old_instant = current.date_time
    result = await client_reschedule_appointment(
        session, appointment_id, user_id, body.new_date_time, body.reason, actor=actor, clock=clock, rules=rules
    )
    service = await get_service(session, result.appointment.service_id)
    policy = rescheduling_policy(old_instant, service.price, clock.now())
    return RescheduleResponse(
        appointment=AppointmentPublic.model_validate(result.appointment),
        history=AppointmentHistoryPublic.model_validate(result.history_record),
        policy=ReschedulingPolicyInfo(
            policy=policy.policy,
            fee=policy.fee,
            fee_percentage=policy.fee_percentage,
            message=policy.message,
            time_remaining=policy.time_remaining,
        ),
    )


@router.delete("/{appointment_id}", response_model=AppointmentPublic)
async def cancel_my_appointment(
    appointment_id: int,
    reason: str | None = Query(None),
    session: AsyncSession = Depends(get_session),
    user_id: int = Depends(get_current_user_id),
    actor: Actor = Depends(get_current_actor),
    clock: Clock = Depends(get_clock),
) -> AppointmentPublic:
    appointment = await client_cancel_appointment(
        session, appointment_id, user_id, reason, actor=actor, clock=clock
    )
    return AppointmentPublic.model_validate(appointment)
