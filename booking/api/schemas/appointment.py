from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel

from booking.models.appointment import AppointmentPublic, AppointmentStatus
from booking.models.appointment_history import AppointmentHistoryPublic


class SlotInfo(BaseModel):
    start_utc: datetime
    end_utc: datetime
    available: bool
    reason: str | None = None
    display_time: str


class AvailableSlotsResponse(BaseModel):
    date: str  # YYYY-MM-DD, business-local
    service_id: int
    slots: list[SlotInfo]


class BookAppointmentRequest(BaseModel):
    service_id: int
    date_time: datetime
    notes: str | None = None


class RescheduleRequest(BaseModel):
    new_date_time: datetime
    reason: str | None = None


class CancelRequest(BaseModel):
    reason: str | None = None


class AppointmentUpdateRequest(BaseModel):
    status: AppointmentStatus | None = None
    notes: str | None = None
    reason: str | None = None


class ReschedulingPolicyInfo(BaseModel):
    policy: str
    fee: Decimal
    fee_percentage: int
    message: str
    time_remaining: str


class RescheduleResponse(BaseModel):
    appointment: AppointmentPublic
    history: AppointmentHistoryPublic
    policy: ReschedulingPolicyInfo | None = None


class CancellationPolicyInfo(BaseModel):
    policy: str
    refund_amount: Decimal
    refund_percentage: int
    message: str
    can_cancel: bool


class AppointmentDetail(BaseModel):
    appointment: AppointmentPublic
    can_reschedule: bool
    cancellation: CancellationPolicyInfo
    history: list[AppointmentHistoryPublic]
