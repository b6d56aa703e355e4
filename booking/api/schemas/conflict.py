from datetime import datetime

from pydantic import BaseModel

from booking.models.appointment import AppointmentStatus


class CheckAvailabilityRequest(BaseModel):
    date_time: datetime
    service_id: int
    exclude_appointment_id: int | None = None


class AvailabilityResponse(BaseModel):
    available: bool
    reason: str | None = None
    code: str | None = None


class ConflictCheckRequest(BaseModel):
    date_time: datetime
    service_id: int
    duration_minutes: int
    exclude_appointment_id: int | None = None


class ConflictingAppointmentInfo(BaseModel):
    id: int
    user_id: int
    date_time: datetime
    status: AppointmentStatus
    service_title: str
    service_duration: int


class SuggestedSlotInfo(BaseModel):
    date_time: datetime
    display_time: str


class ConflictReportResponse(BaseModel):
    has_conflict: bool
    conflict_type: str | None = None
    conflicting_appointments: list[ConflictingAppointmentInfo]
    reason: str
    suggested_alternatives: list[SuggestedSlotInfo]
