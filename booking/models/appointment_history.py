import enum
from datetime import UTC, datetime

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel

from booking.models.appointment import AppointmentStatus


def _utc_naive_now() -> datetime:
    """Naive UTC for TIMESTAMP WITHOUT TIME ZONE columns."""
    return datetime.now(UTC).replace(tzinfo=None)


class HistoryAction(str, enum.Enum):
    CREATED = "CREATED"
    UPDATED = "UPDATED"
    RESCHEDULED = "RESCHEDULED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"
    NO_SHOW = "NO_SHOW"
    STATUS_CHANGED = "STATUS_CHANGED"
    NOTES_UPDATED = "NOTES_UPDATED"


class AppointmentHistory(SQLModel, table=True):
    """Append-only audit row; one per appointment transition."""

    __tablename__ = "appointment_history"
    id: int | None = Field(default=None, primary_key=True)
    appointment_id: int = Field(foreign_key="appointments.id", index=True)
    action: HistoryAction
    old_date_time: datetime | None = Field(default=None, sa_type=DateTime)
    new_date_time: datetime | None = Field(default=None, sa_type=DateTime)
    old_status: AppointmentStatus | None = None
    new_status: AppointmentStatus | None = None
    reason: str | None = None
    actor_id: int | None = None
    actor_name: str
    created_at: datetime = Field(default_factory=_utc_naive_now, index=True, sa_type=DateTime)


class AppointmentHistoryPublic(SQLModel):
    id: int
    appointment_id: int
    action: HistoryAction
    old_date_time: datetime | None = None
    new_date_time: datetime | None = None
    old_status: AppointmentStatus | None = None
    new_status: AppointmentStatus | None = None
    reason: str | None = None
    actor_id: int | None = None
    actor_name: str
    created_at: datetime


class Actor(SQLModel):
    """Who performed an action; resolved by the (external) auth layer."""

    id: int | None = None
    name: str = "System"
    is_admin: bool = False
