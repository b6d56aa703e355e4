import enum
from datetime import UTC, datetime

from sqlalchemy import DateTime, Index, text
from sqlmodel import Field, SQLModel


def _utc_naive_now() -> datetime:
    """Naive UTC for TIMESTAMP WITHOUT TIME ZONE columns."""
    return datetime.now(UTC).replace(tzinfo=None)


class AppointmentStatus(str, enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"
    NO_SHOW = "NO_SHOW"


# Statuses whose interval counts as occupied for conflict purposes
ACTIVE_STATUSES = (AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED)
# Statuses an appointment can never leave
TERMINAL_STATUSES = (
    AppointmentStatus.COMPLETED,
    AppointmentStatus.CANCELLED,
    AppointmentStatus.NO_SHOW,
)

_ACTIVE_WHERE = text("status IN ('PENDING', 'CONFIRMED')")


class Appointment(SQLModel, table=True):
    __tablename__ = "appointments"
    __table_args__ = (
        # no two active bookings may start at the same instant
        Index(
            "uq_appointments_active_date_time",
            "date_time",
            unique=True,
            postgresql_where=_ACTIVE_WHERE,
            sqlite_where=_ACTIVE_WHERE,
        ),
    )
    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(index=True)
    service_id: int = Field(foreign_key="services.id", index=True)
    date_time: datetime = Field(index=True, sa_type=DateTime)
    status: AppointmentStatus = Field(default=AppointmentStatus.PENDING, index=True)
    notes: str | None = None
    cancellation_reason: str | None = None
    created_at: datetime = Field(default_factory=_utc_naive_now, sa_type=DateTime)
    updated_at: datetime = Field(default_factory=_utc_naive_now, sa_type=DateTime)


class AppointmentPublic(SQLModel):
    id: int
    user_id: int
    service_id: int
    date_time: datetime
    status: AppointmentStatus
    notes: str | None = None
    cancellation_reason: str | None = None
    created_at: datetime
    updated_at: datetime
