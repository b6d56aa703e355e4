from datetime import UTC, datetime

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel


def _utc_naive_now() -> datetime:
    """Naive UTC for TIMESTAMP WITHOUT TIME ZONE columns."""
    return datetime.now(UTC).replace(tzinfo=None)


class AvailabilityWindow(SQLModel, table=True):
    """Recurring weekly open hours; times are business-local "HH:MM"."""

    __tablename__ = "availability_windows"
    id: int | None = Field(default=None, primary_key=True)
    day_of_week: int = Field(index=True)  # 0 = Sunday ... 6 = Saturday
    start_time: str
    end_time: str
    is_active: bool = True


class AvailabilityWindowCreate(SQLModel):
    day_of_week: int
    start_time: str
    end_time: str
    is_active: bool = True


class AvailabilityWindowPublic(SQLModel):
    id: int
    day_of_week: int
    start_time: str
    end_time: str
    is_active: bool


class BlockedSlot(SQLModel, table=True):
    """One-off exclusion (holiday, maintenance) regardless of open hours."""

    __tablename__ = "blocked_slots"
    id: int | None = Field(default=None, primary_key=True)
    date_time: datetime = Field(index=True, sa_type=DateTime)
    duration: int  # minutes, 15-480
    reason: str | None = None
    created_at: datetime = Field(default_factory=_utc_naive_now, sa_type=DateTime)


class BlockedSlotCreate(SQLModel):
    date_time: datetime
    duration: int
    reason: str | None = None


class BlockedSlotPublic(SQLModel):
    id: int
    date_time: datetime
    duration: int
    reason: str | None = None
    created_at: datetime
