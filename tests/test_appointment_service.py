from datetime import date, datetime

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from booking.core.errors import (
    ConflictError,
    DataAccessError,
    NotFoundError,
    SlotUnavailableError,
    TerminalStatusError,
    ValidationError,
)
from booking.models import AppointmentHistory, AppointmentStatus, HistoryAction
from booking.services import appointment_service
from booking.services.appointment_service import (
    book_appointment,
    cancel_appointment,
    client_cancel_appointment,
    client_reschedule_appointment,
    get_appointment,
    list_appointments,
    reschedule_appointment,
    update_appointment_notes,
    update_appointment_status,
)
from booking.services.availability_service import AvailabilityResult, is_time_slot_available
from conftest import MONDAY, NEXT_MONDAY, NOW, TUESDAY, at


async def history_rows(session, appointment_id, action=None):
    q = select(AppointmentHistory).where(AppointmentHistory.appointment_id == appointment_id)
    if action is not None:
        q = q.where(AppointmentHistory.action == action)
    result = await session.execute(q)
    return list(result.scalars().all())


@pytest.fixture
async def monday(make_service, make_window):
    service = await make_service(duration=60)
    await make_window(MONDAY, "09:00", "17:00")
    return service


async def test_book_creates_pending_appointment_and_history(session, clock, rules, client_actor, monday):
    appointment = await book_appointment(
        session, 42, monday.id, at(NEXT_MONDAY, 10), "First visit", actor=client_actor, clock=clock, rules=rules
    )

    assert appointment.id is not None
    assert appointment.status is AppointmentStatus.PENDING
    assert appointment.created_at == NOW
    rows = await history_rows(session, appointment.id)
    assert len(rows) == 1
    assert rows[0].action is HistoryAction.CREATED
    assert rows[0].new_date_time == at(NEXT_MONDAY, 10)
    assert rows[0].new_status is AppointmentStatus.PENDING
    assert rows[0].old_date_time is None
    assert rows[0].actor_id == 42
    assert rows[0].actor_name == "Client 42"


async def test_book_rejects_buffered_overlap(session, clock, rules, client_actor, monday, make_appointment):
    await make_appointment(monday, at(NEXT_MONDAY, 10), user_id=7)

    with pytest.raises(SlotUnavailableError) as exc:
        await book_appointment(session, 42, monday.id, at(NEXT_MONDAY, 11), actor=client_actor, clock=clock, rules=rules)

    assert exc.value.code == "booked"
    assert exc.value.status_code == 409
    booked = await book_appointment(
        session, 42, monday.id, at(NEXT_MONDAY, 11, 15), actor=client_actor, clock=clock, rules=rules
    )
    assert booked.date_time == at(NEXT_MONDAY, 11, 15)


async def test_book_rejects_duplicate_for_same_user(session, clock, rules, client_actor, monday, make_appointment):
    await make_appointment(monday, at(NEXT_MONDAY, 10), user_id=42, status=AppointmentStatus.PENDING)

    with pytest.raises(ConflictError) as exc:
        await book_appointment(session, 42, monday.id, at(NEXT_MONDAY, 10), actor=client_actor, clock=clock, rules=rules)

    assert not isinstance(exc.value, SlotUnavailableError)


async def test_book_reports_specific_reason(session, clock, rules, client_actor, monday):
    with pytest.raises(SlotUnavailableError) as exc:
        await book_appointment(session, 42, monday.id, at(NEXT_MONDAY, 18), actor=client_actor, clock=clock, rules=rules)

    assert exc.value.code == "outside_hours"
    assert exc.value.message == "Outside business hours"


async def test_book_validates_before_touching_the_store(session, clock, rules, client_actor):
    with pytest.raises(ValidationError) as exc:
        await book_appointment(session, 42, 1, at(NEXT_MONDAY, 10), "x" * 501, actor=client_actor, clock=clock, rules=rules)
    assert exc.value.field == "notes"

    with pytest.raises(ValidationError):
        await book_appointment(session, 0, 1, at(NEXT_MONDAY, 10), actor=client_actor, clock=clock, rules=rules)


async def test_book_unknown_service(session, clock, rules, client_actor, monday):
    with pytest.raises(NotFoundError):
        await book_appointment(session, 42, 999, at(NEXT_MONDAY, 10), actor=client_actor, clock=clock, rules=rules)


async def test_stale_availability_is_caught_by_unique_start(
    session, clock, rules, client_actor, monday, make_appointment, monkeypatch
):
    # simulate a concurrent writer that passed its check before ours committed
    await make_appointment(monday, at(NEXT_MONDAY, 10), user_id=7, status=AppointmentStatus.PENDING)

    async def always_free(*args, **kwargs):
        return AvailabilityResult(available=True)

    monkeypatch.setattr(appointment_service, "is_time_slot_available", always_free)

    with pytest.raises(SlotUnavailableError) as exc:
        await book_appointment(session, 42, monday.id, at(NEXT_MONDAY, 10), actor=client_actor, clock=clock, rules=rules)
    assert exc.value.code == "booked"


async def test_reschedule_moves_appointment_and_records_once(
    session, clock, rules, admin, monday, make_appointment
):
    appointment = await make_appointment(monday, at(NEXT_MONDAY, 10), status=AppointmentStatus.CONFIRMED)
    clock.advance(minutes=5)

    result = await reschedule_appointment(
        session, appointment.id, at(NEXT_MONDAY, 14), "Client request", actor=admin, clock=clock, rules=rules
    )

    assert result.appointment.date_time == at(NEXT_MONDAY, 14)
    assert result.appointment.status is AppointmentStatus.PENDING
    assert result.appointment.updated_at == clock.now()
    rows = await history_rows(session, appointment.id, HistoryAction.RESCHEDULED)
    assert len(rows) == 1
    entry = rows[0]
    assert entry is result.history_record
    assert entry.old_date_time == at(NEXT_MONDAY, 10)
    assert entry.new_date_time == at(NEXT_MONDAY, 14)
    assert entry.old_status is AppointmentStatus.CONFIRMED
    assert entry.new_status is AppointmentStatus.PENDING
    assert entry.reason == "Client request"
    assert entry.actor_name == "Dr. Admin"
    assert entry.created_at == clock.now()


async def test_failed_reschedule_changes_nothing(session, clock, rules, admin, monday, make_appointment):
    appointment = await make_appointment(monday, at(NEXT_MONDAY, 10))
    await make_appointment(monday, at(NEXT_MONDAY, 14), user_id=8)

    with pytest.raises(SlotUnavailableError) as exc:
        await reschedule_appointment(session, appointment.id, at(NEXT_MONDAY, 14, 30), actor=admin, clock=clock, rules=rules)

    assert exc.value.code == "booked"
    blocking = exc.value.conflicting_appointments
    assert [(c.date_time, c.user_id) for c in blocking] == [(at(NEXT_MONDAY, 14), 8)]
    payload = exc.value.to_dict()
    assert payload["code"] == "booked"
    assert payload["conflicting_appointments"][0]["service_title"] == "Individual Session"
    assert await history_rows(session, appointment.id) == []
    reloaded = await get_appointment(session, appointment.id)
    assert reloaded.date_time == at(NEXT_MONDAY, 10)
    assert reloaded.status is AppointmentStatus.CONFIRMED


async def test_reschedule_commits_or_rolls_back_as_a_unit(
    session, clock, rules, admin, monday, make_appointment
):
    appointment = await make_appointment(monday, at(NEXT_MONDAY, 10))
    appointment_id = appointment.id

    await reschedule_appointment(session, appointment_id, at(NEXT_MONDAY, 15), actor=admin, clock=clock, rules=rules)
    # rollback expires loaded instances; only the saved id is read afterwards
    await session.rollback()

    reloaded = await get_appointment(session, appointment_id)
    assert reloaded.date_time == at(NEXT_MONDAY, 10)
    assert await history_rows(session, appointment_id) == []


async def test_reschedule_to_own_instant_is_allowed(session, clock, rules, admin, monday, make_appointment):
    appointment = await make_appointment(monday, at(NEXT_MONDAY, 10))

    result = await reschedule_appointment(session, appointment.id, at(NEXT_MONDAY, 10), actor=admin, clock=clock, rules=rules)

    assert result.appointment.date_time == at(NEXT_MONDAY, 10)
    assert result.history_record.action is HistoryAction.RESCHEDULED


@pytest.mark.parametrize(
    "status", [AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED, AppointmentStatus.NO_SHOW]
)
async def test_terminal_appointments_cannot_be_rescheduled(
    session, clock, rules, admin, monday, make_appointment, status
):
    appointment = await make_appointment(monday, at(NEXT_MONDAY, 10), status=status)

    with pytest.raises(TerminalStatusError) as exc:
        await reschedule_appointment(session, appointment.id, at(NEXT_MONDAY, 14), actor=admin, clock=clock, rules=rules)

    assert isinstance(exc.value, ConflictError)
    assert exc.value.status == status.value
    assert await history_rows(session, appointment.id) == []


async def test_reschedule_missing_appointment(session, clock, rules, admin, monday):
    with pytest.raises(NotFoundError):
        await reschedule_appointment(session, 12345, at(NEXT_MONDAY, 14), actor=admin, clock=clock, rules=rules)


async def test_reschedule_reason_length(session, clock, rules, admin):
    with pytest.raises(ValidationError) as exc:
        await reschedule_appointment(session, 1, at(NEXT_MONDAY, 14), "r" * 201, actor=admin, clock=clock, rules=rules)
    assert exc.value.field == "reason"


async def test_client_reschedule_requires_ownership(session, clock, rules, client_actor, monday, make_appointment):
    appointment = await make_appointment(monday, at(NEXT_MONDAY, 10), user_id=7)

    with pytest.raises(NotFoundError):
        await client_reschedule_appointment(
            session, appointment.id, 42, at(NEXT_MONDAY, 14), actor=client_actor, clock=clock, rules=rules
        )


async def test_client_reschedule_follows_policy(
    session, clock, rules, client_actor, make_service, make_window, make_appointment
):
    service = await make_service(duration=60)
    await make_window(MONDAY, "09:00", "17:00")
    await make_window(TUESDAY, "08:00", "22:00")
    too_close = await make_appointment(service, datetime(2026, 10, 20, 9), user_id=42)
    with_fee = await make_appointment(service, datetime(2026, 10, 20, 20), user_id=42)

    with pytest.raises(ValidationError) as exc:
        await client_reschedule_appointment(
            session, too_close.id, 42, at(NEXT_MONDAY, 14), actor=client_actor, clock=clock, rules=rules
        )
    assert "within 24 hours" in exc.value.message

    result = await client_reschedule_appointment(
        session, with_fee.id, 42, at(NEXT_MONDAY, 14), actor=client_actor, clock=clock, rules=rules
    )
    assert result.appointment.date_time == at(NEXT_MONDAY, 14)


async def test_cancel_records_reason_and_frees_slot(session, clock, rules, admin, monday, make_appointment):
    appointment = await make_appointment(monday, at(NEXT_MONDAY, 10), status=AppointmentStatus.PENDING)

    cancelled = await cancel_appointment(session, appointment.id, "Feeling unwell", actor=admin, clock=clock)

    assert cancelled.status is AppointmentStatus.CANCELLED
    assert cancelled.cancellation_reason == "Feeling unwell"
    rows = await history_rows(session, appointment.id, HistoryAction.CANCELLED)
    assert len(rows) == 1
    assert rows[0].old_status is AppointmentStatus.PENDING
    assert rows[0].new_status is AppointmentStatus.CANCELLED
    check = await is_time_slot_available(session, at(NEXT_MONDAY, 10), monday.id, clock=clock, rules=rules)
    assert check.available


async def test_cancel_twice_is_a_conflict(session, clock, admin, monday, make_appointment):
    appointment = await make_appointment(monday, at(NEXT_MONDAY, 10), status=AppointmentStatus.CANCELLED)

    with pytest.raises(ConflictError) as exc:
        await cancel_appointment(session, appointment.id, actor=admin, clock=clock)

    assert not isinstance(exc.value, TerminalStatusError)


async def test_cancel_completed_is_terminal(session, clock, admin, monday, make_appointment):
    appointment = await make_appointment(monday, at(NEXT_MONDAY, 10), status=AppointmentStatus.COMPLETED)

    with pytest.raises(TerminalStatusError):
        await cancel_appointment(session, appointment.id, actor=admin, clock=clock)


async def test_client_cancel_by_owner(session, clock, client_actor, monday, make_appointment):
    appointment = await make_appointment(monday, at(NEXT_MONDAY, 10), user_id=42)

    cancelled = await client_cancel_appointment(session, appointment.id, 42, actor=client_actor, clock=clock)

    assert cancelled.status is AppointmentStatus.CANCELLED
    assert cancelled.cancellation_reason == "Cancelled by user"
    rows = await history_rows(session, appointment.id, HistoryAction.CANCELLED)
    assert [r.actor_name for r in rows] == ["Client 42"]


async def test_client_cancel_of_someone_elses_appointment(session, clock, client_actor, monday, make_appointment):
    appointment = await make_appointment(monday, at(NEXT_MONDAY, 10), user_id=7)

    with pytest.raises(NotFoundError):
        await client_cancel_appointment(session, appointment.id, 42, actor=client_actor, clock=clock)


async def test_client_cannot_cancel_once_started(session, clock, client_actor, monday, make_appointment):
    appointment = await make_appointment(monday, at(date(2026, 10, 19), 9), user_id=42)

    with pytest.raises(ValidationError) as exc:
        await client_cancel_appointment(session, appointment.id, 42, actor=client_actor, clock=clock)
    assert exc.value.field == "date_time"


async def test_client_cancel_after_service_is_retired(session, clock, client_actor, monday, make_appointment):
    appointment = await make_appointment(monday, at(NEXT_MONDAY, 10), user_id=42)
    monday.is_active = False
    await session.commit()

    cancelled = await client_cancel_appointment(
        session, appointment.id, 42, "Moving away", actor=client_actor, clock=clock
    )
    assert cancelled.cancellation_reason == "Moving away"


@pytest.mark.parametrize(
    "old, new, action",
    [
        (AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED, HistoryAction.STATUS_CHANGED),
        (AppointmentStatus.CONFIRMED, AppointmentStatus.PENDING, HistoryAction.STATUS_CHANGED),
        (AppointmentStatus.CONFIRMED, AppointmentStatus.COMPLETED, HistoryAction.COMPLETED),
        (AppointmentStatus.PENDING, AppointmentStatus.NO_SHOW, HistoryAction.NO_SHOW),
        (AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED, HistoryAction.CANCELLED),
    ],
)
async def test_status_transitions_record_matching_action(
    session, clock, admin, monday, make_appointment, old, new, action
):
    appointment = await make_appointment(monday, at(NEXT_MONDAY, 10), status=old)

    updated = await update_appointment_status(session, appointment.id, new, actor=admin, clock=clock)

    assert updated.status is new
    rows = await history_rows(session, appointment.id)
    assert [(r.action, r.old_status, r.new_status) for r in rows] == [(action, old, new)]


async def test_terminal_status_is_final(session, clock, admin, monday, make_appointment):
    appointment = await make_appointment(monday, at(NEXT_MONDAY, 10), status=AppointmentStatus.NO_SHOW)

    with pytest.raises(TerminalStatusError):
        await update_appointment_status(session, appointment.id, AppointmentStatus.PENDING, actor=admin, clock=clock)


async def test_same_status_is_not_a_transition(session, clock, admin, monday, make_appointment):
    appointment = await make_appointment(monday, at(NEXT_MONDAY, 10), status=AppointmentStatus.PENDING)

    with pytest.raises(ValidationError) as exc:
        await update_appointment_status(session, appointment.id, AppointmentStatus.PENDING, actor=admin, clock=clock)
    assert exc.value.field == "status"


async def test_update_notes_records_notes_only(session, clock, admin, monday, make_appointment):
    appointment = await make_appointment(monday, at(NEXT_MONDAY, 10))

    updated = await update_appointment_notes(session, appointment.id, "Prefers video", actor=admin, clock=clock)

    assert updated.notes == "Prefers video"
    rows = await history_rows(session, appointment.id)
    assert len(rows) == 1
    assert rows[0].action is HistoryAction.NOTES_UPDATED
    assert rows[0].old_status is None and rows[0].new_date_time is None


async def test_write_failure_outside_booking_is_not_reported_as_booked(
    session, clock, admin, monday, make_appointment, monkeypatch
):
    appointment = await make_appointment(monday, at(NEXT_MONDAY, 10))

    async def failing_flush(*args, **kwargs):
        raise IntegrityError("UPDATE appointments", {}, Exception("constraint failed"))

    monkeypatch.setattr(session, "flush", failing_flush)

    with pytest.raises(DataAccessError):
        await update_appointment_notes(session, appointment.id, "Prefers video", actor=admin, clock=clock)


async def test_list_appointments_filters(session, monday, make_appointment):
    await make_appointment(monday, at(NEXT_MONDAY, 9), user_id=1, status=AppointmentStatus.PENDING)
    await make_appointment(monday, at(NEXT_MONDAY, 11), user_id=2, status=AppointmentStatus.CANCELLED)
    await make_appointment(monday, at(NEXT_MONDAY, 13), user_id=1, status=AppointmentStatus.CONFIRMED)

    everything = await list_appointments(session)
    active = await list_appointments(session, statuses=[AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED])
    morning = await list_appointments(session, start=at(NEXT_MONDAY, 8), end=at(NEXT_MONDAY, 12))
    mine = await list_appointments(session, user_id=2)

    assert [a.date_time.hour for a in everything] == [9, 11, 13]
    assert [a.date_time.hour for a in active] == [9, 13]
    assert [a.date_time.hour for a in morning] == [9, 11]
    assert [a.user_id for a in mine] == [2]
