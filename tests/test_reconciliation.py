from datetime import date

import pytest

from conftest import at, make_event
from slotsync.models import Appointment, AppointmentHistory, AppointmentStatus, Slot
from slotsync.services.appointment.appointment_service import AppointmentService
from slotsync.services.slot.slot_store import SlotStore, BLOCKED_LABEL
from slotsync.services.sync.reconciliation import (
    CancelEvent,
    EventKind,
    EventReconciler,
    IgnoreEvent,
    UpdateAppointmentSlot,
    UpsertBlockingSlot,
    classify_event,
    plan_reconciliation,
)


@pytest.fixture
def reconciler(db, clock):
    return EventReconciler(db, clock=clock)


def _apply(db, reconciler, event, provider_id):
    action = reconciler.apply(plan_reconciliation(event, provider_id))
    db.commit()
    return action


def _slots(db, provider_id):
    return db.query(Slot).filter_by(provider_id=provider_id).order_by(Slot.start_time).all()


def test_classify_event():
    assert classify_event("Appointment: Jane Doe") == EventKind.APPOINTMENT
    assert classify_event("  Appointment: Jane Doe") == EventKind.APPOINTMENT
    assert classify_event("Team standup") == EventKind.EXTERNAL
    assert classify_event("Re: Appointment: Jane") == EventKind.EXTERNAL
    assert classify_event(None) == EventKind.EXTERNAL


def test_plan_for_each_event_shape(provider):
    pid = provider.id

    assert plan_reconciliation(make_event("e1", status="cancelled"), pid) == CancelEvent(pid, "e1")
    assert plan_reconciliation(make_event("e2", start_date=date(2026, 1, 5)), pid) == IgnoreEvent(pid, "e2", "all_day")

    block = plan_reconciliation(make_event("e3", "Dentist", at(5, 10), at(5, 11)), pid)
    assert block == UpsertBlockingSlot(pid, "e3", at(5, 10), at(5, 11), "Dentist")

    appointment = plan_reconciliation(
        make_event("e4", "Appointment: Jane", at(5, 10), at(5, 10, 45), description="Patient: Jane\nType: Cleaning"),
        pid,
    )
    assert appointment == UpdateAppointmentSlot(pid, "e4", at(5, 10), at(5, 10, 45), "Cleaning")


def test_missing_end_blocks_thirty_minutes(provider):
    command = plan_reconciliation(make_event("e1", "Call", at(5, 14)), provider.id)

    assert isinstance(command, UpsertBlockingSlot)
    assert command.end == at(5, 14, 30)


def test_appointment_type_defaults(provider):
    command = plan_reconciliation(make_event("e1", "Appointment: Sam", at(5, 9), at(5, 9, 30)), provider.id)

    assert command.type_name == "Appointment"


def test_commands_are_immutable(provider):
    command = CancelEvent(provider.id, "e1")
    with pytest.raises(AttributeError):
        command.external_event_id = "e2"


def test_external_event_creates_one_blocking_slot(db, reconciler, provider):
    event = make_event("ext-1", None, at(5, 10), at(5, 11))

    assert _apply(db, reconciler, event, provider.id) == "block"
    assert _apply(db, reconciler, event, provider.id) == "block"

    slots = _slots(db, provider.id)
    assert len(slots) == 1
    assert slots[0].is_available is False
    assert slots[0].type == BLOCKED_LABEL
    assert slots[0].external_event_id == "ext-1"
    assert slots[0].duration == 60


def test_moved_external_event_updates_in_place(db, reconciler, provider):
    _apply(db, reconciler, make_event("ext-1", "Gym", at(5, 10), at(5, 11)), provider.id)
    _apply(db, reconciler, make_event("ext-1", "Gym", at(5, 15), at(5, 15, 30)), provider.id)

    slots = _slots(db, provider.id)
    assert len(slots) == 1
    assert slots[0].start_time == at(5, 15)
    assert slots[0].duration == 30


def test_blocking_event_claims_identical_generated_slot(db, reconciler, provider):
    SlotStore(db).create_available(provider.id, at(5, 10), at(5, 10, 30), 30, "Consultation")
    db.commit()

    _apply(db, reconciler, make_event("ext-1", "Errand", at(5, 10), at(5, 10, 30)), provider.id)

    slots = _slots(db, provider.id)
    assert len(slots) == 1
    assert slots[0].is_available is False
    assert slots[0].external_event_id == "ext-1"


def test_deleted_external_event_removes_blocking_slot(db, reconciler, provider):
    _apply(db, reconciler, make_event("ext-1", "Gym", at(5, 10), at(5, 11)), provider.id)

    assert _apply(db, reconciler, make_event("ext-1", status="cancelled"), provider.id) == "cancel"
    assert _slots(db, provider.id) == []

    # Same deletion delivered again
    assert _apply(db, reconciler, make_event("ext-1", status="cancelled"), provider.id) == "cancel"


def test_deleted_event_gives_back_the_generated_slot_it_took(db, reconciler, provider):
    SlotStore(db).create_available(provider.id, at(5, 10), at(5, 10, 30), 30, "Consultation")
    db.commit()
    _apply(db, reconciler, make_event("ext-1", "Errand", at(5, 10), at(5, 10, 30)), provider.id)

    _apply(db, reconciler, make_event("ext-1", status="cancelled"), provider.id)

    slots = _slots(db, provider.id)
    assert len(slots) == 1
    assert slots[0].is_available is True
    assert slots[0].type == "Consultation"
    assert slots[0].external_event_id is None
    assert slots[0].absorbed_type is None


def test_moved_event_gives_back_the_generated_slot_it_left(db, reconciler, provider):
    store = SlotStore(db)
    store.create_available(provider.id, at(5, 10), at(5, 10, 30), 30, "Consultation")
    store.create_available(provider.id, at(5, 11), at(5, 11, 30), 30, "Cleaning")
    db.commit()

    _apply(db, reconciler, make_event("ext-1", "Errand", at(5, 10), at(5, 10, 30)), provider.id)
    _apply(db, reconciler, make_event("ext-1", "Errand", at(5, 11), at(5, 11, 30)), provider.id)

    restored, blocked = _slots(db, provider.id)
    assert (restored.start_time, restored.type, restored.is_available) == (at(5, 10), "Consultation", True)
    assert (blocked.start_time, blocked.external_event_id, blocked.absorbed_type) == (at(5, 11), "ext-1", "Cleaning")

    _apply(db, reconciler, make_event("ext-1", status="cancelled"), provider.id)

    assert [(s.type, s.is_available) for s in _slots(db, provider.id)] == [("Consultation", True), ("Cleaning", True)]


def test_all_day_event_is_ignored(db, reconciler, provider):
    event = make_event("holiday", "Holiday", start_date=date(2026, 1, 5))

    assert _apply(db, reconciler, event, provider.id) == "ignore"
    assert _slots(db, provider.id) == []


def _booked_appointment(db, provider, event_id="appt-evt"):
    store = SlotStore(db)
    slot = store.create_available(provider.id, at(6, 10), at(6, 10, 30), 30, "Consultation")
    slot.external_event_id = event_id
    db.commit()
    return AppointmentService.book_slot(db, slot.id, client_name="Jane Doe", now=at(5, 7))


def test_cancelled_appointment_event_frees_slot(db, reconciler, provider, consultation):
    appointment = _booked_appointment(db, provider)
    slot_id = appointment.slot_id

    _apply(db, reconciler, make_event("appt-evt", status="cancelled"), provider.id)

    db.refresh(appointment)
    slot = db.get(Slot, slot_id)
    assert appointment.status == AppointmentStatus.CANCELLED
    assert appointment.cancellation_reason == "Cancelled in external calendar"
    assert appointment.cancelled_by == "external_calendar"
    assert slot is not None
    assert slot.is_available is True
    assert slot.external_event_id is None

    history = db.query(AppointmentHistory).filter_by(appointment_id=appointment.id).all()
    assert sorted(h.action for h in history) == ["cancelled", "created"]


def test_cancellation_redelivered_is_a_no_op(db, reconciler, provider, consultation):
    appointment = _booked_appointment(db, provider)

    _apply(db, reconciler, make_event("appt-evt", status="cancelled"), provider.id)
    _apply(db, reconciler, make_event("appt-evt", status="cancelled"), provider.id)

    assert db.query(AppointmentHistory).filter_by(appointment_id=appointment.id).count() == 2
    assert db.query(Slot).filter_by(provider_id=provider.id).count() == 1


def test_appointment_event_moves_its_slot(db, reconciler, provider, consultation):
    appointment = _booked_appointment(db, provider)
    event = make_event(
        "appt-evt", "Appointment: Jane Doe", at(6, 14), at(6, 14, 45), description="Type: Cleaning"
    )

    assert _apply(db, reconciler, event, provider.id) == "update_appointment"

    slot = db.get(Slot, appointment.slot_id)
    assert slot.start_time == at(6, 14)
    assert slot.duration == 45
    assert slot.type == "Cleaning"
    assert slot.is_available is False
    assert db.query(Appointment).count() == 1


def test_appointment_event_without_slot_creates_nothing(db, reconciler, provider):
    event = make_event("unknown", "Appointment: Walk-in", at(6, 9), at(6, 9, 30))

    assert _apply(db, reconciler, event, provider.id) == "ignore"
    assert _slots(db, provider.id) == []
    assert db.query(Appointment).count() == 0
