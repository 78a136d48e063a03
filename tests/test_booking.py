from datetime import date, time, timedelta
from types import SimpleNamespace

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from models import db
from models.appointment import Appointment
from models.doctor_day_lock import DoctorDayLock
from services.booking import BookingService, PatientInfo
from services.errors import (
    CancellationTooLate,
    DoctorConflict,
    InfrastructureFailure,
    InvalidBookingMode,
    InvalidTransition,
    NotFound,
    PatientConflict,
    SlotNotAvailable,
    ValidationError,
)
from services.slots import Slot
from services.store import SchedulingStore, conflict_for_integrity_error
from tests.conftest import at


@pytest.fixture
def cardiology(make_specialty):
    return make_specialty("Cardiology")


@pytest.fixture
def ophthalmology(make_specialty):
    return make_specialty("Ophthalmology")


def other_patient(dni="87654321"):
    return PatientInfo(name="Ana Gomez", dni=dni, birthdate=date(1985, 6, 2))


def active_count():
    return Appointment.query.filter(Appointment.status != "cancelled").count()


class TestCreateAppointment:
    def test_books_a_free_slot(self, booking, make_schedule, cardiology, patient, monday):
        make_schedule(cardiology, capacity=2)

        appointment = booking.create_appointment(
            cardiology.id, None, patient, at(monday, 9), at(monday, 9, 30), created_by=None,
        )

        assert appointment.id is not None
        assert appointment.status == "booked"
        assert appointment.appointment_date == monday
        assert appointment.dni == "12345678"

    def test_booking_reduces_availability(self, booking, resolver, make_schedule, cardiology, patient, monday):
        make_schedule(cardiology, capacity=2)
        booking.create_appointment(cardiology.id, None, patient, at(monday, 9), at(monday, 9, 30))

        slots = resolver.get_available_slots(cardiology.id, None, monday)

        assert slots[0].available == 1
        assert all(s.available == 2 for s in slots[1:])

    def test_rejects_window_that_is_not_a_slot(self, booking, make_schedule, cardiology, patient, monday):
        make_schedule(cardiology)

        with pytest.raises(SlotNotAvailable):
            booking.create_appointment(cardiology.id, None, patient, at(monday, 9, 10), at(monday, 9, 40))
        assert active_count() == 0

    def test_rejects_full_slot(self, booking, make_schedule, cardiology, patient, monday):
        make_schedule(cardiology, capacity=1)
        booking.create_appointment(cardiology.id, None, other_patient(), at(monday, 9), at(monday, 9, 30))

        with pytest.raises(SlotNotAvailable):
            booking.create_appointment(cardiology.id, None, patient, at(monday, 9), at(monday, 9, 30))

    def test_one_appointment_per_patient_per_day(self, booking, make_schedule, cardiology, ophthalmology,
                                                 patient, monday):
        make_schedule(cardiology)
        make_schedule(ophthalmology, time_start=time(14, 0), time_end=time(16, 0))
        booking.create_appointment(cardiology.id, None, patient, at(monday, 9), at(monday, 9, 30))

        with pytest.raises(PatientConflict) as excinfo:
            booking.create_appointment(ophthalmology.id, None, patient, at(monday, 14), at(monday, 14, 30))

        assert excinfo.value.code == "PATIENT_CONFLICT"
        assert active_count() == 1

    def test_same_patient_may_book_another_day(self, booking, make_schedule, cardiology, patient, monday):
        make_schedule(cardiology)
        booking.create_appointment(cardiology.id, None, patient, at(monday, 9), at(monday, 9, 30))
        tuesday = monday + timedelta(days=1)

        booking.create_appointment(cardiology.id, None, patient, at(tuesday, 9), at(tuesday, 9, 30))

        assert active_count() == 2

    def test_doctor_cannot_be_double_booked_across_specialties(self, booking, make_doctor, make_schedule,
                                                               cardiology, ophthalmology, patient, monday):
        cairo = make_doctor("Cairo", [cardiology, ophthalmology])
        make_schedule(cardiology, cairo)
        make_schedule(ophthalmology, cairo)
        booking.create_appointment(cardiology.id, cairo.id, other_patient(), at(monday, 9), at(monday, 9, 30))

        with pytest.raises(DoctorConflict):
            booking.create_appointment(ophthalmology.id, cairo.id, patient, at(monday, 9), at(monday, 9, 30))

    def test_overlapping_window_with_another_start_is_a_doctor_conflict(self, booking, make_doctor, make_schedule,
                                                                        cardiology, ophthalmology, patient, monday):
        cairo = make_doctor("Cairo", [cardiology, ophthalmology])
        make_schedule(cardiology, cairo, slot_minutes=45)
        make_schedule(ophthalmology, cairo, slot_minutes=30)
        booking.create_appointment(cardiology.id, cairo.id, other_patient(), at(monday, 9), at(monday, 9, 45))

        with pytest.raises(DoctorConflict):
            booking.create_appointment(ophthalmology.id, cairo.id, patient, at(monday, 9, 30), at(monday, 10))
        assert active_count() == 1

    def test_touching_windows_share_a_doctor(self, booking, make_doctor, make_schedule, cardiology, patient, monday):
        cairo = make_doctor("Cairo", [cardiology])
        make_schedule(cardiology, cairo)
        booking.create_appointment(cardiology.id, cairo.id, other_patient(), at(monday, 9), at(monday, 9, 30))

        appointment = booking.create_appointment(cardiology.id, cairo.id, patient, at(monday, 9, 30), at(monday, 10))

        assert appointment.doctor_id == cairo.id
        assert active_count() == 2

    def test_doctor_rule_slot_booked_without_doctor_is_charged_to_that_doctor(self, booking, make_doctor,
                                                                              make_schedule, cardiology,
                                                                              patient, monday):
        cairo = make_doctor("Cairo", [cardiology])
        make_schedule(cardiology, cairo, capacity=1)

        first = booking.create_appointment(cardiology.id, None, other_patient(), at(monday, 9), at(monday, 9, 30))

        assert first.doctor_id == cairo.id
        with pytest.raises(SlotNotAvailable):
            booking.create_appointment(cardiology.id, None, patient, at(monday, 9), at(monday, 9, 30))
        assert active_count() == 1

    def test_non_slot_specialty_is_rejected(self, booking, make_specialty, patient, monday):
        lab = make_specialty("Laboratory", "WALKIN")

        with pytest.raises(InvalidBookingMode):
            booking.create_appointment(lab.id, None, patient, at(monday, 9), at(monday, 9, 30))

    def test_rejects_inverted_or_past_windows(self, booking, make_schedule, cardiology, patient, monday):
        make_schedule(cardiology)

        with pytest.raises(ValidationError):
            booking.create_appointment(cardiology.id, None, patient, at(monday, 9, 30), at(monday, 9))
        with pytest.raises(ValidationError):
            booking.create_appointment(
                cardiology.id, None, patient, at(monday, 9), at(monday, 9, 30),
                now=at(monday, 10),
            )


class TestConcurrencyBackstop:
    """Two requests that both pass the pre-checks: the insert decides."""

    def _skip_prechecks(self, monkeypatch, booking, slot_doctor_id=None):
        def fake_find_slot(specialty_id, doctor_id, start, end):
            return Slot(start=start, end=end, capacity=1, taken=0, available=1,
                        doctor_id=slot_doctor_id, schedule_id=1)

        monkeypatch.setattr(booking.resolver, "find_slot", fake_find_slot)
        monkeypatch.setattr(booking.store, "has_patient_conflict", lambda *a, **kw: False)
        monkeypatch.setattr(booking.store, "has_doctor_conflict", lambda *a, **kw: False)

    def test_patient_day_index_rejects_the_loser(self, monkeypatch, booking, make_schedule, make_appointment,
                                                 cardiology, patient, monday):
        make_schedule(cardiology)
        make_appointment(cardiology, at(monday, 11), at(monday, 11, 30), dni=patient.dni)
        self._skip_prechecks(monkeypatch, booking)

        with pytest.raises(PatientConflict):
            booking.create_appointment(cardiology.id, None, patient, at(monday, 9), at(monday, 9, 30))

        assert active_count() == 1

    def test_doctor_slot_index_rejects_the_loser(self, monkeypatch, booking, make_doctor, make_schedule,
                                                 make_appointment, cardiology, patient, monday):
        cairo = make_doctor("Cairo", [cardiology])
        make_schedule(cardiology, cairo)
        make_appointment(cardiology, at(monday, 9), at(monday, 9, 30), doctor=cairo)
        self._skip_prechecks(monkeypatch, booking, slot_doctor_id=cairo.id)

        with pytest.raises(DoctorConflict):
            booking.create_appointment(cardiology.id, cairo.id, patient, at(monday, 9), at(monday, 9, 30))

        assert active_count() == 1

    def test_session_is_usable_after_a_lost_race(self, monkeypatch, booking, make_schedule, make_appointment,
                                                 cardiology, patient, monday):
        make_schedule(cardiology, capacity=3)
        make_appointment(cardiology, at(monday, 11), at(monday, 11, 30), dni=patient.dni)
        self._skip_prechecks(monkeypatch, booking)

        with pytest.raises(PatientConflict):
            booking.create_appointment(cardiology.id, None, patient, at(monday, 9), at(monday, 9, 30))

        monkeypatch.undo()
        booking.create_appointment(cardiology.id, None, other_patient(), at(monday, 9), at(monday, 9, 30))
        assert active_count() == 2

    def test_overlap_with_another_start_rejects_the_loser(self, monkeypatch, booking, make_doctor, make_schedule,
                                                          make_appointment, cardiology, patient, monday):
        cairo = make_doctor("Cairo", [cardiology])
        make_schedule(cardiology, cairo)
        make_appointment(cardiology, at(monday, 9), at(monday, 9, 45), doctor=cairo)
        self._skip_prechecks(monkeypatch, booking, slot_doctor_id=cairo.id)

        with pytest.raises(DoctorConflict):
            booking.create_appointment(cardiology.id, cairo.id, patient, at(monday, 9, 30), at(monday, 10))

        assert active_count() == 1

    def test_doctor_day_lock_is_claimed_per_booking(self, booking, make_doctor, make_schedule, cardiology,
                                                    patient, monday):
        cairo = make_doctor("Cairo", [cardiology])
        make_schedule(cardiology, cairo)
        booking.create_appointment(cardiology.id, cairo.id, other_patient(), at(monday, 9), at(monday, 9, 30))
        booking.create_appointment(cardiology.id, cairo.id, patient, at(monday, 10), at(monday, 10, 30))

        lock = DoctorDayLock.query.filter_by(doctor_id=cairo.id, the_date=monday).one()
        assert lock.claims == 2

    def test_cancelled_rows_do_not_hold_the_indexes(self, make_doctor, make_appointment, cardiology, monday):
        cairo = make_doctor("Cairo", [cardiology])
        make_appointment(cardiology, at(monday, 9), at(monday, 9, 30), doctor=cairo, status="cancelled")

        make_appointment(cardiology, at(monday, 9), at(monday, 9, 30), doctor=cairo)

        assert Appointment.query.count() == 2


class TestTransitions:
    @pytest.fixture
    def appointment(self, booking, make_schedule, cardiology, patient, monday):
        make_schedule(cardiology, capacity=1)
        return booking.create_appointment(cardiology.id, None, patient, at(monday, 9), at(monday, 9, 30))

    def test_happy_path(self, booking, appointment):
        booking.transition(appointment.id, "confirmed")
        booking.transition(appointment.id, "checked_in")

        assert db.session.get(Appointment, appointment.id).status == "checked_in"

    @pytest.mark.parametrize("path, target", [
        (["cancelled"], "booked"),
        (["cancelled"], "confirmed"),
        (["checked_in"], "confirmed"),
        (["confirmed"], "booked"),
    ])
    def test_illegal_moves(self, booking, appointment, path, target):
        for status in path:
            booking.transition(appointment.id, status)

        with pytest.raises(InvalidTransition):
            booking.transition(appointment.id, target)

    def test_unknown_status(self, booking, appointment):
        with pytest.raises(ValidationError):
            booking.transition(appointment.id, "no_show")

    def test_missing_appointment(self, booking):
        with pytest.raises(NotFound):
            booking.transition(12345, "confirmed")


class TestCancel:
    @pytest.fixture
    def appointment(self, booking, make_schedule, cardiology, patient, monday):
        make_schedule(cardiology, capacity=1)
        return booking.create_appointment(cardiology.id, None, patient, at(monday, 9), at(monday, 9, 30))

    def test_cancel_frees_the_slot(self, booking, resolver, appointment, cardiology, monday):
        booking.cancel(appointment.id, now=at(monday - timedelta(days=1), 9))

        cancelled = db.session.get(Appointment, appointment.id)
        assert cancelled.status == "cancelled"
        assert cancelled.cancelled_at is not None
        assert resolver.find_slot(cardiology.id, None, at(monday, 9), at(monday, 9, 30)) is not None

    def test_cancel_lets_the_patient_rebook_that_day(self, booking, appointment, cardiology, patient, monday):
        booking.cancel(appointment.id, now=at(monday - timedelta(days=1), 9))

        again = booking.create_appointment(cardiology.id, None, patient, at(monday, 10), at(monday, 10, 30))

        assert again.status == "booked"

    def test_cutoff_blocks_late_cancellation(self, booking, appointment, monday):
        with pytest.raises(CancellationTooLate) as excinfo:
            booking.cancel(appointment.id, now=at(monday, 8))

        assert excinfo.value.details["cutoff_hours"] == 2
        assert db.session.get(Appointment, appointment.id).status == "booked"

    def test_cutoff_can_be_waived(self, booking, appointment, monday):
        booking.cancel(appointment.id, enforce_cutoff=False, now=at(monday, 8, 50))

        assert db.session.get(Appointment, appointment.id).status == "cancelled"

    def test_cancel_records_the_local_clock(self, booking, appointment, monday):
        now = at(monday - timedelta(days=1), 9)
        booking.cancel(appointment.id, now=now)

        assert db.session.get(Appointment, appointment.id).cancelled_at == now

    def test_cancel_twice(self, booking, appointment, monday):
        booking.cancel(appointment.id, now=at(monday - timedelta(days=1), 9))

        with pytest.raises(InvalidTransition):
            booking.cancel(appointment.id, now=at(monday - timedelta(days=1), 9))


class FailingSession:
    def __init__(self):
        self.rolled_back = False

    def get(self, *args, **kwargs):
        raise OperationalError("SELECT 1", {}, Exception("server closed the connection"))

    def rollback(self):
        self.rolled_back = True


class TestStoreFailures:
    def test_driver_errors_become_infrastructure_failures(self):
        session = FailingSession()
        store = SchedulingStore(session)

        with pytest.raises(InfrastructureFailure) as excinfo:
            store.find_specialty_by_id(1)

        assert session.rolled_back
        assert excinfo.value.http_status == 503
        assert excinfo.value.to_dict()["retryable"] is True

    def test_booking_surfaces_infrastructure_failure(self, patient, monday):
        service = BookingService(SchedulingStore(FailingSession()))

        with pytest.raises(InfrastructureFailure):
            service.create_appointment(1, None, patient, at(monday, 9), at(monday, 9, 30))

    @pytest.mark.parametrize("constraint, expected", [
        ("uq_appointments_patient_day", PatientConflict),
        ("uq_appointments_doctor_slot", DoctorConflict),
        ("ex_appointments_doctor_overlap", DoctorConflict),
    ])
    def test_postgres_constraint_names_are_mapped(self, constraint, expected):
        orig = Exception("duplicate key value violates constraint")
        orig.diag = SimpleNamespace(constraint_name=constraint)

        conflict = conflict_for_integrity_error(IntegrityError("INSERT", {}, orig))

        assert isinstance(conflict, expected)

    def test_unrelated_integrity_error_is_not_a_conflict(self):
        orig = Exception("FOREIGN KEY constraint failed")

        assert conflict_for_integrity_error(IntegrityError("INSERT", {}, orig)) is None
