"""Shared fixtures: a fresh in-memory database per test plus small factories."""
from datetime import date, datetime, time, timedelta

import pytest

from app import create_app
from config import TestConfig
from models import db
from models.appointment import Appointment
from models.clinic_hour import ClinicHour
from models.doctor import Doctor
from models.schedule import Schedule, ScheduleException
from models.specialty import Specialty
from models.user import Role, User
from security.csrf import CSRF_COOKIE, CSRF_HEADER
from security.password import hash_password
from services.availability import AvailabilityResolver
from services.booking import BookingService, PatientInfo
from services.store import SchedulingStore

ALL_DAYS = 0b1111111
PASSWORD = "correct-horse-1"


def next_monday(today=None) -> date:
    """The first Monday strictly after today, so slots are always in the future."""
    today = today or date.today()
    return today + timedelta(days=7 - today.weekday())


def at(day: date, hh: int, mm: int = 0) -> datetime:
    return datetime.combine(day, time(hh, mm))


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def monday():
    return next_monday()


@pytest.fixture
def store(app):
    return SchedulingStore(db.session)


@pytest.fixture
def resolver(store):
    return AvailabilityResolver(store)


@pytest.fixture
def booking(store, resolver):
    return BookingService(store, resolver, cancel_cutoff_hours=2)


@pytest.fixture
def make_specialty(app):
    def _make(name="Cardiology", booking_mode="SLOT"):
        specialty = Specialty(name=name, booking_mode=booking_mode)
        db.session.add(specialty)
        db.session.commit()
        return specialty
    return _make


@pytest.fixture
def make_doctor(app):
    def _make(name="Cairo", specialties=(), user=None):
        doctor = Doctor(display_name=name, title_prefix="Dr.", specialties=list(specialties),
                        user_id=user.id if user else None)
        db.session.add(doctor)
        db.session.commit()
        return doctor
    return _make


@pytest.fixture
def make_schedule(app):
    def _make(specialty, doctor=None, **overrides):
        fields = dict(
            type="WEEKLY",
            days_mask=ALL_DAYS,
            date_start=date.today(),
            date_end=None,
            time_start=time(9, 0),
            time_end=time(12, 0),
            slot_minutes=30,
            capacity=1,
            active=True,
        )
        fields.update(overrides)
        schedule = Schedule(
            specialty_id=specialty.id,
            doctor_id=doctor.id if doctor else None,
            **fields,
        )
        db.session.add(schedule)
        db.session.commit()
        return schedule
    return _make


@pytest.fixture
def make_exception(app):
    def _make(schedule, the_date, is_closed=False, start=None, end=None):
        row = ScheduleException(
            schedule_id=schedule.id,
            the_date=the_date,
            is_closed=is_closed,
            ex_time_start=start,
            ex_time_end=end,
        )
        db.session.add(row)
        db.session.commit()
        return row
    return _make


@pytest.fixture
def make_appointment(app):
    """Insert a row directly, bypassing the booking checks."""
    def _make(specialty, start, end, dni="30111222", doctor=None, status="booked"):
        row = Appointment(
            specialty_id=specialty.id,
            doctor_id=doctor.id if doctor else None,
            patient_name="Existing Patient",
            dni=dni,
            birthdate=date(1980, 5, 17),
            start_dt=start,
            end_dt=end,
            appointment_date=start.date(),
            status=status,
        )
        db.session.add(row)
        db.session.commit()
        return row
    return _make


@pytest.fixture
def make_clinic_hour(app):
    def _make(day_of_week, start, end, active=True):
        row = ClinicHour(day_of_week=day_of_week, start_time=start, end_time=end, active=active)
        db.session.add(row)
        db.session.commit()
        return row
    return _make


@pytest.fixture
def make_user(app):
    def _make(email, *roles, dni=None):
        user = User(email=email, password_hash=hash_password(PASSWORD, rounds=4), dni=dni)
        user.roles = Role.query.filter(Role.name.in_(roles)).all() if roles else []
        db.session.add(user)
        db.session.commit()
        return user
    return _make


@pytest.fixture
def login(client):
    """Log in through the API and return the CSRF header for later writes."""
    def _login(email, password=PASSWORD):
        resp = client.post("/auth/login", json={"email": email, "password": password})
        assert resp.status_code == 200, resp.get_json()
        for cookie in resp.headers.getlist("Set-Cookie"):
            if cookie.startswith(CSRF_COOKIE + "="):
                token = cookie.split(";", 1)[0].split("=", 1)[1]
                return {CSRF_HEADER: token}
        raise AssertionError("login did not issue a CSRF cookie")
    return _login


@pytest.fixture
def patient():
    return PatientInfo(name="Juan Perez", dni="12345678", birthdate=date(1990, 1, 1), phone="555-0101")
