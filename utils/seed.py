from datetime import date, time

from models import db
from models.user import Role, ROLE_NAMES
from models.specialty import Specialty
from models.doctor import Doctor
from models.schedule import Schedule
from models.clinic_hour import ClinicHour

# Monday..Friday
WEEKDAYS_MASK = 0b0011111

def seed_roles():
    existing = {r.name for r in Role.query.all()}
    for name in ROLE_NAMES:
        if name not in existing:
            db.session.add(Role(name=name))
    db.session.commit()


def seed_demo_data():
    """Demo specialties, doctors, weekly schedules and clinic hours. Idempotent."""
    if Specialty.query.count():
        return False

    cardiology = Specialty(name="Cardiology", booking_mode="SLOT")
    ophthalmology = Specialty(name="Ophthalmology", booking_mode="SLOT")
    lab = Specialty(name="Laboratory", booking_mode="WALKIN")
    surgery = Specialty(name="Surgery", booking_mode="REQUEST")
    db.session.add_all([cardiology, ophthalmology, lab, surgery])
    db.session.flush()

    cairo = Doctor(display_name="Cairo", title_prefix="Dr.", specialties=[cardiology])
    perez = Doctor(display_name="Perez", title_prefix="Dra.", specialties=[ophthalmology, cardiology])
    db.session.add_all([cairo, perez])
    db.session.flush()

    db.session.add_all([
        Schedule(
            specialty_id=cardiology.id, doctor_id=cairo.id, type="WEEKLY",
            days_mask=WEEKDAYS_MASK, date_start=date.today(),
            time_start=time(9, 0), time_end=time(12, 0), slot_minutes=30, capacity=1,
        ),
        Schedule(
            specialty_id=ophthalmology.id, doctor_id=perez.id, type="WEEKLY",
            days_mask=0b0010101, date_start=date.today(),  # Mon, Wed, Fri
            time_start=time(14, 0), time_end=time(18, 0), slot_minutes=20, capacity=1,
        ),
        Schedule(
            specialty_id=cardiology.id, doctor_id=None, type="WEEKLY",
            days_mask=0b0100000, date_start=date.today(),  # Saturday
            time_start=time(8, 0), time_end=time(11, 0), slot_minutes=30, capacity=2,
        ),
    ])

    for day in range(1, 6):
        db.session.add(ClinicHour(day_of_week=day, start_time=time(7, 0), end_time=time(11, 0)))
    db.session.add(ClinicHour(day_of_week=6, start_time=time(8, 0), end_time=time(10, 0)))

    db.session.commit()
    return True
