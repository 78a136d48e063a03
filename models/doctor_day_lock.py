from models.db import db


class DoctorDayLock(db.Model):
    """One row per doctor and calendar day, written before any appointment insert
    for that doctor on stores without an overlap exclusion constraint. The write
    serializes concurrent bookings so the overlap re-check runs alone."""
    __tablename__ = "doctor_day_locks"

    id = db.Column(db.Integer, primary_key=True)
    doctor_id = db.Column(db.Integer, db.ForeignKey("doctors.id"), nullable=False)
    the_date = db.Column(db.Date, nullable=False)
    claims = db.Column(db.Integer, default=0, nullable=False)

    __table_args__ = (
        db.UniqueConstraint("doctor_id", "the_date", name="uq_doctor_day_locks_doctor_date"),
    )
