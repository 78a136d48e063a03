from datetime import datetime
from models.db import db

SCHEDULE_TYPES = ("WEEKLY", "ONE_OFF")

class Schedule(db.Model):
    """
    A recurring (WEEKLY) or single-date (ONE_OFF) availability rule.

    days_mask has bit (d - 1) set for ISO weekday d (1 = Monday .. 7 = Sunday).
    For ONE_OFF rules date_start is the only applicable date and days_mask /
    date_end are ignored. doctor_id NULL means any doctor of the specialty.
    """
    __tablename__ = "schedules"

    id = db.Column(db.Integer, primary_key=True)

    specialty_id = db.Column(db.Integer, db.ForeignKey("specialties.id"), nullable=False, index=True)
    doctor_id = db.Column(db.Integer, db.ForeignKey("doctors.id"), nullable=True, index=True)

    type = db.Column(db.String(10), nullable=False, default="WEEKLY")
    days_mask = db.Column(db.Integer, nullable=False, default=0)
    date_start = db.Column(db.Date, nullable=False)
    date_end = db.Column(db.Date, nullable=True)

    time_start = db.Column(db.Time, nullable=False)
    time_end = db.Column(db.Time, nullable=False)
    slot_minutes = db.Column(db.Integer, nullable=False, default=30)
    capacity = db.Column(db.Integer, nullable=False, default=1)

    active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    exceptions = db.relationship(
        "ScheduleException",
        backref="schedule",
        cascade="all, delete-orphan",
        lazy="select",
    )

    __table_args__ = (
        db.CheckConstraint("type IN ('WEEKLY', 'ONE_OFF')", name="ck_schedules_type"),
        db.CheckConstraint("slot_minutes > 0", name="ck_schedules_slot_minutes"),
        db.CheckConstraint("capacity >= 1", name="ck_schedules_capacity"),
        db.CheckConstraint("time_start < time_end", name="ck_schedules_time_range"),
    )


class ScheduleException(db.Model):
    __tablename__ = "schedule_exceptions"

    id = db.Column(db.Integer, primary_key=True)
    schedule_id = db.Column(db.Integer, db.ForeignKey("schedules.id"), nullable=False, index=True)
    the_date = db.Column(db.Date, nullable=False)

    # closed cancels the rule for the date, otherwise the ex_ times override its window
    is_closed = db.Column(db.Boolean, default=False, nullable=False)
    ex_time_start = db.Column(db.Time, nullable=True)
    ex_time_end = db.Column(db.Time, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        db.UniqueConstraint("schedule_id", "the_date", name="uq_schedule_exception_date"),
    )
