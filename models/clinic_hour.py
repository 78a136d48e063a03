from models.db import db

class ClinicHour(db.Model):
    __tablename__ = "clinic_hours"

    id = db.Column(db.Integer, primary_key=True)
    day_of_week = db.Column(db.Integer, nullable=False, index=True)  # 1 = Monday .. 7 = Sunday
    start_time = db.Column(db.Time, nullable=False)
    end_time = db.Column(db.Time, nullable=False)
    active = db.Column(db.Boolean, default=True, nullable=False)

    __table_args__ = (
        db.CheckConstraint("day_of_week BETWEEN 1 AND 7", name="ck_clinic_hours_day"),
    )
