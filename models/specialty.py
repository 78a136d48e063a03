from datetime import datetime
from models.db import db

# SLOT: schedule-driven slots, REQUEST: manual request workflow, WALKIN: first come first served
BOOKING_MODES = ("SLOT", "REQUEST", "WALKIN")

class Specialty(db.Model):
    __tablename__ = "specialties"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), unique=True, nullable=False)
    booking_mode = db.Column(db.String(10), nullable=False, default="SLOT")

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        db.CheckConstraint(
            "booking_mode IN ('SLOT', 'REQUEST', 'WALKIN')",
            name="ck_specialties_booking_mode",
        ),
    )
