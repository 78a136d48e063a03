from datetime import datetime
from models.db import db

doctor_specialty = db.Table(
    "doctor_specialty",
    db.Column("doctor_id", db.Integer, db.ForeignKey("doctors.id"), primary_key=True),
    db.Column("specialty_id", db.Integer, db.ForeignKey("specialties.id"), primary_key=True),
)

class Doctor(db.Model):
    __tablename__ = "doctors"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, unique=True)
    display_name = db.Column(db.String(150), nullable=False)

    title_prefix = db.Column(db.String(20), nullable=True)  # e.g. "Dr.", "Dra."
    is_visible = db.Column(db.Boolean, default=True, nullable=False)
    sort_order = db.Column(db.Integer, default=0, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    specialties = db.relationship("Specialty", secondary=doctor_specialty, backref="doctors")
    user = db.relationship("User", back_populates="doctor_profile")
