from datetime import datetime
from models.db import db

ROLE_ADMIN = "ADMIN"
ROLE_OPERATOR = "OPERATOR"
ROLE_DOCTOR = "DOCTOR"
ROLE_PATIENT = "PATIENT"

ROLE_NAMES = (ROLE_ADMIN, ROLE_OPERATOR, ROLE_DOCTOR, ROLE_PATIENT)
STAFF_ROLES = (ROLE_ADMIN, ROLE_OPERATOR)

user_roles = db.Table(
    "user_roles",
    db.Column("user_id", db.Integer, db.ForeignKey("users.id"), primary_key=True),
    db.Column("role_id", db.Integer, db.ForeignKey("roles.id"), primary_key=True),
)


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)

    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    full_name = db.Column(db.String(150), nullable=True)
    phone_number = db.Column(db.String(30), nullable=True)

    # national id; a PATIENT account sees the appointments booked under it
    dni = db.Column(db.String(20), nullable=True, index=True)

    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    roles = db.relationship("Role", secondary=user_roles, back_populates="users")
    sessions = db.relationship("UserSession", back_populates="user")
    doctor_profile = db.relationship("Doctor", back_populates="user", uselist=False)

    def has_role(self, *names) -> bool:
        return any(r.name in names for r in self.roles)

    @property
    def role_names(self):
        return sorted(r.name for r in self.roles)

    @property
    def is_staff(self) -> bool:
        return self.has_role(*STAFF_ROLES)


class Role(db.Model):
    __tablename__ = "roles"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(50), unique=True, nullable=False)

    users = db.relationship("User", secondary=user_roles, back_populates="roles")
