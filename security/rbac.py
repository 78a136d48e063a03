from functools import wraps
from flask import g, jsonify

from models.user import ROLE_ADMIN, ROLE_DOCTOR, ROLE_PATIENT


def _auth_required():
    return jsonify(error="Authentication required", code="AUTH_REQUIRED"), 401


def login_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if getattr(g, "user", None) is None:
            return _auth_required()
        return fn(*args, **kwargs)
    return wrapper


def require_roles(*role_names: str):
    """
    Usage: @require_roles("OPERATOR", "DOCTOR")

    ADMIN passes every check.
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            user = getattr(g, "user", None)
            if user is None:
                return _auth_required()
            if not user.has_role(ROLE_ADMIN, *role_names):
                return jsonify(error="Forbidden", code="ACCESS_DENIED"), 403
            return fn(*args, **kwargs)
        return wrapper
    return decorator


def doctor_for(user):
    """The Doctor profile behind a DOCTOR account, if one is linked."""
    if user is None or not user.has_role(ROLE_DOCTOR):
        return None
    return user.doctor_profile


def is_patient_only(user) -> bool:
    return not user.is_staff and doctor_for(user) is None


def can_access_appointment(user, appointment) -> bool:
    # staff: everything, doctors: their own agenda, patients: rows booked under their DNI
    if user.is_staff:
        return True
    doctor = doctor_for(user)
    if doctor is not None and appointment.doctor_id == doctor.id:
        return True
    return user.has_role(ROLE_PATIENT) and bool(user.dni) and user.dni == appointment.dni
