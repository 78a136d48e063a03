"""
Error taxonomy for availability and booking.

Every domain error carries a machine readable ``code`` and a human readable
message so clients can tell "pick another time" from "you already have one
that day" from "this specialty doesn't work that way".
"""


class SchedulingError(Exception):
    code = "SCHEDULING_ERROR"
    http_status = 400
    default_message = "Scheduling error"

    def __init__(self, message=None, code=None, **details):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        if code:
            self.code = code
        self.details = details

    def to_dict(self) -> dict:
        body = {"error": self.message, "code": self.code}
        if self.details:
            body["details"] = self.details
        return body


class NotFound(SchedulingError):
    code = "NOT_FOUND"
    http_status = 404
    default_message = "Resource not found"


class InvalidBookingMode(SchedulingError):
    code = "INVALID_BOOKING_MODE"
    http_status = 409
    default_message = "This specialty does not take slot bookings"


class SlotNotAvailable(SchedulingError):
    code = "SLOT_NOT_AVAILABLE"
    http_status = 409
    default_message = "The selected time is not available"


class PatientConflict(SchedulingError):
    code = "PATIENT_CONFLICT"
    http_status = 409
    default_message = "Patient already has an appointment that day"


class DoctorConflict(SchedulingError):
    code = "DOCTOR_CONFLICT"
    http_status = 409
    default_message = "That time slot was already taken"


class ValidationError(SchedulingError):
    code = "VALIDATION_ERROR"
    http_status = 400
    default_message = "Invalid input"


class InvalidTransition(SchedulingError):
    code = "INVALID_STATUS_TRANSITION"
    http_status = 400
    default_message = "Appointment cannot move to that status"


class CancellationTooLate(SchedulingError):
    code = "CANCELLATION_TOO_LATE"
    http_status = 400
    default_message = "Appointment is too close to be cancelled"


class InfrastructureFailure(SchedulingError):
    """Store unreachable, timed out or otherwise broken. Always retryable."""
    code = "INFRASTRUCTURE_FAILURE"
    http_status = 503
    default_message = "Service temporarily unavailable"

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["retryable"] = True
        return body
