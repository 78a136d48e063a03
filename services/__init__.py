from .errors import (
    SchedulingError,
    NotFound,
    InvalidBookingMode,
    SlotNotAvailable,
    PatientConflict,
    DoctorConflict,
    ValidationError,
    InvalidTransition,
    CancellationTooLate,
    InfrastructureFailure,
)
from .slots import Slot, generate_slots
from .store import SchedulingStore
from .availability import AvailabilityResolver, available_count
from .booking import BookingService, PatientInfo
