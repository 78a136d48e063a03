from .db import db
from .user import User, Role, user_roles
from .session import UserSession
from .rate_limit_window import RateLimitWindow
from .specialty import Specialty, BOOKING_MODES
from .doctor import Doctor, doctor_specialty
from .schedule import Schedule, ScheduleException
from .clinic_hour import ClinicHour
from .doctor_day_lock import DoctorDayLock
from .appointment import Appointment, ACTIVE_STATUSES, APPOINTMENT_STATUSES
