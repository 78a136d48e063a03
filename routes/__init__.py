from .health import health_bp
from .auth import auth_bp
from .specialties import specialties_bp
from .doctors import doctors_bp
from .schedules import schedules_bp
from .availability import availability_bp
from .appointments import appointments_bp
