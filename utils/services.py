from flask import current_app

from models import db
from services.availability import AvailabilityResolver
from services.booking import BookingService
from services.store import SchedulingStore

# A fresh store per request, bound to the request-scoped session


def get_store() -> SchedulingStore:
    return SchedulingStore(db.session)


def get_resolver() -> AvailabilityResolver:
    return AvailabilityResolver(get_store())


def get_booking_service() -> BookingService:
    store = get_store()
    return BookingService(
        store,
        AvailabilityResolver(store),
        cancel_cutoff_hours=current_app.config.get("CANCEL_CUTOFF_HOURS", 2),
    )
