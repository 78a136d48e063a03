import logging

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


class EventContextFilter(logging.Filter):
    """Appends the structured fields of clinic.events records to the message."""

    FIELDS = ("action", "user_id", "entity", "entity_id", "ip", "event_metadata")

    def filter(self, record):
        parts = [
            f"{name}={getattr(record, name)}"
            for name in self.FIELDS
            if getattr(record, name, None) is not None
        ]
        record.event_context = (" " + " ".join(parts)) if parts else ""
        return True


def configure_logging(app):
    level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT + "%(event_context)s"))
    handler.addFilter(EventContextFilter())

    for name in ("clinic.events", "services", "routes"):
        log = logging.getLogger(name)
        log.setLevel(level)
        if not any(getattr(h, "_clinic_handler", False) for h in log.handlers):
            handler._clinic_handler = True
            log.addHandler(handler)
        log.propagate = True

    app.logger.setLevel(level)
