"""
Structured business event logging.

Replaces a database audit table: every event is a single log record on the
``clinic.events`` logger with the action, actor and entity attached as
``extra`` fields. Never pass patient identity (name, dni, phone, birthdate)
in ``metadata``.
"""
import logging
from flask import has_request_context, request

logger = logging.getLogger("clinic.events")

WARNING_ACTIONS_SUFFIXES = ("_FAIL", "_CONFLICT", "_DENIED", "_RATE_LIMIT")


def log_event(action: str, user_id=None, entity=None, entity_id=None, metadata=None):
    fields = {
        "action": action,
        "user_id": user_id,
        "entity": entity,
        "entity_id": str(entity_id) if entity_id is not None else None,
    }
    if has_request_context():
        fields["ip"] = request.headers.get("X-Forwarded-For", request.remote_addr)
    if metadata:
        fields["event_metadata"] = metadata

    level = logging.WARNING if action.endswith(WARNING_ACTIONS_SUFFIXES) else logging.INFO
    logger.log(level, "event %s", action, extra=fields)
