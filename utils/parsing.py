import re
from datetime import date, datetime, time

from services.errors import ValidationError

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_TIME_RE = re.compile(r"^([01]?\d|2[0-3]):[0-5]\d(:[0-5]\d)?$")
_DNI_RE = re.compile(r"^[A-Za-z0-9\-\.]{6,20}$")


def parse_date(value, field="date") -> date:
    # Expect "YYYY-MM-DD"
    if not isinstance(value, str) or not _DATE_RE.match(value):
        raise ValidationError(f"{field} must use the format YYYY-MM-DD", field=field)
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise ValidationError(f"{field} is not a valid date", field=field)


def parse_datetime(value, field="datetime") -> datetime:
    # Expect ISO format like "2026-01-20T09:30:00"; aware values are converted to naive local time
    if not isinstance(value, str) or not value:
        raise ValidationError(f"{field} is required (ISO 8601)", field=field)
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        raise ValidationError(f"{field} is not a valid ISO 8601 datetime", field=field)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def parse_time(value, field="time") -> time:
    if not isinstance(value, str) or not _TIME_RE.match(value):
        raise ValidationError(f"{field} must use the format HH:MM", field=field)
    return time.fromisoformat(value if value.count(":") == 2 else value + ":00")


def parse_int(value, field, required=True):
    if value in (None, ""):
        if required:
            raise ValidationError(f"{field} is required", field=field)
        return None
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer", field=field)
    if number < 1:
        raise ValidationError(f"{field} must be a positive integer", field=field)
    return number


def clean_text(value, max_len=None):
    text = (value or "").strip() if isinstance(value, str) else ""
    text = re.sub(r"[<>]", "", text)
    return text[:max_len] if max_len else text


def is_valid_dni(value) -> bool:
    return isinstance(value, str) and bool(_DNI_RE.match(value))
