from __future__ import annotations

import math
import re
from datetime import date, datetime
from typing import Any, Optional

from ..core.exceptions import ValidationError
from .datetime_utils import parse_iso_date, start_of_day_utc

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[A-Za-z]{2,}$")


def _as_text(value: Any, field_name: str) -> str:
    # JSON numbers are accepted as their string form.
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if isinstance(value, float) and value.is_integer():
            return str(int(value))
        return str(value)
    raise ValidationError(f"{field_name} must be a string")


def require_non_empty(value: Any, field_name: str) -> str:
    if value is None:
        raise ValidationError(f"{field_name} is required")
    text = _as_text(value, field_name).strip()
    if not text:
        raise ValidationError(f"{field_name} is required")
    return text


def require_min_length(value: Any, field_name: str, min_len: int) -> str:
    if not isinstance(value, str) or len(value) < min_len:
        raise ValidationError(f"{field_name} must be at least {min_len} characters")
    return value


def require_max_length(value: str, field_name: str, max_len: int) -> str:
    if len(value) > max_len:
        raise ValidationError(f"{field_name} cannot exceed {max_len} characters")
    return value


def require_email(value: str) -> str:
    email = require_non_empty(value, "Email").lower()
    if not _EMAIL_RE.match(email):
        raise ValidationError("Please provide a valid email address")
    return email


def require_positive_int(value: Any, field_name: str) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field_name} must be an integer")
    if isinstance(value, float) and not value.is_integer():
        raise ValidationError(f"{field_name} must be an integer")
    if number < 1:
        raise ValidationError(f"{field_name} must be at least 1")
    return number


def require_coordinates(longitude: Any, latitude: Any) -> tuple[float, float]:
    """Validate a longitude/latitude pair given as IEEE-754 doubles."""
    try:
        lon = float(longitude)
        lat = float(latitude)
    except (TypeError, ValueError):
        raise ValidationError("Longitude and latitude must be numbers")
    if not (math.isfinite(lon) and math.isfinite(lat)):
        raise ValidationError("Longitude and latitude must be finite numbers")
    if not -180.0 <= lon <= 180.0:
        raise ValidationError("Longitude must be between -180 and 180")
    if not -90.0 <= lat <= 90.0:
        raise ValidationError("Latitude must be between -90 and 90")
    return lon, lat


def optional_text(value: Any, field_name: str = "Value") -> Optional[str]:
    if value is None:
        return None
    return _as_text(value, field_name).strip() or None


def optional_date(value: Any, field_name: str) -> Optional[date]:
    """Accept a date, a datetime (truncated to its UTC day) or a YYYY-MM-DD string."""
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return start_of_day_utc(value).date()
    if isinstance(value, date):
        return value
    try:
        return parse_iso_date(str(value)[:10])
    except ValueError:
        raise ValidationError(f"{field_name} must be a date (YYYY-MM-DD)")
