# src/secbrain/core/validation.py

from __future__ import annotations

import math
import re
from datetime import date
from typing import Any

from .errors import ValidationError

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def is_valid_email(email: Any) -> bool:
    return isinstance(email, str) and bool(_EMAIL_RE.match(email))


def is_valid_iso_date(value: Any) -> bool:
    """YYYY-MM-DD naming a real calendar day."""
    if not isinstance(value, str) or not _ISO_DATE_RE.match(value):
        return False
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True


def require_name(value: Any, *, field: str = "name") -> str:
    name = "" if value is None else str(value).strip()
    if not name:
        raise ValidationError(f"{field} must not be empty", field=field)
    return name


def non_negative_number(value: Any, *, field: str, allow_none: bool = False) -> float | None:
    """Parse a user-entered amount (price, hours). Booleans and NaN are rejected."""
    if value is None or (isinstance(value, str) and not value.strip()):
        if allow_none:
            return None
        raise ValidationError(f"{field} is required", field=field)
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number", field=field)
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a number, got {value!r}", field=field) from None
    if math.isnan(number) or math.isinf(number):
        raise ValidationError(f"{field} must be a finite number", field=field)
    if number < 0:
        raise ValidationError(f"{field} must not be negative", field=field)
    return number
