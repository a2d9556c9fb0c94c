"""
Common utility functions for the language center API.

This module provides reusable helpers for:
- Date/time formatting (ISO-8601 with UTC, local display time)
- Request body parsing and coercion with consistent validation errors
"""

from datetime import datetime, date, timezone

import pytz
from flask import request, current_app

from langcenter.errors import ValidationError


def format_utc_iso(dt):
    """Return a UTC ISO-8601 string (with trailing Z) for a datetime or None."""
    if not dt:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    else:
        dt = dt.astimezone(timezone.utc)
    return dt.isoformat().replace("+00:00", "Z")


def center_timezone():
    """The pytz zone named by CENTER_TIMEZONE; an unknown name falls back to UTC."""
    tz_name = current_app.config.get('CENTER_TIMEZONE', 'UTC')
    try:
        return pytz.timezone(tz_name)
    except pytz.UnknownTimeZoneError:
        current_app.logger.warning(f"Invalid CENTER_TIMEZONE '{tz_name}', defaulting to UTC.")
        return pytz.utc


def local_day_start(now=None):
    """Midnight of the center's current local day, as a naive UTC datetime."""
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    target_tz = center_timezone()
    local_now = now.astimezone(target_tz)
    midnight = target_tz.localize(datetime.combine(local_now.date(), datetime.min.time()))
    return midnight.astimezone(timezone.utc).replace(tzinfo=None)


def format_local(dt, fmt='%d/%m/%Y %H:%M'):
    """
    Convert a UTC datetime to the center's timezone and format it.

    The timezone comes from the CENTER_TIMEZONE config value; an unknown
    name falls back to UTC.
    """
    if not dt:
        return None

    target_tz = center_timezone()
    if isinstance(dt, date) and not isinstance(dt, datetime):
        dt = datetime.combine(dt, datetime.min.time())

    aware = dt if dt.tzinfo else pytz.utc.localize(dt)
    return aware.astimezone(target_tz).strftime(fmt)


def get_json_body():
    """Return the request JSON object, raising ValidationError when it is not an object."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def require_fields(data, *fields):
    """Raise ValidationError listing every field that is missing or blank."""
    missing = [f for f in fields if data.get(f) in (None, '', [])]
    if missing:
        raise ValidationError("Missing required fields: " + ", ".join(missing))


def parse_int(value, field, minimum=None, maximum=None):
    """Coerce ``value`` to int, accepting numeric strings."""
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, float) and value != number:
        raise ValidationError(f"{field} must be an integer")
    if minimum is not None and number < minimum:
        raise ValidationError(f"{field} must be at least {minimum}")
    if maximum is not None and number > maximum:
        raise ValidationError(f"{field} must be at most {maximum}")
    return number


def parse_float(value, field, minimum=None, maximum=None):
    """Coerce ``value`` to float, accepting numeric strings."""
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a number")
    if number != number:  # NaN
        raise ValidationError(f"{field} must be a number")
    if minimum is not None and number < minimum:
        raise ValidationError(f"{field} must be at least {minimum}")
    if maximum is not None and number > maximum:
        raise ValidationError(f"{field} must be at most {maximum}")
    return number


def parse_bool(value):
    """Interpret JSON booleans and the usual query-string spellings."""
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def parse_date(value, field):
    """Parse an ISO date or datetime string into a datetime (UTC, naive)."""
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 date")
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed
