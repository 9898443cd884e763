# retail_backend/validation.py
import math

from flask import request

from .errors import ValidationError


def json_body():
    """Request JSON as a dict; anything else (missing, malformed, a list) counts as empty."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def text(data, key):
    value = data.get(key)
    if value is None:
        return ''
    return str(value).strip()


def to_int(value, field, minimum=None):
    try:
        number = int(value)
    except (TypeError, ValueError, OverflowError):
        raise ValidationError(f'{field} must be a whole number')
    if isinstance(value, float) and value != number:
        raise ValidationError(f'{field} must be a whole number')
    if minimum is not None and number < minimum:
        raise ValidationError(f'{field} must be at least {minimum}')
    return number


def to_float(value, field, minimum=None):
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{field} must be a number')
    if not math.isfinite(number):
        raise ValidationError(f'{field} must be a number')
    if minimum is not None and number < minimum:
        raise ValidationError(f'{field} must be at least {minimum}')
    return number


def optional(value):
    """Blank strings become None, like the form fields the frontend posts."""
    if isinstance(value, str) and not value.strip():
        return None
    return value
