from __future__ import annotations

from ctrltab.services.errors import ValidationError


def to_bool(value, default=False):
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def clean_text(value) -> str:
    if value is None:
        return ""
    return str(value).strip()


def whole_int(value) -> int:
    """``int()`` that refuses booleans and floats with a fractional part."""
    if isinstance(value, bool):
        raise TypeError("booleans are not integers")
    if isinstance(value, float) and not value.is_integer():
        raise ValueError(f"{value!r} is not a whole number")
    return int(value)


def optional_int(value, field: str) -> int | None:
    if value is None:
        return None
    try:
        return whole_int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer") from None


def json_payload(request) -> dict:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("request body must be a JSON object")
    return payload
