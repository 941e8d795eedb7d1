"""Request parsing helpers shared by the JSON blueprints."""

from __future__ import annotations

from typing import Any

from flask import request
from flask_login import current_user

from prisonrp.errors import ValidationError
from prisonrp.models import StaffUser


def json_body() -> dict[str, Any]:
    """The request's JSON object; anything else is a 400."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data


def acting_user() -> StaffUser:
    """The logged-in staff member as a plain object for the service layer."""
    return current_user._get_current_object()


def int_arg(name: str, default: int, minimum: int = 0, maximum: int | None = None) -> int:
    raw = request.args.get(name)
    if raw is None or raw == '':
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValidationError(f'{name} must be an integer') from None
    value = max(minimum, value)
    if maximum is not None:
        value = min(maximum, value)
    return value


def first_of(data: dict, *keys: str, default: Any = None) -> Any:
    """Accept both camelCase and snake_case field names."""
    for key in keys:
        if key in data:
            return data[key]
    return default


__all__ = ['json_body', 'acting_user', 'int_arg', 'first_of']
