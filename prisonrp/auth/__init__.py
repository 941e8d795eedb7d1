"""Authentication helpers shared across blueprints."""

from __future__ import annotations

from functools import wraps
from typing import Callable, TypeVar, cast

from flask import jsonify
from flask_login import current_user

from prisonrp.models import PermissionLevel
from prisonrp.services.permissions import has_at_least

F = TypeVar('F', bound=Callable[..., object])


def staff_required(func: F) -> F:
    """Decorator requiring an authenticated, active staff session."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        if not current_user.is_authenticated:
            return jsonify({'error': 'Authentication required'}), 401
        return func(*args, **kwargs)
    return cast(F, wrapper)


def permission_required(level: PermissionLevel | str):
    """Decorator factory requiring at least ``level`` in the permission hierarchy."""
    required = PermissionLevel.parse(level)

    def decorator(func: F) -> F:
        @wraps(func)
        def wrapper(*args, **kwargs):
            if not current_user.is_authenticated:
                return jsonify({'error': 'Authentication required'}), 401

            if not has_at_least(current_user.permission_level, required):
                return jsonify({
                    'error': 'Insufficient permissions',
                    'required': required.value,
                    'current': current_user.permission_level.value,
                }), 403

            return func(*args, **kwargs)
        return cast(F, wrapper)
    return decorator


editor_required = permission_required(PermissionLevel.EDITOR)
moderator_required = permission_required(PermissionLevel.MODERATOR)
admin_required = permission_required(PermissionLevel.ADMIN)


__all__ = [
    'staff_required',
    'permission_required',
    'editor_required',
    'moderator_required',
    'admin_required',
]
