"""Strict parsing of client-supplied flags."""
from __future__ import annotations

from typing import Any

from prisonrp.errors import ValidationError


def parse_bool(value: Any, name: str, default: bool = False) -> bool:
    """A JSON ``true``/``false``; missing or null means ``default``.

    Strings such as ``"false"`` are refused rather than read as truthy.
    """
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    raise ValidationError(f'{name} must be true or false')


__all__ = ['parse_bool']
