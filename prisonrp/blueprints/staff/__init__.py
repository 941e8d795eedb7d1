from .blueprint import cross_reference_bp, staff_bp

# Route modules attach their views to the blueprints on import
from . import admin_routes, announcement_routes, rule_routes  # noqa: E402,F401

__all__ = ['staff_bp', 'cross_reference_bp']
