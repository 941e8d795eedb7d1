from flask import Blueprint

staff_bp = Blueprint('staff', __name__, url_prefix='/api/staff')

# Cross references are edited from the rule editor and live under /api/rules
cross_reference_bp = Blueprint('cross_references', __name__, url_prefix='/api/rules')
