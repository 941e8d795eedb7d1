"""Session endpoints for the staff dashboard.

The Steam/Discord OAuth handshake happens outside this application; once a
provider has verified an identity the callback calls
:meth:`StaffService.complete_login` and :func:`flask_login.login_user`.
"""

from __future__ import annotations

from flask import Blueprint, jsonify
from flask_login import current_user, logout_user

from prisonrp.auth import staff_required
from prisonrp.extensions import limiter
from prisonrp.services.audit import log_activity

auth_bp = Blueprint('auth', __name__, url_prefix='/api/auth')


@auth_bp.route('/user', methods=['GET'])
@staff_required
def current_staff_user():
    return jsonify({'user': current_user.to_dict()})


@auth_bp.route('/check', methods=['GET'])
@limiter.limit('60 per minute')
def check():
    if current_user.is_authenticated:
        return jsonify({'authenticated': True, 'user': current_user.to_dict()})
    return jsonify({'authenticated': False})


@auth_bp.route('/logout', methods=['POST'])
def logout():
    if current_user.is_authenticated:
        log_activity(current_user.id, 'logout', 'auth', current_user.id)
    logout_user()
    return jsonify({'message': 'Logged out'})
