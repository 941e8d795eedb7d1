"""Application factory for the PrisonRP rules and announcements site."""

from __future__ import annotations

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from prisonrp.blueprints.analytics import analytics_bp
from prisonrp.blueprints.auth import auth_bp
from prisonrp.blueprints.discord import discord_bp
from prisonrp.blueprints.images import images_bp
from prisonrp.blueprints.public import public_bp
from prisonrp.blueprints.staff import cross_reference_bp, staff_bp
from prisonrp.config import Config
from prisonrp.errors import PrisonRPError
from prisonrp.extensions import db, limiter, login_manager
from prisonrp.security.config import (
    configure_security_headers,
    configure_secure_session,
    validate_input_length,
)
from prisonrp.services.db import ErrorKind, StorageError
from prisonrp.services.staff import StaffService


def create_app(config_class=Config):
    """Create Flask application."""
    app = Flask(__name__, instance_relative_config=False)
    app.config.from_object(config_class)

    # Initialize Flask extensions
    db.init_app(app)
    login_manager.init_app(app)
    limiter.init_app(app)

    # Configure security
    configure_security_headers(app)
    configure_secure_session(app)
    validate_input_length(app)

    @login_manager.user_loader
    def load_user(user_id: str):
        return StaffService.load_user(user_id)

    @login_manager.unauthorized_handler
    def handle_unauthorized():
        return jsonify({'error': 'Authentication required'}), 401

    register_error_handlers(app)

    # Register blueprints
    app.register_blueprint(public_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(staff_bp)
    app.register_blueprint(cross_reference_bp)
    app.register_blueprint(images_bp)
    app.register_blueprint(discord_bp)
    app.register_blueprint(analytics_bp)

    # Register CLI commands
    from prisonrp.commands import register_commands
    register_commands(app)

    return app


def register_error_handlers(app):
    """Every error leaves the API as ``{"error": message}`` JSON."""

    @app.errorhandler(PrisonRPError)
    def handle_domain_error(error):
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(StorageError)
    def handle_storage_error(error):
        if error.kind in (ErrorKind.UNIQUE_VIOLATION, ErrorKind.FOREIGN_KEY_VIOLATION):
            return jsonify({'error': 'The change conflicts with existing data'}), 409
        app.logger.error(f"Storage error ({error.backend}, {error.kind.value}): {error}")
        return jsonify({'error': 'Database error'}), 500

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        messages = {
            404: 'Not found',
            405: 'Method not allowed',
            413: 'Payload too large',
            429: 'Too many requests, please try again later',
        }
        return jsonify({'error': messages.get(error.code, error.description)}), error.code

    @app.errorhandler(500)
    def internal_error(error):
        # Flask has already logged the original exception
        return jsonify({'error': 'Internal server error'}), 500

    return app


__all__ = ['create_app']
