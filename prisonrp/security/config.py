"""Security configuration and middleware."""

from flask import abort, request


def configure_security_headers(app):
    """Configure security headers."""

    @app.after_request
    def add_security_headers(response):
        """Add security headers to all responses."""
        # Prevent MIME type sniffing
        response.headers['X-Content-Type-Options'] = 'nosniff'

        # Prevent clickjacking
        response.headers['X-Frame-Options'] = 'DENY'

        response.headers['Referrer-Policy'] = 'no-referrer-when-downgrade'

        # JSON API plus uploaded images; nothing else is served
        response.headers['Content-Security-Policy'] = "default-src 'none'; img-src 'self'; frame-ancestors 'none'"

        # HSTS for HTTPS (only add if using HTTPS)
        if request.is_secure:
            response.headers['Strict-Transport-Security'] = 'max-age=31536000; includeSubDomains'

        return response

    return app


def configure_secure_session(app):
    """Configure secure session settings."""
    production = app.config.get('APP_ENV') == 'production'
    app.config.update(
        SESSION_COOKIE_SECURE=production,  # HTTPS only in production
        SESSION_COOKIE_HTTPONLY=True,
        SESSION_COOKIE_SAMESITE='Strict' if production else 'Lax',
        REMEMBER_COOKIE_SECURE=production,
        PERMANENT_SESSION_LIFETIME=24 * 3600,
    )
    return app


def validate_input_length(app, max_json_bytes: int = 1024 * 1024):
    """Middleware to validate request payload size."""
    @app.before_request
    def limit_request_size():
        # Image uploads are bounded by MAX_CONTENT_LENGTH instead
        if request.mimetype == 'multipart/form-data':
            return None
        if request.content_length and request.content_length > max_json_bytes:
            abort(413)  # Payload Too Large
        return None

    return app


__all__ = ['configure_security_headers', 'configure_secure_session', 'validate_input_length']
