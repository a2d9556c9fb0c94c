"""
Application factory for the language center admin.

This module provides create_app() which initializes Flask, extensions,
logging, JSON error handlers, and registers blueprints.
"""

import os
import logging
from logging.handlers import RotatingFileHandler

from flask import Flask, request, jsonify
from flask_wtf.csrf import CSRFError
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


# Validate required environment variables
required_env_vars = ["SECRET_KEY", "DATABASE_URL", "FLASK_ENV", "ENCRYPTION_KEY"]
missing_vars = [var for var in required_env_vars if not os.getenv(var)]
if missing_vars:
    raise RuntimeError(
        "Missing required environment variables: " + ", ".join(missing_vars)
    )


def _env_flag(name, default="true"):
    return os.getenv(name, default).lower() in {"1", "true", "yes", "on"}


# -------------------- APPLICATION FACTORY --------------------

def create_app():
    """
    Application factory function.

    Creates and configures the Flask application, initializes extensions,
    sets up logging, and registers blueprints and CLI commands.

    Returns:
        Flask: Configured Flask application instance
    """
    app = Flask(__name__)

    # -------------------- CONFIGURATION --------------------
    app.config.from_mapping(
        DEBUG=False,
        ENV=os.environ["FLASK_ENV"],
        SECRET_KEY=os.environ["SECRET_KEY"],
        SQLALCHEMY_DATABASE_URI=os.environ["DATABASE_URL"],
        SQLALCHEMY_TRACK_MODIFICATIONS=False,
        SESSION_COOKIE_SECURE=os.environ["FLASK_ENV"] == "production",
        SESSION_COOKIE_HTTPONLY=True,
        SESSION_COOKIE_SAMESITE="Lax",
        WTF_CSRF_TIME_LIMIT=None,
        RATELIMIT_ENABLED=_env_flag("RATELIMIT_ENABLED"),
        ADMIN_TOKEN=os.getenv("ADMIN_TOKEN"),
        SESSION_TIMEOUT_MINUTES=int(os.getenv("SESSION_TIMEOUT_MINUTES", "60")),
        STAFF_ASSIGNMENT_STRATEGY=os.getenv("STAFF_ASSIGNMENT_STRATEGY", "first"),
        CENTER_TIMEZONE=os.getenv("CENTER_TIMEZONE", "Asia/Ho_Chi_Minh"),
        DEFAULT_NUM_SESSIONS=int(os.getenv("DEFAULT_NUM_SESSIONS", "24")),
    )

    # -------------------- EXTENSIONS --------------------
    from langcenter.extensions import db, migrate, csrf, limiter

    db.init_app(app)
    migrate.init_app(app, db)
    csrf.init_app(app)
    limiter.init_app(app)

    # -------------------- LOGGING --------------------
    log_level_name = os.getenv("LOG_LEVEL", "INFO").upper()
    log_level = getattr(logging, log_level_name, logging.INFO)
    log_format = os.getenv(
        "LOG_FORMAT",
        "[%(asctime)s] %(levelname)s in %(module)s: %(message)s",
    )

    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(log_level)
    stream_handler.setFormatter(logging.Formatter(log_format))

    app.logger.setLevel(log_level)
    # Prevent duplicate log entries by clearing handlers first
    app.logger.handlers.clear()
    app.logger.addHandler(stream_handler)

    if os.getenv("FLASK_ENV", app.config.get("ENV")) == "production":
        log_file = os.getenv("LOG_FILE", "app.log")
        file_handler = RotatingFileHandler(log_file, maxBytes=1_000_000, backupCount=5)
        file_handler.setLevel(log_level)
        file_handler.setFormatter(logging.Formatter(log_format))
        app.logger.addHandler(file_handler)

    # -------------------- ERROR HANDLERS --------------------
    @app.errorhandler(CSRFError)
    def handle_csrf_error(e):
        app.logger.warning(f"CSRF validation failed on {request.path}: {e.description}")
        return jsonify({"error": "Invalid or missing CSRF token"}), 400

    @app.errorhandler(404)
    def handle_not_found(e):
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(405)
    def handle_method_not_allowed(e):
        return jsonify({"error": "Method not allowed"}), 405

    @app.errorhandler(429)
    def handle_rate_limited(e):
        app.logger.warning(f"Rate limit hit on {request.path}: {e.description}")
        return jsonify({"error": "Too many requests"}), 429

    @app.errorhandler(500)
    def handle_server_error(e):
        app.logger.error(f"Unhandled error on {request.path}", exc_info=True)
        return jsonify({"error": "Internal server error"}), 500

    # -------------------- REGISTER BLUEPRINTS --------------------
    from langcenter.routes.main import main_bp
    from langcenter.routes.auth import auth_bp
    from langcenter.routes.students import students_bp
    from langcenter.routes.classes import classes_bp
    from langcenter.routes.payments import payments_bp
    from langcenter.routes.exams import exams_bp
    from langcenter.routes.online_tests import tests_bp
    from langcenter.routes.accounts import accounts_bp
    from langcenter.routes.reminders import reminders_bp
    from langcenter.routes.maintenance import maintenance_bp
    from langcenter.routes.feedback import feedback_bp

    app.register_blueprint(main_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(students_bp)
    app.register_blueprint(classes_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(exams_bp)
    app.register_blueprint(tests_bp)
    app.register_blueprint(accounts_bp)
    app.register_blueprint(reminders_bp)
    app.register_blueprint(maintenance_bp)
    app.register_blueprint(feedback_bp)

    # -------------------- SECURITY HEADERS --------------------
    @app.after_request
    def set_security_headers(response):
        """
        Add security headers to all HTTP responses.

        The API only serves JSON, so the CSP denies everything else.
        See: https://owasp.org/www-project-secure-headers/
        """
        if app.config.get("ENV") == "production":
            response.headers['Strict-Transport-Security'] = 'max-age=31536000; includeSubDomains'
        response.headers['X-Frame-Options'] = 'DENY'
        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'
        response.headers['Content-Security-Policy'] = "default-src 'none'; frame-ancestors 'none'"
        return response

    # -------------------- CLI COMMANDS --------------------
    from langcenter import cli_commands
    cli_commands.init_app(app)

    return app


# Create a default application instance for WSGI servers and the Flask CLI
app = create_app()

from langcenter.extensions import db  # noqa: E402

__all__ = [
    "app",
    "create_app",
    "db",
]
