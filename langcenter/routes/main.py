"""
Main routes for the language center.

Public utility endpoints: health check and the CSRF token used by
browser clients before their first state-changing request.
"""

from flask import Blueprint, jsonify, current_app
from flask_wtf.csrf import generate_csrf
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from langcenter.extensions import db

main_bp = Blueprint('main', __name__)


@main_bp.route('/health')
def health_check():
    """Simple health check endpoint for uptime monitoring."""
    try:
        db.session.execute(text('SELECT 1'))
        return 'ok', 200
    except SQLAlchemyError:
        current_app.logger.exception('Health check failed')
        return jsonify(error='Database error'), 500


@main_bp.route('/api/csrf-token')
def csrf_token():
    return jsonify({"csrf_token": generate_csrf()})
