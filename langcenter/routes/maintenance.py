"""
Token-gated maintenance endpoint.

Callers authenticate with the ``X-Admin-Token`` header instead of a
session, so the route is exempt from CSRF.
"""

import hmac

from flask import Blueprint, request, jsonify, current_app
from sqlalchemy.exc import SQLAlchemyError

from langcenter.extensions import db, csrf, limiter
from langcenter.maintenance import backfill_class_sessions

maintenance_bp = Blueprint('maintenance', __name__, url_prefix='/api/maintenance')


def _token_valid():
    expected = current_app.config.get('ADMIN_TOKEN')
    provided = request.headers.get('X-Admin-Token')
    if not expected or not provided:
        return False
    return hmac.compare_digest(provided, expected)


@maintenance_bp.route('/backfill-class-sessions', methods=['POST'])
@csrf.exempt
@limiter.limit("10 per hour")
def backfill_sessions():
    if not _token_valid():
        current_app.logger.warning(f"Rejected maintenance call from {request.remote_addr}")
        return jsonify({"error": "Unauthorized"}), 401

    try:
        total, updated = backfill_class_sessions()
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Session backfill failed: {e}", exc_info=True)
        return jsonify({"error": "Backfill failed"}), 500

    return jsonify({
        "message": "Backfilled class session counts",
        "total": total,
        "updated": updated,
    })
