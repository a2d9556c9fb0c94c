"""
Authentication and authorization utilities for the language center.

Every API route is gated by ``role_required``, the single capability check
parameterized by the roles allowed to call it. The session carries the
principal (user id, email, role) and the last-activity timestamp used for
the idle timeout.
"""

from collections import namedtuple
from datetime import datetime, timedelta, timezone
from functools import wraps

from flask import session, jsonify, current_app

from langcenter.utils.constants import (
    ROLE_STUDENT, ROLE_TEACHER, ROLE_STAFF, ROLE_MANAGER, ROLE_CASHIER,
)


Principal = namedtuple('Principal', ['id', 'email', 'role'])


def _role_models():
    # Imported lazily to avoid circular imports
    from langcenter.models import Student, Teacher, Staff, Manager, Cashier
    return {
        ROLE_STUDENT: Student,
        ROLE_TEACHER: Teacher,
        ROLE_STAFF: Staff,
        ROLE_MANAGER: Manager,
        ROLE_CASHIER: Cashier,
    }


def model_for_role(role):
    """Return the account model backing ``role`` or None for unknown roles."""
    return _role_models().get(role)


# -------------------- SESSION HELPERS --------------------

def login_user(account):
    """Write the principal for ``account`` into the session."""
    session.clear()
    session['user_id'] = account.id
    session['email'] = account.email
    session['role'] = account.role
    session['last_activity'] = datetime.now(timezone.utc).isoformat()


def logout_user():
    session.pop('user_id', None)
    session.pop('email', None)
    session.pop('role', None)
    session.pop('last_activity', None)


def get_current_principal():
    """
    Get the authenticated principal from the session.

    Returns:
        Principal: (id, email, role), or None when nobody is signed in.
    """
    if 'user_id' not in session or 'role' not in session:
        return None
    return Principal(session['user_id'], session.get('email'), session['role'])


def get_current_user():
    """Load the account row for the current principal, or None."""
    principal = get_current_principal()
    if not principal:
        return None
    model = model_for_role(principal.role)
    if model is None:
        return None
    from langcenter.extensions import db
    return db.session.get(model, principal.id)


def _session_expired():
    last_activity = session.get('last_activity')
    if not last_activity:
        return True
    timeout = timedelta(minutes=current_app.config.get('SESSION_TIMEOUT_MINUTES', 60))
    return datetime.now(timezone.utc) - datetime.fromisoformat(last_activity) > timeout


# -------------------- AUTHORIZATION DECORATOR --------------------

def role_required(*roles):
    """
    Decorator to require an authenticated principal holding one of ``roles``.

    Returns 401 when nobody is signed in or the session has been idle longer
    than SESSION_TIMEOUT_MINUTES, and 403 when the role is not allowed.
    """
    allowed = set(roles)

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            principal = get_current_principal()
            if not principal:
                return jsonify({"error": "Unauthorized"}), 401

            if _session_expired():
                logout_user()
                return jsonify({"error": "Session expired"}), 401

            if allowed and principal.role not in allowed:
                current_app.logger.warning(
                    f"Role {principal.role} (user {principal.id}) denied access to {f.__name__}"
                )
                return jsonify({"error": "Forbidden"}), 403

            session['last_activity'] = datetime.now(timezone.utc).isoformat()
            return f(*args, **kwargs)
        return decorated_function
    return decorator


def is_self(role, user_id):
    """True when the current principal is the account (role, user_id)."""
    principal = get_current_principal()
    return bool(principal and principal.role == role and principal.id == user_id)
