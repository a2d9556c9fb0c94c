"""
Sign-in routes.

Credentials are checked against the account table of the requested role;
the session then carries the principal used by ``role_required``.
"""

from flask import Blueprint, jsonify, current_app

from langcenter.auth import (
    login_user, logout_user, get_current_user, model_for_role, role_required,
)
from langcenter.errors import CenterError
from langcenter.extensions import limiter
from langcenter.utils.helpers import get_json_body, require_fields

auth_bp = Blueprint('auth', __name__, url_prefix='/auth')


@auth_bp.route('/login', methods=['POST'])
@limiter.limit("10 per minute")
def login():
    try:
        data = get_json_body()
        require_fields(data, 'email', 'password', 'role')
    except CenterError as e:
        return jsonify({"error": e.message}), e.status_code

    role = str(data['role']).strip().lower()
    model = model_for_role(role)
    if model is None:
        return jsonify({"error": "Unknown role"}), 400

    email = str(data['email']).strip().lower()
    account = model.query.filter_by(email=email).first()
    if not account or not account.check_password(data['password']):
        current_app.logger.warning(f"Failed {role} login for {email}")
        return jsonify({"error": "Invalid email or password"}), 401

    login_user(account)
    current_app.logger.info(f"{role} {account.id} signed in")
    return jsonify({"user": account.to_dict(), "role": account.role})


@auth_bp.route('/logout', methods=['POST'])
def logout():
    logout_user()
    return jsonify({"message": "Logged out"})


@auth_bp.route('/me')
@role_required()
def me():
    account = get_current_user()
    if not account:
        logout_user()
        return jsonify({"error": "Unauthorized"}), 401
    return jsonify({"user": account.to_dict(), "role": account.role})
