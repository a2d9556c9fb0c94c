"""
Back-office account management.

Managers maintain staff, teacher, manager and cashier accounts. Every
signed-in user can read and edit their own profile through ``/me``.
"""

from flask import Blueprint, jsonify, current_app
from sqlalchemy.exc import SQLAlchemyError

from langcenter.auth import role_required, get_current_principal, get_current_user, model_for_role
from langcenter.errors import CenterError, Conflict, NotFoundError, ValidationError
from langcenter.extensions import db
from langcenter.utils.constants import ROLE_TEACHER, ROLE_STAFF, ROLE_MANAGER, ROLE_CASHIER, ALL_ROLES
from langcenter.utils.helpers import get_json_body, require_fields

accounts_bp = Blueprint('accounts', __name__, url_prefix='/api/accounts')

ACCOUNT_KINDS = (ROLE_TEACHER, ROLE_STAFF, ROLE_MANAGER, ROLE_CASHIER)


def _account_model(kind):
    if kind not in ACCOUNT_KINDS:
        raise NotFoundError("Unknown account kind")
    return model_for_role(kind)


def _email_taken(model, email, exclude_id=None):
    query = model.query.filter_by(email=email)
    if exclude_id is not None:
        query = query.filter(model.id != exclude_id)
    return query.first() is not None


def _apply_profile(account, data):
    if 'name' in data:
        name = data['name'].strip() if isinstance(data['name'], str) else ''
        if not name:
            raise ValidationError("name cannot be empty")
        account.name = name
    if 'email' in data:
        email = data['email'].strip().lower() if isinstance(data['email'], str) else ''
        if not email:
            raise ValidationError("email cannot be empty")
        if _email_taken(type(account), email, exclude_id=account.id):
            raise Conflict("Email already in use")
        account.email = email
    if 'phone_number' in data:
        phone = data['phone_number']
        account.phone_number = phone.strip() if isinstance(phone, str) and phone.strip() else None
    if data.get('password'):
        if not isinstance(data['password'], str):
            raise ValidationError("password must be a string")
        account.set_password(data['password'])


@accounts_bp.route('/<kind>', methods=['GET'])
@role_required(ROLE_MANAGER)
def list_accounts(kind):
    try:
        model = _account_model(kind)
    except CenterError as e:
        return jsonify({"error": e.message}), e.status_code
    accounts = model.query.order_by(model.name.asc()).all()
    return jsonify({"accounts": [a.to_dict() for a in accounts]})


@accounts_bp.route('/<kind>', methods=['POST'])
@role_required(ROLE_MANAGER)
def create_account(kind):
    try:
        model = _account_model(kind)
        data = get_json_body()
        require_fields(data, 'name', 'email', 'password')
        account = model()
        _apply_profile(account, data)
        db.session.add(account)
        db.session.commit()
    except CenterError as e:
        db.session.rollback()
        return jsonify({"error": e.message}), e.status_code
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Creating {kind} account failed: {e}", exc_info=True)
        return jsonify({"error": "Could not create account"}), 500

    current_app.logger.info(f"Manager {get_current_principal().id} created {kind} {account.id}")
    return jsonify({"account": account.to_dict()}), 201


@accounts_bp.route('/<kind>/<int:account_id>', methods=['PUT'])
@role_required(ROLE_MANAGER)
def update_account(kind, account_id):
    try:
        account = db.session.get(_account_model(kind), account_id)
        if not account:
            raise NotFoundError("Account not found")
        _apply_profile(account, get_json_body())
        db.session.commit()
    except CenterError as e:
        db.session.rollback()
        return jsonify({"error": e.message}), e.status_code
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Updating {kind} {account_id} failed: {e}", exc_info=True)
        return jsonify({"error": "Could not update account"}), 500

    return jsonify({"account": account.to_dict()})


@accounts_bp.route('/<kind>/<int:account_id>', methods=['DELETE'])
@role_required(ROLE_MANAGER)
def delete_account(kind, account_id):
    principal = get_current_principal()
    if kind == ROLE_MANAGER and account_id == principal.id:
        return jsonify({"error": "Managers cannot delete their own account"}), 400
    try:
        account = db.session.get(_account_model(kind), account_id)
        if not account:
            raise NotFoundError("Account not found")
        db.session.delete(account)
        db.session.commit()
    except CenterError as e:
        db.session.rollback()
        return jsonify({"error": e.message}), e.status_code
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Deleting {kind} {account_id} failed: {e}", exc_info=True)
        return jsonify({"error": "Could not delete account"}), 500

    current_app.logger.info(f"Manager {principal.id} deleted {kind} {account_id}")
    return jsonify({"message": "Account deleted"})


# -------------------- OWN PROFILE --------------------

@accounts_bp.route('/me', methods=['GET'])
@role_required(*ALL_ROLES)
def my_profile():
    account = get_current_user()
    if not account:
        return jsonify({"error": "Account not found"}), 404
    return jsonify({"account": account.to_dict(), "role": account.role})


@accounts_bp.route('/me', methods=['PUT'])
@role_required(*ACCOUNT_KINDS)
def update_my_profile():
    """Students edit their record through the student directory instead."""
    try:
        account = get_current_user()
        if not account:
            raise NotFoundError("Account not found")
        _apply_profile(account, get_json_body())
        db.session.commit()
    except CenterError as e:
        db.session.rollback()
        return jsonify({"error": e.message}), e.status_code
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Profile update failed: {e}", exc_info=True)
        return jsonify({"error": "Could not update profile"}), 500

    return jsonify({"account": account.to_dict()})
