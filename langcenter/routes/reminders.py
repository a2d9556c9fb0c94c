"""
Follow-up reminders about students, owned by a staff member or a cashier.
"""

from flask import Blueprint, jsonify, current_app
from sqlalchemy.exc import SQLAlchemyError

from langcenter.auth import role_required, get_current_principal
from langcenter.errors import CenterError, NotFoundError, ValidationError, AccessDenied
from langcenter.extensions import db
from langcenter.models import Reminder, Student
from langcenter.utils.constants import ROLE_STAFF, ROLE_CASHIER
from langcenter.utils.helpers import get_json_body, require_fields, parse_int

reminders_bp = Blueprint('reminders', __name__, url_prefix='/api/reminders')


def _owner_filter():
    principal = get_current_principal()
    if principal.role == ROLE_STAFF:
        return {'staff_id': principal.id}
    return {'cashier_id': principal.id}


def _get_own_reminder(reminder_id):
    reminder = db.session.get(Reminder, reminder_id)
    if not reminder:
        raise NotFoundError("Reminder not found")
    owner = _owner_filter()
    if any(getattr(reminder, key) != value for key, value in owner.items()):
        raise AccessDenied("Forbidden")
    return reminder


def _apply_reminder_fields(reminder, data):
    for field in ('type', 'platform', 'content'):
        if field not in data:
            continue
        value = data[field].strip() if isinstance(data[field], str) else ''
        if not value:
            raise ValidationError(f"{field} cannot be empty")
        setattr(reminder, field, value)
    if 'student_id' in data:
        student = db.session.get(Student, parse_int(data['student_id'], 'student_id'))
        if not student:
            raise NotFoundError("Student not found")
        reminder.student_id = student.id


@reminders_bp.route('', methods=['GET'])
@role_required(ROLE_STAFF, ROLE_CASHIER)
def list_reminders():
    reminders = Reminder.query.filter_by(**_owner_filter()).order_by(
        Reminder.created_at.desc(), Reminder.id.desc()
    ).all()
    return jsonify({"reminders": [r.to_dict() for r in reminders]})


@reminders_bp.route('', methods=['POST'])
@role_required(ROLE_STAFF, ROLE_CASHIER)
def create_reminder():
    try:
        data = get_json_body()
        require_fields(data, 'student_id', 'type', 'platform', 'content')
        reminder = Reminder(**_owner_filter())
        _apply_reminder_fields(reminder, data)
        db.session.add(reminder)
        db.session.commit()
    except CenterError as e:
        db.session.rollback()
        return jsonify({"error": e.message}), e.status_code
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Creating reminder failed: {e}", exc_info=True)
        return jsonify({"error": "Could not create reminder"}), 500

    return jsonify({"reminder": reminder.to_dict()}), 201


@reminders_bp.route('/<int:reminder_id>', methods=['PUT'])
@role_required(ROLE_STAFF, ROLE_CASHIER)
def update_reminder(reminder_id):
    try:
        reminder = _get_own_reminder(reminder_id)
        _apply_reminder_fields(reminder, get_json_body())
        db.session.commit()
    except CenterError as e:
        db.session.rollback()
        return jsonify({"error": e.message}), e.status_code
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Updating reminder {reminder_id} failed: {e}", exc_info=True)
        return jsonify({"error": "Could not update reminder"}), 500

    return jsonify({"reminder": reminder.to_dict()})


@reminders_bp.route('/<int:reminder_id>', methods=['DELETE'])
@role_required(ROLE_STAFF, ROLE_CASHIER)
def delete_reminder(reminder_id):
    try:
        reminder = _get_own_reminder(reminder_id)
        db.session.delete(reminder)
        db.session.commit()
    except CenterError as e:
        db.session.rollback()
        return jsonify({"error": e.message}), e.status_code
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Deleting reminder {reminder_id} failed: {e}", exc_info=True)
        return jsonify({"error": "Could not delete reminder"}), 500

    return jsonify({"message": "Reminder deleted"})
