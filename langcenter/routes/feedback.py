"""
Feedback inbox: any signed-in user can report, the office reads and clears.
"""

from flask import Blueprint, jsonify, current_app
from sqlalchemy.exc import SQLAlchemyError

from langcenter.auth import role_required, get_current_principal
from langcenter.errors import CenterError, NotFoundError, ValidationError
from langcenter.extensions import db
from langcenter.models import Feedback
from langcenter.utils.constants import ALL_ROLES, OFFICE_ROLES
from langcenter.utils.helpers import get_json_body, require_fields

feedback_bp = Blueprint('feedback', __name__, url_prefix='/api/feedback')


def _text_field(data, field):
    value = data[field].strip() if isinstance(data[field], str) else ''
    if not value:
        raise ValidationError(f"{field} cannot be empty")
    return value


@feedback_bp.route('', methods=['POST'])
@role_required(*ALL_ROLES)
def submit_feedback():
    principal = get_current_principal()
    try:
        data = get_json_body()
        require_fields(data, 'type', 'title', 'description')
        screenshot = data.get('screenshot')
        if screenshot is not None and not isinstance(screenshot, str):
            raise ValidationError("screenshot must be a string")

        feedback = Feedback(
            user_id=principal.id,
            user_role=principal.role,
            type=_text_field(data, 'type'),
            title=_text_field(data, 'title'),
            description=_text_field(data, 'description'),
            screenshot=screenshot or None,
        )
        db.session.add(feedback)
        db.session.commit()
    except CenterError as e:
        db.session.rollback()
        return jsonify({"error": e.message}), e.status_code
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Saving feedback failed: {e}", exc_info=True)
        return jsonify({"error": "Could not save feedback"}), 500

    current_app.logger.info(f"Feedback {feedback.id} from {principal.role} {principal.id}: {feedback.type}")
    return jsonify({"feedback": feedback.to_dict()}), 201


@feedback_bp.route('', methods=['GET'])
@role_required(*OFFICE_ROLES)
def list_feedback():
    items = Feedback.query.order_by(Feedback.created_at.desc(), Feedback.id.desc()).all()
    return jsonify({"feedback": [f.to_dict() for f in items]})


@feedback_bp.route('/<int:feedback_id>', methods=['DELETE'])
@role_required(*OFFICE_ROLES)
def delete_feedback(feedback_id):
    try:
        feedback = db.session.get(Feedback, feedback_id)
        if not feedback:
            raise NotFoundError("Feedback not found")
        db.session.delete(feedback)
        db.session.commit()
    except CenterError as e:
        db.session.rollback()
        return jsonify({"error": e.message}), e.status_code
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Deleting feedback {feedback_id} failed: {e}", exc_info=True)
        return jsonify({"error": "Could not delete feedback"}), 500

    return jsonify({"message": "Feedback deleted"})
