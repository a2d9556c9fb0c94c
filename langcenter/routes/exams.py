"""
Placement exam and level threshold routes.

Exam results are immutable: there is no update or delete route.
"""

from flask import Blueprint, request, jsonify, current_app
from sqlalchemy.exc import SQLAlchemyError

from langcenter.auth import role_required, get_current_principal
from langcenter.errors import CenterError, NotFoundError, ValidationError, AccessDenied
from langcenter.extensions import db
from langcenter.models import Exam, Student, LevelThreshold
from langcenter.placement import (
    find_level, find_threshold, audit_thresholds, ordered_thresholds, SCORE_MIN, SCORE_MAX,
)
from langcenter.utils.constants import ROLE_STUDENT, ROLE_TEACHER, OFFICE_ROLES, ALL_ROLES
from langcenter.utils.helpers import get_json_body, require_fields, parse_int

exams_bp = Blueprint('exams', __name__, url_prefix='/api')


def _resolve_exam_student(data):
    """Find the examinee by id or email; a student may only record their own exam."""
    principal = get_current_principal()
    if principal.role == ROLE_STUDENT:
        if data.get('student_id') is not None and parse_int(data['student_id'], 'student_id') != principal.id:
            raise AccessDenied("Forbidden")
        student = db.session.get(Student, principal.id)
    elif data.get('student_id') is not None:
        student = db.session.get(Student, parse_int(data['student_id'], 'student_id'))
    elif data.get('student_email'):
        student = Student.query.filter_by(email=str(data['student_email']).strip().lower()).first()
    else:
        raise ValidationError("student_id or student_email is required")

    if not student:
        raise NotFoundError("Student not found")
    return student


# -------------------- EXAMS --------------------

@exams_bp.route('/exams', methods=['POST'])
@role_required(ROLE_STUDENT, ROLE_TEACHER, *OFFICE_ROLES)
def record_exam():
    """
    Record a placement exam.

    Scores are whole numbers in [0, 100]. The level comes from the
    configured thresholds; when no band contains the score, a
    ``level_estimate`` supplied by the examiner is kept.
    """
    try:
        data = get_json_body()
        require_fields(data, 'score')
        score = parse_int(data['score'], 'score', minimum=SCORE_MIN, maximum=SCORE_MAX)
        student = _resolve_exam_student(data)

        level = find_level(score)
        if level is None:
            estimate = data.get('level_estimate')
            level = estimate.strip() if isinstance(estimate, str) and estimate.strip() else None

        notes = data.get('notes')
        exam = Exam(
            student_id=student.id,
            score=score,
            level_estimate=level,
            notes=notes.strip() if isinstance(notes, str) and notes.strip() else None,
        )
        db.session.add(exam)
        db.session.commit()
    except CenterError as e:
        db.session.rollback()
        return jsonify({"error": e.message}), e.status_code
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Recording exam failed: {e}", exc_info=True)
        return jsonify({"error": "Could not record exam"}), 500

    current_app.logger.info(f"Exam {exam.id} for student {student.id}: {score} -> {level}")
    return jsonify({"exam": exam.to_dict()}), 201


@exams_bp.route('/exams', methods=['GET'])
@role_required(*ALL_ROLES)
def list_exams():
    principal = get_current_principal()
    query = Exam.query
    if principal.role == ROLE_STUDENT:
        query = query.filter_by(student_id=principal.id)
    elif request.args.get('email'):
        query = query.join(Student).filter(Student.email == request.args['email'].strip().lower())

    exams = query.order_by(Exam.created_at.desc(), Exam.id.desc()).all()
    return jsonify({"exams": [e.to_dict() for e in exams]})


# -------------------- LEVEL THRESHOLDS --------------------

def _apply_threshold_fields(threshold, data):
    if 'level' in data:
        level = data['level'].strip() if isinstance(data['level'], str) else ''
        if not level:
            raise ValidationError("level cannot be empty")
        threshold.level = level
    if 'min_score' in data:
        threshold.min_score = parse_int(data['min_score'], 'min_score', minimum=SCORE_MIN, maximum=SCORE_MAX)
    if 'max_score' in data:
        threshold.max_score = parse_int(data['max_score'], 'max_score', minimum=SCORE_MIN, maximum=SCORE_MAX)
    if threshold.min_score > threshold.max_score:
        raise ValidationError("min_score cannot be greater than max_score")


def _threshold_response(threshold, status=200):
    # Overlaps are allowed; the audit travels with every write
    return jsonify({"threshold": threshold.to_dict(), "audit": audit_thresholds()}), status


@exams_bp.route('/level-thresholds', methods=['GET'])
@role_required(*ALL_ROLES)
def list_thresholds():
    return jsonify({"thresholds": [t.to_dict() for t in ordered_thresholds()]})


@exams_bp.route('/level-thresholds/audit', methods=['GET'])
@role_required(*ALL_ROLES)
def threshold_audit():
    return jsonify(audit_thresholds())


@exams_bp.route('/level-thresholds/placement', methods=['GET'])
@role_required(*ALL_ROLES)
def placement_preview():
    try:
        score = parse_int(request.args.get('score'), 'score', minimum=SCORE_MIN, maximum=SCORE_MAX)
    except CenterError as e:
        return jsonify({"error": e.message}), e.status_code
    threshold = find_threshold(score)
    return jsonify({
        "score": score,
        "level": threshold.level if threshold else None,
        "threshold_id": threshold.id if threshold else None,
    })


@exams_bp.route('/level-thresholds', methods=['POST'])
@role_required(*OFFICE_ROLES)
def create_threshold():
    try:
        data = get_json_body()
        require_fields(data, 'level', 'min_score', 'max_score')
        threshold = LevelThreshold(min_score=SCORE_MIN, max_score=SCORE_MAX)
        _apply_threshold_fields(threshold, data)
        db.session.add(threshold)
        db.session.commit()
    except CenterError as e:
        db.session.rollback()
        return jsonify({"error": e.message}), e.status_code
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Creating level threshold failed: {e}", exc_info=True)
        return jsonify({"error": "Could not create threshold"}), 500

    return _threshold_response(threshold, 201)


@exams_bp.route('/level-thresholds/<int:threshold_id>', methods=['PUT'])
@role_required(*OFFICE_ROLES)
def update_threshold(threshold_id):
    try:
        threshold = db.session.get(LevelThreshold, threshold_id)
        if not threshold:
            raise NotFoundError("Threshold not found")
        _apply_threshold_fields(threshold, get_json_body())
        db.session.commit()
    except CenterError as e:
        db.session.rollback()
        return jsonify({"error": e.message}), e.status_code
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Updating level threshold {threshold_id} failed: {e}", exc_info=True)
        return jsonify({"error": "Could not update threshold"}), 500

    return _threshold_response(threshold)


@exams_bp.route('/level-thresholds/<int:threshold_id>', methods=['DELETE'])
@role_required(*OFFICE_ROLES)
def delete_threshold(threshold_id):
    try:
        threshold = db.session.get(LevelThreshold, threshold_id)
        if not threshold:
            raise NotFoundError("Threshold not found")
        db.session.delete(threshold)
        db.session.commit()
    except CenterError as e:
        db.session.rollback()
        return jsonify({"error": e.message}), e.status_code
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Deleting level threshold {threshold_id} failed: {e}", exc_info=True)
        return jsonify({"error": "Could not delete threshold"}), 500

    return jsonify({"message": "Threshold deleted", "audit": audit_thresholds()})
