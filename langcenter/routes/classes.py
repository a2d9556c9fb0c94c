"""
Class registry, enrollment and attendance routes.

Enrollment changes go through ``langcenter.enrollment`` so that the
student-class link and its ledger entry are committed together.
"""

from flask import Blueprint, request, jsonify, current_app
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from langcenter.auth import role_required, get_current_principal
from langcenter.enrollment import (
    enroll_student, unenroll_student, move_student, ensure_class_deletable, record_attendance,
)
from langcenter.errors import CenterError, Conflict, NotFoundError, ValidationError, AccessDenied
from langcenter.extensions import db
from langcenter.ledger import generate_missing_payments
from langcenter.models import SchoolClass, Student, Teacher, ClassSession
from langcenter.utils.constants import ROLE_TEACHER, OFFICE_ROLES, LEDGER_ROLES
from langcenter.utils.helpers import (
    get_json_body, require_fields, parse_int, parse_float, parse_bool,
)

classes_bp = Blueprint('classes', __name__, url_prefix='/api')


def _get_class(class_id):
    school_class = db.session.get(SchoolClass, class_id)
    if not school_class:
        raise NotFoundError("Class not found")
    return school_class


def _get_student(student_id):
    student = db.session.get(Student, student_id)
    if not student:
        raise NotFoundError("Student not found")
    return student


def _check_teacher_owns(school_class):
    principal = get_current_principal()
    if principal.role == ROLE_TEACHER and school_class.teacher_id != principal.id:
        raise AccessDenied("Forbidden")


def _ensure_unique_active_name(name, exclude_id=None):
    query = SchoolClass.query.filter(
        func.lower(SchoolClass.name) == name.lower(), SchoolClass.is_active.is_(True)
    )
    if exclude_id is not None:
        query = query.filter(SchoolClass.id != exclude_id)
    if query.first():
        raise Conflict("An active class with this name already exists")


def _apply_class_fields(school_class, data):
    if 'name' in data:
        name = data['name'].strip() if isinstance(data['name'], str) else ''
        if not name:
            raise ValidationError("name cannot be empty")
        school_class.name = name
    if 'level' in data:
        level = data['level'].strip() if isinstance(data['level'], str) else ''
        if not level:
            raise ValidationError("level cannot be empty")
        school_class.level = level
    if 'max_students' in data:
        school_class.max_students = parse_int(data['max_students'], 'max_students', minimum=1)
    if 'num_sessions' in data:
        school_class.num_sessions = parse_int(data['num_sessions'], 'num_sessions', minimum=1)
    if 'payment_amount' in data:
        amount = data['payment_amount']
        school_class.payment_amount = None if amount in (None, '') else parse_float(
            amount, 'payment_amount', minimum=0
        )
    if 'teacher_id' in data:
        if data['teacher_id'] in (None, ''):
            school_class.teacher_id = None
        else:
            teacher = db.session.get(Teacher, parse_int(data['teacher_id'], 'teacher_id'))
            if not teacher:
                raise NotFoundError("Teacher not found")
            school_class.teacher_id = teacher.id
    if 'is_active' in data:
        school_class.is_active = parse_bool(data['is_active'])


# -------------------- CLASSES --------------------

@classes_bp.route('/classes', methods=['GET'])
@role_required(ROLE_TEACHER, *LEDGER_ROLES)
def list_classes():
    principal = get_current_principal()
    query = SchoolClass.query
    if principal.role == ROLE_TEACHER:
        query = query.filter_by(teacher_id=principal.id, is_active=True)
    elif not parse_bool(request.args.get('include_inactive', '')):
        query = query.filter_by(is_active=True)
    classes = query.order_by(SchoolClass.name.asc()).all()
    return jsonify({"classes": [c.to_dict() for c in classes]})


@classes_bp.route('/classes/<int:class_id>', methods=['GET'])
@role_required(ROLE_TEACHER, *LEDGER_ROLES)
def get_class(class_id):
    try:
        school_class = _get_class(class_id)
        _check_teacher_owns(school_class)
    except CenterError as e:
        return jsonify({"error": e.message}), e.status_code
    return jsonify({"class": school_class.to_dict(include_students=True)})


@classes_bp.route('/classes', methods=['POST'])
@role_required(*OFFICE_ROLES)
def create_class():
    try:
        data = get_json_body()
        require_fields(data, 'name', 'level', 'max_students')
        _ensure_unique_active_name(str(data['name']).strip())

        school_class = SchoolClass(
            num_sessions=current_app.config.get('DEFAULT_NUM_SESSIONS', 24),
            is_active=True,
        )
        _apply_class_fields(school_class, data)
        db.session.add(school_class)
        db.session.commit()
    except CenterError as e:
        db.session.rollback()
        return jsonify({"error": e.message}), e.status_code
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Creating class failed: {e}", exc_info=True)
        return jsonify({"error": "Could not create class"}), 500

    current_app.logger.info(f"Created class {school_class.id} ({school_class.name})")
    return jsonify({"class": school_class.to_dict()}), 201


@classes_bp.route('/classes/<int:class_id>', methods=['PUT'])
@role_required(*OFFICE_ROLES)
def update_class(class_id):
    try:
        school_class = _get_class(class_id)
        data = get_json_body()
        _apply_class_fields(school_class, data)
        if school_class.is_active:
            _ensure_unique_active_name(school_class.name, exclude_id=school_class.id)
        if school_class.payment_amount is not None:
            # Students enrolled while the class had no price get their entries now
            generate_missing_payments(school_class)
        db.session.commit()
    except CenterError as e:
        db.session.rollback()
        return jsonify({"error": e.message}), e.status_code
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Updating class {class_id} failed: {e}", exc_info=True)
        return jsonify({"error": "Could not update class"}), 500

    return jsonify({"class": school_class.to_dict(include_students=True)})


@classes_bp.route('/classes/<int:class_id>', methods=['DELETE'])
@role_required(*OFFICE_ROLES)
def delete_class(class_id):
    try:
        school_class = _get_class(class_id)
        ensure_class_deletable(school_class)
        db.session.delete(school_class)
        db.session.commit()
    except CenterError as e:
        db.session.rollback()
        return jsonify({"error": e.message}), e.status_code
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Deleting class {class_id} failed: {e}", exc_info=True)
        return jsonify({"error": "Could not delete class"}), 500

    current_app.logger.info(f"Deleted class {class_id}")
    return jsonify({"message": "Class deleted"})


# -------------------- SESSION LOG --------------------

@classes_bp.route('/classes/<int:class_id>/sessions', methods=['GET'])
@role_required(ROLE_TEACHER, *LEDGER_ROLES)
def list_sessions(class_id):
    try:
        school_class = _get_class(class_id)
        _check_teacher_owns(school_class)
    except CenterError as e:
        return jsonify({"error": e.message}), e.status_code
    return jsonify({"sessions": [s.to_dict() for s in school_class.session_logs]})


@classes_bp.route('/classes/<int:class_id>/sessions', methods=['POST'])
@role_required(ROLE_TEACHER)
def record_session(class_id):
    """Record a finished session; the number is the running count for the class."""
    principal = get_current_principal()
    try:
        school_class = _get_class(class_id)
        _check_teacher_owns(school_class)
        data = request.get_json(silent=True) or {}

        last_number = db.session.query(func.max(ClassSession.session_number)).filter_by(
            class_id=school_class.id
        ).scalar() or 0
        note = data.get('note')
        class_session = ClassSession(
            class_id=school_class.id,
            session_number=last_number + 1,
            note=note.strip() if isinstance(note, str) and note.strip() else None,
            teacher_id=principal.id,
        )
        db.session.add(class_session)
        db.session.commit()
    except CenterError as e:
        db.session.rollback()
        return jsonify({"error": e.message}), e.status_code
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Recording session for class {class_id} failed: {e}", exc_info=True)
        return jsonify({"error": "Could not record session"}), 500

    return jsonify({"session": class_session.to_dict()}), 201


# -------------------- ENROLLMENT --------------------

@classes_bp.route('/registrations', methods=['POST'])
@role_required(*OFFICE_ROLES)
def update_registration():
    """
    Add, remove or move a student between classes.

    Body: {student_id, class_id, action: add|remove|move, from_class_id}
    ``from_class_id`` is required for ``move``; ``class_id`` is the target.
    """
    try:
        data = get_json_body()
        require_fields(data, 'student_id', 'class_id', 'action')
        action = str(data['action']).strip().lower()
        if action not in ('add', 'remove', 'move'):
            raise ValidationError("action must be one of add, remove, move")

        student = _get_student(parse_int(data['student_id'], 'student_id'))
        school_class = _get_class(parse_int(data['class_id'], 'class_id'))

        if action == 'add':
            enroll_student(student, school_class)
        elif action == 'remove':
            unenroll_student(student, school_class)
        else:
            require_fields(data, 'from_class_id')
            from_class = _get_class(parse_int(data['from_class_id'], 'from_class_id'))
            move_student(student, from_class, school_class)

        db.session.commit()
    except CenterError as e:
        db.session.rollback()
        return jsonify({"error": e.message}), e.status_code
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Registration update failed: {e}", exc_info=True)
        return jsonify({"error": "Could not update registration"}), 500

    return jsonify({"student": student.to_dict(include_enrollments=True)})


@classes_bp.route('/attendance', methods=['POST'])
@role_required(ROLE_TEACHER, *OFFICE_ROLES)
def take_attendance():
    """
    Apply a roll call.

    ``present_student_ids`` is accepted as an alias of ``increment_ids``.
    """
    try:
        data = get_json_body()
        require_fields(data, 'class_id')
        school_class = _get_class(parse_int(data['class_id'], 'class_id'))
        _check_teacher_owns(school_class)

        increment = data.get('increment_ids', data.get('present_student_ids')) or []
        decrement = data.get('decrement_ids') or []
        if not isinstance(increment, list) or not isinstance(decrement, list):
            raise ValidationError("Student id lists must be arrays")
        increment_ids = [parse_int(i, "student id") for i in increment]
        decrement_ids = [parse_int(i, "student id") for i in decrement]

        updated, skipped = record_attendance(school_class, increment_ids, decrement_ids)
        db.session.commit()
    except CenterError as e:
        db.session.rollback()
        return jsonify({"error": e.message}), e.status_code
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Attendance update failed: {e}", exc_info=True)
        return jsonify({"error": "Could not record attendance"}), 500

    current_app.logger.info(
        f"Attendance for class {school_class.id}: +{len(increment_ids)} -{len(decrement_ids)}"
    )
    return jsonify({
        "updated": [e.to_dict() for e in updated],
        "skipped": skipped,
    })
