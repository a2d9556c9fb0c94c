"""
Student directory routes.

Self-registration is public. Reads are open to the office, to teachers for
the students in their classes, and to students for their own record.
Students are never hard-deleted.
"""

from flask import Blueprint, request, jsonify, current_app
from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError

from langcenter.auth import role_required, get_current_principal, is_self
from langcenter.errors import CenterError, Conflict, NotFoundError, ValidationError
from langcenter.extensions import db, limiter
from langcenter.grading import teaches_student
from langcenter.models import Student, Enrollment, SchoolClass, Payment, Exam
from langcenter.utils.constants import (
    ROLE_STUDENT, ROLE_TEACHER, OFFICE_ROLES, LEDGER_ROLES, ALL_ROLES,
)
from langcenter.utils.helpers import get_json_body, require_fields, parse_date

students_bp = Blueprint('students', __name__, url_prefix='/api/students')

REGISTRATION_FIELDS = (
    'name', 'email', 'password', 'dob', 'address', 'phone_number', 'school', 'platform_known',
)
EDITABLE_FIELDS = ('name', 'dob', 'address', 'phone_number', 'school', 'platform_known', 'note')


def _get_student(student_id):
    student = db.session.get(Student, student_id)
    if not student:
        raise NotFoundError("Student not found")
    return student


def _can_view(student):
    principal = get_current_principal()
    if principal.role in LEDGER_ROLES:
        return True
    if principal.role == ROLE_TEACHER:
        return teaches_student(principal.id, student.id)
    return is_self(ROLE_STUDENT, student.id)


def _check_password(password):
    if not isinstance(password, str) or not password:
        raise ValidationError("password must be a non-empty string")


def _apply_fields(student, data, fields):
    for field in fields:
        if field not in data:
            continue
        value = data[field]
        if field == 'dob':
            parsed = parse_date(value, 'dob')
            value = parsed.date() if parsed else None
        elif value is not None:
            if not isinstance(value, str):
                raise ValidationError(f"{field} must be a string")
            value = value.strip() or None
        if field == 'name' and not value:
            continue
        setattr(student, field, value)


# -------------------- REGISTRATION --------------------

@students_bp.route('', methods=['POST'])
@limiter.limit("10 per minute")
def register_student():
    """Public self-registration."""
    try:
        data = get_json_body()
        require_fields(data, *REGISTRATION_FIELDS)
        _check_password(data['password'])
        if not isinstance(data['email'], str):
            raise ValidationError("email must be a string")

        email = data['email'].strip().lower()
        if Student.query.filter_by(email=email).first():
            raise Conflict("Email already registered")

        student = Student(email=email)
        _apply_fields(student, data, EDITABLE_FIELDS)
        if not student.name:
            raise ValidationError("name cannot be empty")
        student.set_password(data['password'])
        db.session.add(student)
        db.session.commit()
    except CenterError as e:
        db.session.rollback()
        return jsonify({"error": e.message}), e.status_code
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Student registration failed: {e}", exc_info=True)
        return jsonify({"error": "Could not register student"}), 500

    current_app.logger.info(f"Student {student.id} registered")
    return jsonify({"student": student.to_dict()}), 201


# -------------------- DIRECTORY --------------------

@students_bp.route('', methods=['GET'])
@role_required(ROLE_TEACHER, *LEDGER_ROLES)
def list_students():
    principal = get_current_principal()
    query = Student.query
    if principal.role == ROLE_TEACHER:
        query = query.join(Enrollment, Enrollment.student_id == Student.id).join(
            SchoolClass, Enrollment.class_id == SchoolClass.id
        ).filter(SchoolClass.teacher_id == principal.id).distinct()
    students = query.order_by(Student.name.asc()).all()
    return jsonify({"students": [s.to_dict() for s in students]})


@students_bp.route('/search', methods=['GET'])
@role_required(*LEDGER_ROLES)
def search_students():
    """
    Front-desk lookup by name, email or phone.

    Each hit carries whether the student has taken a placement exam and
    whether any ledger entry is still unpaid.
    """
    term = (request.args.get('q') or '').strip()
    if not term:
        return jsonify({"students": []})

    pattern = f"%{term}%"
    students = Student.query.filter(or_(
        Student.name.ilike(pattern),
        Student.email.ilike(pattern),
        Student.phone_number.ilike(pattern),
    )).order_by(Student.name.asc()).limit(50).all()

    results = []
    for student in students:
        pending = Payment.query.filter_by(student_id=student.id, have_paid=False).count()
        has_exam = Exam.query.filter_by(student_id=student.id).first() is not None
        data = student.to_dict(include_enrollments=True)
        data.update({
            'examination_status': 'examined' if has_exam else 'not_examined',
            'payment_status': 'pending' if pending else 'paid',
            'pending_payments': pending,
        })
        results.append(data)
    return jsonify({"students": results})


@students_bp.route('/<int:student_id>', methods=['GET'])
@role_required(*ALL_ROLES)
def get_student(student_id):
    try:
        student = _get_student(student_id)
    except CenterError as e:
        return jsonify({"error": e.message}), e.status_code
    if not _can_view(student):
        return jsonify({"error": "Forbidden"}), 403
    return jsonify({"student": student.to_dict(include_enrollments=True)})


@students_bp.route('/<int:student_id>', methods=['PUT'])
@role_required(ROLE_STUDENT, *OFFICE_ROLES)
def update_student(student_id):
    principal = get_current_principal()
    if principal.role == ROLE_STUDENT and not is_self(ROLE_STUDENT, student_id):
        return jsonify({"error": "Forbidden"}), 403

    try:
        student = _get_student(student_id)
        data = get_json_body()
        _apply_fields(student, data, EDITABLE_FIELDS)
        if data.get('password'):
            _check_password(data['password'])
            student.set_password(data['password'])
        db.session.commit()
    except CenterError as e:
        db.session.rollback()
        return jsonify({"error": e.message}), e.status_code
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Updating student {student_id} failed: {e}", exc_info=True)
        return jsonify({"error": "Could not update student"}), 500

    return jsonify({"student": student.to_dict(include_enrollments=True)})


@students_bp.route('/<int:student_id>/exams', methods=['GET'])
@role_required(*ALL_ROLES)
def student_exams(student_id):
    try:
        student = _get_student(student_id)
    except CenterError as e:
        return jsonify({"error": e.message}), e.status_code
    if not _can_view(student):
        return jsonify({"error": "Forbidden"}), 403
    return jsonify({"exams": [e.to_dict() for e in student.exams]})
