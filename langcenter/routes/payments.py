"""
Payment ledger routes and class earnings reports.
"""

from flask import Blueprint, request, jsonify, current_app
from sqlalchemy.exc import SQLAlchemyError

from langcenter.auth import role_required
from langcenter.errors import CenterError, NotFoundError
from langcenter.extensions import db
from langcenter.ledger import (
    create_payment, update_payment_status, apply_discount,
    summarize_class_earnings, active_class_earnings, staff_payment_kpis,
)
from langcenter.models import Payment, Student, SchoolClass, Staff
from langcenter.utils.constants import LEDGER_ROLES, OFFICE_ROLES, UNPAID_METHOD
from langcenter.utils.helpers import (
    get_json_body, require_fields, parse_int, parse_bool, format_local,
)

payments_bp = Blueprint('payments', __name__, url_prefix='/api')


def _get_payment(payment_id):
    payment = db.session.get(Payment, payment_id)
    if not payment:
        raise NotFoundError("Payment not found")
    return payment


# -------------------- PAYMENTS --------------------

@payments_bp.route('/payments', methods=['GET'])
@role_required(*LEDGER_ROLES)
def list_payments():
    try:
        query = Payment.query
        if request.args.get('student_id'):
            query = query.filter_by(student_id=parse_int(request.args['student_id'], 'student_id'))
        if request.args.get('class_id'):
            query = query.filter_by(class_id=parse_int(request.args['class_id'], 'class_id'))
    except CenterError as e:
        return jsonify({"error": e.message}), e.status_code
    if request.args.get('have_paid') not in (None, ''):
        query = query.filter_by(have_paid=parse_bool(request.args['have_paid']))

    payments = query.order_by(Payment.created_at.desc(), Payment.id.desc()).all()
    return jsonify({"payments": [p.to_dict() for p in payments]})


@payments_bp.route('/payments/<int:payment_id>', methods=['GET'])
@role_required(*LEDGER_ROLES)
def get_payment(payment_id):
    try:
        payment = _get_payment(payment_id)
    except CenterError as e:
        return jsonify({"error": e.message}), e.status_code
    return jsonify({"payment": payment.to_dict()})


@payments_bp.route('/payments', methods=['POST'])
@role_required(*LEDGER_ROLES)
def add_payment():
    """Manually open a ledger entry; refused when the pair already has one."""
    try:
        data = get_json_body()
        require_fields(data, 'student_id', 'class_id', 'amount')

        student = db.session.get(Student, parse_int(data['student_id'], 'student_id'))
        if not student:
            raise NotFoundError("Student not found")
        school_class = db.session.get(SchoolClass, parse_int(data['class_id'], 'class_id'))
        if not school_class:
            raise NotFoundError("Class not found")

        staff = None
        if data.get('staff_id') is not None:
            staff = db.session.get(Staff, parse_int(data['staff_id'], 'staff_id'))
            if not staff:
                raise NotFoundError("Staff member not found")

        method = data.get('payment_method')
        method = method.strip() if isinstance(method, str) and method.strip() else UNPAID_METHOD
        payment = create_payment(student, school_class, data['amount'], method, staff=staff)
        if 'have_paid' in data:
            update_payment_status(payment, {'have_paid': data['have_paid']})
        db.session.commit()
    except CenterError as e:
        db.session.rollback()
        return jsonify({"error": e.message}), e.status_code
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Creating payment failed: {e}", exc_info=True)
        return jsonify({"error": "Could not create payment"}), 500

    current_app.logger.info(f"Created payment {payment.id} for student {student.id} in class {school_class.id}")
    return jsonify({"payment": payment.to_dict()}), 201


@payments_bp.route('/payments/<int:payment_id>', methods=['PUT'])
@role_required(*LEDGER_ROLES)
def update_payment(payment_id):
    try:
        payment = _get_payment(payment_id)
        update_payment_status(payment, get_json_body())
        db.session.commit()
    except CenterError as e:
        db.session.rollback()
        return jsonify({"error": e.message}), e.status_code
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Updating payment {payment_id} failed: {e}", exc_info=True)
        return jsonify({"error": "Could not update payment"}), 500

    current_app.logger.info(f"Payment {payment.id} updated (have_paid={payment.have_paid})")
    return jsonify({"payment": payment.to_dict()})


@payments_bp.route('/payments/<int:payment_id>', methods=['DELETE'])
@role_required(*LEDGER_ROLES)
def delete_payment(payment_id):
    try:
        payment = _get_payment(payment_id)
        db.session.delete(payment)
        db.session.commit()
    except CenterError as e:
        db.session.rollback()
        return jsonify({"error": e.message}), e.status_code
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Deleting payment {payment_id} failed: {e}", exc_info=True)
        return jsonify({"error": "Could not delete payment"}), 500

    current_app.logger.info(f"Deleted payment {payment_id}")
    return jsonify({"message": "Payment deleted"})


@payments_bp.route('/payments/<int:payment_id>/discount', methods=['PUT'])
@role_required(*LEDGER_ROLES)
def discount_payment(payment_id):
    """
    Apply a discount and, optionally, a new session entitlement.

    Body: {discount_percentage, discount_reason, new_session_count, amount}
    The payment and the enrollment change are committed together.
    """
    try:
        payment = _get_payment(payment_id)
        payment, enrollment = apply_discount(payment, get_json_body())
        db.session.commit()
    except CenterError as e:
        db.session.rollback()
        return jsonify({"error": e.message}), e.status_code
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Discount on payment {payment_id} failed: {e}", exc_info=True)
        return jsonify({"error": "Could not apply discount"}), 500

    current_app.logger.info(
        f"Discount applied to payment {payment.id}: {payment.discount_percentage}% -> {payment.amount}"
    )
    return jsonify({
        "payment": payment.to_dict(),
        "enrollment": enrollment.to_dict() if enrollment else None,
    })


# -------------------- EARNINGS --------------------

@payments_bp.route('/class-earnings', methods=['GET'])
@role_required(*LEDGER_ROLES)
def class_earnings():
    earnings = active_class_earnings()
    return jsonify({
        "classes": earnings,
        "total_earnings": round(sum(c['total_earnings'] for c in earnings), 2),
        "pending_amount": round(sum(c['pending_amount'] for c in earnings), 2),
    })


@payments_bp.route('/class-earnings/<int:class_id>', methods=['GET'])
@role_required(*LEDGER_ROLES)
def class_earnings_detail(class_id):
    """Paid and unpaid students of one class, with the paid date in local time."""
    school_class = db.session.get(SchoolClass, class_id)
    if not school_class:
        return jsonify({"error": "Class not found"}), 404

    payments = {p.student_id: p for p in school_class.payments}
    paid, unpaid = [], []
    for enrollment in school_class.enrollments:
        payment = payments.get(enrollment.student_id)
        row = {
            'student_id': enrollment.student_id,
            'student_name': enrollment.student.name,
            'email': enrollment.student.email,
            'phone_number': enrollment.student.phone_number,
            'payment_id': payment.id if payment else None,
            'amount': payment.amount if payment else None,
            'payment_method': payment.payment_method if payment else None,
            'discount_percentage': payment.discount_percentage if payment else None,
            'paid_at': format_local(payment.paid_at) if payment else None,
        }
        (paid if payment and payment.have_paid else unpaid).append(row)

    return jsonify({
        "summary": summarize_class_earnings(school_class),
        "paid_students": sorted(paid, key=lambda r: r['student_name'].lower()),
        "unpaid_students": sorted(unpaid, key=lambda r: r['student_name'].lower()),
    })


# -------------------- KPI --------------------

@payments_bp.route('/kpi', methods=['GET'])
@role_required(*OFFICE_ROLES)
def staff_kpi():
    """Payments assigned to each staff member today and over 7 and 30 days."""
    return jsonify({"staff": staff_payment_kpis()})
