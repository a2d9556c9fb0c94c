"""
Payment ledger: one entry per (student, class) pair.

Helpers here only touch ``db.session`` and flush; the calling route owns
the commit so that a ledger change and the enrollment change that caused
it land in the same transaction.
"""

from datetime import datetime, timedelta, timezone

from flask import current_app
from sqlalchemy import func

from langcenter.errors import ValidationError, Conflict, NotFoundError
from langcenter.extensions import db
from langcenter.models import Payment, Staff, Enrollment, SchoolClass
from langcenter.utils.constants import UNPAID_METHOD
from langcenter.utils.helpers import parse_float, parse_int, local_day_start


# -------------------- STAFF ASSIGNMENT STRATEGIES --------------------

def assign_first_staff():
    """Legacy placeholder: the first staff record by id."""
    return Staff.query.order_by(Staff.id.asc()).first()


def assign_round_robin():
    """The staff member after the one on the most recently created payment."""
    staff = Staff.query.order_by(Staff.id.asc()).all()
    if not staff:
        return None

    last = (
        Payment.query.filter(Payment.staff_id.isnot(None))
        .order_by(Payment.created_at.desc(), Payment.id.desc())
        .first()
    )
    if not last:
        return staff[0]

    for member in staff:
        if member.id > last.staff_id:
            return member
    return staff[0]


def assign_least_loaded():
    """The staff member with the fewest unpaid payments; ties go to the lowest id."""
    open_counts = (
        db.session.query(Payment.staff_id, func.count(Payment.id))
        .filter(Payment.have_paid.is_(False), Payment.staff_id.isnot(None))
        .group_by(Payment.staff_id)
        .all()
    )
    load = dict(open_counts)
    staff = Staff.query.order_by(Staff.id.asc()).all()
    if not staff:
        return None
    return min(staff, key=lambda s: (load.get(s.id, 0), s.id))


STAFF_ASSIGNMENT_STRATEGIES = {
    'first': assign_first_staff,
    'round_robin': assign_round_robin,
    'least_loaded': assign_least_loaded,
}


def get_staff_assignment_strategy(name=None):
    """
    Resolve a staff assignment strategy by name.

    Args:
        name: strategy key; defaults to the STAFF_ASSIGNMENT_STRATEGY config value.

    Returns:
        callable: zero-argument function returning a Staff or None.
    """
    if name is None:
        name = current_app.config.get('STAFF_ASSIGNMENT_STRATEGY', 'first')
    strategy = STAFF_ASSIGNMENT_STRATEGIES.get(name)
    if strategy is None:
        current_app.logger.warning(f"Unknown staff assignment strategy '{name}', using 'first'")
        strategy = assign_first_staff
    return strategy


# -------------------- LEDGER OPERATIONS --------------------

def find_payment(student_id, class_id):
    return Payment.query.filter_by(student_id=student_id, class_id=class_id).first()


def open_payment_for_enrollment(student, school_class, strategy=None):
    """
    Create the unpaid ledger entry for a newly enrolled student.

    Nothing is created for a class without a price, or when the pair already
    has an entry.

    Returns:
        Payment or None
    """
    if school_class.payment_amount is None:
        return None

    existing = find_payment(student.id, school_class.id)
    if existing:
        current_app.logger.info(
            f"Payment {existing.id} already exists for student {student.id} in class {school_class.id}"
        )
        return existing

    strategy = strategy or get_staff_assignment_strategy()
    staff = strategy()
    if staff is None:
        current_app.logger.warning(
            f"No staff available to assign payment for student {student.id} in class {school_class.id}"
        )

    payment = Payment(
        student_id=student.id,
        class_id=school_class.id,
        amount=school_class.payment_amount,
        payment_method=UNPAID_METHOD,
        have_paid=False,
        staff_id=staff.id if staff else None,
    )
    db.session.add(payment)
    db.session.flush()
    current_app.logger.info(
        f"Opened payment {payment.id} ({payment.amount}) for student {student.id} in class {school_class.id}"
    )
    return payment


def generate_missing_payments(school_class=None):
    """
    Open ledger entries for enrollments that have none.

    Covers students enrolled before their class got a price. Limited to one
    class when ``school_class`` is given; unpriced classes are skipped.

    Returns:
        tuple: (created, skipped) where skipped counts enrollments that
        already had an entry.
    """
    query = Enrollment.query.join(SchoolClass).filter(SchoolClass.payment_amount.isnot(None))
    if school_class is not None:
        query = query.filter(Enrollment.class_id == school_class.id)

    created = skipped = 0
    for enrollment in query.order_by(Enrollment.id.asc()).all():
        if find_payment(enrollment.student_id, enrollment.class_id):
            skipped += 1
            continue
        open_payment_for_enrollment(enrollment.student, enrollment.school_class)
        created += 1

    if created:
        current_app.logger.info(f"Generated {created} missing payment(s), {skipped} already present")
    return created, skipped


def close_payments_for_enrollment(student_id, class_id):
    """Delete the ledger entries of exactly this (student, class) pair. Returns the count."""
    payments = Payment.query.filter_by(student_id=student_id, class_id=class_id).all()
    for payment in payments:
        db.session.delete(payment)
    db.session.flush()

    deleted = len(payments)
    if deleted:
        current_app.logger.info(f"Deleted {deleted} payment(s) for student {student_id} in class {class_id}")
    return deleted


def create_payment(student, school_class, amount, payment_method, staff=None):
    """Manually create a ledger entry. Refuses a second entry for the same pair."""
    if find_payment(student.id, school_class.id):
        raise Conflict("A payment already exists for this student and class")

    payment = Payment(
        student_id=student.id,
        class_id=school_class.id,
        amount=parse_float(amount, 'amount', minimum=0),
        payment_method=payment_method,
        have_paid=False,
        staff_id=staff.id if staff else None,
    )
    db.session.add(payment)
    db.session.flush()
    return payment


def update_payment_status(payment, data):
    """Apply have_paid / payment_method / staff_id changes from a request body."""
    if 'have_paid' in data:
        if not isinstance(data['have_paid'], bool):
            raise ValidationError("have_paid must be a boolean")
        payment.have_paid = data['have_paid']
        payment.paid_at = datetime.now(timezone.utc) if payment.have_paid else None

    if 'payment_method' in data:
        method = data['payment_method'].strip() if isinstance(data['payment_method'], str) else ''
        if not method:
            raise ValidationError("payment_method cannot be empty")
        payment.payment_method = method

    if 'staff_id' in data:
        if data['staff_id'] is None:
            payment.staff_id = None
        else:
            staff = db.session.get(Staff, parse_int(data['staff_id'], 'staff_id'))
            if not staff:
                raise NotFoundError("Staff member not found")
            payment.staff_id = staff.id

    return payment


def apply_discount(payment, data):
    """
    Apply a discount to a ledger entry.

    Body fields (all optional):
        discount_percentage: 0-100; recomputes amount from the class price
            unless ``amount`` is also given.
        discount_reason: free text, stored verbatim.
        new_session_count: positive integer written to the enrollment's
            sessions_registered.
        amount: explicit new amount.

    Returns:
        tuple: (payment, enrollment or None)
    """
    if not any(k in data for k in ('discount_percentage', 'discount_reason', 'new_session_count', 'amount')):
        raise ValidationError("Nothing to update")

    if data.get('discount_percentage') is not None:
        payment.discount_percentage = parse_float(
            data['discount_percentage'], 'discount_percentage', minimum=0, maximum=100
        )
        if data.get('amount') is None:
            base = payment.school_class.payment_amount
            if base is None:
                base = payment.amount
            payment.amount = round(base * (1 - payment.discount_percentage / 100), 2)

    if data.get('amount') is not None:
        payment.amount = parse_float(data['amount'], 'amount', minimum=0)

    if 'discount_reason' in data:
        reason = data['discount_reason']
        payment.discount_reason = reason.strip() if isinstance(reason, str) and reason.strip() else None

    enrollment = None
    if data.get('new_session_count') is not None:
        new_count = parse_int(data['new_session_count'], 'new_session_count', minimum=1)
        enrollment = Enrollment.query.filter_by(
            student_id=payment.student_id, class_id=payment.class_id
        ).first()
        if not enrollment:
            raise NotFoundError("Student is not enrolled in this class")
        current_app.logger.info(
            f"Sessions registered for student {payment.student_id} in class {payment.class_id}: "
            f"{enrollment.sessions_registered} -> {new_count}"
        )
        enrollment.sessions_registered = new_count

    db.session.flush()
    return payment, enrollment


# -------------------- REPORTING --------------------

def summarize_class_earnings(school_class):
    """Totals for one class: collected, pending, paid/unpaid/total students."""
    payments = school_class.payments
    paid = [p for p in payments if p.have_paid]
    unpaid = [p for p in payments if not p.have_paid]
    total_students = len(school_class.enrollments)
    return {
        'class_id': school_class.id,
        'class_name': school_class.name,
        'level': school_class.level,
        'total_earnings': round(sum(p.amount for p in paid), 2),
        'pending_amount': round(sum(p.amount for p in unpaid), 2),
        'paid_students': len(paid),
        'unpaid_students': total_students - len(paid),
        'total_students': total_students,
    }


def active_class_earnings():
    classes = SchoolClass.query.filter_by(is_active=True).order_by(SchoolClass.name.asc()).all()
    return [summarize_class_earnings(c) for c in classes]


def staff_payment_kpis(now=None):
    """
    Payments handled per staff member: since local midnight, and over the
    last 7 and 30 days.

    Returns:
        list of dicts ordered by staff id.
    """
    now = now or datetime.now(timezone.utc)
    naive_now = now.astimezone(timezone.utc).replace(tzinfo=None) if now.tzinfo else now
    windows = {
        'today_count': local_day_start(now),
        'week_count': naive_now - timedelta(days=7),
        'month_count': naive_now - timedelta(days=30),
    }

    counts = {}
    for key, since in windows.items():
        rows = (
            db.session.query(Payment.staff_id, func.count(Payment.id))
            .filter(Payment.staff_id.isnot(None), Payment.created_at >= since)
            .group_by(Payment.staff_id)
            .all()
        )
        counts[key] = dict(rows)

    report = []
    for member in Staff.query.order_by(Staff.id.asc()).all():
        entry = {'staff_id': member.id, 'staff_name': member.name}
        for key in windows:
            entry[key] = counts[key].get(member.id, 0)
        report.append(entry)
    return report
