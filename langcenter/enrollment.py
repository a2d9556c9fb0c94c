"""
Enrollment workflow: linking students to classes.

Adding a student creates the Enrollment and opens the class's ledger entry;
removing deletes both. Attendance counters live on the Enrollment.

Like the ledger helpers, nothing here commits. The route commits once so
that the enrollment change and the payment sync succeed or fail together.
"""

from flask import current_app

from langcenter.errors import CapacityExceeded, DuplicateEnrollment, ClassNotEmpty, ValidationError
from langcenter.extensions import db
from langcenter.ledger import open_payment_for_enrollment, close_payments_for_enrollment
from langcenter.models import Enrollment, SchoolClass


def enrollment_count(school_class):
    return Enrollment.query.filter_by(class_id=school_class.id).count()


def find_enrollment(student_id, class_id):
    return Enrollment.query.filter_by(student_id=student_id, class_id=class_id).first()


def _refresh_links(*instances):
    """Drop cached relationship collections after bulk changes."""
    for instance in instances:
        if instance is not None:
            db.session.expire(instance, ['enrollments', 'payments'])


def enroll_student(student, school_class, strategy=None):
    """
    Link ``student`` to ``school_class``.

    Raises:
        CapacityExceeded: the class already holds max_students students.
        DuplicateEnrollment: the student is already in the class.

    Returns:
        tuple: (Enrollment, Payment or None)
    """
    if not school_class.is_active:
        raise ValidationError("Class is not active")

    # Row lock on the class serializes concurrent enrollments into it
    SchoolClass.query.filter_by(id=school_class.id).with_for_update().one()

    if enrollment_count(school_class) >= school_class.max_students:
        raise CapacityExceeded("Class is full")

    if find_enrollment(student.id, school_class.id):
        raise DuplicateEnrollment("Student is already enrolled in this class")

    sessions = school_class.num_sessions
    if sessions is None:
        sessions = current_app.config.get('DEFAULT_NUM_SESSIONS', 24)

    enrollment = Enrollment(
        student_id=student.id,
        class_id=school_class.id,
        attendance=0,
        sessions_registered=sessions,
    )
    db.session.add(enrollment)
    db.session.flush()

    payment = open_payment_for_enrollment(student, school_class, strategy=strategy)
    _refresh_links(student, school_class)

    current_app.logger.info(f"Enrolled student {student.id} in class {school_class.id}")
    return enrollment, payment


def unenroll_student(student, school_class):
    """
    Remove ``student`` from ``school_class`` and delete that pair's payment.

    Removing a student who is not enrolled is not an error.

    Returns:
        tuple: (enrollment_removed: bool, payments_deleted: int)
    """
    enrollment = find_enrollment(student.id, school_class.id)
    if enrollment:
        db.session.delete(enrollment)
        db.session.flush()

    payments_deleted = close_payments_for_enrollment(student.id, school_class.id)
    _refresh_links(student, school_class)

    current_app.logger.info(
        f"Removed student {student.id} from class {school_class.id} "
        f"(enrolled={bool(enrollment)}, payments_deleted={payments_deleted})"
    )
    return bool(enrollment), payments_deleted


def move_student(student, from_class, to_class, strategy=None):
    """Class change: leave ``from_class`` (dropping its payment) and join ``to_class``."""
    if from_class.id == to_class.id:
        raise ValidationError("Source and target class are the same")
    if not find_enrollment(student.id, from_class.id):
        raise ValidationError("Student is not enrolled in the source class")

    unenroll_student(student, from_class)
    return enroll_student(student, to_class, strategy=strategy)


def ensure_class_deletable(school_class):
    """Raise ClassNotEmpty while any student is enrolled."""
    if enrollment_count(school_class) > 0:
        raise ClassNotEmpty("Cannot delete a class that still has students")


# -------------------- ATTENDANCE --------------------

def mark_attendance(enrollment):
    """
    Record one attended session.

    Every call adds exactly one; there is no de-duplication by date.
    Going past sessions_registered is allowed and only logged.
    """
    enrollment.attendance = (enrollment.attendance or 0) + 1
    if enrollment.attendance > enrollment.sessions_registered:
        current_app.logger.warning(
            f"Student {enrollment.student_id} in class {enrollment.class_id} attended "
            f"{enrollment.attendance}/{enrollment.sessions_registered} sessions"
        )
    return enrollment


def unmark_attendance(enrollment):
    """Undo one attended session, never going below zero."""
    enrollment.attendance = max(0, (enrollment.attendance or 0) - 1)
    return enrollment


def record_attendance(school_class, increment_ids, decrement_ids):
    """
    Apply a roll call to a class.

    Returns:
        tuple: (updated enrollments, student ids that are not enrolled)
    """
    enrollments = {e.student_id: e for e in Enrollment.query.filter_by(class_id=school_class.id).all()}
    updated = {}
    skipped = []

    for student_id in increment_ids:
        enrollment = enrollments.get(student_id)
        if not enrollment:
            skipped.append(student_id)
            continue
        updated[student_id] = mark_attendance(enrollment)

    for student_id in decrement_ids:
        enrollment = enrollments.get(student_id)
        if not enrollment:
            skipped.append(student_id)
            continue
        updated[student_id] = unmark_attendance(enrollment)

    db.session.flush()
    return list(updated.values()), skipped
