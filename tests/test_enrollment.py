import pytest

from langcenter import db
from langcenter.enrollment import enroll_student, unenroll_student, move_student
from langcenter.errors import CapacityExceeded, DuplicateEnrollment, ValidationError
from langcenter.models import Enrollment, Payment


def test_enroll_creates_link_and_unpaid_payment(client, staff, student, make_class):
    school_class = make_class(num_sessions=20, payment_amount=2500000.0)

    enrollment, payment = enroll_student(student, school_class)
    db.session.commit()

    assert enrollment.attendance == 0
    assert enrollment.sessions_registered == 20
    assert payment.amount == 2500000.0
    assert payment.have_paid is False
    assert payment.payment_method == 'Unpaid'
    assert payment.staff_id == staff.id


def test_enroll_without_price_creates_no_payment(client, student, make_class):
    school_class = make_class(payment_amount=None)

    enrollment, payment = enroll_student(student, school_class)
    db.session.commit()

    assert enrollment is not None
    assert payment is None
    assert Payment.query.count() == 0


def test_enroll_without_staff_still_creates_payment(client, student, make_class):
    school_class = make_class()

    _, payment = enroll_student(student, school_class)
    db.session.commit()

    assert payment.staff_id is None


def test_capacity_is_enforced(client, make_student, make_class):
    school_class = make_class(max_students=2)
    for name in ("An", "Binh"):
        enroll_student(make_student(name), school_class)
    db.session.commit()

    with pytest.raises(CapacityExceeded):
        enroll_student(make_student("Chi"), school_class)


def test_capacity_checked_before_duplicate(client, make_student, make_class):
    school_class = make_class(max_students=1)
    student = make_student("An")
    enroll_student(student, school_class)
    db.session.commit()

    # Full class wins over the duplicate check
    with pytest.raises(CapacityExceeded):
        enroll_student(student, school_class)


def test_duplicate_enrollment_rejected(client, student, make_class):
    school_class = make_class()
    enroll_student(student, school_class)
    db.session.commit()

    with pytest.raises(DuplicateEnrollment):
        enroll_student(student, school_class)


def test_inactive_class_rejects_enrollment(client, student, make_class):
    school_class = make_class()
    school_class.is_active = False
    db.session.commit()

    with pytest.raises(ValidationError):
        enroll_student(student, school_class)


def test_unenroll_deletes_only_that_pairs_payment(client, student, make_class):
    first = make_class(name="Starter")
    second = make_class(name="Flyers")
    enroll_student(student, first)
    enroll_student(student, second)
    db.session.commit()

    removed, deleted = unenroll_student(student, first)
    db.session.commit()

    assert removed is True
    assert deleted == 1
    assert Enrollment.query.filter_by(student_id=student.id).count() == 1
    remaining = Payment.query.filter_by(student_id=student.id).all()
    assert [p.class_id for p in remaining] == [second.id]


def test_unenroll_missing_link_is_not_an_error(client, student, make_class):
    school_class = make_class()
    removed, deleted = unenroll_student(student, school_class)
    assert (removed, deleted) == (False, 0)


def test_add_remove_add_leaves_one_link_and_one_payment(client, student, make_class):
    school_class = make_class()
    enroll_student(student, school_class)
    db.session.commit()
    unenroll_student(student, school_class)
    db.session.commit()
    enroll_student(student, school_class)
    db.session.commit()

    assert Enrollment.query.filter_by(student_id=student.id, class_id=school_class.id).count() == 1
    assert Payment.query.filter_by(student_id=student.id, class_id=school_class.id).count() == 1


def test_move_student_swaps_class_and_payment(client, student, make_class):
    old = make_class(name="Old", payment_amount=1000000.0)
    new = make_class(name="New", payment_amount=2000000.0)
    enroll_student(student, old)
    db.session.commit()

    move_student(student, old, new)
    db.session.commit()

    assert Enrollment.query.filter_by(student_id=student.id, class_id=old.id).first() is None
    assert Enrollment.query.filter_by(student_id=student.id, class_id=new.id).first() is not None
    payments = Payment.query.filter_by(student_id=student.id).all()
    assert [(p.class_id, p.amount) for p in payments] == [(new.id, 2000000.0)]


# -------------------- ROUTE --------------------

def test_registration_route_add_and_remove(client, staff, student, login, make_class):
    school_class = make_class()
    login(staff)

    resp = client.post('/api/registrations', json={
        "student_id": student.id, "class_id": school_class.id, "action": "add",
    })
    assert resp.status_code == 200
    enrollments = resp.json['student']['enrollments']
    assert len(enrollments) == 1
    assert enrollments[0]['sessions_registered'] == 24
    assert Payment.query.count() == 1

    resp = client.post('/api/registrations', json={
        "student_id": student.id, "class_id": school_class.id, "action": "remove",
    })
    assert resp.status_code == 200
    assert resp.json['student']['enrollments'] == []
    assert Payment.query.count() == 0


def test_registration_route_full_class(client, staff, login, make_student, make_class):
    school_class = make_class(max_students=1)
    enroll_student(make_student("An"), school_class)
    db.session.commit()
    login(staff)

    resp = client.post('/api/registrations', json={
        "student_id": make_student("Binh").id, "class_id": school_class.id, "action": "add",
    })
    assert resp.status_code == 400
    assert resp.json['error'] == 'Class is full'


def test_registration_route_duplicate(client, staff, student, login, make_class):
    school_class = make_class()
    login(staff)
    body = {"student_id": student.id, "class_id": school_class.id, "action": "add"}

    assert client.post('/api/registrations', json=body).status_code == 200
    resp = client.post('/api/registrations', json=body)
    assert resp.status_code == 400
    assert 'already enrolled' in resp.json['error']
    assert Payment.query.count() == 1


def test_registration_route_move(client, staff, student, login, make_class):
    old = make_class(name="Old")
    new = make_class(name="New")
    enroll_student(student, old)
    db.session.commit()
    login(staff)

    resp = client.post('/api/registrations', json={
        "student_id": student.id, "class_id": new.id, "from_class_id": old.id, "action": "move",
    })
    assert resp.status_code == 200
    assert [e['class_id'] for e in resp.json['student']['enrollments']] == [new.id]


def test_registration_route_validation(client, staff, student, login, make_class):
    school_class = make_class()
    login(staff)

    resp = client.post('/api/registrations', json={
        "student_id": student.id, "class_id": school_class.id, "action": "swap",
    })
    assert resp.status_code == 400

    resp = client.post('/api/registrations', json={"student_id": student.id, "action": "add"})
    assert resp.status_code == 400

    resp = client.post('/api/registrations', json={
        "student_id": 999, "class_id": school_class.id, "action": "add",
    })
    assert resp.status_code == 404


def test_failed_payment_sync_rolls_back_enrollment(client, staff, student, monkeypatch, login, make_class):
    from sqlalchemy.exc import SQLAlchemyError
    import langcenter.enrollment as enrollment_module

    def broken_sync(*args, **kwargs):
        raise SQLAlchemyError("ledger unavailable")

    monkeypatch.setattr(enrollment_module, 'open_payment_for_enrollment', broken_sync)
    school_class = make_class()
    login(staff)

    resp = client.post('/api/registrations', json={
        "student_id": student.id, "class_id": school_class.id, "action": "add",
    })
    assert resp.status_code == 500
    assert Enrollment.query.count() == 0
    assert Payment.query.count() == 0


def test_teacher_cannot_change_registrations(client, teacher, student, login, make_class):
    school_class = make_class()
    login(teacher)
    resp = client.post('/api/registrations', json={
        "student_id": student.id, "class_id": school_class.id, "action": "add",
    })
    assert resp.status_code == 403
