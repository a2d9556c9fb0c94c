from sqlalchemy import text

from langcenter import db
from langcenter.enrollment import enroll_student
from langcenter.models import Exam, Student


def _registration(**overrides):
    body = {
        "name": "Nguyen Van An",
        "email": "An@Example.com",
        "password": "secret123",
        "dob": "2008-05-14",
        "address": "12 Le Loi, District 1",
        "phone_number": "0901234567",
        "school": "Le Quy Don",
        "platform_known": "Facebook",
    }
    body.update(overrides)
    return body


# -------------------- REGISTRATION --------------------

def test_public_registration(client):
    resp = client.post('/api/students', json=_registration())
    assert resp.status_code == 201
    student = resp.json['student']
    assert student['email'] == 'an@example.com'
    assert student['dob'] == '2008-05-14'
    assert 'password_hash' not in student


def test_registration_requires_all_fields(client):
    body = _registration()
    del body['school']
    resp = client.post('/api/students', json=body)
    assert resp.status_code == 400
    assert 'school' in resp.json['error']


def test_duplicate_email_conflicts(client):
    assert client.post('/api/students', json=_registration()).status_code == 201
    resp = client.post('/api/students', json=_registration(email="an@example.com"))
    assert resp.status_code == 409
    assert Student.query.count() == 1


def test_registration_rejects_non_string_fields(client):
    malformed = (
        ("address", 12), ("name", 42), ("email", ["a@b.c"]), ("password", 123456), ("school", {"x": 1}),
    )
    for field, value in malformed:
        resp = client.post('/api/students', json=_registration(**{field: value}))
        assert resp.status_code == 400, field
        assert field in resp.json['error']
    assert Student.query.count() == 0


def test_address_is_encrypted_at_rest(client):
    client.post('/api/students', json=_registration())

    stored = db.session.execute(text("SELECT address FROM students")).scalar()
    assert stored != "12 Le Loi, District 1"
    assert Student.query.one().address == "12 Le Loi, District 1"


def test_registered_student_can_log_in(client):
    client.post('/api/students', json=_registration())
    resp = client.post('/auth/login', json={
        "email": "an@example.com", "password": "secret123", "role": "student",
    })
    assert resp.status_code == 200


# -------------------- DIRECTORY --------------------

def test_search_reports_exam_and_payment_status(client, staff, login, make_student, make_class):
    an = make_student("An", phone_number="0909000111")
    make_student("Binh")
    enroll_student(an, make_class())
    db.session.add(Exam(student_id=an.id, score=55))
    db.session.commit()
    login(staff)

    results = client.get('/api/students/search?q=0909').json['students']
    assert len(results) == 1
    assert results[0]['examination_status'] == 'examined'
    assert results[0]['payment_status'] == 'pending'
    assert results[0]['pending_payments'] == 1
    assert len(results[0]['enrollments']) == 1

    binh = client.get('/api/students/search?q=binh').json['students'][0]
    assert binh['examination_status'] == 'not_examined'
    assert binh['payment_status'] == 'paid'

    assert client.get('/api/students/search').json['students'] == []


def test_teacher_sees_only_their_students(client, teacher, login, make_student, make_class):
    mine = make_student("An")
    other = make_student("Binh")
    enroll_student(mine, make_class(teacher=teacher))
    db.session.commit()
    login(teacher)

    listed = client.get('/api/students').json['students']
    assert [s['id'] for s in listed] == [mine.id]
    assert client.get(f'/api/students/{mine.id}').status_code == 200
    assert client.get(f'/api/students/{other.id}').status_code == 403
    assert client.get('/api/students/search?q=a').status_code == 403


def test_student_reads_and_edits_only_self(client, student, login, make_student):
    other = make_student("Binh")
    login(student)

    assert client.get(f'/api/students/{student.id}').status_code == 200
    assert client.get(f'/api/students/{other.id}').status_code == 403

    resp = client.put(f'/api/students/{student.id}', json={"school": "Chu Van An", "name": "  "})
    assert resp.status_code == 200
    assert resp.json['student']['school'] == "Chu Van An"
    assert resp.json['student']['name'] == "Lan"

    assert client.put(f'/api/students/{other.id}', json={"school": "X"}).status_code == 403


def test_student_exam_history(client, staff, student, login):
    db.session.add(Exam(student_id=student.id, score=40, level_estimate='A2'))
    db.session.commit()
    login(staff)

    exams = client.get(f'/api/students/{student.id}/exams').json['exams']
    assert [e['level_estimate'] for e in exams] == ['A2']
    assert client.get('/api/students/999/exams').status_code == 404
