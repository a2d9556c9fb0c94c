from langcenter import db
from langcenter.models import Staff, Teacher


def test_manager_creates_and_lists_accounts(client, manager, login):
    login(manager)

    resp = client.post('/api/accounts/teacher', json={
        "name": "Teacher Hoa", "email": " Hoa@Center.test ", "password": "pw12345",
    })
    assert resp.status_code == 201
    assert resp.json['account']['email'] == 'hoa@center.test'
    assert resp.json['account']['role'] == 'teacher'
    assert Teacher.query.one().check_password('pw12345')

    listed = client.get('/api/accounts/teacher').json['accounts']
    assert [a['name'] for a in listed] == ["Teacher Hoa"]


def test_duplicate_email_conflicts(client, manager, staff, login):
    login(manager)
    resp = client.post('/api/accounts/staff', json={
        "name": "Copy", "email": "staff1@center.test", "password": "pw",
    })
    assert resp.status_code == 409
    assert Staff.query.count() == 1


def test_password_must_be_a_string(client, manager, login):
    login(manager)
    resp = client.post('/api/accounts/staff', json={
        "name": "Thu", "email": "thu@center.test", "password": 123456,
    })
    assert resp.status_code == 400
    assert Staff.query.count() == 0


def test_unknown_account_kind(client, manager, login):
    login(manager)
    assert client.get('/api/accounts/janitor').status_code == 404


def test_update_and_delete_account(client, manager, cashier, login):
    login(manager)

    resp = client.put(f'/api/accounts/cashier/{cashier.id}', json={"phone_number": "0901 234 567"})
    assert resp.status_code == 200
    assert resp.json['account']['phone_number'] == "0901 234 567"

    assert client.delete(f'/api/accounts/cashier/{cashier.id}').status_code == 200
    assert client.delete(f'/api/accounts/cashier/{cashier.id}').status_code == 404


def test_manager_cannot_delete_self(client, manager, login):
    login(manager)
    resp = client.delete(f'/api/accounts/manager/{manager.id}')
    assert resp.status_code == 400


def test_only_managers_manage_accounts(client, staff, login):
    login(staff)
    assert client.get('/api/accounts/teacher').status_code == 403
    assert client.post('/api/accounts/teacher', json={
        "name": "X", "email": "x@center.test", "password": "pw",
    }).status_code == 403


def test_own_profile(client, teacher, login, make_account):
    make_account(Teacher, "Teacher Hoa", "hoa@center.test")
    login(teacher)

    me = client.get('/api/accounts/me')
    assert me.status_code == 200
    assert me.json['role'] == 'teacher'

    resp = client.put('/api/accounts/me', json={"name": "Minh Nguyen", "password": "newpass1"})
    assert resp.status_code == 200
    assert resp.json['account']['name'] == "Minh Nguyen"
    assert db.session.get(Teacher, teacher.id).check_password('newpass1')

    assert client.put('/api/accounts/me', json={"email": "hoa@center.test"}).status_code == 409


def test_student_profile_is_read_only_here(client, student, login):
    login(student)
    assert client.get('/api/accounts/me').json['account']['email'] == 'lan@example.com'
    assert client.put('/api/accounts/me', json={"name": "Other"}).status_code == 403
