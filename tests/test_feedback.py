from langcenter.models import Feedback


def _report(**overrides):
    body = {
        "type": "bug",
        "title": "Timetable does not load",
        "description": "The class list spins forever on my phone",
    }
    body.update(overrides)
    return body


def test_any_role_can_send_feedback(client, student, teacher, cashier, login):
    for account in (student, teacher, cashier):
        login(account)
        resp = client.post('/api/feedback', json=_report())
        assert resp.status_code == 201

    stored = Feedback.query.order_by(Feedback.id).all()
    assert [(f.user_role, f.user_id) for f in stored] == [
        ('student', student.id), ('teacher', teacher.id), ('cashier', cashier.id),
    ]


def test_feedback_requires_login(client):
    assert client.post('/api/feedback', json=_report()).status_code == 401
    assert Feedback.query.count() == 0


def test_feedback_validation(client, student, login):
    login(student)

    resp = client.post('/api/feedback', json=_report(title=""))
    assert resp.status_code == 400
    assert 'title' in resp.json['error']
    assert client.post('/api/feedback', json=_report(description=42)).status_code == 400
    assert client.post('/api/feedback', json=_report(screenshot=["x"])).status_code == 400
    assert Feedback.query.count() == 0

    resp = client.post('/api/feedback', json=_report(type=" idea ", screenshot="data:image/png;base64,AAAA"))
    assert resp.status_code == 201
    assert resp.json['feedback']['type'] == 'idea'
    assert resp.json['feedback']['screenshot'].startswith('data:image/png')


def test_office_lists_newest_first_and_deletes(client, staff, student, login):
    login(student)
    first = client.post('/api/feedback', json=_report(title="First")).json['feedback']
    second = client.post('/api/feedback', json=_report(title="Second")).json['feedback']

    assert client.get('/api/feedback').status_code == 403
    assert client.delete(f"/api/feedback/{first['id']}").status_code == 403

    login(staff)
    listed = client.get('/api/feedback').json['feedback']
    assert [f['id'] for f in listed] == [second['id'], first['id']]

    assert client.delete(f"/api/feedback/{first['id']}").status_code == 200
    assert client.delete(f"/api/feedback/{first['id']}").status_code == 404
    assert [f.id for f in Feedback.query.all()] == [second['id']]
