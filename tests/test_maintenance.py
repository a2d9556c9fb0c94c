import random

from langcenter import db
from langcenter.cli_commands import (
    seed_level_thresholds_command, backfill_class_sessions_command, create_account_command,
    generate_payments_command,
)
from langcenter.enrollment import enroll_student
from langcenter.maintenance import backfill_class_sessions
from langcenter.models import LevelThreshold, Payment, SchoolClass, Manager, Staff


def test_backfill_sets_counts_in_range(client, make_class):
    for name in ("A", "B", "C"):
        make_class(name=name, num_sessions=99)

    total, updated = backfill_class_sessions(rng=random.Random(7))
    db.session.commit()

    assert (total, updated) == (3, 3)
    assert all(12 <= c.num_sessions <= 24 for c in SchoolClass.query.all())


# -------------------- ENDPOINT --------------------

def test_backfill_endpoint_requires_token(client, make_class):
    make_class(num_sessions=99)

    assert client.post('/api/maintenance/backfill-class-sessions').status_code == 401
    resp = client.post('/api/maintenance/backfill-class-sessions', headers={"X-Admin-Token": "wrong"})
    assert resp.status_code == 401
    assert resp.json == {"error": "Unauthorized"}
    assert SchoolClass.query.one().num_sessions == 99


def test_backfill_endpoint_with_token(client, make_class):
    make_class(name="A", num_sessions=99)
    make_class(name="B", num_sessions=99)

    resp = client.post('/api/maintenance/backfill-class-sessions',
                       headers={"X-Admin-Token": "test-admin-token"})
    assert resp.status_code == 200
    assert resp.json['total'] == 2
    assert resp.json['updated'] == 2

    db.session.expire_all()
    assert all(12 <= c.num_sessions <= 24 for c in SchoolClass.query.all())


def test_backfill_endpoint_disabled_without_configured_token(client, app):
    app.config['ADMIN_TOKEN'] = None
    resp = client.post('/api/maintenance/backfill-class-sessions', headers={"X-Admin-Token": ""})
    assert resp.status_code == 401


# -------------------- CLI --------------------

def test_seed_command(client, app):
    runner = app.test_cli_runner()

    result = runner.invoke(seed_level_thresholds_command)
    assert result.exit_code == 0
    assert "Seeded 5 level thresholds" in result.output

    result = runner.invoke(seed_level_thresholds_command)
    assert "already exist" in result.output
    assert LevelThreshold.query.count() == 5

    result = runner.invoke(seed_level_thresholds_command, ['--replace'])
    assert "Seeded 5" in result.output
    assert LevelThreshold.query.count() == 5


def test_backfill_command(client, app, make_class):
    make_class(num_sessions=99)
    result = app.test_cli_runner().invoke(backfill_class_sessions_command)
    assert result.exit_code == 0
    assert "Updated 1 of 1 classes" in result.output


def test_generate_payments_command(client, app, staff, make_student, make_class):
    school_class = make_class(payment_amount=None)
    for name in ("An", "Binh"):
        enroll_student(make_student(name), school_class)
    school_class.payment_amount = 2500000.0
    db.session.commit()
    runner = app.test_cli_runner()

    result = runner.invoke(generate_payments_command)
    assert result.exit_code == 0
    assert "Created 2 payment records, skipped 0 existing" in result.output
    assert Payment.query.filter_by(have_paid=False, staff_id=staff.id).count() == 2

    result = runner.invoke(generate_payments_command, ['--class-id', str(school_class.id)])
    assert "Created 0 payment records, skipped 2 existing" in result.output

    result = runner.invoke(generate_payments_command, ['--class-id', '9999'])
    assert result.exit_code != 0


def test_create_account_command(client, app):
    runner = app.test_cli_runner()
    args = ['--role', 'staff', '--name', 'Thu', '--email', 'Thu@Center.test', '--password', 'pw12345']

    result = runner.invoke(create_account_command, args)
    assert result.exit_code == 0
    staff = Staff.query.filter_by(email='thu@center.test').one()
    assert staff.check_password('pw12345')

    result = runner.invoke(create_account_command, args)
    assert result.exit_code != 0
    assert Staff.query.count() == 1


def test_create_account_defaults_to_manager(client, app):
    result = app.test_cli_runner().invoke(
        create_account_command, ['--name', 'Boss', '--email', 'boss@center.test'],
        input='pw12345\npw12345\n',
    )
    assert result.exit_code == 0
    assert Manager.query.filter_by(email='boss@center.test').count() == 1
