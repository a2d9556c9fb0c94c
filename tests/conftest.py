import os
import sys
from datetime import datetime, timezone

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Override env vars for testing
os.environ["SECRET_KEY"] = "test-secret"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["FLASK_ENV"] = "testing"
os.environ["ADMIN_TOKEN"] = "test-admin-token"
os.environ["RATELIMIT_ENABLED"] = "false"
os.environ.setdefault("RATELIMIT_STORAGE_URI", "memory://")

# Use a valid Fernet key (32 url-safe base64-encoded bytes)
os.environ.setdefault("ENCRYPTION_KEY", "jhe53bcYZI4_MZS4Kb8hu8-xnQHHvwqSX8LN4sDtzbw=")


sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

import pytest
from langcenter import app as flask_app, db
from langcenter.models import Student, Teacher, Staff, Manager, Cashier, SchoolClass


@pytest.fixture
def app():
    """Provide the Flask app instance for tests."""
    flask_app.config.update(
        TESTING=True,
        WTF_CSRF_ENABLED=False,
        SQLALCHEMY_DATABASE_URI="sqlite:///:memory:",
        ENV="testing",
        SESSION_COOKIE_SECURE=False,
        ADMIN_TOKEN="test-admin-token",
        STAFF_ASSIGNMENT_STRATEGY="first",
        SESSION_TIMEOUT_MINUTES=60,
    )
    yield flask_app


@pytest.fixture
def client(app):
    ctx = app.app_context()
    ctx.push()
    db.create_all()
    client = flask_app.test_client()
    yield client
    db.session.remove()
    db.drop_all()
    ctx.pop()


# SQLite pragma event listener for foreign key constraints
# Registered at module level and persists across all tests
from sqlalchemy import event
from sqlalchemy.engine import Engine

def _enable_sqlite_foreign_keys(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite connections."""
    if 'sqlite' in str(type(dbapi_conn)):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

event.listen(Engine, "connect", _enable_sqlite_foreign_keys)


# -------------------- FACTORIES --------------------

def _create_account(model, name, email, password="secret123"):
    account = model(name=name, email=email)
    account.set_password(password)
    db.session.add(account)
    db.session.commit()
    return account


def _create_student(name="Lan", email=None, **kwargs):
    student = Student(name=name, email=email or f"{name.lower()}@example.com", **kwargs)
    student.set_password("secret123")
    db.session.add(student)
    db.session.commit()
    return student


@pytest.fixture
def login(client):
    """Write the principal for an account straight into the session."""
    def _login(account):
        with client.session_transaction() as sess:
            sess['user_id'] = account.id
            sess['email'] = account.email
            sess['role'] = account.role
            sess['last_activity'] = datetime.now(timezone.utc).isoformat()
    return _login


@pytest.fixture
def make_account(client):
    return _create_account


@pytest.fixture
def make_student(client):
    return _create_student


@pytest.fixture
def make_class(client):
    def _create_class(name="IELTS 6.5", level="B2", max_students=10, payment_amount=3000000.0,
                      num_sessions=24, teacher=None):
        school_class = SchoolClass(
            name=name,
            level=level,
            max_students=max_students,
            payment_amount=payment_amount,
            num_sessions=num_sessions,
            teacher_id=teacher.id if teacher else None,
        )
        db.session.add(school_class)
        db.session.commit()
        return school_class
    return _create_class


@pytest.fixture
def staff(client):
    return _create_account(Staff, "Staff One", "staff1@center.test")


@pytest.fixture
def manager(client):
    return _create_account(Manager, "Manager", "manager@center.test")


@pytest.fixture
def cashier(client):
    return _create_account(Cashier, "Cashier", "cashier@center.test")


@pytest.fixture
def teacher(client):
    return _create_account(Teacher, "Teacher Minh", "minh@center.test")


@pytest.fixture
def student(client):
    return _create_student("Lan")
