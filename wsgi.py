"""
WSGI entry point for the language center admin.

For gunicorn: wsgi:app
For the Flask CLI: FLASK_APP=wsgi flask db upgrade
"""

from langcenter import app
from langcenter.extensions import db, migrate, csrf  # noqa: F401
from langcenter.models import (  # noqa: F401
    Student,
    Teacher,
    Staff,
    Manager,
    Cashier,
    SchoolClass,
    Enrollment,
    Payment,
    Exam,
    LevelThreshold,
)


@app.shell_context_processor
def make_shell_context():
    """Expose the common models in `flask shell`."""
    return {
        'db': db,
        'Student': Student,
        'Teacher': Teacher,
        'Staff': Staff,
        'Manager': Manager,
        'Cashier': Cashier,
        'SchoolClass': SchoolClass,
        'Enrollment': Enrollment,
        'Payment': Payment,
        'Exam': Exam,
        'LevelThreshold': LevelThreshold,
    }


if __name__ == '__main__':
    app.run()
