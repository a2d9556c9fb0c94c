"""
Application-wide constants for the language center.
"""

ROLE_STUDENT = 'student'
ROLE_TEACHER = 'teacher'
ROLE_STAFF = 'staff'
ROLE_MANAGER = 'manager'
ROLE_CASHIER = 'cashier'

ALL_ROLES = (ROLE_STUDENT, ROLE_TEACHER, ROLE_STAFF, ROLE_MANAGER, ROLE_CASHIER)

# Roles allowed to run the front office (students, classes, enrollment)
OFFICE_ROLES = (ROLE_STAFF, ROLE_MANAGER)

# Roles allowed to see money
LEDGER_ROLES = (ROLE_STAFF, ROLE_MANAGER, ROLE_CASHIER)

# Payment method label for auto-created ledger entries
UNPAID_METHOD = 'Unpaid'

QUESTION_TYPES = ('mcq', 'fill_blank', 'constructed_response', 'mapping')

# Seed bands used by `flask seed-level-thresholds`
DEFAULT_LEVEL_THRESHOLDS = [
    {"level": "A1", "min_score": 0, "max_score": 30},
    {"level": "A2", "min_score": 31, "max_score": 50},
    {"level": "B1", "min_score": 51, "max_score": 70},
    {"level": "B2", "min_score": 71, "max_score": 85},
    {"level": "C1", "min_score": 86, "max_score": 100},
]

# Range used by the session-count backfill
BACKFILL_MIN_SESSIONS = 12
BACKFILL_MAX_SESSIONS = 24
