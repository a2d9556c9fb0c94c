"""
Exception hierarchy for workflow failures.

Domain modules raise these; route handlers translate them into
``{"error": message}`` JSON responses with the attached status code.
"""


class CenterError(Exception):
    """Base class for errors that map to a client-facing HTTP status."""
    status_code = 400

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(CenterError):
    status_code = 400


class NotFoundError(CenterError):
    status_code = 404


class AccessDenied(CenterError):
    status_code = 403


class Conflict(CenterError):
    status_code = 409


class CapacityExceeded(CenterError):
    """Class already holds max_students enrollments."""
    status_code = 400


class DuplicateEnrollment(CenterError):
    """Student is already linked to the class."""
    status_code = 400


class ClassNotEmpty(CenterError):
    """Class cannot be deleted while students are enrolled."""
    status_code = 400


class AssignmentClosed(CenterError):
    """Test assignment already completed or not yet submitted."""
    status_code = 400
