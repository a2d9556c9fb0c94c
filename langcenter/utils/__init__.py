"""
Utility modules for the language center application.

This package contains reusable helpers, constants, and custom types:
- encryption: PIIEncryptedType for secure PII field storage
- helpers: date formatting and request-body parsing
- constants: roles, default level thresholds, payment labels
"""

from langcenter.utils.encryption import PIIEncryptedType
from langcenter.utils.helpers import format_utc_iso, format_local

__all__ = [
    'PIIEncryptedType',
    'format_utc_iso',
    'format_local',
]
