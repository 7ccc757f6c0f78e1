"""
Access control error taxonomy.

The evaluator converts every one of these into a denial before returning;
only ``PermissionEvaluator.require`` lets ``PolicyViolation`` escape, for
callers that want the HTTP layer to answer 403.
"""

from typing import List, Optional


class AccessControlError(Exception):
    """Base class for access control errors."""


class PolicyConfigurationError(AccessControlError):
    """A policy document is missing or malformed."""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = errors or []


class LookupFailure(AccessControlError):
    """A user, attribute or record lookup could not be completed."""


class PolicyViolation(AccessControlError):
    """An access request was denied by one of the evaluation stages."""

    status_code = 403

    def __init__(self, reason: str, check: Optional[str] = None):
        super().__init__(reason)
        self.reason = reason
        self.check = check
