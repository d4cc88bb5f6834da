"""
Library Mirror - Error Types
Failure taxonomy shared by the catalog sync and the content archiver
"""

from enum import Enum
from typing import Optional


class FailureKind(Enum):
    """
    Categories of run failures.

    The kind decides how a failure travels: structural and assertion
    failures on required data abort the run, network failures abort only
    when they block a required navigation, and auth failures abort when
    nobody is around to solve them.
    """
    STRUCTURAL_MISMATCH = "structural_mismatch"  # Required element/attribute missing
    TRANSIENT_NETWORK = "transient_network"      # Fetch, navigation or poll failed
    AUTH_REQUIRED = "auth_required"              # Not logged in / human verification
    HARD_ASSERTION = "hard_assertion"            # Any other broken invariant


class ArchiverError(Exception):
    """
    Base class for all failures raised by Library Mirror.

    Attributes:
        kind: Failure category
        message: Human-readable description
        context: Optional extra detail (URL, selector, book id)
    """
    kind: FailureKind = FailureKind.HARD_ASSERTION

    def __init__(self, message: str, context: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self) -> str:
        if self.context:
            return f"{self.message} ({self.context})"
        return self.message


class StructuralMismatchError(ArchiverError):
    """A required page element or attribute is absent."""
    kind = FailureKind.STRUCTURAL_MISMATCH


class TransientNetworkError(ArchiverError):
    """A navigation, asset fetch or bounded poll failed."""
    kind = FailureKind.TRANSIENT_NETWORK


class AuthRequiredError(ArchiverError):
    """The session is not authenticated or a verification challenge blocks it."""
    kind = FailureKind.AUTH_REQUIRED


class HardAssertionError(ArchiverError):
    """A required invariant was violated."""
    kind = FailureKind.HARD_ASSERTION
