"""Error taxonomy for SafetyNet attestation verification.

Every failure is a fatal verification rejection; nothing is retried.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Optional, Union


class AttestationError(Exception):
    """Base exception for attestation verification failures."""


class DecodeError(AttestationError):
    """Malformed envelope, disallowed algorithm or bad envelope signature."""


class SignatureError(AttestationError):
    """The embedded certificate chain does not lead to a trusted root."""

    def __init__(self, reason: str, subject: Optional[str] = None):
        message = f"Certificate verification failed: {reason}."
        if subject:
            message = f"{message} Certificate subject: {subject}."
        super().__init__(message)
        self.reason = reason
        self.subject = subject


class CertificateSubjectError(AttestationError):
    """The signing certificate was not issued to the expected subject."""


class NonceMismatchError(AttestationError):
    """The statement nonce differs from the nonce supplied by the caller."""


class TimestampError(AttestationError):
    """The statement timestamp falls outside the accepted leeway."""

    def __init__(self, leeway: Union[float, timedelta]):
        if isinstance(leeway, timedelta):
            leeway = leeway.total_seconds()
        super().__init__(f"not within {leeway:g}s leeway")
        self.leeway = leeway


class NotVerifiedError(AttestationError):
    """A claim was read from a statement that has not been verified."""

    def __init__(self, message: str = "statement has not been verified"):
        super().__init__(message)
