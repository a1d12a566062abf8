#!/usr/bin/env python3
"""Verify SafetyNet attestation statements and expose their claims.

Verification runs in a fixed order and stops at the first failure:

1. Header: accepted algorithm (ES256/RS256) and ``x5c`` chain.
2. Chain: the ``x5c`` chain must resolve to a trusted root at ``check_time``.
3. Signature: the envelope must verify with the leaf certificate's key.
4. Subject: the leaf common name must be ``attest.android.com``.
5. Nonce: constant-time equality with the caller's nonce.
6. Timestamp: within ``timestamp_leeway`` of ``check_time``, inclusive.

Usage:
    statement = Statement(jws).verify(nonce)
    if statement.cts_profile_match:
        ...
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from types import MappingProxyType
from typing import Any, Iterable, List, Mapping, Optional, Tuple, Union

from cryptography import x509
from cryptography.hazmat.primitives import constant_time
from cryptography.x509.oid import NameOID

from sna_chain import resolve_chain, utc_time
from sna_envelope import decode_claims, decode_header
from sna_errors import (
    CertificateSubjectError,
    NonceMismatchError,
    NotVerifiedError,
    TimestampError,
)
from sna_roots import DEFAULT_ROOT_CERTIFICATES

logger = logging.getLogger(__name__)

# =============================================================================
# Constants
# =============================================================================

EXPECTED_SUBJECT = "attest.android.com"
DEFAULT_TIMESTAMP_LEEWAY = 60

Leeway = Union[int, float, timedelta]


# =============================================================================
# Claims
# =============================================================================


def _split_advice(advice: Optional[str]) -> Optional[Tuple[str, ...]]:
    if advice is None:
        return None
    tokens = advice.split(",")
    while tokens and not tokens[-1]:
        tokens.pop()
    return tuple(tokens)


def _freeze(value: Any) -> Any:
    if isinstance(value, Mapping):
        return MappingProxyType({key: _freeze(item) for key, item in value.items()})
    if isinstance(value, list):
        return tuple(_freeze(item) for item in value)
    return value


@dataclass(frozen=True)
class AttestationClaims:
    nonce: str
    timestamp_ms: float
    cts_profile_match: Optional[bool] = None
    basic_integrity: Optional[bool] = None
    apk_package_name: Optional[str] = None
    apk_certificate_digest_sha256: Optional[Tuple[str, ...]] = None
    error: Optional[str] = None
    advice: Optional[Tuple[str, ...]] = None
    # read-only all the way down: objects are mappings, arrays are tuples
    payload: Mapping[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "AttestationClaims":
        advice = payload.get("advice")
        digests = payload.get("apkCertificateDigestSha256")
        return cls(
            nonce=payload["nonce"],
            timestamp_ms=payload["timestampMs"],
            cts_profile_match=payload.get("ctsProfileMatch"),
            basic_integrity=payload.get("basicIntegrity"),
            apk_package_name=payload.get("apkPackageName"),
            apk_certificate_digest_sha256=None if digests is None else tuple(digests),
            error=payload.get("error"),
            advice=_split_advice(advice),
            payload=_freeze(payload),
        )

    @property
    def timestamp(self) -> datetime:
        return datetime.fromtimestamp(self.timestamp_ms / 1000.0, tz=timezone.utc)


@dataclass(frozen=True)
class VerifiedStatement:
    """Claims whose signature, issuer, nonce and freshness have been checked."""

    claims: AttestationClaims
    certificate_chain: Tuple[x509.Certificate, ...]

    @property
    def cts_profile_match(self) -> Optional[bool]:
        return self.claims.cts_profile_match

    @property
    def basic_integrity(self) -> Optional[bool]:
        return self.claims.basic_integrity

    @property
    def apk_package_name(self) -> Optional[str]:
        return self.claims.apk_package_name

    @property
    def apk_certificate_digest_sha256(self) -> Optional[List[str]]:
        if self.claims.apk_certificate_digest_sha256 is None:
            return None
        return list(self.claims.apk_certificate_digest_sha256)

    @property
    def error(self) -> Optional[str]:
        return self.claims.error

    @property
    def advice(self) -> Optional[List[str]]:
        if self.claims.advice is None:
            return None
        return list(self.claims.advice)


# =============================================================================
# Checks
# =============================================================================


def leeway_seconds(leeway: Leeway) -> float:
    seconds = leeway.total_seconds() if isinstance(leeway, timedelta) else float(leeway)
    if seconds < 0:
        raise ValueError("timestamp_leeway must not be negative")
    return seconds


def common_name(certificate: x509.Certificate) -> Optional[str]:
    attributes = certificate.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
    if not attributes:
        return None
    value = attributes[0].value
    return value if isinstance(value, str) else value.decode("utf-8", errors="replace")


def verify_certificate_subject(certificate: x509.Certificate, expected: str) -> None:
    actual = common_name(certificate)
    if actual != expected:
        raise CertificateSubjectError(
            f"signing certificate was not issued to {expected} (common name: {actual!r})"
        )


def verify_nonce(claims: AttestationClaims, nonce: str) -> None:
    if not constant_time.bytes_eq(claims.nonce.encode("utf-8"), nonce.encode("utf-8")):
        raise NonceMismatchError("nonce does not match the attested nonce")


def verify_timestamp(claims: AttestationClaims, leeway: float, check_time: datetime) -> None:
    now = check_time.timestamp()
    try:
        response_time = claims.timestamp_ms / 1000.0
    except OverflowError as exc:
        raise TimestampError(leeway) from exc
    if not now - leeway <= response_time <= now + leeway:
        raise TimestampError(leeway)


# =============================================================================
# Verification
# =============================================================================


def verify_statement(
    envelope: str,
    nonce: str,
    *,
    timestamp_leeway: Leeway = DEFAULT_TIMESTAMP_LEEWAY,
    trusted_roots: Iterable[x509.Certificate] = DEFAULT_ROOT_CERTIFICATES,
    check_time: Optional[datetime] = None,
    expected_subject: str = EXPECTED_SUBJECT,
) -> VerifiedStatement:
    """Verify ``envelope`` and return its claims, or raise an AttestationError."""
    if not isinstance(nonce, str):
        raise TypeError("nonce must be a str")
    leeway = leeway_seconds(timestamp_leeway)
    check_time = utc_time(check_time)

    header = decode_header(envelope)
    chain = resolve_chain(header.certificates, trusted_roots, check_time)
    claims = AttestationClaims.from_payload(
        decode_claims(envelope, chain[0].public_key(), header.algorithm)
    )

    verify_certificate_subject(chain[0], expected_subject)
    verify_nonce(claims, nonce)
    verify_timestamp(claims, leeway, check_time)

    logger.debug("Verified attestation statement for %s", claims.apk_package_name)
    return VerifiedStatement(claims=claims, certificate_chain=chain)


class Statement:
    """A signed attestation statement; claims are readable only after ``verify``."""

    def __init__(self, jws_result: str):
        self._jws_result = jws_result
        self._result: Optional[VerifiedStatement] = None

    @property
    def jws_result(self) -> str:
        return self._jws_result

    @property
    def verified(self) -> bool:
        return self._result is not None

    def verify(
        self,
        nonce: str,
        timestamp_leeway: Leeway = DEFAULT_TIMESTAMP_LEEWAY,
        trusted_roots: Iterable[x509.Certificate] = DEFAULT_ROOT_CERTIFICATES,
        check_time: Optional[datetime] = None,
        expected_subject: str = EXPECTED_SUBJECT,
    ) -> "Statement":
        self._result = None
        self._result = verify_statement(
            self._jws_result,
            nonce,
            timestamp_leeway=timestamp_leeway,
            trusted_roots=trusted_roots,
            check_time=check_time,
            expected_subject=expected_subject,
        )
        return self

    @property
    def result(self) -> VerifiedStatement:
        if self._result is None:
            raise NotVerifiedError()
        return self._result

    @property
    def json(self) -> Mapping[str, Any]:
        return self.result.claims.payload

    @property
    def cts_profile_match(self) -> Optional[bool]:
        return self.result.cts_profile_match

    @property
    def basic_integrity(self) -> Optional[bool]:
        return self.result.basic_integrity

    @property
    def apk_package_name(self) -> Optional[str]:
        return self.result.apk_package_name

    @property
    def apk_certificate_digest_sha256(self) -> Optional[List[str]]:
        return self.result.apk_certificate_digest_sha256

    @property
    def error(self) -> Optional[str]:
        return self.result.error

    @property
    def advice(self) -> Optional[List[str]]:
        return self.result.advice

    @property
    def certificate_chain(self) -> List[x509.Certificate]:
        return list(self.result.certificate_chain)
