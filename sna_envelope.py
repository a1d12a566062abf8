#!/usr/bin/env python3
"""Compact signed envelope (JWS) handling for SafetyNet attestation statements.

An envelope is ``base64url(header).base64url(payload).base64url(signature)``.
The header names the signature algorithm and carries the signing certificate
chain as an ``x5c`` array of standard-base64 DER certificates, leaf first.
"""

from __future__ import annotations

import base64
import binascii
import functools
import json
import pathlib
from typing import Any, Dict, List, Mapping, NamedTuple, Optional, Sequence

import jwt
from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from jsonschema import Draft202012Validator

from sna_errors import DecodeError

# =============================================================================
# Constants
# =============================================================================

# Only asymmetric algorithms are accepted; "none" and HMAC variants are
# rejected before any key material is touched.
ACCEPTED_ALGORITHMS = ("ES256", "RS256")

CLAIMS_SCHEMA = "attestation-claims.schema.json"


class EnvelopeHeader(NamedTuple):
    algorithm: str
    certificates: List[x509.Certificate]


# =============================================================================
# Key / algorithm matching
# =============================================================================


def _key_matches(key: object, algorithm: str) -> bool:
    if algorithm == "ES256":
        return isinstance(key, (ec.EllipticCurvePublicKey, ec.EllipticCurvePrivateKey))
    if algorithm == "RS256":
        return isinstance(key, (rsa.RSAPublicKey, rsa.RSAPrivateKey))
    return False


# =============================================================================
# Decoding
# =============================================================================


def _decode_certificate(entry: Any, index: int) -> x509.Certificate:
    if not isinstance(entry, str):
        raise DecodeError(f"x5c[{index}] is not a base64 string")
    try:
        der = base64.b64decode(entry, validate=True)
        return x509.load_der_x509_certificate(der)
    except (binascii.Error, ValueError) as exc:
        raise DecodeError(f"x5c[{index}] is not a valid DER certificate: {exc}") from exc


def decode_header(envelope: str) -> EnvelopeHeader:
    """Read the untrusted header: accepted algorithm and candidate chain."""
    try:
        header = jwt.get_unverified_header(envelope)
    except jwt.PyJWTError as exc:
        raise DecodeError(f"Invalid envelope header: {exc}") from exc

    algorithm = header.get("alg")
    if algorithm not in ACCEPTED_ALGORITHMS:
        raise DecodeError(
            f"Unsupported signature algorithm: {algorithm!r} "
            f"(expected one of {', '.join(ACCEPTED_ALGORITHMS)})"
        )

    entries = header.get("x5c")
    if not isinstance(entries, list) or not entries:
        raise DecodeError("Envelope header has no x5c certificate chain")

    certificates = [_decode_certificate(entry, index) for index, entry in enumerate(entries)]
    return EnvelopeHeader(algorithm, certificates)


def _format_schema_errors(errors: List[Any]) -> str:
    lines = []
    for err in errors[:5]:
        path = err.json_path or "$"
        lines.append(f"{path}: {err.message}")
    if len(errors) > 5:
        lines.append(f"... {len(errors) - 5} more")
    return "; ".join(lines)


@functools.lru_cache(maxsize=None)
def _claims_validator() -> Draft202012Validator:
    try:
        from importlib import resources

        data = resources.files("sna_resources").joinpath(CLAIMS_SCHEMA).read_text(encoding="utf-8")
    except (ModuleNotFoundError, FileNotFoundError):
        candidate = pathlib.Path(__file__).parent / "sna_resources" / CLAIMS_SCHEMA
        data = candidate.read_text(encoding="utf-8")
    schema = json.loads(data)
    Draft202012Validator.check_schema(schema)
    return Draft202012Validator(schema)


def validate_claims(payload: Any) -> Dict[str, Any]:
    """Check a recovered payload against the claims schema."""
    errors = sorted(_claims_validator().iter_errors(payload), key=lambda e: e.json_path)
    if errors:
        raise DecodeError(f"Invalid attestation payload: {_format_schema_errors(errors)}")
    return payload


def decode_claims(envelope: str, public_key: object, algorithm: str) -> Dict[str, Any]:
    """Verify the envelope signature with ``public_key`` and return the payload."""
    if algorithm not in ACCEPTED_ALGORITHMS:
        raise DecodeError(f"Unsupported signature algorithm: {algorithm!r}")
    if not _key_matches(public_key, algorithm):
        raise DecodeError(f"Signing certificate key cannot verify {algorithm} signatures")

    try:
        payload = jwt.decode(envelope, key=public_key, algorithms=[algorithm])
    except (jwt.PyJWTError, TypeError, ValueError) as exc:
        raise DecodeError(f"Envelope signature verification failed: {exc}") from exc

    return validate_claims(payload)


# =============================================================================
# Encoding
# =============================================================================


def encode_certificate(certificate: x509.Certificate) -> str:
    return base64.b64encode(certificate.public_bytes(serialization.Encoding.DER)).decode("ascii")


def encode_envelope(
    claims: Mapping[str, Any],
    private_key: object,
    certificate_chain: Sequence[x509.Certificate],
    algorithm: str = "ES256",
    headers: Optional[Mapping[str, Any]] = None,
) -> str:
    """Sign ``claims`` into a compact envelope carrying ``certificate_chain``."""
    if algorithm not in ACCEPTED_ALGORITHMS:
        raise ValueError(f"Unsupported signature algorithm: {algorithm}")
    if not _key_matches(private_key, algorithm):
        raise ValueError("Private key type does not match requested signature algorithm")
    if not certificate_chain:
        raise ValueError("certificate_chain must contain the signing certificate")

    extra = dict(headers or {})
    extra["x5c"] = [encode_certificate(cert) for cert in certificate_chain]
    return jwt.encode(dict(claims), private_key, algorithm=algorithm, headers=extra)
