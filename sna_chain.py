#!/usr/bin/env python3
"""Resolve an embedded ``x5c`` certificate chain against trusted roots.

Chain building and validation is delegated to the OpenSSL X.509 store
context (via pyOpenSSL), so failure reasons are OpenSSL's own strings such as
``certificate has expired`` or ``unable to get local issuer certificate``.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Sequence, Tuple

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.x509.oid import NameOID
from OpenSSL import crypto

from sna_errors import SignatureError

logger = logging.getLogger(__name__)


def utc_time(check_time: Optional[datetime] = None) -> datetime:
    """Return ``check_time`` as an aware UTC datetime; naive values are UTC."""
    if check_time is None:
        return datetime.now(timezone.utc)
    if check_time.tzinfo is None:
        return check_time.replace(tzinfo=timezone.utc)
    return check_time.astimezone(timezone.utc)


# OpenSSL short names for attributes RFC 4514 has no keyword for
_SHORT_NAMES = {
    NameOID.EMAIL_ADDRESS: "emailAddress",
    NameOID.SERIAL_NUMBER: "serialNumber",
    NameOID.SURNAME: "SN",
    NameOID.GIVEN_NAME: "GN",
    NameOID.TITLE: "title",
    NameOID.ORGANIZATION_IDENTIFIER: "organizationIdentifier",
}


def format_name(name: x509.Name) -> str:
    """OpenSSL one-line rendition of a distinguished name."""
    parts = []
    for rdn in name.rdns:
        for attribute in rdn:
            key = _SHORT_NAMES.get(attribute.oid, attribute.rfc4514_attribute_name)
            value = attribute.value
            if isinstance(value, bytes):
                value = value.decode("utf-8", errors="replace")
            parts.append(f"/{key}={value}")
    return "".join(parts)


def certificate_subject(certificate: x509.Certificate) -> str:
    return format_name(certificate.subject)


def _build_store(trusted_roots: Iterable[x509.Certificate], check_time: datetime) -> crypto.X509Store:
    store = crypto.X509Store()
    seen = set()
    for root in trusted_roots:
        der = root.public_bytes(serialization.Encoding.DER)
        if der in seen:
            continue
        seen.add(der)
        store.add_cert(crypto.X509.from_cryptography(root))
    store.set_time(check_time)
    return store


def _failure_subject(error: crypto.X509StoreContextError) -> Optional[str]:
    certificate = getattr(error, "certificate", None)
    if certificate is None:
        return None
    return certificate_subject(certificate.to_cryptography()) or None


def resolve_chain(
    candidate_chain: Sequence[x509.Certificate],
    trusted_roots: Iterable[x509.Certificate],
    check_time: Optional[datetime] = None,
) -> Tuple[x509.Certificate, ...]:
    """Validate ``candidate_chain`` (leaf first) up to one of ``trusted_roots``.

    Returns the chain OpenSSL actually used, leaf first and ending in a trusted
    root. Raises SignatureError with OpenSSL's reason and the subject of the
    certificate at which validation stopped.
    """
    if not candidate_chain:
        raise ValueError("candidate_chain must contain at least the signing certificate")

    check_time = utc_time(check_time)
    store = _build_store(trusted_roots, check_time)

    leaf, *intermediates = candidate_chain
    context = crypto.X509StoreContext(
        store,
        crypto.X509.from_cryptography(leaf),
        [crypto.X509.from_cryptography(cert) for cert in intermediates],
    )
    try:
        verified: List[crypto.X509] = context.get_verified_chain()
    except crypto.X509StoreContextError as exc:
        reason = exc.errors[2] if len(exc.errors) > 2 else str(exc)
        raise SignatureError(str(reason), _failure_subject(exc)) from exc

    chain = tuple(cert.to_cryptography() for cert in verified)
    logger.debug(
        "Resolved certificate chain of depth %d for %s",
        len(chain),
        certificate_subject(chain[0]),
    )
    return chain
