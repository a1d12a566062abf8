#!/usr/bin/env python3
"""Certificate and key loading for SafetyNet attestation verification.

The built-in trusted root bundle ships in the ``sna_resources`` data package
and is loaded once at import time into ``DEFAULT_ROOT_CERTIFICATES``.
"""

from __future__ import annotations

import pathlib
from typing import Iterable, List, Optional, Tuple

from cryptography import x509
from cryptography.hazmat.primitives import serialization

RESOURCE_PACKAGE = "sna_resources"
CERTIFICATE_DIR = "certificates"
CERTIFICATE_SUFFIXES = {".pem", ".crt", ".cer", ".der"}


def parse_certificates(data: bytes) -> List[x509.Certificate]:
    """Parse one or more PEM certificates, or a single DER certificate."""
    if b"-----BEGIN CERTIFICATE-----" in data:
        return x509.load_pem_x509_certificates(data)
    return [x509.load_der_x509_certificate(data)]


def load_certificates(paths: Iterable[pathlib.Path]) -> List[x509.Certificate]:
    certificates: List[x509.Certificate] = []
    for path in paths:
        try:
            certificates.extend(parse_certificates(path.read_bytes()))
        except ValueError as exc:
            raise ValueError(f"Invalid certificate file {path}: {exc}") from exc
    return certificates


def load_private_key(path: pathlib.Path, passphrase: Optional[str] = None) -> object:
    password = passphrase.encode("utf-8") if passphrase else None
    return serialization.load_pem_private_key(path.read_bytes(), password=password)


def _bundled_certificate_files() -> List[Tuple[str, bytes]]:
    try:
        from importlib import resources

        directory = resources.files(RESOURCE_PACKAGE).joinpath(CERTIFICATE_DIR)
        entries = [(entry.name, entry.read_bytes()) for entry in directory.iterdir()]
    except (ModuleNotFoundError, FileNotFoundError):
        directory = pathlib.Path(__file__).parent / RESOURCE_PACKAGE / CERTIFICATE_DIR
        if not directory.is_dir():
            return []
        entries = [(entry.name, entry.read_bytes()) for entry in directory.iterdir()]

    return sorted(
        (name, data)
        for name, data in entries
        if pathlib.PurePath(name).suffix.lower() in CERTIFICATE_SUFFIXES
    )


def load_default_roots() -> Tuple[x509.Certificate, ...]:
    """Load the bundled root certificates in file-name order."""
    roots: List[x509.Certificate] = []
    for _name, data in _bundled_certificate_files():
        roots.extend(parse_certificates(data))
    return tuple(roots)


DEFAULT_ROOT_CERTIFICATES: Tuple[x509.Certificate, ...] = load_default_roots()
