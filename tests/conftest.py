from __future__ import annotations

import base64
import hashlib
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

import pytest
from cryptography import x509

import sna_envelope
from tests.pki import NONCE, PACKAGE_NAME, generate_key, issue_cert, make_name


@pytest.fixture(scope="session")
def repo_root() -> Path:
    return Path(__file__).resolve().parents[1]


@pytest.fixture
def now() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


@pytest.fixture(scope="session")
def root_key() -> Any:
    return generate_key()


@pytest.fixture
def root_certificate(root_key: Any) -> x509.Certificate:
    return issue_cert(make_name(("DC", "test"), ("CN", "Fake Google Root CA")), root_key, 1, ca=True)


@pytest.fixture(scope="session")
def signing_key() -> Any:
    return generate_key()


@pytest.fixture
def signing_certificate(
    signing_key: Any, root_certificate: x509.Certificate, root_key: Any
) -> x509.Certificate:
    return issue_cert(
        make_name(("CN", "attest.android.com")),
        signing_key,
        2,
        ca=False,
        issuer=root_certificate,
        issuer_key=root_key,
    )


@pytest.fixture
def payload(now: datetime) -> Dict[str, Any]:
    return {
        "timestampMs": int((now.timestamp() - 5) * 1000),
        "nonce": NONCE,
        "apkPackageName": PACKAGE_NAME,
        "apkCertificateDigestSha256": [
            base64.b64encode(hashlib.sha256(b"test").digest()).decode("ascii")
        ],
        "ctsProfileMatch": True,
        "basicIntegrity": True,
    }


@pytest.fixture
def make_envelope(
    signing_key: Any, signing_certificate: x509.Certificate
) -> Callable[..., str]:
    def _make(
        claims: Dict[str, Any],
        key: Any = None,
        chain: Optional[Sequence[x509.Certificate]] = None,
        algorithm: str = "ES256",
    ) -> str:
        certificates: List[x509.Certificate] = list(chain or [signing_certificate])
        return sna_envelope.encode_envelope(
            claims, key or signing_key, certificates, algorithm=algorithm
        )

    return _make
