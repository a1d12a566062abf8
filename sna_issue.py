#!/usr/bin/env python3
"""Issue signed SafetyNet-style attestation statements.

Intended for test fixtures and for exercising relying-party integrations
against a private certificate hierarchy; real statements are issued by the
attestation service.

Usage:
    # Sign claims with an EC key; the chain file lists leaf first
    python sna_issue.py claims.json --private-key leaf-key.pem \\
        --certificate leaf.pem --certificate intermediate.pem

    # Override nonce and stamp the current time
    python sna_issue.py claims.json --private-key key.pem --certificate chain.pem \\
        --nonce R2Rra24fVm5xa2Mg --stamp --output response.jws
"""

from __future__ import annotations

import argparse
import json
import pathlib
import sys
import time
from typing import Any, Dict, List, Optional

from cryptography.hazmat.primitives.asymmetric import ec, rsa

import sna_roots
from sna_envelope import ACCEPTED_ALGORITHMS, encode_envelope


def resolve_algorithm(private_key: object, algorithm: str = "auto") -> str:
    if algorithm != "auto":
        return algorithm
    if isinstance(private_key, ec.EllipticCurvePrivateKey):
        return "ES256"
    if isinstance(private_key, rsa.RSAPrivateKey):
        return "RS256"
    raise ValueError("Private key must be an EC or RSA key")


def build_claims(
    claims: Dict[str, Any],
    nonce: Optional[str] = None,
    stamp: bool = False,
) -> Dict[str, Any]:
    claims = dict(claims)
    if nonce is not None:
        claims["nonce"] = nonce
    if stamp:
        claims["timestampMs"] = int(time.time() * 1000)
    return claims


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Issue a signed attestation statement",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "claims",
        type=pathlib.Path,
        help="JSON file with the attestation claims",
    )
    parser.add_argument(
        "--private-key",
        type=pathlib.Path,
        required=True,
        help="PEM private key of the signing certificate",
    )
    parser.add_argument(
        "--private-key-passphrase",
        type=str,
        help="Passphrase for the private key (if encrypted)",
    )
    parser.add_argument(
        "--certificate",
        action="append",
        type=pathlib.Path,
        required=True,
        help="PEM or DER certificate for the x5c chain; repeat leaf first",
    )
    parser.add_argument(
        "--algorithm",
        type=str,
        default="auto",
        choices=["auto", *ACCEPTED_ALGORITHMS],
        help="Signature algorithm (default: derived from the key type)",
    )
    parser.add_argument(
        "--nonce",
        type=str,
        help="Override the nonce claim",
    )
    parser.add_argument(
        "--stamp",
        action="store_true",
        help="Set timestampMs to the current time",
    )
    parser.add_argument(
        "--output",
        "-o",
        type=pathlib.Path,
        help="Output file (default: stdout)",
    )

    args = parser.parse_args(argv)

    try:
        claims = json.loads(args.claims.read_text(encoding="utf-8"))
        if not isinstance(claims, dict):
            raise ValueError("claims file must contain a JSON object")
        private_key = sna_roots.load_private_key(args.private_key, args.private_key_passphrase)
        chain = sna_roots.load_certificates(args.certificate)
        envelope = encode_envelope(
            build_claims(claims, nonce=args.nonce, stamp=args.stamp),
            private_key,
            chain,
            algorithm=resolve_algorithm(private_key, args.algorithm),
        )
    except (OSError, ValueError, TypeError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    if args.output:
        args.output.write_text(envelope + "\n", encoding="utf-8")
        print(f"Statement written to {args.output}", file=sys.stderr)
    else:
        print(envelope)
    return 0


if __name__ == "__main__":
    sys.exit(main())
