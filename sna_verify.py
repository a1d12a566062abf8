#!/usr/bin/env python3
"""Verify a SafetyNet attestation statement from the command line.

Usage:
    # Verify a JWS response against the built-in Google roots
    python sna_verify.py response.jws --nonce R2Rra24fVm5xa2Mg

    # Verify against custom roots at a fixed point in time
    python sna_verify.py response.jws --nonce ... --trusted-root root.pem \\
        --time 2019-07-07T16:15:11Z

    # Read the statement from stdin and print JSON
    cat response.jws | python sna_verify.py - --nonce ... --json

Exit codes:
    0 = Verification passed
    1 = Verification failed
    2 = Error (invalid input, etc.)
"""

from __future__ import annotations

import argparse
import json
import logging
import pathlib
import sys
from datetime import datetime
from typing import Any, Dict, List, Optional

import sna_roots
from sna_chain import certificate_subject
from sna_errors import AttestationError
from sna_statement import (
    DEFAULT_TIMESTAMP_LEEWAY,
    EXPECTED_SUBJECT,
    VerifiedStatement,
    verify_statement,
)


def _read_envelope(source: str) -> str:
    if source == "-":
        return sys.stdin.read().strip()
    return pathlib.Path(source).read_text(encoding="utf-8").strip()


def _parse_time(value: str) -> datetime:
    # fromisoformat() only accepts a trailing "Z" from Python 3.11 on
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid ISO 8601 time: {value}") from exc


def statement_summary(result: VerifiedStatement) -> Dict[str, Any]:
    claims = result.claims
    return {
        "ctsProfileMatch": result.cts_profile_match,
        "basicIntegrity": result.basic_integrity,
        "apkPackageName": result.apk_package_name,
        "apkCertificateDigestSha256": result.apk_certificate_digest_sha256,
        "error": result.error,
        "advice": result.advice,
        "timestamp": claims.timestamp.isoformat(),
        "certificateChain": [certificate_subject(cert) for cert in result.certificate_chain],
    }


def print_report(result: Optional[VerifiedStatement], failure: Optional[AttestationError]) -> None:
    print("\n" + "=" * 60)
    print("SAFETYNET ATTESTATION VERIFICATION")
    print("=" * 60)

    if result is not None:
        summary = statement_summary(result)
        print("\nClaims:")
        for key in ("ctsProfileMatch", "basicIntegrity", "apkPackageName", "error", "timestamp"):
            print(f"  {key:<16} {summary[key]}")
        for digest in summary["apkCertificateDigestSha256"] or ():
            print(f"  {'certDigest':<16} {digest}")
        if summary["advice"] is not None:
            print(f"  {'advice':<16} {', '.join(summary['advice'])}")
        print("\nCertificate chain:")
        for depth, subject in enumerate(summary["certificateChain"]):
            print(f"  [{depth}] {subject}")
    if failure is not None:
        print(f"\n❌ {type(failure).__name__}: {failure}")

    print("\n" + "-" * 60)
    print("RESULT: ✅ PASSED" if failure is None else "RESULT: ❌ FAILED")
    print("-" * 60 + "\n")


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Verify a SafetyNet attestation statement",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "statement",
        help="Path to the JWS attestation response, or - for stdin",
    )
    parser.add_argument(
        "--nonce",
        required=True,
        help="Nonce the relying party sent with the attestation request",
    )
    parser.add_argument(
        "--leeway",
        type=float,
        default=DEFAULT_TIMESTAMP_LEEWAY,
        help="Accepted clock skew in seconds (default: %(default)s)",
    )
    parser.add_argument(
        "--trusted-root",
        action="append",
        type=pathlib.Path,
        help="PEM or DER root certificate to trust instead of the built-in roots",
    )
    parser.add_argument(
        "--time",
        type=_parse_time,
        help="Verify as of this ISO 8601 time instead of now",
    )
    parser.add_argument(
        "--expected-subject",
        default=EXPECTED_SUBJECT,
        help="Common name required on the signing certificate (default: %(default)s)",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Log verification steps to stderr",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Output report as JSON",
    )

    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(name)s: %(message)s")

    try:
        envelope = _read_envelope(args.statement)
        trusted_roots = (
            sna_roots.load_certificates(args.trusted_root)
            if args.trusted_root
            else sna_roots.DEFAULT_ROOT_CERTIFICATES
        )
    except (OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    result: Optional[VerifiedStatement] = None
    failure: Optional[AttestationError] = None
    try:
        result = verify_statement(
            envelope,
            args.nonce,
            timestamp_leeway=args.leeway,
            trusted_roots=trusted_roots,
            check_time=args.time,
            expected_subject=args.expected_subject,
        )
    except AttestationError as e:
        failure = e
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    if args.json:
        output: Dict[str, Any] = {"passed": failure is None}
        if result is not None:
            output["statement"] = statement_summary(result)
        if failure is not None:
            output["error"] = {"type": type(failure).__name__, "message": str(failure)}
        print(json.dumps(output, indent=2))
    else:
        print_report(result, failure)

    return 0 if failure is None else 1


if __name__ == "__main__":
    sys.exit(main())
