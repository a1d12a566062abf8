#!/usr/bin/env python3
"""``sna``: one entry point for checking and minting attestation statements.

    sna verify response.jws --nonce R2Rra24fVm5xa2Mg
    sna issue claims.json --private-key leaf-key.pem --certificate leaf.pem
"""

from __future__ import annotations

import importlib
import sys
from typing import Dict, List, NamedTuple, Optional


class Command(NamedTuple):
    module: str
    summary: str
    example: str


COMMANDS: Dict[str, Command] = {
    "verify": Command(
        "sna_verify",
        "Check a JWS statement's chain, signature, nonce and timestamp",
        "sna verify response.jws --nonce <nonce> [--trusted-root root.pem] [--json]",
    ),
    "issue": Command(
        "sna_issue",
        "Sign claims into a JWS statement carrying an x5c chain",
        "sna issue claims.json --private-key key.pem --certificate leaf.pem [--stamp]",
    ),
}

_BANNER = r"""
   _____ _   _____
  / ___// | / /   |
  \__ \/  |/ / /| |
 ___/ / /|  / ___ |
/____/_/ |_/_/  |_|  SafetyNet Attestation
""".strip("\n")


def usage() -> str:
    lines = [_BANNER, "", "Commands:"]
    for name, command in COMMANDS.items():
        lines.append(f"  {name:<8} {command.summary}")
        lines.append(f"  {'':<8}   {command.example}")
    lines.append("")
    lines.append("Exit status: 0 verified / issued, 1 statement rejected, 2 bad input.")
    return "\n".join(lines)


def run(name: str, argv: List[str]) -> int:
    """Run a subcommand's ``main`` and turn argparse exits into a status code."""
    tool = importlib.import_module(COMMANDS[name].module)
    try:
        return int(tool.main(argv))
    except SystemExit as exc:
        # --help exits with None, a rejected flag with 2
        if exc.code is None:
            return 0
        return exc.code if isinstance(exc.code, int) else 2


def main(argv: Optional[List[str]] = None) -> int:
    args = sys.argv[1:] if argv is None else list(argv)

    if not args or args[0] in ("-h", "--help"):
        print(usage())
        return 0

    name = args.pop(0)
    if name not in COMMANDS:
        print(f"sna: no such command {name!r} (choose from {', '.join(COMMANDS)})", file=sys.stderr)
        return 2

    return run(name, args)


if __name__ == "__main__":
    sys.exit(main())
