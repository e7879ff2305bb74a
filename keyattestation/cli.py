"""Decode the key attestation record of a certificate chain and print it as JSON."""
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, NoReturn, Optional, Sequence

from cryptography import x509
from cryptography.hazmat.backends import default_backend

from . import config
from .base import AttestationError
from .record import AttestationRecord

logger = logging.getLogger("keyattestation")


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else config.log_level(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def load_certificates(path: Path) -> List[x509.Certificate]:
    """Load every certificate from a PEM bundle or a single DER file."""

    data = path.read_bytes()
    if b"-----BEGIN CERTIFICATE-----" in data:
        return x509.load_pem_x509_certificates(data)
    return [x509.load_der_x509_certificate(data, default_backend())]


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="keyattestation",
        description=__doc__,
    )
    parser.add_argument(
        "certificates",
        nargs="+",
        type=Path,
        help="PEM or DER certificate files, leaf first and root last.",
    )
    parser.add_argument(
        "--no-order-check",
        action="store_true",
        help="Do not verify that the chain is ordered leaf first, root last.",
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    _configure_logging(args.verbose)

    chain: List[x509.Certificate] = []
    for path in args.certificates:
        try:
            chain.extend(load_certificates(path))
        except (OSError, ValueError) as exc:
            logger.error("Unable to load certificates from %s: %s", path, exc)
            return 2

    try:
        record = AttestationRecord.from_certificate_chain(
            chain, check_order=False if args.no_order_check else None
        )
    except AttestationError as exc:
        logger.error("Unable to decode key attestation record: %s", exc)
        return 1

    print(json.dumps(record.to_dict(), indent=2))
    return 0


def run() -> NoReturn:
    sys.exit(main())
