from __future__ import annotations

import datetime
import pathlib
import sys
from typing import List, Optional, Sequence

import pytest

PROJECT_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from asn1crypto import core as asn1_core
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from keyattestation import KEY_DESCRIPTION_OID

_NOT_BEFORE = datetime.datetime(2020, 1, 1, tzinfo=datetime.timezone.utc)
_NOT_AFTER = datetime.datetime(2040, 1, 1, tzinfo=datetime.timezone.utc)


def key_description(
    *,
    attestation_version: int = 3,
    attestation_security_level: int = 1,
    keymaster_version: int = 4,
    keymaster_security_level: int = 1,
    challenge: bytes = b"challenge",
    unique_id: bytes = b"",
    software_enforced: bytes = b"\x30\x00",
    tee_enforced: bytes = b"\x30\x00",
    extra: Sequence[bytes] = (),
) -> bytes:
    """Build a KeyDescription SEQUENCE by hand, without the package encoder."""

    items = [
        asn1_core.Integer(attestation_version).dump(),
        b"\x0a\x01" + bytes([attestation_security_level]),
        asn1_core.Integer(keymaster_version).dump(),
        b"\x0a\x01" + bytes([keymaster_security_level]),
        asn1_core.OctetString(challenge).dump(),
        asn1_core.OctetString(unique_id).dump(),
        software_enforced,
        tee_enforced,
    ]
    items.extend(extra)
    body = b"".join(items)
    return b"\x30" + _der_length(len(body)) + body


def _der_length(length: int) -> bytes:
    if length < 0x80:
        return bytes([length])
    encoded = length.to_bytes((length.bit_length() + 7) // 8, "big")
    return bytes([0x80 | len(encoded)]) + encoded


def wrap_octet_string(data: bytes) -> bytes:
    return asn1_core.OctetString(data).dump()


def _name(common_name: str) -> x509.Name:
    return x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])


def build_chain(extensions: Sequence[Optional[bytes]]) -> List[x509.Certificate]:
    """Create a leaf first chain, one certificate per entry in ``extensions``.

    Each entry is the raw extnValue for the key attestation extension, or
    ``None`` for a certificate without it. The last certificate is self-signed.
    """

    count = len(extensions)
    keys = [ec.generate_private_key(ec.SECP256R1()) for _ in range(count)]
    names = [_name(f"Certificate {index}") for index in range(count)]
    chain = []
    for index, value in enumerate(extensions):
        issuer_index = min(index + 1, count - 1)
        builder = (
            x509.CertificateBuilder()
            .subject_name(names[index])
            .issuer_name(names[issuer_index])
            .public_key(keys[index].public_key())
            .serial_number(index + 1)
            .not_valid_before(_NOT_BEFORE)
            .not_valid_after(_NOT_AFTER)
        )
        if value is not None:
            builder = builder.add_extension(
                x509.UnrecognizedExtension(
                    x509.ObjectIdentifier(KEY_DESCRIPTION_OID), value
                ),
                critical=False,
            )
        chain.append(builder.sign(keys[issuer_index], hashes.SHA256()))
    return chain


@pytest.fixture
def chain_factory():
    return build_chain


@pytest.fixture(autouse=True)
def _clear_settings(monkeypatch):
    monkeypatch.delenv("KEY_ATTESTATION_CHECK_CHAIN_ORDER", raising=False)
    monkeypatch.delenv("KEY_ATTESTATION_LOG_LEVEL", raising=False)
