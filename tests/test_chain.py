"""Tests for locating the attestation extension in a certificate chain."""

from __future__ import annotations

import logging

import pytest
from cryptography.hazmat.primitives.serialization import Encoding

from conftest import key_description

from keyattestation import (
    AttestationRecord,
    ChainOrderError,
    ExtensionNotFound,
    MalformedRecordStructure,
    get_extension_value,
    verify_chain_order,
)


def test_root_most_extension_wins(chain_factory):
    chain = chain_factory(
        [
            key_description(challenge=b"X"),
            key_description(challenge=b"Y"),
            key_description(challenge=b"Z"),
        ]
    )

    record = AttestationRecord.from_certificate_chain(chain)

    assert record.attestation_challenge == b"Z"


def test_forged_leaf_is_ignored(chain_factory):
    forged = key_description(attestation_security_level=2, challenge=b"forged")
    genuine = key_description(attestation_security_level=0, challenge=b"genuine")
    chain = chain_factory([forged, genuine, None])

    record = AttestationRecord.from_certificate_chain(chain)

    assert record.attestation_challenge == b"genuine"


def test_leaf_extension_is_used_when_alone(chain_factory):
    chain = chain_factory([key_description(challenge=b"leaf"), None, None])

    record = AttestationRecord.from_certificate_chain(chain)

    assert record.attestation_challenge == b"leaf"


def test_der_encoded_chain_entries(chain_factory):
    chain = chain_factory([key_description(challenge=b"der"), None])

    record = AttestationRecord.from_certificate_chain(
        [cert.public_bytes(Encoding.DER) for cert in chain]
    )

    assert record.attestation_challenge == b"der"


def test_unsupported_chain_entry_type():
    with pytest.raises(TypeError):
        AttestationRecord.from_certificate_chain(["not a certificate"])


def test_missing_extension(chain_factory):
    chain = chain_factory([None, None, None])

    with pytest.raises(ExtensionNotFound):
        AttestationRecord.from_certificate_chain(chain)


def test_empty_chain():
    with pytest.raises(ExtensionNotFound):
        AttestationRecord.from_certificate_chain([])


def test_empty_extension_is_skipped(chain_factory, caplog):
    chain = chain_factory([key_description(challenge=b"leaf"), b""])

    with caplog.at_level(logging.WARNING, logger="keyattestation.record"):
        record = AttestationRecord.from_certificate_chain(chain)

    assert record.attestation_challenge == b"leaf"
    assert "empty key attestation extension on certificate 1" in caplog.text


def test_only_empty_extensions(chain_factory):
    with pytest.raises(ExtensionNotFound):
        AttestationRecord.from_certificate_chain(chain_factory([b"", b""]))


def test_garbage_extension_fails_without_fallback(chain_factory):
    # The root-most extension is authoritative even when it is broken.
    chain = chain_factory([key_description(challenge=b"leaf"), b"\x30\x03\x02\x01"])

    with pytest.raises(MalformedRecordStructure):
        AttestationRecord.from_certificate_chain(chain)


def test_reversed_chain_is_rejected(chain_factory):
    chain = chain_factory(
        [key_description(challenge=b"leaf"), None, key_description(challenge=b"root")]
    )

    with pytest.raises(ChainOrderError):
        AttestationRecord.from_certificate_chain(list(reversed(chain)))


def test_order_check_can_be_disabled(chain_factory):
    chain = chain_factory(
        [key_description(challenge=b"leaf"), key_description(challenge=b"root")]
    )

    record = AttestationRecord.from_certificate_chain(
        list(reversed(chain)), check_order=False
    )

    # Without the check the scan trusts whatever is last.
    assert record.attestation_challenge == b"leaf"


def test_order_check_follows_environment(chain_factory, monkeypatch):
    chain = chain_factory([None, key_description(challenge=b"root")])
    reversed_chain = list(reversed(chain))

    monkeypatch.setenv("KEY_ATTESTATION_CHECK_CHAIN_ORDER", "off")
    assert (
        AttestationRecord.from_certificate_chain(reversed_chain).attestation_challenge
        == b"root"
    )

    monkeypatch.setenv("KEY_ATTESTATION_CHECK_CHAIN_ORDER", "1")
    with pytest.raises(ChainOrderError):
        AttestationRecord.from_certificate_chain(reversed_chain)


def test_verify_chain_order_accepts_single_certificate(chain_factory):
    verify_chain_order(chain_factory([None]))


def test_get_extension_value_is_wrapped(chain_factory):
    value = key_description()
    leaf, root = chain_factory([value, None])

    assert get_extension_value(leaf) == b"\x04" + bytes([len(value)]) + value
    assert get_extension_value(root) is None
