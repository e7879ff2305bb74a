# Copyright (c) 2018 Yubico AB
# All rights reserved.
#
#   Redistribution and use in source and binary forms, with or
#   without modification, are permitted provided that the following
#   conditions are met:
#
#    1. Redistributions of source code must retain the above copyright
#       notice, this list of conditions and the following disclaimer.
#    2. Redistributions in binary form must reproduce the above
#       copyright notice, this list of conditions and the following
#       disclaimer in the documentation and/or other materials provided
#       with the distribution.
#
# THIS SOFTWARE IS PROVIDED BY THE COPYRIGHT HOLDERS AND CONTRIBUTORS
# "AS IS" AND ANY EXPRESS OR IMPLIED WARRANTIES, INCLUDING, BUT NOT
# LIMITED TO, THE IMPLIED WARRANTIES OF MERCHANTABILITY AND FITNESS
# FOR A PARTICULAR PURPOSE ARE DISCLAIMED. IN NO EVENT SHALL THE
# COPYRIGHT HOLDER OR CONTRIBUTORS BE LIABLE FOR ANY DIRECT, INDIRECT,
# INCIDENTAL, SPECIAL, EXEMPLARY, OR CONSEQUENTIAL DAMAGES (INCLUDING,
# BUT NOT LIMITED TO, PROCUREMENT OF SUBSTITUTE GOODS OR SERVICES;
# LOSS OF USE, DATA, OR PROFITS; OR BUSINESS INTERRUPTION) HOWEVER
# CAUSED AND ON ANY THEORY OF LIABILITY, WHETHER IN CONTRACT, STRICT
# LIABILITY, OR TORT (INCLUDING NEGLIGENCE OR OTHERWISE) ARISING IN
# ANY WAY OUT OF THE USE OF THIS SOFTWARE, EVEN IF ADVISED OF THE
# POSSIBILITY OF SUCH DAMAGE.

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Union

from cryptography import x509
from cryptography.hazmat.backends import default_backend

from . import config
from .authorization import AuthorizationList
from .base import (
    TAG_OCTET_STRING,
    TAG_SEQUENCE,
    ChainOrderError,
    ExtensionNotFound,
    InvalidSecurityLevel,
    MalformedRecordStructure,
    OuterEncodingMalformed,
    catch_builtins,
    decode_integer,
    decode_octet_string,
    decode_sequence,
    encode_enumerated,
    encode_integer,
    encode_octet_string,
    encode_sequence,
    iter_elements,
    parse_element,
)
from .constants import (
    ASN1_TO_ATTESTATION_VERSION,
    ASN1_TO_KEYMINT_VERSION,
    ATTESTATION_CHALLENGE_INDEX,
    ATTESTATION_SECURITY_LEVEL_INDEX,
    ATTESTATION_VERSION_INDEX,
    KEY_DESCRIPTION_LENGTH,
    KEYMASTER_SECURITY_LEVEL_INDEX,
    KEYMASTER_VERSION_INDEX,
    OID_KEY_DESCRIPTION,
    SW_ENFORCED_INDEX,
    TEE_ENFORCED_INDEX,
    UNIQUE_ID_INDEX,
    AttestationVersion,
    KeyMintVersion,
    SecurityLevel,
    security_level_from_int,
    security_level_to_int,
)

logger = logging.getLogger(__name__)

CertificateLike = Union[x509.Certificate, bytes, bytearray, memoryview]


def _coerce_certificate(value: Any) -> x509.Certificate:
    if isinstance(value, x509.Certificate):
        return value
    if isinstance(value, (bytes, bytearray, memoryview)):
        return x509.load_der_x509_certificate(bytes(value), default_backend())
    raise TypeError(
        "Certificate chain entries must be certificates or DER-encoded bytes, "
        f"not {type(value).__name__}"
    )


def _raw_extension_value(
    cert: x509.Certificate, oid: x509.ObjectIdentifier
) -> Optional[bytes]:
    try:
        ext = cert.extensions.get_extension_for_oid(oid)
    except x509.ExtensionNotFound:
        return None
    if isinstance(ext.value, x509.UnrecognizedExtension):
        return ext.value.value
    return ext.value.public_bytes()


def get_extension_value(
    cert: x509.Certificate, oid: x509.ObjectIdentifier = OID_KEY_DESCRIPTION
) -> Optional[bytes]:
    """Return the extension value as a DER OCTET STRING, or None if absent.

    This is the extnValue field of the extension, still wrapped in its
    OCTET STRING encoding.
    """
    raw = _raw_extension_value(cert, oid)
    if raw is None:
        return None
    return encode_octet_string(raw)


def verify_chain_order(chain: Sequence[x509.Certificate]) -> None:
    """Checks that each certificate was issued by the one following it.

    The first item is the leaf, the last is the root.
    """
    for position, (child, issuer) in enumerate(zip(chain, chain[1:])):
        if child.issuer != issuer.subject:
            raise ChainOrderError(
                f"Certificate {position} was not issued by certificate "
                f"{position + 1}; chains must be ordered leaf first, root last"
            )


@dataclass(frozen=True)
class AttestationRecord:
    """The KeyDescription carried in an Android key attestation certificate."""

    attestation_version: int
    attestation_security_level: SecurityLevel
    keymaster_version: int
    keymaster_security_level: SecurityLevel
    attestation_challenge: bytes
    unique_id: bytes
    software_enforced: AuthorizationList
    tee_enforced: AuthorizationList

    def __post_init__(self):
        for name in ("attestation_version", "keymaster_version"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise TypeError(f"{name} must be an int, not {type(value).__name__}")
            if value < 0:
                raise ValueError(f"{name} must not be negative, got {value}")
        for name in ("attestation_security_level", "keymaster_security_level"):
            if not isinstance(getattr(self, name), SecurityLevel):
                raise InvalidSecurityLevel(getattr(self, name))
        for name in ("attestation_challenge", "unique_id"):
            object.__setattr__(self, name, bytes(getattr(self, name)))
        for name in ("software_enforced", "tee_enforced"):
            if not isinstance(getattr(self, name), AuthorizationList):
                raise TypeError(f"{name} must be an AuthorizationList")

    @classmethod
    def from_certificate_chain(
        cls,
        chain: Sequence[CertificateLike],
        *,
        check_order: Optional[bool] = None,
    ) -> AttestationRecord:
        """Parse the attestation record closest to the root of the chain.

        :param chain: Certificates ordered leaf first, root last.
        :param check_order: Verify the ordering through issuer and subject
            names before scanning. Defaults to the
            ``KEY_ATTESTATION_CHECK_CHAIN_ORDER`` setting.
        """
        certificates = [_coerce_certificate(cert) for cert in chain]
        if check_order is None:
            check_order = config.check_chain_order()
        if check_order:
            verify_chain_order(certificates)

        # An adversary can have the TEE attest a key they control, sign a new
        # leaf carrying a record of their choice with it and append that leaf
        # to a genuine chain. Only the record closest to the root is trusted.
        for index in range(len(certificates) - 1, -1, -1):
            raw = _raw_extension_value(certificates[index], OID_KEY_DESCRIPTION)
            if raw is None:
                continue
            if not raw:
                logger.warning(
                    "Skipping empty key attestation extension on certificate %d",
                    index,
                )
                continue
            logger.debug("Using key attestation extension from certificate %d", index)
            return cls.from_extension_value(encode_octet_string(raw))

        raise ExtensionNotFound("Couldn't find the keystore attestation extension data.")

    @classmethod
    def from_extension_value(cls, data: bytes) -> AttestationRecord:
        """Decode an extension value still wrapped in its OCTET STRING."""
        outer = parse_element(data, error=OuterEncodingMalformed)
        if not outer.is_universal(TAG_OCTET_STRING):
            raise OuterEncodingMalformed(
                f"Extension value must be an OCTET STRING, got class {outer.class_} "
                f"tag {outer.tag}"
            )
        return cls.from_asn1(outer.contents)

    @classmethod
    @catch_builtins
    def from_asn1(cls, data: bytes) -> AttestationRecord:
        """Decode a DER encoded KeyDescription SEQUENCE."""
        sequence = parse_element(data)
        if not sequence.is_universal(TAG_SEQUENCE, constructed=True):
            raise MalformedRecordStructure("KeyDescription must be a SEQUENCE")
        elements = list(iter_elements(sequence.contents))
        if len(elements) != KEY_DESCRIPTION_LENGTH:
            raise MalformedRecordStructure(
                f"KeyDescription must contain {KEY_DESCRIPTION_LENGTH} elements, "
                f"found {len(elements)}"
            )

        attestation_version = decode_integer(elements[ATTESTATION_VERSION_INDEX])
        attestation_security_level = security_level_from_int(
            decode_integer(elements[ATTESTATION_SECURITY_LEVEL_INDEX])
        )
        keymaster_version = decode_integer(elements[KEYMASTER_VERSION_INDEX])
        keymaster_security_level = security_level_from_int(
            decode_integer(elements[KEYMASTER_SECURITY_LEVEL_INDEX])
        )
        attestation_challenge = decode_octet_string(
            elements[ATTESTATION_CHALLENGE_INDEX]
        )
        unique_id = decode_octet_string(elements[UNIQUE_ID_INDEX])
        software_children = decode_sequence(elements[SW_ENFORCED_INDEX])
        tee_children = decode_sequence(elements[TEE_ENFORCED_INDEX])

        return cls(
            attestation_version=attestation_version,
            attestation_security_level=attestation_security_level,
            keymaster_version=keymaster_version,
            keymaster_security_level=keymaster_security_level,
            attestation_challenge=attestation_challenge,
            unique_id=unique_id,
            software_enforced=AuthorizationList.from_elements(
                software_children, attestation_version
            ),
            tee_enforced=AuthorizationList.from_elements(
                tee_children, attestation_version
            ),
        )

    def to_asn1(self) -> bytes:
        """Encode as a DER KeyDescription SEQUENCE."""
        items: List[bytes] = [b""] * KEY_DESCRIPTION_LENGTH
        items[ATTESTATION_VERSION_INDEX] = encode_integer(self.attestation_version)
        items[ATTESTATION_SECURITY_LEVEL_INDEX] = encode_enumerated(
            security_level_to_int(self.attestation_security_level)
        )
        items[KEYMASTER_VERSION_INDEX] = encode_integer(self.keymaster_version)
        items[KEYMASTER_SECURITY_LEVEL_INDEX] = encode_enumerated(
            security_level_to_int(self.keymaster_security_level)
        )
        items[ATTESTATION_CHALLENGE_INDEX] = encode_octet_string(
            self.attestation_challenge
        )
        items[UNIQUE_ID_INDEX] = encode_octet_string(self.unique_id)
        items[SW_ENFORCED_INDEX] = self.software_enforced.to_der()
        items[TEE_ENFORCED_INDEX] = self.tee_enforced.to_der()
        return encode_sequence(items)

    def to_extension_value(self) -> bytes:
        """Encode as an extension value, wrapped in an OCTET STRING."""
        return encode_octet_string(self.to_asn1())

    @property
    def attestation_version_enum(self) -> Optional[AttestationVersion]:
        return ASN1_TO_ATTESTATION_VERSION.get(self.attestation_version)

    @property
    def keymaster_version_enum(self) -> Optional[KeyMintVersion]:
        return ASN1_TO_KEYMINT_VERSION.get(self.keymaster_version)

    def to_dict(self) -> Dict[str, Any]:
        """Return a JSON friendly representation of the record."""
        attestation_version = self.attestation_version_enum
        keymaster_version = self.keymaster_version_enum
        return {
            "attestationVersion": self.attestation_version,
            "attestationVersionName": (
                attestation_version.name if attestation_version else None
            ),
            "attestationSecurityLevel": self.attestation_security_level.name,
            "keymasterVersion": self.keymaster_version,
            "keymasterVersionName": keymaster_version.name if keymaster_version else None,
            "keymasterSecurityLevel": self.keymaster_security_level.name,
            "attestationChallenge": self.attestation_challenge.hex(),
            "uniqueId": self.unique_id.hex(),
            "softwareEnforced": self.software_enforced.to_dict(),
            "teeEnforced": self.tee_enforced.to_dict(),
        }
