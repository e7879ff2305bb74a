"""Decoding and encoding of Android key attestation records."""
from __future__ import annotations

from .authorization import AuthorizationList, RootOfTrust, VerifiedBootState
from .base import (
    AttestationError,
    ChainOrderError,
    ExtensionNotFound,
    InvalidAuthorizationList,
    InvalidSecurityLevel,
    MalformedRecordStructure,
    OuterEncodingMalformed,
)
from .constants import (
    ASN1_TO_ATTESTATION_VERSION,
    ASN1_TO_KEYMINT_VERSION,
    ATTESTATION_VERSION_TO_ASN1,
    KEY_DESCRIPTION_OID,
    KEYMINT_VERSION_TO_ASN1,
    OID_KEY_DESCRIPTION,
    AttestationVersion,
    KeyMintVersion,
    SecurityLevel,
    security_level_from_int,
    security_level_to_int,
)
from .record import AttestationRecord, get_extension_value, verify_chain_order

__all__ = [
    "ASN1_TO_ATTESTATION_VERSION",
    "ASN1_TO_KEYMINT_VERSION",
    "ATTESTATION_VERSION_TO_ASN1",
    "AttestationError",
    "AttestationRecord",
    "AttestationVersion",
    "AuthorizationList",
    "ChainOrderError",
    "ExtensionNotFound",
    "InvalidAuthorizationList",
    "InvalidSecurityLevel",
    "KEY_DESCRIPTION_OID",
    "KEYMINT_VERSION_TO_ASN1",
    "KeyMintVersion",
    "MalformedRecordStructure",
    "OID_KEY_DESCRIPTION",
    "OuterEncodingMalformed",
    "RootOfTrust",
    "SecurityLevel",
    "VerifiedBootState",
    "get_extension_value",
    "security_level_from_int",
    "security_level_to_int",
    "verify_chain_order",
]
