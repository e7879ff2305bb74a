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

from enum import Enum, auto, unique
from types import MappingProxyType
from typing import Mapping, Optional, TypeVar

from cryptography import x509

from .base import InvalidSecurityLevel


KEY_DESCRIPTION_OID = "1.3.6.1.4.1.11129.2.1.17"
OID_KEY_DESCRIPTION = x509.ObjectIdentifier(KEY_DESCRIPTION_OID)

# Positions within the KeyDescription SEQUENCE.
ATTESTATION_VERSION_INDEX = 0
ATTESTATION_SECURITY_LEVEL_INDEX = 1
KEYMASTER_VERSION_INDEX = 2
KEYMASTER_SECURITY_LEVEL_INDEX = 3
ATTESTATION_CHALLENGE_INDEX = 4
UNIQUE_ID_INDEX = 5
SW_ENFORCED_INDEX = 6
TEE_ENFORCED_INDEX = 7
KEY_DESCRIPTION_LENGTH = 8

KM_SECURITY_LEVEL_SOFTWARE = 0
KM_SECURITY_LEVEL_TRUSTED_ENVIRONMENT = 1
KM_SECURITY_LEVEL_STRONG_BOX = 2


@unique
class SecurityLevel(Enum):
    """The extent to which a key is protected based on its location in the device."""

    SOFTWARE = auto()
    TRUSTED_ENVIRONMENT = auto()
    STRONG_BOX = auto()


@unique
class AttestationVersion(Enum):
    """The version of the key attestation feature."""

    KEYMASTER_2_0 = auto()
    KEYMASTER_3_0 = auto()
    KEYMASTER_4_0 = auto()
    KEYMASTER_4_1 = auto()
    KEYMINT_1_0 = auto()
    KEYMINT_2_0 = auto()


@unique
class KeyMintVersion(Enum):
    """The version of the KeyMint or Keymaster implementation."""

    KEYMASTER_0_2_OR_3 = auto()
    KEYMASTER_1_0 = auto()
    KEYMASTER_2_0 = auto()
    KEYMASTER_3_0 = auto()
    KEYMASTER_4_0 = auto()
    KEYMASTER_4_1 = auto()
    KEYMINT_1_0 = auto()
    KEYMINT_2_0 = auto()


K = TypeVar("K")
V = TypeVar("V")


def _invert(mapping: Mapping[K, V]) -> Mapping[V, K]:
    inverse = {value: key for key, value in mapping.items()}
    if len(inverse) != len(mapping):
        raise ValueError("Registry values must be unique")
    return MappingProxyType(inverse)


SECURITY_LEVEL_TO_ASN1: Mapping[SecurityLevel, int] = MappingProxyType(
    {
        SecurityLevel.SOFTWARE: KM_SECURITY_LEVEL_SOFTWARE,
        SecurityLevel.TRUSTED_ENVIRONMENT: KM_SECURITY_LEVEL_TRUSTED_ENVIRONMENT,
        SecurityLevel.STRONG_BOX: KM_SECURITY_LEVEL_STRONG_BOX,
    }
)
ASN1_TO_SECURITY_LEVEL: Mapping[int, SecurityLevel] = _invert(SECURITY_LEVEL_TO_ASN1)

ATTESTATION_VERSION_TO_ASN1: Mapping[AttestationVersion, int] = MappingProxyType(
    {
        AttestationVersion.KEYMASTER_2_0: 1,
        AttestationVersion.KEYMASTER_3_0: 2,
        AttestationVersion.KEYMASTER_4_0: 3,
        AttestationVersion.KEYMASTER_4_1: 4,
        AttestationVersion.KEYMINT_1_0: 100,
        AttestationVersion.KEYMINT_2_0: 200,
    }
)
ASN1_TO_ATTESTATION_VERSION: Mapping[int, AttestationVersion] = _invert(
    ATTESTATION_VERSION_TO_ASN1
)

KEYMINT_VERSION_TO_ASN1: Mapping[KeyMintVersion, int] = MappingProxyType(
    {
        KeyMintVersion.KEYMASTER_0_2_OR_3: 0,
        KeyMintVersion.KEYMASTER_1_0: 1,
        KeyMintVersion.KEYMASTER_2_0: 2,
        KeyMintVersion.KEYMASTER_3_0: 3,
        KeyMintVersion.KEYMASTER_4_0: 4,
        KeyMintVersion.KEYMASTER_4_1: 41,
        KeyMintVersion.KEYMINT_1_0: 100,
        KeyMintVersion.KEYMINT_2_0: 200,
    }
)
ASN1_TO_KEYMINT_VERSION: Mapping[int, KeyMintVersion] = _invert(
    KEYMINT_VERSION_TO_ASN1
)


def security_level_from_int(value: int) -> SecurityLevel:
    """Map a wire security level to SecurityLevel.

    :raises InvalidSecurityLevel: for anything outside of 0, 1 and 2.
    """
    if isinstance(value, bool):
        raise InvalidSecurityLevel(value)
    try:
        return ASN1_TO_SECURITY_LEVEL[value]
    except (KeyError, TypeError):
        raise InvalidSecurityLevel(value) from None


def security_level_to_int(level: SecurityLevel) -> int:
    try:
        return SECURITY_LEVEL_TO_ASN1[level]
    except (KeyError, TypeError):
        raise InvalidSecurityLevel(level) from None


def attestation_version_from_int(value: int) -> Optional[AttestationVersion]:
    return ASN1_TO_ATTESTATION_VERSION.get(value)


def keymint_version_from_int(value: int) -> Optional[KeyMintVersion]:
    return ASN1_TO_KEYMINT_VERSION.get(value)
