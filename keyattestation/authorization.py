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

from dataclasses import dataclass, fields
from enum import Enum, auto, unique
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Sequence, Tuple

from .base import (
    CLASS_CONTEXT,
    METHOD_CONSTRUCTED,
    TAG_BOOLEAN,
    TAG_NULL,
    TAG_SET,
    DerElement,
    InvalidAuthorizationList,
    decode_integer,
    decode_octet_string,
    decode_sequence,
    encode_boolean,
    encode_enumerated,
    encode_explicit,
    encode_integer,
    encode_null,
    encode_octet_string,
    encode_sequence,
    encode_set_of,
    parse_element,
)
from .constants import ATTESTATION_VERSION_TO_ASN1, AttestationVersion


@unique
class VerifiedBootState(Enum):
    VERIFIED = auto()
    SELF_SIGNED = auto()
    UNVERIFIED = auto()
    FAILED = auto()


VERIFIED_BOOT_STATE_TO_ASN1: Mapping[VerifiedBootState, int] = MappingProxyType(
    {
        VerifiedBootState.VERIFIED: 0,
        VerifiedBootState.SELF_SIGNED: 1,
        VerifiedBootState.UNVERIFIED: 2,
        VerifiedBootState.FAILED: 3,
    }
)
ASN1_TO_VERIFIED_BOOT_STATE: Mapping[int, VerifiedBootState] = MappingProxyType(
    {value: key for key, value in VERIFIED_BOOT_STATE_TO_ASN1.items()}
)

# verifiedBootHash was added to RootOfTrust with Keymaster 4.0.
_ROOT_OF_TRUST_HASH_VERSION = ATTESTATION_VERSION_TO_ASN1[
    AttestationVersion.KEYMASTER_4_0
]


def _decode_boolean(element: DerElement) -> bool:
    if not element.is_universal(TAG_BOOLEAN) or len(element.contents) != 1:
        raise InvalidAuthorizationList("Expected a DER BOOLEAN")
    return element.contents != b"\x00"


@dataclass(frozen=True)
class RootOfTrust:
    """Information about the device's verified boot status."""

    verified_boot_key: bytes
    device_locked: bool
    verified_boot_state: VerifiedBootState
    verified_boot_hash: Optional[bytes] = None

    @classmethod
    def from_element(
        cls, element: DerElement, attestation_version: int
    ) -> RootOfTrust:
        children = decode_sequence(element, error=InvalidAuthorizationList)
        minimum = 4 if attestation_version >= _ROOT_OF_TRUST_HASH_VERSION else 3
        if not minimum <= len(children) <= 4:
            raise InvalidAuthorizationList(
                f"RootOfTrust must contain {minimum} to 4 elements, "
                f"found {len(children)}"
            )
        state = decode_integer(children[2], error=InvalidAuthorizationList)
        if state not in ASN1_TO_VERIFIED_BOOT_STATE:
            raise InvalidAuthorizationList(f"Invalid verified boot state: {state}")
        boot_hash = None
        if len(children) == 4:
            boot_hash = decode_octet_string(children[3], error=InvalidAuthorizationList)
        return cls(
            verified_boot_key=decode_octet_string(
                children[0], error=InvalidAuthorizationList
            ),
            device_locked=_decode_boolean(children[1]),
            verified_boot_state=ASN1_TO_VERIFIED_BOOT_STATE[state],
            verified_boot_hash=boot_hash,
        )

    def to_der(self) -> bytes:
        items = [
            encode_octet_string(self.verified_boot_key),
            encode_boolean(self.device_locked),
            encode_enumerated(VERIFIED_BOOT_STATE_TO_ASN1[self.verified_boot_state]),
        ]
        if self.verified_boot_hash is not None:
            items.append(encode_octet_string(self.verified_boot_hash))
        return encode_sequence(items)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "verifiedBootKey": self.verified_boot_key.hex(),
            "deviceLocked": self.device_locked,
            "verifiedBootState": self.verified_boot_state.name,
            "verifiedBootHash": (
                self.verified_boot_hash.hex()
                if self.verified_boot_hash is not None
                else None
            ),
        }


_INTEGER = "integer"
_INTEGER_SET = "integer_set"
_NULL = "null"
_OCTETS = "octets"
_ROOT_OF_TRUST = "root_of_trust"

# Context specific tag number -> (field name, value kind)
AUTHORIZATION_TAGS: Mapping[int, Tuple[str, str]] = MappingProxyType(
    {
        1: ("purpose", _INTEGER_SET),
        2: ("algorithm", _INTEGER),
        3: ("key_size", _INTEGER),
        5: ("digest", _INTEGER_SET),
        6: ("padding", _INTEGER_SET),
        10: ("ec_curve", _INTEGER),
        200: ("rsa_public_exponent", _INTEGER),
        203: ("mgf_digest", _INTEGER_SET),
        303: ("rollback_resistance", _NULL),
        305: ("early_boot_only", _NULL),
        400: ("active_date_time", _INTEGER),
        401: ("origination_expire_date_time", _INTEGER),
        402: ("usage_expire_date_time", _INTEGER),
        405: ("usage_count_limit", _INTEGER),
        503: ("no_auth_required", _NULL),
        504: ("user_auth_type", _INTEGER),
        505: ("auth_timeout", _INTEGER),
        506: ("allow_while_on_body", _NULL),
        507: ("trusted_user_presence_required", _NULL),
        508: ("trusted_confirmation_required", _NULL),
        509: ("unlocked_device_required", _NULL),
        600: ("all_applications", _NULL),
        601: ("application_id", _OCTETS),
        701: ("creation_date_time", _INTEGER),
        702: ("origin", _INTEGER),
        703: ("rollback_resistant", _NULL),
        704: ("root_of_trust", _ROOT_OF_TRUST),
        705: ("os_version", _INTEGER),
        706: ("os_patch_level", _INTEGER),
        709: ("attestation_application_id", _OCTETS),
        710: ("attestation_id_brand", _OCTETS),
        711: ("attestation_id_device", _OCTETS),
        712: ("attestation_id_product", _OCTETS),
        713: ("attestation_id_serial", _OCTETS),
        714: ("attestation_id_imei", _OCTETS),
        715: ("attestation_id_meid", _OCTETS),
        716: ("attestation_id_manufacturer", _OCTETS),
        717: ("attestation_id_model", _OCTETS),
        718: ("vendor_patch_level", _INTEGER),
        719: ("boot_patch_level", _INTEGER),
        720: ("device_unique_attestation", _NULL),
        723: ("attestation_id_second_imei", _OCTETS),
    }
)
_FIELD_TAGS: Mapping[str, Tuple[int, str]] = MappingProxyType(
    {name: (tag, kind) for tag, (name, kind) in AUTHORIZATION_TAGS.items()}
)


def _decode_value(kind: str, element: DerElement, attestation_version: int) -> Any:
    if kind == _INTEGER:
        return decode_integer(element, error=InvalidAuthorizationList)
    if kind == _INTEGER_SET:
        members = decode_sequence(element, error=InvalidAuthorizationList, tag=TAG_SET)
        return frozenset(
            decode_integer(member, error=InvalidAuthorizationList)
            for member in members
        )
    if kind == _NULL:
        if not element.is_universal(TAG_NULL) or element.contents:
            raise InvalidAuthorizationList("Expected a DER NULL")
        return True
    if kind == _OCTETS:
        return decode_octet_string(element, error=InvalidAuthorizationList)
    if kind == _ROOT_OF_TRUST:
        return RootOfTrust.from_element(element, attestation_version)
    raise InvalidAuthorizationList(f"Unknown value kind {kind}")


def _encode_value(kind: str, value: Any) -> Optional[bytes]:
    if kind == _INTEGER:
        return encode_integer(value)
    if kind == _INTEGER_SET:
        return encode_set_of([encode_integer(member) for member in value])
    if kind == _NULL:
        return encode_null() if value else None
    if kind == _OCTETS:
        return encode_octet_string(value)
    if kind == _ROOT_OF_TRUST:
        return value.to_der()
    raise ValueError(f"Unknown value kind {kind}")


@dataclass(frozen=True)
class AuthorizationList:
    """Key properties and constraints from a KeyDescription.

    Absent entries are ``None`` (or ``False`` for flag entries). Entries with
    tags not modelled here are kept verbatim in ``unknown_tags`` as
    ``(tag, inner DER)`` pairs.
    """

    purpose: Optional[FrozenSet[int]] = None
    algorithm: Optional[int] = None
    key_size: Optional[int] = None
    digest: Optional[FrozenSet[int]] = None
    padding: Optional[FrozenSet[int]] = None
    ec_curve: Optional[int] = None
    rsa_public_exponent: Optional[int] = None
    mgf_digest: Optional[FrozenSet[int]] = None
    rollback_resistance: bool = False
    early_boot_only: bool = False
    active_date_time: Optional[int] = None
    origination_expire_date_time: Optional[int] = None
    usage_expire_date_time: Optional[int] = None
    usage_count_limit: Optional[int] = None
    no_auth_required: bool = False
    user_auth_type: Optional[int] = None
    auth_timeout: Optional[int] = None
    allow_while_on_body: bool = False
    trusted_user_presence_required: bool = False
    trusted_confirmation_required: bool = False
    unlocked_device_required: bool = False
    all_applications: bool = False
    application_id: Optional[bytes] = None
    creation_date_time: Optional[int] = None
    origin: Optional[int] = None
    rollback_resistant: bool = False
    root_of_trust: Optional[RootOfTrust] = None
    os_version: Optional[int] = None
    os_patch_level: Optional[int] = None
    attestation_application_id: Optional[bytes] = None
    attestation_id_brand: Optional[bytes] = None
    attestation_id_device: Optional[bytes] = None
    attestation_id_product: Optional[bytes] = None
    attestation_id_serial: Optional[bytes] = None
    attestation_id_imei: Optional[bytes] = None
    attestation_id_meid: Optional[bytes] = None
    attestation_id_manufacturer: Optional[bytes] = None
    attestation_id_model: Optional[bytes] = None
    vendor_patch_level: Optional[int] = None
    boot_patch_level: Optional[int] = None
    device_unique_attestation: bool = False
    attestation_id_second_imei: Optional[bytes] = None
    unknown_tags: Tuple[Tuple[int, bytes], ...] = ()

    def __post_init__(self):
        for name, (_, kind) in _FIELD_TAGS.items():
            value = getattr(self, name)
            if kind == _INTEGER_SET and value is not None:
                object.__setattr__(self, name, frozenset(value))
            elif kind == _OCTETS and value is not None:
                object.__setattr__(self, name, bytes(value))
        object.__setattr__(
            self,
            "unknown_tags",
            tuple(sorted((int(tag), bytes(inner)) for tag, inner in self.unknown_tags)),
        )

    @classmethod
    def from_elements(
        cls, elements: Sequence[DerElement], attestation_version: int
    ) -> AuthorizationList:
        """Decode the children of an AuthorizationList SEQUENCE.

        :param elements: The parsed, explicitly tagged entries.
        :param attestation_version: The wire attestationVersion of the record,
            some entries are encoded differently across versions.
        """
        values: Dict[str, Any] = {}
        unknown: List[Tuple[int, bytes]] = []
        seen = set()
        for element in elements:
            if element.class_ != CLASS_CONTEXT or element.method != METHOD_CONSTRUCTED:
                raise InvalidAuthorizationList(
                    "AuthorizationList entries must be explicitly tagged, got "
                    f"class {element.class_} tag {element.tag}"
                )
            if element.tag in seen:
                raise InvalidAuthorizationList(
                    f"Duplicate AuthorizationList tag {element.tag}"
                )
            seen.add(element.tag)

            spec = AUTHORIZATION_TAGS.get(element.tag)
            if spec is None:
                unknown.append((element.tag, bytes(element.contents)))
                continue
            name, kind = spec
            inner = parse_element(element.contents, error=InvalidAuthorizationList)
            values[name] = _decode_value(kind, inner, attestation_version)
        return cls(unknown_tags=tuple(unknown), **values)

    @classmethod
    def from_der(cls, data: bytes, attestation_version: int) -> AuthorizationList:
        element = parse_element(data, error=InvalidAuthorizationList)
        return cls.from_elements(
            decode_sequence(element, error=InvalidAuthorizationList),
            attestation_version,
        )

    def to_der(self) -> bytes:
        """Encode as a DER SEQUENCE, entries in ascending tag order."""
        entries: List[Tuple[int, bytes]] = list(self.unknown_tags)
        for name, (tag, kind) in _FIELD_TAGS.items():
            value = getattr(self, name)
            if value is None:
                continue
            inner = _encode_value(kind, value)
            if inner is not None:
                entries.append((tag, inner))
        entries.sort(key=lambda entry: entry[0])
        return encode_sequence([encode_explicit(tag, inner) for tag, inner in entries])

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        for field in fields(self):
            value = getattr(self, field.name)
            if value is None or value is False or field.name == "unknown_tags":
                continue
            if isinstance(value, frozenset):
                value = sorted(value)
            elif isinstance(value, bytes):
                value = value.hex()
            elif isinstance(value, RootOfTrust):
                value = value.to_dict()
            result[field.name] = value
        if self.unknown_tags:
            result["unknown_tags"] = {
                str(tag): inner.hex() for tag, inner in self.unknown_tags
            }
        return result
