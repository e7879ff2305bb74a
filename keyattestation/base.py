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

from functools import wraps
from typing import Iterator, List, NamedTuple, Sequence, Type

from asn1crypto import core as asn1_core
from asn1crypto import parser as asn1_parser


class AttestationError(Exception):
    """Base exception for key attestation decoding errors."""


class ExtensionNotFound(AttestationError):
    """No certificate in the chain carries the key attestation extension."""


class OuterEncodingMalformed(AttestationError):
    """The OCTET STRING wrapping the extension value could not be decoded."""


class MalformedRecordStructure(AttestationError):
    """The KeyDescription is not a SEQUENCE of the expected 8 elements."""


class InvalidSecurityLevel(AttestationError):
    """A security level is outside of the known set of values."""

    def __init__(self, value):
        super().__init__(f"Invalid security level: {value!r}")
        self.value = value


class ChainOrderError(AttestationError):
    """The certificate chain is not ordered leaf first, root last."""


class InvalidAuthorizationList(AttestationError):
    """An AuthorizationList entry could not be decoded."""


CLASS_UNIVERSAL = 0
CLASS_CONTEXT = 2

METHOD_PRIMITIVE = 0
METHOD_CONSTRUCTED = 1

TAG_BOOLEAN = 1
TAG_INTEGER = 2
TAG_OCTET_STRING = 4
TAG_NULL = 5
TAG_ENUMERATED = 10
TAG_SEQUENCE = 16
TAG_SET = 17


class DerElement(NamedTuple):
    """A single parsed TLV, as returned by ``asn1crypto.parser.parse``."""

    class_: int
    method: int
    tag: int
    header: bytes
    contents: bytes
    trailer: bytes

    @property
    def encoded(self) -> bytes:
        return self.header + self.contents + self.trailer

    def is_universal(self, tag: int, constructed: bool = False) -> bool:
        method = METHOD_CONSTRUCTED if constructed else METHOD_PRIMITIVE
        return (
            self.class_ == CLASS_UNIVERSAL and self.tag == tag and self.method == method
        )


def catch_builtins(f):
    """Utility decorator to wrap DER walking errors as MalformedRecordStructure."""

    @wraps(f)
    def inner(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise MalformedRecordStructure(e) from e

    return inner


def parse_element(
    data: bytes,
    error: Type[AttestationError] = MalformedRecordStructure,
    strict: bool = True,
) -> DerElement:
    """Parse exactly one DER element from data.

    With ``strict`` set, trailing bytes after the element are rejected.
    """
    try:
        info = asn1_parser.parse(bytes(data), strict=strict)
    except ValueError as e:
        raise error(f"Unable to parse DER element: {e}") from e
    return DerElement(*info)


def iter_elements(
    contents: bytes, error: Type[AttestationError] = MalformedRecordStructure
) -> Iterator[DerElement]:
    """Yield the consecutive DER elements encoded in contents."""
    offset = 0
    while offset < len(contents):
        element = parse_element(contents[offset:], error=error, strict=False)
        offset += len(element.encoded)
        yield element


def decode_integer(
    element: DerElement, error: Type[AttestationError] = MalformedRecordStructure
) -> int:
    """Read an INTEGER or ENUMERATED element as a native int."""
    if not (
        element.is_universal(TAG_INTEGER) or element.is_universal(TAG_ENUMERATED)
    ):
        raise error(
            f"Expected INTEGER or ENUMERATED, got class {element.class_} "
            f"tag {element.tag}"
        )
    if not element.contents:
        raise error("INTEGER encoding has no contents")
    return int.from_bytes(element.contents, "big", signed=True)


def decode_octet_string(
    element: DerElement, error: Type[AttestationError] = MalformedRecordStructure
) -> bytes:
    if not element.is_universal(TAG_OCTET_STRING):
        raise error(
            f"Expected OCTET STRING, got class {element.class_} tag {element.tag}"
        )
    return bytes(element.contents)


def decode_sequence(
    element: DerElement,
    error: Type[AttestationError] = MalformedRecordStructure,
    tag: int = TAG_SEQUENCE,
) -> List[DerElement]:
    """Return the children of a SEQUENCE (or SET, given ``tag``)."""
    if not element.is_universal(tag, constructed=True):
        raise error(
            f"Expected constructed tag {tag}, got class {element.class_} "
            f"tag {element.tag}"
        )
    return list(iter_elements(element.contents, error=error))


def encode_integer(value: int) -> bytes:
    return asn1_core.Integer(value).dump()


def encode_enumerated(value: int) -> bytes:
    # Plain asn1crypto Enumerated values need a name map, so reuse the
    # INTEGER contents under the ENUMERATED tag.
    contents = asn1_core.Integer(value).contents
    return asn1_parser.emit(CLASS_UNIVERSAL, METHOD_PRIMITIVE, TAG_ENUMERATED, contents)


def encode_octet_string(value: bytes) -> bytes:
    return asn1_core.OctetString(bytes(value)).dump()


def encode_boolean(value: bool) -> bytes:
    return asn1_core.Boolean(bool(value)).dump()


def encode_null() -> bytes:
    return asn1_core.Null().dump()


def encode_sequence(items: Sequence[bytes]) -> bytes:
    return asn1_parser.emit(
        CLASS_UNIVERSAL, METHOD_CONSTRUCTED, TAG_SEQUENCE, b"".join(items)
    )


def encode_set_of(items: Sequence[bytes]) -> bytes:
    """Emit a DER SET OF, ordering the encoded members as DER requires."""
    return asn1_parser.emit(
        CLASS_UNIVERSAL, METHOD_CONSTRUCTED, TAG_SET, b"".join(sorted(items))
    )


def encode_explicit(tag: int, inner: bytes) -> bytes:
    return asn1_parser.emit(CLASS_CONTEXT, METHOD_CONSTRUCTED, tag, inner)
