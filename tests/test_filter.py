# Copyright: (c) 2023, Jordan Borean (@jborean93) <jborean93@gmail.com>
# MIT License (see LICENSE or https://opensource.org/licenses/MIT)

from __future__ import annotations

import re

import pytest

import ldapconn._filter as f
from ldapconn._asn1 import ASN1Reader, ASN1Tag, ASN1Writer, TagClass


def pack_filter(filter: f.LDAPFilter) -> bytes:
    writer = ASN1Writer()
    filter.pack(writer, f.FilterOptions())
    return bytes(writer.get_data())


def unpack_filter(data: bytes) -> f.LDAPFilter:
    reader = ASN1Reader(data)
    return f.LDAPFilter.unpack(reader, f.FilterOptions())


class TestFilterPresent:
    def test_pack(self) -> None:
        actual = pack_filter(f.FilterPresent("objectClass"))

        assert actual == b"\x87\x0BobjectClass"

    def test_unpack(self) -> None:
        actual = unpack_filter(b"\x87\x0BobjectClass")

        assert isinstance(actual, f.FilterPresent)
        assert actual.attribute == "objectClass"
        assert str(actual) == "(objectClass=*)"


class TestFilterEquality:
    def test_pack(self) -> None:
        actual = pack_filter(f.FilterEquality("cn", b"user"))

        assert actual == b"\xA3\x0A\x04\x02cn\x04\x04user"

    def test_unpack(self) -> None:
        actual = unpack_filter(b"\xA3\x0A\x04\x02cn\x04\x04user")

        assert actual == f.FilterEquality("cn", b"user")

    def test_str_escapes_value(self) -> None:
        actual = f.FilterEquality("cn", b"a*(b)\\\x00caf\xc3\xa9")

        assert str(actual) == "(cn=a\\2a\\28b\\29\\5c\\00caf\\c3\\a9)"


class TestFilterComposite:
    def test_and_or_not(self) -> None:
        filter = f.FilterAnd(
            [
                f.FilterEquality("objectClass", b"user"),
                f.FilterNot(f.FilterPresent("description")),
                f.FilterOr([f.FilterEquality("cn", b"a"), f.FilterEquality("cn", b"b")]),
            ]
        )

        assert str(filter) == "(&(objectClass=user)(!(description=*))(|(cn=a)(cn=b)))"

        data = pack_filter(filter)
        assert data[0] == 0xA0

        actual = unpack_filter(data)
        assert actual == filter

    def test_unpack_unknown_filter(self) -> None:
        writer = ASN1Writer()
        writer.write_octet_string(b"cn", tag=ASN1Tag(TagClass.CONTEXT_SPECIFIC, 9, True))

        with pytest.raises(NotImplementedError, match=re.escape("Unknown filter object")):
            unpack_filter(bytes(writer.get_data()))

    def test_unpack_restricted_choices(self) -> None:
        options = f.FilterOptions(choices=[f.FilterEquality])
        reader = ASN1Reader(b"\x87\x0BobjectClass")

        with pytest.raises(NotImplementedError):
            f.LDAPFilter.unpack(reader, options)
