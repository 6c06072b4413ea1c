# Copyright: (c) 2023, Jordan Borean (@jborean93) <jborean93@gmail.com>
# MIT License (see LICENSE or https://opensource.org/licenses/MIT)

from __future__ import annotations

import re

import pytest

import ldapconn._controls as c
import ldapconn._filter as f
import ldapconn._messages as m
from ldapconn import LDAPCodec
from ldapconn._asn1 import ASN1Reader, ASN1Tag, ASN1Writer, NotEnoughData, TagClass

PACKING_OPTIONS = m.PackingOptions()


def unpack_message(data: bytes) -> m.LDAPMessage:
    reader = ASN1Reader(data)
    return m.unpack_ldap_message(reader, PACKING_OPTIONS)


class TestGenericMessages:
    def test_fail_unpack_not_application_tag(self) -> None:
        writer = ASN1Writer()
        with writer.push_sequence() as writer_seq:
            writer_seq.write_integer(0)
            writer_seq.write_octet_string(b"value")
        data = bytes(writer.get_data())

        expected = "Expecting LDAPMessage.protocolOp to be an APPLICATION but got"
        with pytest.raises(ValueError, match=re.escape(expected)):
            unpack_message(data)

    def test_fail_unpack_unknown_protocol_op(self) -> None:
        writer = ASN1Writer()
        with writer.push_sequence() as writer_seq:
            writer_seq.write_integer(0)
            writer_seq.write_octet_string(b"value", tag=ASN1Tag(TagClass.APPLICATION, 1024, False))
        data = bytes(writer.get_data())

        expected = "Unknown LDAPMessage.protocolOp choice 1024"
        with pytest.raises(NotImplementedError, match=re.escape(expected)):
            unpack_message(data)

    def test_fail_unpack_truncated_protocol_op(self) -> None:
        # The envelope is complete but the SearchRequest length is past the
        # end of the message.
        data = b"\x30\x05\x02\x01\x01\x63\x05"

        with pytest.raises(ValueError, match="LDAPMessage Not enough data"):
            unpack_message(data)

    def test_unpack_incomplete_envelope(self) -> None:
        with pytest.raises(NotEnoughData):
            unpack_message(b"\x30\x05\x02\x01\x01")

    def test_unpack_extra_data_in_envelope(self) -> None:
        writer = ASN1Writer()
        with writer.push_sequence() as seq:
            seq.write_integer(1)
            seq.write_tlv(ASN1Tag(TagClass.APPLICATION, 2, False), b"")
            seq.write_octet_string(b"dummy")
            with seq.push_sequence(ASN1Tag(TagClass.CONTEXT_SPECIFIC, 0, True)) as controls:
                c.LDAPControl("1.2.3", True, None).pack(controls, PACKING_OPTIONS.control)

        actual = unpack_message(bytes(writer.get_data()))

        assert isinstance(actual, m.UnbindRequest)
        assert actual.message_id == 1
        assert actual.controls == [c.LDAPControl("1.2.3", True, None)]


class TestUnbindRequest:
    def test_pack(self) -> None:
        actual = m.UnbindRequest(message_id=1, controls=[]).pack(PACKING_OPTIONS)

        assert actual == b"\x30\x05\x02\x01\x01\x42\x00"

    def test_unpack(self) -> None:
        actual = unpack_message(b"\x30\x05\x02\x01\x01\x42\x00")

        assert actual == m.UnbindRequest(message_id=1, controls=[])


class TestBindRequest:
    def test_pack_simple(self) -> None:
        msg = m.BindRequest(
            message_id=1,
            controls=[],
            version=3,
            name="",
            authentication=m.SimpleCredential("pw"),
        )
        actual = msg.pack(PACKING_OPTIONS)

        assert actual == b"\x30\x0E\x02\x01\x01\x60\x09\x02\x01\x03\x04\x00\x80\x02pw"
        assert unpack_message(actual) == msg

    def test_pack_sasl(self) -> None:
        msg = m.BindRequest(
            message_id=4,
            controls=[],
            version=3,
            name="",
            authentication=m.SaslCredential("EXTERNAL"),
        )

        actual = unpack_message(msg.pack(PACKING_OPTIONS))

        assert isinstance(actual, m.BindRequest)
        assert actual.authentication == m.SaslCredential("EXTERNAL", None)

    def test_unpack_unknown_authentication(self) -> None:
        writer = ASN1Writer()
        with writer.push_sequence() as seq:
            seq.write_integer(1)
            with seq.push_sequence(ASN1Tag(TagClass.APPLICATION, 0, True)) as bind:
                bind.write_integer(3)
                bind.write_octet_string(b"")
                bind.write_octet_string(b"", tag=ASN1Tag(TagClass.CONTEXT_SPECIFIC, 1, False))

        with pytest.raises(NotImplementedError, match="Unknown authentication object"):
            unpack_message(bytes(writer.get_data()))


class TestBindResponse:
    def test_sasl_creds(self) -> None:
        msg = m.BindResponse(
            message_id=1,
            controls=[],
            result=m.LDAPResult(m.LDAPResultCode.SASL_BIND_IN_PROGRESS),
            server_sasl_creds=b"token",
        )

        actual = unpack_message(msg.pack(PACKING_OPTIONS))

        assert actual == msg


class TestDelRequest:
    def test_pack(self) -> None:
        actual = m.DelRequest(message_id=2, controls=[], entry="dc=x").pack(PACKING_OPTIONS)

        assert actual == b"\x30\x09\x02\x01\x02\x4A\x04dc=x"

    def test_unpack(self) -> None:
        actual = unpack_message(b"\x30\x09\x02\x01\x02\x4A\x04dc=x")

        assert actual == m.DelRequest(message_id=2, controls=[], entry="dc=x")


class TestSearchRequest:
    def test_pack_unpack(self) -> None:
        msg = m.SearchRequest(
            message_id=3,
            controls=[c.PagedResultControl(False, 100, b"")],
            base_object="DC=domain,DC=test",
            scope=m.SearchScope.ONE_LEVEL,
            deref_aliases=m.DereferencingPolicy.ALWAYS,
            size_limit=10,
            time_limit=0,
            types_only=False,
            filter=f.FilterAnd([f.FilterPresent("objectClass"), f.FilterEquality("cn", b"test")]),
            attributes=["cn", "sAMAccountName"],
        )

        actual = unpack_message(msg.pack(PACKING_OPTIONS))

        assert isinstance(actual, m.SearchRequest)
        assert actual.base_object == "DC=domain,DC=test"
        assert actual.scope == m.SearchScope.ONE_LEVEL
        assert actual.deref_aliases == m.DereferencingPolicy.ALWAYS
        assert actual.size_limit == 10
        assert actual.filter == msg.filter
        assert actual.attributes == ["cn", "sAMAccountName"]
        assert isinstance(actual.controls[0], c.PagedResultControl)
        assert actual.controls[0].size == 100


class TestSearchResults:
    def test_entry(self) -> None:
        msg = m.SearchResultEntry(
            message_id=3,
            controls=[],
            object_name="CN=user,DC=test",
            attributes=[
                m.PartialAttribute("objectClass", [b"top", b"user"]),
                m.PartialAttribute("description", []),
            ],
        )

        assert unpack_message(msg.pack(PACKING_OPTIONS)) == msg

    def test_reference(self) -> None:
        msg = m.SearchResultReference(message_id=3, controls=[], uris=["ldap://a/DC=a", "ldap://b/DC=b"])

        assert unpack_message(msg.pack(PACKING_OPTIONS)) == msg

    def test_done_with_referrals(self) -> None:
        result = m.LDAPResult(
            result_code=m.LDAPResultCode.REFERRAL,
            matched_dn="DC=test",
            diagnostics_message="go elsewhere",
            referrals=["ldap://other/DC=test"],
        )
        msg = m.SearchResultDone(message_id=3, controls=[], result=result)

        actual = unpack_message(msg.pack(PACKING_OPTIONS))

        assert isinstance(actual, m.SearchResultDone)
        assert actual.result == result


class TestModifyRequest:
    def test_modifications(self) -> None:
        assert m.Modification.add("a", [b"1"]).operation == m.ModifyOperation.ADD
        assert m.Modification.delete("a") == m.Modification(m.ModifyOperation.DELETE, "a", [])
        assert m.Modification.replace("a", [b"1"]).operation == m.ModifyOperation.REPLACE
        assert m.Modification.increment("a", 5) == m.Modification(m.ModifyOperation.INCREMENT, "a", [b"5"])

    def test_pack_unpack(self) -> None:
        msg = m.ModifyRequest(
            message_id=5,
            controls=[],
            object="CN=user,DC=test",
            changes=[
                m.Modification.replace("description", [b"value"]),
                m.Modification.delete("telephoneNumber"),
            ],
        )

        assert unpack_message(msg.pack(PACKING_OPTIONS)) == msg


class TestOtherOperations:
    def test_add(self) -> None:
        msg = m.AddRequest(
            message_id=6,
            controls=[],
            entry="CN=new,DC=test",
            attributes=[m.PartialAttribute("objectClass", [b"top", b"container"])],
        )

        assert unpack_message(msg.pack(PACKING_OPTIONS)) == msg

    def test_compare(self) -> None:
        msg = m.CompareRequest(message_id=7, controls=[], entry="CN=a,DC=test", attribute="cn", value=b"a")

        assert unpack_message(msg.pack(PACKING_OPTIONS)) == msg

    def test_compare_response(self) -> None:
        msg = m.CompareResponse(message_id=7, controls=[], result=m.LDAPResult(m.LDAPResultCode.COMPARE_TRUE))

        actual = unpack_message(msg.pack(PACKING_OPTIONS))

        assert isinstance(actual, m.CompareResponse)
        assert actual.result.result_code == m.LDAPResultCode.COMPARE_TRUE

    def test_extended(self) -> None:
        msg = m.ExtendedRequest(message_id=8, controls=[], name=m.ExtendedOperations.LDAP_WHO_AM_I.value)

        assert unpack_message(msg.pack(PACKING_OPTIONS)) == msg

    def test_extended_response(self) -> None:
        msg = m.ExtendedResponse(
            message_id=8,
            controls=[],
            result=m.LDAPResult(m.LDAPResultCode.SUCCESS),
            name="1.2.3",
            value=b"u:user",
        )

        assert unpack_message(msg.pack(PACKING_OPTIONS)) == msg


class TestLDAPResultCode:
    def test_unknown_code(self) -> None:
        actual = m.LDAPResultCode(1000)

        assert actual == 1000
        assert actual.name == "UNKNOWN 0x000003E8"


class TestLDAPCodec:
    def test_decode_next_consumed(self) -> None:
        codec = LDAPCodec()
        first = codec.encode(m.DelRequest(message_id=1, controls=[], entry="dc=x"))
        second = codec.encode(m.UnbindRequest(message_id=2, controls=[]))

        msg, consumed = codec.decode_next(first + second)

        assert msg == m.DelRequest(message_id=1, controls=[], entry="dc=x")
        assert consumed == len(first)

    @pytest.mark.parametrize("length", [0, 1, 2, 5])
    def test_decode_next_incomplete(self, length: int) -> None:
        codec = LDAPCodec()
        data = codec.encode(m.DelRequest(message_id=1, controls=[], entry="dc=x"))

        with pytest.raises(NotEnoughData):
            codec.decode_next(data[:length])

    def test_decode_next_with_controls(self) -> None:
        codec = LDAPCodec()
        msg = m.SearchResultDone(
            message_id=4,
            controls=[c.LDAPControl("1.2.3", False, None)],
            result=m.LDAPResult(m.LDAPResultCode.SUCCESS),
        )
        data = codec.encode(msg)

        actual, consumed = codec.decode_next(data)

        assert actual == msg
        assert consumed == len(data)

    def test_decode_next_notice_of_disconnection(self) -> None:
        codec = LDAPCodec()
        msg = m.ExtendedResponse(
            message_id=0,
            controls=[],
            result=m.LDAPResult(m.LDAPResultCode.UNAVAILABLE, diagnostics_message="shutting down"),
            name=m.ExtendedOperations.LDAP_NOTICE_OF_DISCONNECTION.value,
        )

        actual, _ = codec.decode_next(codec.encode(msg))

        assert actual == msg

    def test_string_encoding(self) -> None:
        codec = LDAPCodec(m.PackingOptions(string_encoding="utf-16-le"))
        data = codec.encode(m.DelRequest(message_id=1, controls=[], entry="dc=x"))

        assert b"d\x00c\x00" in data
        assert codec.decode_next(data)[0] == m.DelRequest(message_id=1, controls=[], entry="dc=x")
