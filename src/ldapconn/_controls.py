# Copyright: (c) 2023, Jordan Borean (@jborean93) <jborean93@gmail.com>
# MIT License (see LICENSE or https://opensource.org/licenses/MIT)

from __future__ import annotations

import dataclasses
import typing as t

from ._asn1 import ASN1Reader, ASN1Writer, TagClass, TypeTagNumber


@dataclasses.dataclass
class ControlOptions:
    """Options used for Control packing and unpacking.

    Args:
        string_encoding: The encoding used for the control OID strings.
        choices: Controls that unpack into their own type, any other control
            is unpacked as a plain :class:`LDAPControl`.
    """

    string_encoding: str = "utf-8"
    choices: t.List[t.Type[LDAPControl]] = dataclasses.field(
        default_factory=lambda: [PagedResultControl],
    )


@dataclasses.dataclass(frozen=True)
class LDAPControl:
    """LDAP Control.

    A control attached to a request or response message. It is identified by
    its OID and can be marked as critical which tells the peer to fail the
    operation if the control is not understood. Subclasses set a default
    ``control_type`` and override ``get_value`` and ``unpack`` to expose the
    value as structured data.

    Args:
        control_type: The control OID string.
        critical: Whether the control is marked as critical or not.
        value: The raw control value, if any.

    .. _RFC 4511 4.1.11. Controls:
        https://www.rfc-editor.org/rfc/rfc4511#section-4.1.11
    """

    # Control ::= SEQUENCE {
    #         controlType             LDAPOID,
    #         criticality             BOOLEAN DEFAULT FALSE,
    #         controlValue            OCTET STRING OPTIONAL
    # }

    control_type: str
    critical: bool
    value: t.Optional[bytes]

    def pack(
        self,
        writer: ASN1Writer,
        options: ControlOptions,
    ) -> None:
        with writer.push_sequence() as control_writer:
            control_writer.write_octet_string(self.control_type.encode(options.string_encoding))

            if self.critical:
                control_writer.write_boolean(self.critical)

            value = self.get_value(options)
            if value is not None:
                control_writer.write_octet_string(value)

    def get_value(
        self,
        options: ControlOptions,
    ) -> t.Optional[bytes]:
        return self.value

    @classmethod
    def unpack(
        cls,
        control_type: str,
        critical: bool,
        value: t.Optional[bytes],
        options: ControlOptions,
    ) -> LDAPControl:
        return LDAPControl(control_type, critical, value)


def unpack_ldap_control(
    reader: ASN1Reader,
    options: ControlOptions,
) -> LDAPControl:
    """Unpacks the next Control in the reader."""
    control_reader = reader.read_sequence(hint="Control")

    control_type = control_reader.read_octet_string(
        hint="Control.controlType",
    ).decode(options.string_encoding)

    critical = False
    value: t.Optional[bytes] = None
    while control_reader:
        next_header = control_reader.peek_header()
        if next_header.tag.tag_class != TagClass.UNIVERSAL:
            control_reader.skip_value(next_header)

        elif next_header.tag.tag_number == TypeTagNumber.BOOLEAN:
            critical = control_reader.read_boolean(header=next_header, hint="Control.criticality")

        elif next_header.tag.tag_number == TypeTagNumber.OCTET_STRING:
            value = control_reader.read_octet_string(header=next_header, hint="Control.controlValue")

        else:
            control_reader.skip_value(next_header)

    control_cls = next(
        (c for c in options.choices if c.control_type == control_type),
        LDAPControl,
    )
    control = control_cls.unpack(control_type, critical, value, options)

    # Known controls parse the value but callers can still see the raw bytes.
    object.__setattr__(control, "value", value)

    return control


@dataclasses.dataclass(frozen=True)
class PagedResultControl(LDAPControl):
    """Control for Simple Paged Results.

    Sent by the client to ask the server to return a search in pages of
    ``size`` entries. The server returns the same control on the
    SearchResultDone with a cookie, an empty cookie means there are no more
    pages. Each page is a separate search operation on the connection.

    Args:
        critical: Whether the control must be known by the server or not.
        size: The desired page size on a request or the estimated total on a
            response.
        cookie: Opaque server cookie, empty on the first request.

    .. _RFC 2696 2. The Control:
        https://www.rfc-editor.org/rfc/rfc2696.html#section-2
    """

    control_type: str = dataclasses.field(init=False, default="1.2.840.113556.1.4.319")
    value: t.Optional[bytes] = dataclasses.field(init=False, default=None, repr=False)

    size: int
    cookie: bytes

    def get_value(
        self,
        options: ControlOptions,
    ) -> t.Optional[bytes]:
        writer = ASN1Writer()
        with writer.push_sequence() as inner_writer:
            inner_writer.write_integer(self.size)
            inner_writer.write_octet_string(self.cookie)

        return bytes(writer.get_data())

    @classmethod
    def unpack(
        cls,
        control_type: str,
        critical: bool,
        value: t.Optional[bytes],
        options: ControlOptions,
    ) -> PagedResultControl:
        reader = ASN1Reader(value or b"")
        control_reader = reader.read_sequence(hint="PagedResultControl")

        size = control_reader.read_integer(hint="PagedResultControl.size")
        cookie = control_reader.read_octet_string(hint="PagedResultControl.cookie")

        return PagedResultControl(critical=critical, size=size, cookie=cookie)
