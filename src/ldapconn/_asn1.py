# Copyright: (c) 2023, Jordan Borean (@jborean93) <jborean93@gmail.com>
# MIT License (see LICENSE or https://opensource.org/licenses/MIT)

"""ASN.1 BER reader and writer used by the LDAP codec."""

from __future__ import annotations

import enum
import typing as t


class NotEnoughData(Exception):
    """The buffer does not contain a complete ASN.1 value yet.

    This is raised when the header or the value being read extends past the
    end of the available data. It is used by the stream demultiplexer to know
    when to wait for more bytes and is separate from a ``ValueError`` which
    indicates the data is malformed.
    """


class TagClass(enum.IntEnum):
    UNIVERSAL = 0
    APPLICATION = 1
    CONTEXT_SPECIFIC = 2
    PRIVATE = 3


class TypeTagNumber(enum.IntEnum):
    END_OF_CONTENT = 0
    BOOLEAN = 1
    INTEGER = 2
    BIT_STRING = 3
    OCTET_STRING = 4
    NULL = 5
    OBJECT_IDENTIFIER = 6
    OBJECT_DESCRIPTOR = 7
    EXTERNAL = 8
    REAL = 9
    ENUMERATED = 10
    EMBEDDED_PDV = 11
    UTF8_STRING = 12
    RELATIVE_OID = 13
    TIME = 14
    RESERVED = 15
    SEQUENCE = 16
    SEQUENCE_OF = 16
    SET = 17
    SET_OF = 17
    NUMERIC_STRING = 18
    PRINTABLE_STRING = 19
    T61_STRING = 20
    VIDEOTEX_STRING = 21
    IA5_STRING = 22
    UTC_TIME = 23
    GENERALIZED_TIME = 24
    GRAPHIC_STRING = 25
    VISIBLE_STRING = 26
    GENERAL_STRING = 27
    UNIVERSAL_STRING = 28
    CHARACTER_STRING = 29
    BMP_STRING = 30
    DATE = 31
    TIME_OF_DAY = 32
    DATE_TIME = 33
    DURATION = 34
    OID_IRL = 35
    RELATIVE_OID_IRL = 36


class ASN1Tag(t.NamedTuple):
    tag_class: TagClass
    tag_number: t.Union[int, TypeTagNumber]
    is_constructed: bool

    @classmethod
    def universal_tag(
        cls,
        number: TypeTagNumber,
        is_constructed: bool = False,
    ) -> ASN1Tag:
        return ASN1Tag(
            tag_class=TagClass.UNIVERSAL,
            tag_number=number,
            is_constructed=is_constructed,
        )


class ASN1Header(t.NamedTuple):
    """The ASN.1 identifier and length octets of a TLV.

    Attributes:
        tag: The decoded tag.
        tag_length: The number of octets used by the identifier and length.
        length: The length of the value that follows the header.
    """

    tag: ASN1Tag
    tag_length: int
    length: int


def read_asn1_header(
    data: t.Union[bytes, bytearray, memoryview],
) -> ASN1Header:
    """Reads the ASN.1 Tag and Length octets

    Args:
        data: The raw bytes to read.

    Returns:
        ASN1Header: The tag and length information.

    Raises:
        NotEnoughData: The data does not contain the full header.
    """
    view = memoryview(data)
    if not view:
        raise NotEnoughData("No data available to read ASN.1 header")

    octet1 = view[0]
    tag_class = TagClass((octet1 & 0b11000000) >> 6)
    constructed = bool(octet1 & 0b00100000)
    tag_number: t.Union[int, TypeTagNumber] = octet1 & 0b00011111

    tag_octets = 1
    if tag_number == 31:
        tag_number, octet_count = _unpack_asn1_octet_number(view[1:])
        tag_octets += octet_count

    if tag_class == TagClass.UNIVERSAL:
        tag_number = TypeTagNumber(tag_number)

    view = view[tag_octets:]
    if not view:
        raise NotEnoughData("Not enough data to read ASN.1 length")

    length = view[0]
    length_octets = 1

    if length == 0b10000000:
        raise NotImplementedError("Indefinite length not implemented yet")

    elif length & 0b10000000:
        # The lower 7 bits contain the number of octets that encode the
        # actual length.
        length_octets += length & 0b01111111
        if len(view) < length_octets:
            raise NotEnoughData("Not enough data to read ASN.1 long form length")

        length = int.from_bytes(view[1:length_octets], byteorder="big")

    return ASN1Header(
        tag=ASN1Tag(
            tag_class=tag_class,
            tag_number=tag_number,
            is_constructed=constructed,
        ),
        tag_length=tag_octets + length_octets,
        length=length,
    )


def _pack_asn1_octet_number(
    num: int,
) -> bytes:
    """Packs a tag number into the base 128 form used for high tag numbers."""
    num_octets = bytearray()

    while num:
        octet_value = num & 0b01111111

        # Every octet but the last one has the MSB set.
        if len(num_octets):
            octet_value |= 0b10000000

        num_octets.append(octet_value)
        num >>= 7

    num_octets.reverse()

    return bytes(num_octets)


def _unpack_asn1_octet_number(
    data: memoryview,
) -> t.Tuple[int, int]:
    """Unpacks a base 128 tag number, returns the value and octets used."""
    i = 0
    idx = 0
    while True:
        if idx >= len(data):
            raise NotEnoughData("Not enough data to read ASN.1 tag number")

        element = data[idx]
        idx += 1

        i = (i << 7) + (element & 0b01111111)
        if not element & 0b10000000:
            break

    return i, idx


def pack_asn1(
    tag_class: TagClass,
    constructed: bool,
    tag_number: t.Union[TypeTagNumber, int],
    data: t.Union[bytes, bytearray, memoryview],
) -> bytes:
    """Pack the ASN.1 value into the ASN.1 bytes.

    Will pack the raw bytes into an ASN.1 Type Length Value (TLV) value. A TLV
    is in the form:

    | Identifier Octet(s) | Length Octet(s) | Data Octet(s) |

    Args:
        tag_class: The tag class of the data.
        constructed: Whether the data is constructed (True), i.e. contains 0,
            1, or more element encodings, or is primitive (False).
        tag_number: The type tag number if tag_class is universal else the
            explicit tag number of the TLV.
        data: The encoded value to pack into the ASN.1 TLV.

    Returns:
        bytes: The ASN.1 value as raw bytes.
    """
    b_asn1_data = bytearray()

    # ASN.1 Identifier octet is
    #
    # |             Octet 1             |  |              Octet 2              |
    # | 8 | 7 |  6  | 5 | 4 | 3 | 2 | 1 |  |   8   | 7 | 6 | 5 | 4 | 3 | 2 | 1 |
    # | Class | P/C | Tag Number (0-30) |  | More  | Tag number                |
    if tag_class < 0 or tag_class > 3:
        raise ValueError("tag_class must be between 0 and 3")

    identifier_octets = tag_class << 6
    identifier_octets |= (1 if constructed else 0) << 5

    if tag_number < 31:
        identifier_octets |= tag_number
        b_asn1_data.append(identifier_octets)
    else:
        identifier_octets |= 31
        b_asn1_data.append(identifier_octets)
        b_asn1_data.extend(_pack_asn1_octet_number(tag_number))

    # Lengths under 128 use the short form, otherwise the first octet is the
    # number of big endian length octets that follow with the MSB set.
    length = len(data)
    if length < 128:
        b_asn1_data.append(length)
    else:
        length_octets = length.to_bytes((length.bit_length() + 7) // 8, byteorder="big")
        b_asn1_data.append(len(length_octets) | 0b10000000)
        b_asn1_data.extend(length_octets)

    return bytes(b_asn1_data) + bytes(data)


EnumType = t.TypeVar("EnumType", bound=enum.IntEnum)


class ASN1Reader:
    """Reads ASN.1 values from a buffer.

    Each read method consumes the value it returned from the front of the
    buffer. Constructed values are returned as a new reader scoped to the
    contents of that value. The reader is truthy while data remains.

    Args:
        data: The data to read.
    """

    def __init__(
        self,
        data: t.Union[bytes, bytearray, memoryview],
    ) -> None:
        self._data = memoryview(data)

    def __bool__(self) -> bool:
        return bool(self._data)

    def get_remaining_data(self) -> bytes:
        return bytes(self._data)

    def peek_header(self) -> ASN1Header:
        return read_asn1_header(self._data)

    def read_tlv(
        self,
        header: t.Optional[ASN1Header] = None,
    ) -> ASN1Reader:
        """Reads the whole next TLV, header included, into a new reader."""
        header = header or self.peek_header()
        end = header.tag_length + header.length
        if len(self._data) < end:
            raise NotEnoughData(f"Not enough data for ASN.1 value: expecting {end} but got {len(self._data)}")

        tlv = self._data[:end]
        self._data = self._data[end:]

        return ASN1Reader(tlv)

    def skip_value(
        self,
        header: t.Optional[ASN1Header] = None,
    ) -> None:
        header = header or self.peek_header()
        self._read_value(header, hint=None)

    def read_boolean(
        self,
        tag: t.Optional[ASN1Tag] = None,
        header: t.Optional[ASN1Header] = None,
        hint: t.Optional[str] = None,
    ) -> bool:
        raw = self._read(tag, ASN1Tag.universal_tag(TypeTagNumber.BOOLEAN), header, hint)
        return raw != b"\x00"

    def read_integer(
        self,
        tag: t.Optional[ASN1Tag] = None,
        header: t.Optional[ASN1Header] = None,
        hint: t.Optional[str] = None,
    ) -> int:
        raw = self._read(tag, ASN1Tag.universal_tag(TypeTagNumber.INTEGER), header, hint)
        if not raw:
            hint_str = f" for {hint}" if hint else ""
            raise ValueError(f"Received empty INTEGER value{hint_str}")

        return int.from_bytes(raw, byteorder="big", signed=True)

    def read_enumerated(
        self,
        enum_type: t.Type[EnumType],
        tag: t.Optional[ASN1Tag] = None,
        header: t.Optional[ASN1Header] = None,
        hint: t.Optional[str] = None,
    ) -> EnumType:
        value = self.read_integer(
            tag=tag or (None if header else ASN1Tag.universal_tag(TypeTagNumber.ENUMERATED)),
            header=header,
            hint=hint,
        )
        return enum_type(value)

    def read_octet_string(
        self,
        tag: t.Optional[ASN1Tag] = None,
        header: t.Optional[ASN1Header] = None,
        hint: t.Optional[str] = None,
    ) -> bytes:
        return bytes(self._read(tag, ASN1Tag.universal_tag(TypeTagNumber.OCTET_STRING), header, hint))

    def read_sequence(
        self,
        tag: t.Optional[ASN1Tag] = None,
        header: t.Optional[ASN1Header] = None,
        hint: t.Optional[str] = None,
    ) -> ASN1Reader:
        return ASN1Reader(self._read(tag, ASN1Tag.universal_tag(TypeTagNumber.SEQUENCE, True), header, hint))

    def read_set(
        self,
        tag: t.Optional[ASN1Tag] = None,
        header: t.Optional[ASN1Header] = None,
        hint: t.Optional[str] = None,
    ) -> ASN1Reader:
        return ASN1Reader(self._read(tag, ASN1Tag.universal_tag(TypeTagNumber.SET, True), header, hint))

    read_sequence_of = read_sequence
    read_set_of = read_set

    def _read(
        self,
        tag: t.Optional[ASN1Tag],
        default_tag: ASN1Tag,
        header: t.Optional[ASN1Header],
        hint: t.Optional[str],
    ) -> memoryview:
        # A header passed in has already been matched by the caller, its tag
        # is only checked against an explicit tag.
        if header is None:
            header = self.peek_header()
            expected_tag = tag or default_tag
        else:
            expected_tag = tag or header.tag

        if header.tag != expected_tag:
            hint_str = f" for {hint}" if hint else ""
            raise ValueError(f"Expected tag {expected_tag}{hint_str} but got {header.tag}")

        return self._read_value(header, hint)

    def _read_value(
        self,
        header: ASN1Header,
        hint: t.Optional[str],
    ) -> memoryview:
        end = header.tag_length + header.length
        if len(self._data) < end:
            hint_str = f" for {hint}" if hint else ""
            raise NotEnoughData(f"Not enough data{hint_str}: expecting {end} but got {len(self._data)}")

        value = self._data[header.tag_length : end]
        self._data = self._data[end:]

        return value


class ASN1Writer:
    """Writes ASN.1 values into a buffer.

    Constructed values are written through the context manager returned by
    :func:`push_sequence` or :func:`push_set_of`, the value is added to the
    parent once the context exits.
    """

    def __init__(self) -> None:
        self._data = bytearray()

    def get_data(self) -> bytearray:
        return self._data

    def push_sequence(
        self,
        tag: t.Optional[ASN1Tag] = None,
    ) -> ASN1Sequence:
        return ASN1Sequence(self, tag or ASN1Tag.universal_tag(TypeTagNumber.SEQUENCE, True))

    def push_set_of(
        self,
        tag: t.Optional[ASN1Tag] = None,
    ) -> ASN1Sequence:
        return ASN1Sequence(self, tag or ASN1Tag.universal_tag(TypeTagNumber.SET_OF, True))

    push_sequence_of = push_sequence

    def write_boolean(
        self,
        value: bool,
        tag: t.Optional[ASN1Tag] = None,
    ) -> None:
        self.write_tlv(tag or ASN1Tag.universal_tag(TypeTagNumber.BOOLEAN), b"\xFF" if value else b"\x00")

    def write_integer(
        self,
        value: int,
        tag: t.Optional[ASN1Tag] = None,
    ) -> None:
        # Smallest two's complement form, (value + 1) for negative numbers
        # avoids an extra 0xFF octet for -128, -32768, etc.
        length = ((value + (value < 0)).bit_length() + 8) // 8
        b_value = value.to_bytes(length, byteorder="big", signed=True)
        self.write_tlv(tag or ASN1Tag.universal_tag(TypeTagNumber.INTEGER), b_value)

    def write_enumerated(
        self,
        value: int,
        tag: t.Optional[ASN1Tag] = None,
    ) -> None:
        self.write_integer(value, tag or ASN1Tag.universal_tag(TypeTagNumber.ENUMERATED))

    def write_octet_string(
        self,
        value: t.Union[bytes, bytearray, memoryview],
        tag: t.Optional[ASN1Tag] = None,
    ) -> None:
        self.write_tlv(tag or ASN1Tag.universal_tag(TypeTagNumber.OCTET_STRING), value)

    def write_tlv(
        self,
        tag: ASN1Tag,
        value: t.Union[bytes, bytearray, memoryview],
    ) -> None:
        self._data.extend(pack_asn1(tag.tag_class, tag.is_constructed, tag.tag_number, value))


class ASN1Sequence(ASN1Writer):
    def __init__(
        self,
        parent: ASN1Writer,
        tag: ASN1Tag,
    ) -> None:
        super().__init__()
        self._parent = parent
        self._tag = tag

    def __enter__(self) -> ASN1Sequence:
        return self

    def __exit__(self, exc_type: t.Any, *args: t.Any) -> None:
        if exc_type is None:
            self._parent.write_tlv(self._tag, self._data)
