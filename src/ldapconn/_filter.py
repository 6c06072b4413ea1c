# Copyright: (c) 2023, Jordan Borean (@jborean93) <jborean93@gmail.com>
# MIT License (see LICENSE or https://opensource.org/licenses/MIT)

from __future__ import annotations

import dataclasses
import re
import typing as t

from ._asn1 import ASN1Reader, ASN1Tag, ASN1Writer, TagClass

# Control chars, (, ), *, \ and anything outside of ASCII.
_STRING_ESCAPE_PATTERN = re.compile(b"[\\x00-\\x1F\\x28\\x29\\x2A\\x5C\\x7F-\\xFF]")


def _serialize_filter_value(
    value: bytes,
) -> str:
    def rplcr(matchobj: re.Match) -> bytes:
        return f"\\{ord(matchobj.group(0)):02x}".encode("utf-8")

    return _STRING_ESCAPE_PATTERN.sub(rplcr, value).decode("utf-8")


@dataclasses.dataclass
class FilterOptions:
    """Options used for Filter packing and unpacking.

    Args:
        string_encoding: The encoding used for attribute names.
        choices: The filter types that can be unpacked.
    """

    string_encoding: str = "utf-8"
    choices: t.List[t.Type[LDAPFilter]] = dataclasses.field(
        default_factory=lambda: [
            FilterAnd,
            FilterEquality,
            FilterNot,
            FilterOr,
            FilterPresent,
        ]
    )


@dataclasses.dataclass(frozen=True)
class LDAPFilter:
    """Base class for LDAP search filters.

    Filters are plain data objects that know how to write themselves into a
    :class:`SearchRequest`. The ``str()`` of a filter is the RFC 4515 string
    form and is only used for display.
    """

    # Filter ::= CHOICE {
    #      and             [0] SET SIZE (1..MAX) OF filter Filter,
    #      or              [1] SET SIZE (1..MAX) OF filter Filter,
    #      not             [2] Filter,
    #      equalityMatch   [3] AttributeValueAssertion,
    #      ...
    #      present         [7] AttributeDescription,
    #      ...  }

    filter_id: int

    def pack(
        self,
        writer: ASN1Writer,
        options: FilterOptions,
    ) -> None:
        raise NotImplementedError()  # pragma: nocover

    @classmethod
    def unpack(
        cls,
        reader: ASN1Reader,
        options: FilterOptions,
    ) -> LDAPFilter:
        next_header = reader.peek_header()
        if next_header.tag.tag_class == TagClass.CONTEXT_SPECIFIC:
            for filter_type in options.choices:
                if filter_type.filter_id == next_header.tag.tag_number:
                    return filter_type.unpack(reader, options)

        raise NotImplementedError(f"Unknown filter object {next_header.tag}, cannot unpack")


@dataclasses.dataclass(frozen=True)
class FilterAnd(LDAPFilter):
    """Matches when every one of ``filters`` matches, ``(&(a=1)(b=2))``."""

    filter_id: int = dataclasses.field(init=False, repr=False, default=0)

    filters: t.List[LDAPFilter]

    def __str__(self) -> str:
        return "(&" + "".join(str(f) for f in self.filters) + ")"

    def pack(
        self,
        writer: ASN1Writer,
        options: FilterOptions,
    ) -> None:
        with writer.push_set_of(ASN1Tag(TagClass.CONTEXT_SPECIFIC, self.filter_id, True)) as w:
            for f in self.filters:
                f.pack(w, options)

    @classmethod
    def unpack(
        cls,
        reader: ASN1Reader,
        options: FilterOptions,
    ) -> FilterAnd:
        and_reader = reader.read_set_of(
            tag=ASN1Tag(TagClass.CONTEXT_SPECIFIC, cls.filter_id, True),
            hint="Filter.and",
        )
        filters = []
        while and_reader:
            filters.append(LDAPFilter.unpack(and_reader, options))

        return FilterAnd(filters=filters)


@dataclasses.dataclass(frozen=True)
class FilterOr(LDAPFilter):
    """Matches when any one of ``filters`` matches, ``(|(a=1)(b=2))``."""

    filter_id: int = dataclasses.field(init=False, repr=False, default=1)

    filters: t.List[LDAPFilter]

    def __str__(self) -> str:
        return "(|" + "".join(str(f) for f in self.filters) + ")"

    def pack(
        self,
        writer: ASN1Writer,
        options: FilterOptions,
    ) -> None:
        with writer.push_set_of(ASN1Tag(TagClass.CONTEXT_SPECIFIC, self.filter_id, True)) as w:
            for f in self.filters:
                f.pack(w, options)

    @classmethod
    def unpack(
        cls,
        reader: ASN1Reader,
        options: FilterOptions,
    ) -> FilterOr:
        or_reader = reader.read_set_of(
            tag=ASN1Tag(TagClass.CONTEXT_SPECIFIC, cls.filter_id, True),
            hint="Filter.or",
        )
        filters = []
        while or_reader:
            filters.append(LDAPFilter.unpack(or_reader, options))

        return FilterOr(filters=filters)


@dataclasses.dataclass(frozen=True)
class FilterNot(LDAPFilter):
    """Inverts the inner filter, ``(!(a=1))``."""

    filter_id: int = dataclasses.field(init=False, repr=False, default=2)

    filter: LDAPFilter

    def __str__(self) -> str:
        return f"(!{self.filter!s})"

    def pack(
        self,
        writer: ASN1Writer,
        options: FilterOptions,
    ) -> None:
        with writer.push_sequence(ASN1Tag(TagClass.CONTEXT_SPECIFIC, self.filter_id, True)) as w:
            self.filter.pack(w, options)

    @classmethod
    def unpack(
        cls,
        reader: ASN1Reader,
        options: FilterOptions,
    ) -> FilterNot:
        not_reader = reader.read_sequence(
            tag=ASN1Tag(TagClass.CONTEXT_SPECIFIC, cls.filter_id, True),
            hint="Filter.not",
        )
        return FilterNot(filter=LDAPFilter.unpack(not_reader, options))


@dataclasses.dataclass(frozen=True)
class FilterEquality(LDAPFilter):
    """Matches when ``attribute`` has ``value``, ``(attribute=value)``."""

    filter_id: int = dataclasses.field(init=False, repr=False, default=3)

    attribute: str
    value: bytes

    def __str__(self) -> str:
        return f"({self.attribute}={_serialize_filter_value(self.value)})"

    def pack(
        self,
        writer: ASN1Writer,
        options: FilterOptions,
    ) -> None:
        with writer.push_sequence(ASN1Tag(TagClass.CONTEXT_SPECIFIC, self.filter_id, True)) as w:
            w.write_octet_string(self.attribute.encode(options.string_encoding))
            w.write_octet_string(self.value)

    @classmethod
    def unpack(
        cls,
        reader: ASN1Reader,
        options: FilterOptions,
    ) -> FilterEquality:
        filter_reader = reader.read_sequence(
            tag=ASN1Tag(TagClass.CONTEXT_SPECIFIC, cls.filter_id, True),
            hint="Filter.equalityMatch",
        )
        attribute = filter_reader.read_octet_string(
            hint="Filter.equalityMatch.attributeDesc",
        ).decode(options.string_encoding)
        value = filter_reader.read_octet_string(hint="Filter.equalityMatch.assertionValue")

        return FilterEquality(attribute=attribute, value=value)


@dataclasses.dataclass(frozen=True)
class FilterPresent(LDAPFilter):
    """Matches when ``attribute`` has any value, ``(attribute=*)``."""

    filter_id: int = dataclasses.field(init=False, repr=False, default=7)

    attribute: str

    def __str__(self) -> str:
        return f"({self.attribute}=*)"

    def pack(
        self,
        writer: ASN1Writer,
        options: FilterOptions,
    ) -> None:
        writer.write_octet_string(
            self.attribute.encode(options.string_encoding),
            tag=ASN1Tag(TagClass.CONTEXT_SPECIFIC, self.filter_id, False),
        )

    @classmethod
    def unpack(
        cls,
        reader: ASN1Reader,
        options: FilterOptions,
    ) -> FilterPresent:
        value = reader.read_octet_string(
            tag=ASN1Tag(TagClass.CONTEXT_SPECIFIC, cls.filter_id, False),
            hint="Filter.present",
        ).decode(options.string_encoding)

        return FilterPresent(attribute=value)
