# Copyright: (c) 2023, Jordan Borean (@jborean93) <jborean93@gmail.com>
# MIT License (see LICENSE or https://opensource.org/licenses/MIT)

from __future__ import annotations

import dataclasses
import enum
import typing as t

from ._controls import ControlOptions, LDAPControl, unpack_ldap_control
from ._filter import FilterOptions, LDAPFilter
from ._asn1 import ASN1Reader, ASN1Tag, ASN1Writer, NotEnoughData, TagClass


@dataclasses.dataclass
class PackingOptions:
    """Packing Options.

    Controls how LDAP messages are packed and unpacked by the codec.

    Args:
        string_encoding: The encoding used for DNs, attribute names and other
            LDAPString values.
        control: Options used to pack/unpack Control values.
        filter: Options used to pack/unpack LDAP filters.
    """

    string_encoding: str = "utf-8"
    control: ControlOptions = dataclasses.field(default_factory=ControlOptions)
    filter: FilterOptions = dataclasses.field(default_factory=FilterOptions)


class ExtendedOperations(str, enum.Enum):
    """Known LDAP Extended Operation Names."""

    LDAP_NOTICE_OF_DISCONNECTION = "1.3.6.1.4.1.1466.20036"
    LDAP_START_TLS = "1.3.6.1.4.1.1466.20037"
    LDAP_WHO_AM_I = "1.3.6.1.4.1.4203.1.11.3"


class DereferencingPolicy(enum.IntEnum):
    """Control alias dereferencing during a search."""

    NEVER = 0
    IN_SEARCHING = 1
    FINDING_BASE_OBJ = 2
    ALWAYS = 3


class SearchScope(enum.IntEnum):
    """Specifies the scope of the search to perform."""

    BASE = 0
    "The scope is constrained to the entry named by base_object"

    ONE_LEVEL = 1
    "The scope is constrained to the immediate subordinates of base_object."

    SUBTREE = 2
    "The scope is constrained to base_object and all its subordinates."


class ModifyOperation(enum.IntEnum):
    """The change applied by a :class:`Modification`."""

    ADD = 0
    DELETE = 1
    REPLACE = 2
    INCREMENT = 3
    "Defined in RFC 4525, the value is added to the existing integer value."


class LDAPResultCode(enum.IntEnum):
    """The known LDAP result codes."""

    SUCCESS = 0
    OPERATIONS_ERROR = 1
    PROTOCOL_ERROR = 2
    TIME_LIMIT_EXCEEDED = 3
    SIZE_LIMIT_EXCEEDED = 4
    COMPARE_FALSE = 5
    COMPARE_TRUE = 6
    AUTH_METHOD_NOT_SUPPORTED = 7
    STRONG_AUTH_REQUIRED = 8
    REFERRAL = 10
    ADMIN_LIMIT_EXCEEDED = 11
    UNAVAILABLE_CRITICAL_EXTENSION = 12
    CONFIDENTIALITY_REQUIRED = 13
    SASL_BIND_IN_PROGRESS = 14
    NO_SUCH_ATTRIBUTE = 16
    UNDEFINED_ATTRIBUTE_TYPE = 17
    INAPPROPRIATE_MATCHING = 18
    CONSTRAINT_VIOLATION = 19
    ATTRIBUTE_OR_VALUE_EXISTS = 20
    INVALID_ATTRIBUTE_SYNTAX = 21
    NO_SUCH_OBJECT = 32
    ALIAS_PROBLEM = 33
    INVALID_DN_SYNTAX = 34
    ALIAS_DEREFERENCING_PROBLEM = 36
    INAPPROPRIATE_AUTHENTICATION = 48
    INVALID_CREDENTIALS = 49
    INSUFFICIENT_ACCESS_RIGHTS = 50
    BUSY = 51
    UNAVAILABLE = 52
    UNWILLING_TO_PERFORM = 53
    LOOP_DETECT = 54
    NAMING_VIOLATION = 64
    OBJECT_CLASS_VIOLATION = 65
    NOT_ALLOWED_ON_NON_LEAF = 66
    NOT_ALLOWED_ON_RDN = 67
    ENTRY_ALREADY_EXISTS = 68
    OBJECT_CLASS_MODS_PROHIBITED = 69
    AFFECTS_MULTIPLE_DSAS = 71
    OTHER = 80

    @classmethod
    def _missing_(cls, value: object) -> t.Any:
        # Result codes are extensible, keep unknown values instead of failing
        # the whole message.
        if not isinstance(value, int):
            return None

        new_member = int.__new__(cls, value)
        new_member._name_ = "UNKNOWN 0x{0:08X}".format(value)
        new_member._value_ = value

        return cls._value2member_map_.setdefault(value, new_member)


class Request:
    "Identifies LDAP requests"


class Response:
    "Identifies LDAP responses"


@dataclasses.dataclass(frozen=True)
class AuthenticationCredential:
    """Base class for the BindRequest authentication choice."""

    # AuthenticationChoice ::= CHOICE {
    #      simple                  [0] OCTET STRING,
    #                              -- 1 and 2 reserved
    #      sasl                    [3] SaslCredentials,
    #      ...  }

    auth_id: t.ClassVar[int] = -1

    def pack(
        self,
        writer: ASN1Writer,
        options: PackingOptions,
    ) -> None:
        raise NotImplementedError()  # pragma: nocover

    @classmethod
    def unpack(
        cls,
        reader: ASN1Reader,
        options: PackingOptions,
    ) -> AuthenticationCredential:
        next_header = reader.peek_header()
        if next_header.tag.tag_class == TagClass.CONTEXT_SPECIFIC:
            for auth_type in [SimpleCredential, SaslCredential]:
                if auth_type.auth_id == next_header.tag.tag_number:
                    return auth_type.unpack(reader, options)

        raise NotImplementedError(f"Unknown authentication object {next_header.tag}, cannot unpack")


@dataclasses.dataclass(frozen=True)
class SimpleCredential(AuthenticationCredential):
    """Simple password authentication.

    Args:
        password: The password, an empty string is an anonymous or
            unauthenticated bind.
    """

    auth_id: t.ClassVar[int] = 0

    password: str

    def pack(
        self,
        writer: ASN1Writer,
        options: PackingOptions,
    ) -> None:
        writer.write_octet_string(
            self.password.encode(options.string_encoding),
            tag=ASN1Tag(TagClass.CONTEXT_SPECIFIC, self.auth_id, False),
        )

    @classmethod
    def unpack(
        cls,
        reader: ASN1Reader,
        options: PackingOptions,
    ) -> SimpleCredential:
        password = reader.read_octet_string(
            tag=ASN1Tag(TagClass.CONTEXT_SPECIFIC, cls.auth_id, False),
            hint="SimpleCredential.password",
        ).decode(options.string_encoding)

        return SimpleCredential(password=password)


@dataclasses.dataclass(frozen=True)
class SaslCredential(AuthenticationCredential):
    """SASL authentication.

    Args:
        mechanism: The SASL mechanism, like ``EXTERNAL`` or ``GSSAPI``.
        credentials: The SASL token for this step, if any.
    """

    # SaslCredentials ::= SEQUENCE {
    #      mechanism               LDAPString,
    #      credentials             OCTET STRING OPTIONAL }

    auth_id: t.ClassVar[int] = 3

    mechanism: str
    credentials: t.Optional[bytes] = None

    def pack(
        self,
        writer: ASN1Writer,
        options: PackingOptions,
    ) -> None:
        with writer.push_sequence(ASN1Tag(TagClass.CONTEXT_SPECIFIC, self.auth_id, True)) as sasl_writer:
            sasl_writer.write_octet_string(self.mechanism.encode(options.string_encoding))
            if self.credentials is not None:
                sasl_writer.write_octet_string(self.credentials)

    @classmethod
    def unpack(
        cls,
        reader: ASN1Reader,
        options: PackingOptions,
    ) -> SaslCredential:
        sasl_reader = reader.read_sequence(
            tag=ASN1Tag(TagClass.CONTEXT_SPECIFIC, cls.auth_id, True),
            hint="SaslCredential",
        )
        mechanism = sasl_reader.read_octet_string(hint="SaslCredential.mechanism").decode(options.string_encoding)

        credentials: t.Optional[bytes] = None
        if sasl_reader:
            credentials = sasl_reader.read_octet_string(hint="SaslCredential.credentials")

        return SaslCredential(mechanism=mechanism, credentials=credentials)


@dataclasses.dataclass(frozen=True)
class LDAPResult:
    """The status of a completed operation.

    Args:
        result_code: The result status of the operation.
        matched_dn: The last entry used in finding the target object, mostly
            used for diagnostic purposes on a failure.
        diagnostics_message: Free form diagnostic text from the server, it is
            only meant for display.
        referrals: Server URIs to retry the operation against when the
            result_code is ``REFERRAL``.

    .. _RFC 4511 4.1.9. Result Message:
        https://www.rfc-editor.org/rfc/rfc4511#section-4.1.9
    """

    # LDAPResult ::= SEQUENCE {
    #      resultCode         ENUMERATED { ... },
    #      matchedDN          LDAPDN,
    #      diagnosticMessage  LDAPString,
    #      referral           [3] Referral OPTIONAL }

    result_code: LDAPResultCode
    matched_dn: str = ""
    diagnostics_message: str = ""
    referrals: t.Optional[t.List[str]] = None

    def _pack_inner(
        self,
        writer: ASN1Writer,
        options: PackingOptions,
    ) -> None:
        writer.write_enumerated(self.result_code.value)
        writer.write_octet_string(self.matched_dn.encode(options.string_encoding))
        writer.write_octet_string(self.diagnostics_message.encode(options.string_encoding))

        if self.referrals is not None:
            with writer.push_sequence(ASN1Tag(TagClass.CONTEXT_SPECIFIC, 3, True)) as referrals:
                for r in self.referrals:
                    referrals.write_octet_string(r.encode(options.string_encoding))


def _unpack_ldap_result(
    reader: ASN1Reader,
    options: PackingOptions,
) -> LDAPResult:
    result_code = reader.read_enumerated(LDAPResultCode, hint="LDAPResult.resultCode")
    matched_dn = reader.read_octet_string(hint="LDAPResult.matchedDN").decode(options.string_encoding)
    diagnostics_message = reader.read_octet_string(
        hint="LDAPResult.diagnosticMessage",
    ).decode(options.string_encoding)

    referrals: t.Optional[t.List[str]] = None
    if reader:
        next_header = reader.peek_header()

        if next_header.tag.tag_class == TagClass.CONTEXT_SPECIFIC and next_header.tag.tag_number == 3:
            referral_reader = reader.read_sequence(header=next_header, hint="LDAPResult.referral")

            referrals = []
            while referral_reader:
                r = referral_reader.read_octet_string(hint="LDAPResult.referral").decode(options.string_encoding)
                referrals.append(r)

    return LDAPResult(
        result_code=result_code,
        matched_dn=matched_dn,
        diagnostics_message=diagnostics_message,
        referrals=referrals,
    )


@dataclasses.dataclass(frozen=True)
class PartialAttribute:
    """An attribute name and its values.

    The values are unordered, the server does not guarantee the order is
    repeatable.

    .. _RFC 4511 4.1.7. Attribute and PartialAttribute:
        https://www.rfc-editor.org/rfc/rfc4511#section-4.1.7
    """

    # PartialAttribute ::= SEQUENCE {
    #      type       AttributeDescription,
    #      vals       SET OF value AttributeValue }

    name: str
    values: t.List[bytes]

    def _pack_inner(
        self,
        writer: ASN1Writer,
        options: PackingOptions,
    ) -> None:
        with writer.push_sequence() as attr_writer:
            attr_writer.write_octet_string(self.name.encode(options.string_encoding))

            with attr_writer.push_set_of() as values:
                for v in self.values:
                    values.write_octet_string(v)


def _unpack_partial_attribute(
    reader: ASN1Reader,
    options: PackingOptions,
) -> PartialAttribute:
    attr_reader = reader.read_sequence(hint="PartialAttribute")
    name = attr_reader.read_octet_string(hint="PartialAttribute.type").decode(options.string_encoding)

    values: t.List[bytes] = []
    value_reader = attr_reader.read_set_of(hint="PartialAttribute.vals")
    while value_reader:
        values.append(value_reader.read_octet_string(hint="PartialAttribute.vals.value"))

    return PartialAttribute(name=name, values=values)


@dataclasses.dataclass(frozen=True)
class Modification:
    """A change to apply to an attribute of an entry.

    Use the ``add``, ``delete``, ``replace`` and ``increment`` constructors
    rather than passing the operation manually.

    Args:
        operation: The type of change.
        name: The attribute to change.
        values: The values for the change. An empty list with ``DELETE``
            removes the whole attribute and with ``REPLACE`` clears it.
    """

    # change SEQUENCE {
    #      operation       ENUMERATED { add (0), delete (1), replace (2), ... },
    #      modification    PartialAttribute }

    operation: ModifyOperation
    name: str
    values: t.List[bytes] = dataclasses.field(default_factory=list)

    @classmethod
    def add(cls, name: str, values: t.List[bytes]) -> Modification:
        return cls(ModifyOperation.ADD, name, values)

    @classmethod
    def delete(cls, name: str, values: t.Optional[t.List[bytes]] = None) -> Modification:
        return cls(ModifyOperation.DELETE, name, values or [])

    @classmethod
    def replace(cls, name: str, values: t.List[bytes]) -> Modification:
        return cls(ModifyOperation.REPLACE, name, values)

    @classmethod
    def increment(cls, name: str, value: int) -> Modification:
        return cls(ModifyOperation.INCREMENT, name, [str(value).encode("utf-8")])

    def _pack_inner(
        self,
        writer: ASN1Writer,
        options: PackingOptions,
    ) -> None:
        with writer.push_sequence() as change:
            change.write_enumerated(self.operation.value)
            PartialAttribute(self.name, self.values)._pack_inner(change, options)


def _unpack_modification(
    reader: ASN1Reader,
    options: PackingOptions,
) -> Modification:
    change = reader.read_sequence(hint="ModifyRequest.change")
    operation = change.read_enumerated(ModifyOperation, hint="ModifyRequest.change.operation")
    attribute = _unpack_partial_attribute(change, options)

    return Modification(operation=operation, name=attribute.name, values=attribute.values)


@dataclasses.dataclass(frozen=True)
class LDAPMessage:
    """The base LDAP Message object.

    Every request and response is an LDAPMessage with a message id, the
    protocolOp choice identified by ``tag_number`` and optional controls.
    Requests are normally created with a message_id of 0, the connection
    assigns the real identifier when the request is submitted.

    Args:
        message_id: The unique identifier for the request.
        controls: A list of controls associated with the message.

    .. _RFC 4511 4.1.1. Message Envelope:
        https://www.rfc-editor.org/rfc/rfc4511#section-4.1.1
    """

    # LDAPMessage ::= SEQUENCE {
    #         messageID       MessageID,
    #         protocolOp      CHOICE { ... },
    #         controls       [0] Controls OPTIONAL }

    tag_number: t.ClassVar[int] = -1

    message_id: int
    controls: t.List[LDAPControl]

    def pack(
        self,
        options: PackingOptions,
    ) -> bytes:
        """Packs the message into the BER encoded bytes sent to the peer."""
        writer = ASN1Writer()

        with writer.push_sequence() as seq:
            seq.write_integer(self.message_id)
            self._pack_protocol_op(seq, options)

            if self.controls:
                with seq.push_sequence(ASN1Tag(TagClass.CONTEXT_SPECIFIC, 0, True)) as control_writer:
                    for control in self.controls:
                        control.pack(control_writer, options.control)

        return bytes(writer.get_data())

    def _pack_protocol_op(
        self,
        writer: ASN1Writer,
        options: PackingOptions,
    ) -> None:
        with writer.push_sequence(ASN1Tag(TagClass.APPLICATION, self.tag_number, True)) as inner:
            self._pack_inner(inner, options)

    def _pack_inner(
        self,
        writer: ASN1Writer,
        options: PackingOptions,
    ) -> None:
        return

    @classmethod
    def _unpack_protocol_op(
        cls,
        reader: ASN1Reader,
        options: PackingOptions,
        message_id: int,
        controls: t.List[LDAPControl],
    ) -> LDAPMessage:
        inner = reader.read_sequence(
            tag=ASN1Tag(TagClass.APPLICATION, cls.tag_number, True),
            hint=f"LDAPMessage.protocolOp.{cls.__name__}",
        )
        return cls._unpack_inner(inner, options, message_id, controls)

    @classmethod
    def _unpack_inner(
        cls,
        reader: ASN1Reader,
        options: PackingOptions,
        message_id: int,
        controls: t.List[LDAPControl],
    ) -> LDAPMessage:
        raise NotImplementedError()  # pragma: nocover


@dataclasses.dataclass(frozen=True)
class _ResultResponse(LDAPMessage, Response):
    """A response that is only made up of an LDAPResult."""

    result: LDAPResult

    def _pack_inner(
        self,
        writer: ASN1Writer,
        options: PackingOptions,
    ) -> None:
        self.result._pack_inner(writer, options)

    @classmethod
    def _unpack_inner(
        cls,
        reader: ASN1Reader,
        options: PackingOptions,
        message_id: int,
        controls: t.List[LDAPControl],
    ) -> LDAPMessage:
        return cls(
            message_id=message_id,
            controls=controls,
            result=_unpack_ldap_result(reader, options),
        )


@dataclasses.dataclass(frozen=True)
class BindRequest(LDAPMessage, Request):
    """The bind request message.

    Authenticates the connection. No other operation may be outstanding while
    the bind response is pending, the connection holds back any queued
    requests until it is received.

    Args:
        message_id: The unique identifier for the request.
        controls: A list of controls associated with the message.
        version: The LDAP protocol version, only 3 is supported.
        name: The DN to bind as, empty for anonymous and most SASL binds.
        authentication: A :class:`SimpleCredential` or
            :class:`SaslCredential`.

    .. _RFC 4511 4.2. Bind Operation:
        https://www.rfc-editor.org/rfc/rfc4511#section-4.2
    """

    # BindRequest ::= [APPLICATION 0] SEQUENCE {
    #      version                 INTEGER (1 ..  127),
    #      name                    LDAPDN,
    #      authentication          AuthenticationChoice }

    tag_number: t.ClassVar[int] = 0

    version: int
    name: str
    authentication: AuthenticationCredential

    def _pack_inner(
        self,
        writer: ASN1Writer,
        options: PackingOptions,
    ) -> None:
        writer.write_integer(self.version)
        writer.write_octet_string(self.name.encode(options.string_encoding))
        self.authentication.pack(writer, options)

    @classmethod
    def _unpack_inner(
        cls,
        reader: ASN1Reader,
        options: PackingOptions,
        message_id: int,
        controls: t.List[LDAPControl],
    ) -> BindRequest:
        version = reader.read_integer(hint="BindRequest.version")
        name = reader.read_octet_string(hint="BindRequest.name").decode(options.string_encoding)
        authentication = AuthenticationCredential.unpack(reader, options)

        return BindRequest(
            message_id=message_id,
            controls=controls,
            version=version,
            name=name,
            authentication=authentication,
        )


@dataclasses.dataclass(frozen=True)
class BindResponse(_ResultResponse):
    """The bind response message.

    Args:
        result: The status of the bind, ``SASL_BIND_IN_PROGRESS`` means
            another SASL step is needed.
        server_sasl_creds: The SASL token from the server, if any.

    .. _RFC 4511 4.2.2. Bind Response:
        https://www.rfc-editor.org/rfc/rfc4511#section-4.2.2
    """

    # BindResponse ::= [APPLICATION 1] SEQUENCE {
    #      COMPONENTS OF LDAPResult,
    #      serverSaslCreds    [7] OCTET STRING OPTIONAL }

    tag_number: t.ClassVar[int] = 1

    server_sasl_creds: t.Optional[bytes] = None

    def _pack_inner(
        self,
        writer: ASN1Writer,
        options: PackingOptions,
    ) -> None:
        self.result._pack_inner(writer, options)

        if self.server_sasl_creds is not None:
            writer.write_octet_string(
                self.server_sasl_creds,
                ASN1Tag(TagClass.CONTEXT_SPECIFIC, 7, False),
            )

    @classmethod
    def _unpack_inner(
        cls,
        reader: ASN1Reader,
        options: PackingOptions,
        message_id: int,
        controls: t.List[LDAPControl],
    ) -> BindResponse:
        result = _unpack_ldap_result(reader, options)

        sasl_creds: t.Optional[bytes] = None
        while reader:
            next_header = reader.peek_header()

            if next_header.tag.tag_class == TagClass.CONTEXT_SPECIFIC and next_header.tag.tag_number == 7:
                sasl_creds = reader.read_octet_string(header=next_header, hint="BindResponse.serverSaslCreds")
                continue

            reader.skip_value(next_header)

        return BindResponse(
            message_id=message_id,
            controls=controls,
            result=result,
            server_sasl_creds=sasl_creds,
        )


@dataclasses.dataclass(frozen=True)
class UnbindRequest(LDAPMessage, Request):
    """The unbind request message.

    Tells the server the client is terminating the session. The server does
    not send a response.

    .. _RFC 4511 4.3. Unbind Operation:
        https://www.rfc-editor.org/rfc/rfc4511#section-4.3
    """

    # UnbindRequest ::= [APPLICATION 2] NULL

    tag_number: t.ClassVar[int] = 2

    def _pack_protocol_op(
        self,
        writer: ASN1Writer,
        options: PackingOptions,
    ) -> None:
        writer.write_tlv(ASN1Tag(TagClass.APPLICATION, self.tag_number, False), b"")

    @classmethod
    def _unpack_protocol_op(
        cls,
        reader: ASN1Reader,
        options: PackingOptions,
        message_id: int,
        controls: t.List[LDAPControl],
    ) -> UnbindRequest:
        reader.skip_value()
        return UnbindRequest(message_id=message_id, controls=controls)


@dataclasses.dataclass(frozen=True)
class SearchRequest(LDAPMessage, Request):
    """The search request message.

    The server answers with zero or more :class:`SearchResultEntry` and
    :class:`SearchResultReference` messages followed by a single
    :class:`SearchResultDone`.

    Args:
        message_id: The unique identifier for the request.
        controls: A list of controls associated with the message.
        base_object: The DN to search from, empty for the root DSE.
        scope: How deep below base_object to search.
        deref_aliases: How alias entries are dereferenced.
        size_limit: Maximum number of entries to return, 0 is no client limit.
        time_limit: Maximum time in seconds, 0 is no client limit.
        types_only: Only return attribute names and no values.
        filter: The filter that entries must match.
        attributes: The attributes to return, an empty list returns all user
            attributes.

    .. _RFC 4511 4.5.1. Search Request:
        https://www.rfc-editor.org/rfc/rfc4511#section-4.5.1
    """

    # SearchRequest ::= [APPLICATION 3] SEQUENCE {
    #      baseObject      LDAPDN,
    #      scope           ENUMERATED { ... },
    #      derefAliases    ENUMERATED { ... },
    #      sizeLimit       INTEGER (0 ..  maxInt),
    #      timeLimit       INTEGER (0 ..  maxInt),
    #      typesOnly       BOOLEAN,
    #      filter          Filter,
    #      attributes      AttributeSelection }

    tag_number: t.ClassVar[int] = 3

    base_object: str
    scope: SearchScope
    deref_aliases: DereferencingPolicy
    size_limit: int
    time_limit: int
    types_only: bool
    filter: LDAPFilter
    attributes: t.List[str]

    def _pack_inner(
        self,
        writer: ASN1Writer,
        options: PackingOptions,
    ) -> None:
        writer.write_octet_string(self.base_object.encode(options.string_encoding))
        writer.write_enumerated(self.scope.value)
        writer.write_enumerated(self.deref_aliases.value)
        writer.write_integer(self.size_limit)
        writer.write_integer(self.time_limit)
        writer.write_boolean(self.types_only)
        self.filter.pack(writer, options.filter)

        with writer.push_sequence_of() as attr_writer:
            for attr in self.attributes:
                attr_writer.write_octet_string(attr.encode(options.string_encoding))

    @classmethod
    def _unpack_inner(
        cls,
        reader: ASN1Reader,
        options: PackingOptions,
        message_id: int,
        controls: t.List[LDAPControl],
    ) -> SearchRequest:
        base_object = reader.read_octet_string(hint="SearchRequest.baseObject")
        scope = reader.read_enumerated(SearchScope, hint="SearchRequest.scope")
        deref_aliases = reader.read_enumerated(DereferencingPolicy, hint="SearchRequest.derefAliases")
        size_limit = reader.read_integer(hint="SearchRequest.sizeLimit")
        time_limit = reader.read_integer(hint="SearchRequest.timeLimit")
        types_only = reader.read_boolean(hint="SearchRequest.typesOnly")
        filter = LDAPFilter.unpack(reader, options.filter)

        attributes: t.List[str] = []
        attributes_reader = reader.read_sequence_of(hint="SearchRequest.attributes")
        while attributes_reader:
            attr = attributes_reader.read_octet_string(hint="SearchRequest.attributes.value")
            attributes.append(attr.decode(options.string_encoding))

        return SearchRequest(
            message_id=message_id,
            controls=controls,
            base_object=base_object.decode(options.string_encoding),
            scope=scope,
            deref_aliases=deref_aliases,
            size_limit=size_limit,
            time_limit=time_limit,
            types_only=types_only,
            filter=filter,
            attributes=attributes,
        )


@dataclasses.dataclass(frozen=True)
class SearchResultEntry(LDAPMessage, Response):
    """A single entry found by a search.

    Args:
        object_name: The DN of the entry.
        attributes: The requested attributes of the entry.

    .. _RFC 4511 4.5.2. Search Result:
        https://www.rfc-editor.org/rfc/rfc4511#section-4.5.2
    """

    # SearchResultEntry ::= [APPLICATION 4] SEQUENCE {
    #      objectName      LDAPDN,
    #      attributes      PartialAttributeList }

    tag_number: t.ClassVar[int] = 4

    object_name: str
    attributes: t.List[PartialAttribute]

    def _pack_inner(
        self,
        writer: ASN1Writer,
        options: PackingOptions,
    ) -> None:
        writer.write_octet_string(self.object_name.encode(options.string_encoding))

        with writer.push_sequence_of() as attr_writer:
            for attribute in self.attributes:
                attribute._pack_inner(attr_writer, options)

    @classmethod
    def _unpack_inner(
        cls,
        reader: ASN1Reader,
        options: PackingOptions,
        message_id: int,
        controls: t.List[LDAPControl],
    ) -> SearchResultEntry:
        object_name = reader.read_octet_string(hint="SearchResultEntry.objectName").decode(options.string_encoding)

        attributes: t.List[PartialAttribute] = []
        attr_reader = reader.read_sequence_of(hint="SearchResultEntry.attributes")
        while attr_reader:
            attributes.append(_unpack_partial_attribute(attr_reader, options))

        return SearchResultEntry(
            message_id=message_id,
            controls=controls,
            object_name=object_name,
            attributes=attributes,
        )


@dataclasses.dataclass(frozen=True)
class SearchResultDone(_ResultResponse):
    """Marks the end of a search operation and carries its status."""

    # SearchResultDone ::= [APPLICATION 5] LDAPResult

    tag_number: t.ClassVar[int] = 5


@dataclasses.dataclass(frozen=True)
class SearchResultReference(LDAPMessage, Response):
    """A continuation reference returned during a search.

    Sent when part of the search has to be continued on other servers.

    Args:
        uris: The URIs of the servers to continue the search on.
    """

    # SearchResultReference ::= [APPLICATION 19] SEQUENCE
    #                           SIZE (1..MAX) OF uri URI

    tag_number: t.ClassVar[int] = 19

    uris: t.List[str]

    def _pack_inner(
        self,
        writer: ASN1Writer,
        options: PackingOptions,
    ) -> None:
        for uri in self.uris:
            writer.write_octet_string(uri.encode(options.string_encoding))

    @classmethod
    def _unpack_inner(
        cls,
        reader: ASN1Reader,
        options: PackingOptions,
        message_id: int,
        controls: t.List[LDAPControl],
    ) -> SearchResultReference:
        uris: t.List[str] = []
        while reader:
            uris.append(reader.read_octet_string(hint="SearchResultReference.uri").decode(options.string_encoding))

        return SearchResultReference(message_id=message_id, controls=controls, uris=uris)


@dataclasses.dataclass(frozen=True)
class ModifyRequest(LDAPMessage, Request):
    """Applies a list of changes to a single entry.

    The changes are applied in order and atomically, either all of them
    succeed or none are applied.

    Args:
        object: The DN of the entry to modify.
        changes: The :class:`Modification` list to apply.

    .. _RFC 4511 4.6. Modify Operation:
        https://www.rfc-editor.org/rfc/rfc4511#section-4.6
    """

    # ModifyRequest ::= [APPLICATION 6] SEQUENCE {
    #      object          LDAPDN,
    #      changes         SEQUENCE OF change SEQUENCE { ... } }

    tag_number: t.ClassVar[int] = 6

    object: str
    changes: t.List[Modification]

    def _pack_inner(
        self,
        writer: ASN1Writer,
        options: PackingOptions,
    ) -> None:
        writer.write_octet_string(self.object.encode(options.string_encoding))

        with writer.push_sequence_of() as changes:
            for change in self.changes:
                change._pack_inner(changes, options)

    @classmethod
    def _unpack_inner(
        cls,
        reader: ASN1Reader,
        options: PackingOptions,
        message_id: int,
        controls: t.List[LDAPControl],
    ) -> ModifyRequest:
        obj = reader.read_octet_string(hint="ModifyRequest.object").decode(options.string_encoding)

        changes: t.List[Modification] = []
        changes_reader = reader.read_sequence_of(hint="ModifyRequest.changes")
        while changes_reader:
            changes.append(_unpack_modification(changes_reader, options))

        return ModifyRequest(message_id=message_id, controls=controls, object=obj, changes=changes)


@dataclasses.dataclass(frozen=True)
class ModifyResponse(_ResultResponse):
    # ModifyResponse ::= [APPLICATION 7] LDAPResult

    tag_number: t.ClassVar[int] = 7


@dataclasses.dataclass(frozen=True)
class AddRequest(LDAPMessage, Request):
    """Adds a new entry to the directory.

    Args:
        entry: The DN of the new entry.
        attributes: The attributes of the new entry, each must have at least
            one value.

    .. _RFC 4511 4.7. Add Operation:
        https://www.rfc-editor.org/rfc/rfc4511#section-4.7
    """

    # AddRequest ::= [APPLICATION 8] SEQUENCE {
    #      entry           LDAPDN,
    #      attributes      AttributeList }

    tag_number: t.ClassVar[int] = 8

    entry: str
    attributes: t.List[PartialAttribute]

    def _pack_inner(
        self,
        writer: ASN1Writer,
        options: PackingOptions,
    ) -> None:
        writer.write_octet_string(self.entry.encode(options.string_encoding))

        with writer.push_sequence_of() as attr_writer:
            for attribute in self.attributes:
                attribute._pack_inner(attr_writer, options)

    @classmethod
    def _unpack_inner(
        cls,
        reader: ASN1Reader,
        options: PackingOptions,
        message_id: int,
        controls: t.List[LDAPControl],
    ) -> AddRequest:
        entry = reader.read_octet_string(hint="AddRequest.entry").decode(options.string_encoding)

        attributes: t.List[PartialAttribute] = []
        attr_reader = reader.read_sequence_of(hint="AddRequest.attributes")
        while attr_reader:
            attributes.append(_unpack_partial_attribute(attr_reader, options))

        return AddRequest(message_id=message_id, controls=controls, entry=entry, attributes=attributes)


@dataclasses.dataclass(frozen=True)
class AddResponse(_ResultResponse):
    # AddResponse ::= [APPLICATION 9] LDAPResult

    tag_number: t.ClassVar[int] = 9


@dataclasses.dataclass(frozen=True)
class DelRequest(LDAPMessage, Request):
    """Deletes a leaf entry.

    Args:
        entry: The DN of the entry to delete.

    .. _RFC 4511 4.8. Delete Operation:
        https://www.rfc-editor.org/rfc/rfc4511#section-4.8
    """

    # DelRequest ::= [APPLICATION 10] LDAPDN

    tag_number: t.ClassVar[int] = 10

    entry: str

    def _pack_protocol_op(
        self,
        writer: ASN1Writer,
        options: PackingOptions,
    ) -> None:
        writer.write_octet_string(
            self.entry.encode(options.string_encoding),
            tag=ASN1Tag(TagClass.APPLICATION, self.tag_number, False),
        )

    @classmethod
    def _unpack_protocol_op(
        cls,
        reader: ASN1Reader,
        options: PackingOptions,
        message_id: int,
        controls: t.List[LDAPControl],
    ) -> DelRequest:
        entry = reader.read_octet_string(
            tag=ASN1Tag(TagClass.APPLICATION, cls.tag_number, False),
            hint="DelRequest",
        ).decode(options.string_encoding)

        return DelRequest(message_id=message_id, controls=controls, entry=entry)


@dataclasses.dataclass(frozen=True)
class DelResponse(_ResultResponse):
    # DelResponse ::= [APPLICATION 11] LDAPResult

    tag_number: t.ClassVar[int] = 11


@dataclasses.dataclass(frozen=True)
class CompareRequest(LDAPMessage, Request):
    """Compares an attribute value of an entry.

    The server answers ``COMPARE_TRUE`` or ``COMPARE_FALSE`` in the result
    code of the :class:`CompareResponse`.

    Args:
        entry: The DN of the entry to compare.
        attribute: The attribute name.
        value: The value to compare against.

    .. _RFC 4511 4.10. Compare Operation:
        https://www.rfc-editor.org/rfc/rfc4511#section-4.10
    """

    # CompareRequest ::= [APPLICATION 14] SEQUENCE {
    #      entry           LDAPDN,
    #      ava             AttributeValueAssertion }

    tag_number: t.ClassVar[int] = 14

    entry: str
    attribute: str
    value: bytes

    def _pack_inner(
        self,
        writer: ASN1Writer,
        options: PackingOptions,
    ) -> None:
        writer.write_octet_string(self.entry.encode(options.string_encoding))

        with writer.push_sequence() as ava:
            ava.write_octet_string(self.attribute.encode(options.string_encoding))
            ava.write_octet_string(self.value)

    @classmethod
    def _unpack_inner(
        cls,
        reader: ASN1Reader,
        options: PackingOptions,
        message_id: int,
        controls: t.List[LDAPControl],
    ) -> CompareRequest:
        entry = reader.read_octet_string(hint="CompareRequest.entry").decode(options.string_encoding)
        ava = reader.read_sequence(hint="CompareRequest.ava")
        attribute = ava.read_octet_string(hint="CompareRequest.ava.attributeDesc").decode(options.string_encoding)
        value = ava.read_octet_string(hint="CompareRequest.ava.assertionValue")

        return CompareRequest(
            message_id=message_id,
            controls=controls,
            entry=entry,
            attribute=attribute,
            value=value,
        )


@dataclasses.dataclass(frozen=True)
class CompareResponse(_ResultResponse):
    # CompareResponse ::= [APPLICATION 15] LDAPResult

    tag_number: t.ClassVar[int] = 15


@dataclasses.dataclass(frozen=True)
class ExtendedRequest(LDAPMessage, Request):
    """The extended request message.

    Runs an operation identified by an OID that is not part of the core
    protocol, like StartTLS or Who Am I.

    Args:
        name: The extended operation OID string.
        value: The operation specific request value, if any.

    .. _RFC 4511 4.12. Extended Operation:
        https://www.rfc-editor.org/rfc/rfc4511#section-4.12
    """

    # ExtendedRequest ::= [APPLICATION 23] SEQUENCE {
    #      requestName      [0] LDAPOID,
    #      requestValue     [1] OCTET STRING OPTIONAL }

    tag_number: t.ClassVar[int] = 23

    name: str
    value: t.Optional[bytes] = None

    def _pack_inner(
        self,
        writer: ASN1Writer,
        options: PackingOptions,
    ) -> None:
        writer.write_octet_string(
            self.name.encode(options.string_encoding),
            tag=ASN1Tag(TagClass.CONTEXT_SPECIFIC, 0, False),
        )

        if self.value is not None:
            writer.write_octet_string(
                self.value,
                tag=ASN1Tag(TagClass.CONTEXT_SPECIFIC, 1, False),
            )

    @classmethod
    def _unpack_inner(
        cls,
        reader: ASN1Reader,
        options: PackingOptions,
        message_id: int,
        controls: t.List[LDAPControl],
    ) -> ExtendedRequest:
        name = reader.read_octet_string(
            tag=ASN1Tag(TagClass.CONTEXT_SPECIFIC, 0, False),
            hint="ExtendedRequest.requestName",
        ).decode(options.string_encoding)

        value: t.Optional[bytes] = None
        while reader:
            next_header = reader.peek_header()

            if next_header.tag.tag_class == TagClass.CONTEXT_SPECIFIC and next_header.tag.tag_number == 1:
                value = reader.read_octet_string(header=next_header, hint="ExtendedRequest.requestValue")
                continue

            reader.skip_value(next_header)

        return ExtendedRequest(message_id=message_id, controls=controls, name=name, value=value)


@dataclasses.dataclass(frozen=True)
class ExtendedResponse(_ResultResponse):
    """The extended response message.

    Args:
        result: The result of the operation.
        name: The response OID, optionally returned by the server.
        value: The operation specific response value, if any.

    .. _RFC 4511 4.12. Extended Operation:
        https://www.rfc-editor.org/rfc/rfc4511#section-4.12
    """

    # ExtendedResponse ::= [APPLICATION 24] SEQUENCE {
    #      COMPONENTS OF LDAPResult,
    #      responseName     [10] LDAPOID OPTIONAL,
    #      responseValue    [11] OCTET STRING OPTIONAL }

    tag_number: t.ClassVar[int] = 24

    name: t.Optional[str] = None
    value: t.Optional[bytes] = None

    def _pack_inner(
        self,
        writer: ASN1Writer,
        options: PackingOptions,
    ) -> None:
        self.result._pack_inner(writer, options)

        if self.name is not None:
            writer.write_octet_string(
                self.name.encode(options.string_encoding),
                ASN1Tag(TagClass.CONTEXT_SPECIFIC, 10, False),
            )

        if self.value is not None:
            writer.write_octet_string(
                self.value,
                ASN1Tag(TagClass.CONTEXT_SPECIFIC, 11, False),
            )

    @classmethod
    def _unpack_inner(
        cls,
        reader: ASN1Reader,
        options: PackingOptions,
        message_id: int,
        controls: t.List[LDAPControl],
    ) -> ExtendedResponse:
        result = _unpack_ldap_result(reader, options)

        name: t.Optional[str] = None
        value: t.Optional[bytes] = None
        while reader:
            next_header = reader.peek_header()

            if next_header.tag.tag_class == TagClass.CONTEXT_SPECIFIC:
                if next_header.tag.tag_number == 10:
                    name = reader.read_octet_string(
                        header=next_header,
                        hint="ExtendedResponse.responseName",
                    ).decode(options.string_encoding)
                    continue

                elif next_header.tag.tag_number == 11:
                    value = reader.read_octet_string(header=next_header, hint="ExtendedResponse.responseValue")
                    continue

            reader.skip_value(next_header)

        return ExtendedResponse(
            message_id=message_id,
            controls=controls,
            result=result,
            name=name,
            value=value,
        )


PROTOCOL_OPS: t.Dict[int, t.Type[LDAPMessage]] = {
    msg_type.tag_number: msg_type
    for msg_type in [
        BindRequest,
        BindResponse,
        UnbindRequest,
        SearchRequest,
        SearchResultEntry,
        SearchResultDone,
        SearchResultReference,
        ModifyRequest,
        ModifyResponse,
        AddRequest,
        AddResponse,
        DelRequest,
        DelResponse,
        CompareRequest,
        CompareResponse,
        ExtendedRequest,
        ExtendedResponse,
    ]
}


def unpack_ldap_message(
    reader: ASN1Reader,
    options: PackingOptions,
) -> LDAPMessage:
    """Unpack an LDAP message.

    Unpacks the next LDAPMessage in the reader. A :class:`NotEnoughData` error
    is only raised when the outer LDAPMessage is incomplete. Once the whole
    envelope is present any truncated inner value means the data is invalid
    and a ``ValueError`` is raised instead.

    Args:
        reader: The ASN.1 reader to read from.
        options: Options to control the unpack methods.

    Returns:
        LDAPMessage: The unpacked message object.
    """
    message = reader.read_sequence(hint="LDAPMessage")

    try:
        message_id = message.read_integer(hint="LDAPMessage.messageId")

        protocol_op_header = message.peek_header()
        protocol_op_tag = protocol_op_header.tag
        if protocol_op_tag.tag_class != TagClass.APPLICATION:
            raise ValueError(f"Expecting LDAPMessage.protocolOp to be an APPLICATION but got {protocol_op_tag}")

        msg_type = PROTOCOL_OPS.get(protocol_op_tag.tag_number, None)
        if not msg_type:
            raise NotImplementedError(f"Unknown LDAPMessage.protocolOp choice {protocol_op_tag.tag_number}")

        protocol_reader = message.read_tlv(protocol_op_header)

        controls: t.List[LDAPControl] = []
        while message:
            next_header = message.peek_header()

            if next_header.tag.tag_class == TagClass.CONTEXT_SPECIFIC and next_header.tag.tag_number == 0:
                control_reader = message.read_sequence(header=next_header, hint="LDAPMessage.controls")
                while control_reader:
                    controls.append(unpack_ldap_control(control_reader, options.control))

                continue

            message.skip_value(next_header)

        return msg_type._unpack_protocol_op(protocol_reader, options, message_id, controls)

    except NotEnoughData as e:
        raise ValueError(f"LDAPMessage {e}") from e
