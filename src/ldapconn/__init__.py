# Copyright: (c) 2023, Jordan Borean (@jborean93) <jborean93@gmail.com>
# MIT License (see LICENSE or https://opensource.org/licenses/MIT)

from ._codec import LDAPCodec, MessageCodec
from ._connection import (
    ConnectionOptions,
    ConnectionState,
    LDAPConnection,
    PendingOperation,
    SearchResult,
    create_connection,
)
from ._controls import ControlOptions, LDAPControl, PagedResultControl
from ._exceptions import (
    ConnectionClosedError,
    LDAPError,
    LDAPResultError,
    ProtocolError,
    TransportError,
    raise_for_result,
)
from ._filter import (
    FilterAnd,
    FilterEquality,
    FilterNot,
    FilterOptions,
    FilterOr,
    FilterPresent,
    LDAPFilter,
)
from ._messages import (
    AddRequest,
    AddResponse,
    AuthenticationCredential,
    BindRequest,
    BindResponse,
    CompareRequest,
    CompareResponse,
    DelRequest,
    DelResponse,
    DereferencingPolicy,
    ExtendedOperations,
    ExtendedRequest,
    ExtendedResponse,
    LDAPMessage,
    LDAPResult,
    LDAPResultCode,
    Modification,
    ModifyOperation,
    ModifyRequest,
    ModifyResponse,
    PackingOptions,
    PartialAttribute,
    Request,
    Response,
    SaslCredential,
    SearchRequest,
    SearchResultDone,
    SearchResultEntry,
    SearchResultReference,
    SearchScope,
    SimpleCredential,
    UnbindRequest,
)
from ._asn1 import (
    ASN1Header,
    ASN1Reader,
    ASN1Tag,
    ASN1Writer,
    NotEnoughData,
    TagClass,
    TypeTagNumber,
)

__all__ = [
    "ASN1Header",
    "ASN1Reader",
    "ASN1Tag",
    "ASN1Writer",
    "AddRequest",
    "AddResponse",
    "AuthenticationCredential",
    "BindRequest",
    "BindResponse",
    "CompareRequest",
    "CompareResponse",
    "ConnectionClosedError",
    "ConnectionOptions",
    "ConnectionState",
    "ControlOptions",
    "DelRequest",
    "DelResponse",
    "DereferencingPolicy",
    "ExtendedOperations",
    "ExtendedRequest",
    "ExtendedResponse",
    "FilterAnd",
    "FilterEquality",
    "FilterNot",
    "FilterOptions",
    "FilterOr",
    "FilterPresent",
    "LDAPCodec",
    "LDAPConnection",
    "LDAPControl",
    "LDAPError",
    "LDAPFilter",
    "LDAPMessage",
    "LDAPResult",
    "LDAPResultCode",
    "LDAPResultError",
    "MessageCodec",
    "Modification",
    "ModifyOperation",
    "ModifyRequest",
    "ModifyResponse",
    "NotEnoughData",
    "PackingOptions",
    "PagedResultControl",
    "PartialAttribute",
    "PendingOperation",
    "ProtocolError",
    "Request",
    "Response",
    "SaslCredential",
    "SearchRequest",
    "SearchResult",
    "SearchResultDone",
    "SearchResultEntry",
    "SearchResultReference",
    "SearchScope",
    "SimpleCredential",
    "TagClass",
    "TransportError",
    "TypeTagNumber",
    "UnbindRequest",
    "create_connection",
    "raise_for_result",
]
