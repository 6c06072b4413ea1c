# Copyright: (c) 2023, Jordan Borean (@jborean93) <jborean93@gmail.com>
# MIT License (see LICENSE or https://opensource.org/licenses/MIT)

from __future__ import annotations

import asyncio
import collections
import dataclasses
import enum
import logging
import ssl
import time
import typing as t

from ._codec import LDAPCodec, MessageCodec
from ._controls import LDAPControl
from ._exceptions import (
    ConnectionClosedError,
    LDAPError,
    ProtocolError,
    TransportError,
)
from ._filter import FilterPresent, LDAPFilter
from ._messages import (
    AddRequest,
    BindRequest,
    CompareRequest,
    DelRequest,
    DereferencingPolicy,
    ExtendedOperations,
    ExtendedRequest,
    ExtendedResponse,
    LDAPMessage,
    LDAPResult,
    Modification,
    ModifyRequest,
    PackingOptions,
    PartialAttribute,
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
from ._asn1 import NotEnoughData

log = logging.getLogger("ldapconn")

ErrorHandler = t.Callable[[LDAPError], None]


def _is_notice_of_disconnection(message: t.Optional[LDAPMessage]) -> bool:
    return (
        isinstance(message, ExtendedResponse)
        and message.name == ExtendedOperations.LDAP_NOTICE_OF_DISCONNECTION.value
    )


class ConnectionState(enum.Enum):
    DISCONNECTED = enum.auto()
    "No transport has been opened yet."

    CONNECTING = enum.auto()
    "The transport is being opened, requests are queued."

    CONNECTED = enum.auto()
    "Requests are written as they are submitted."

    CLOSING = enum.auto()
    "Waiting for outstanding requests before closing the transport."

    CLOSED = enum.auto()
    "The transport is closed, connect() opens a new one."


@dataclasses.dataclass
class ConnectionOptions:
    """Connection Options.

    Args:
        host: The LDAP server to connect to.
        port: The port to connect to, defaults to 389 or 636 when ssl_context
            is set.
        ssl_context: Wraps the transport in TLS (LDAPS) when set.
        close_poll_interval: The seconds between checks for outstanding
            requests during a graceful close.
        correlate_by_message_id: Match responses to requests by their message
            id. When False the oldest in-flight request receives the response.
        packing: Options used by the default codec.
    """

    host: str = "localhost"
    port: t.Optional[int] = None
    ssl_context: t.Optional[ssl.SSLContext] = None
    close_poll_interval: float = 1.0
    correlate_by_message_id: bool = True
    packing: PackingOptions = dataclasses.field(default_factory=PackingOptions)

    def get_port(self) -> int:
        if self.port is not None:
            return self.port

        return 636 if self.ssl_context else 389


@dataclasses.dataclass
class SearchResult:
    """The aggregated result of a search operation.

    Entries and references are added in the order they are received. The
    result is set once the SearchResultDone message is received, after that
    the object no longer changes.
    """

    entries: t.List[SearchResultEntry] = dataclasses.field(default_factory=list)
    references: t.List[SearchResultReference] = dataclasses.field(default_factory=list)
    result: t.Optional[LDAPResult] = None

    @property
    def done(self) -> bool:
        return self.result is not None

    def add(
        self,
        entry: SearchResultEntry,
    ) -> None:
        self._check_open()
        self.entries.append(entry)

    def add_reference(
        self,
        reference: SearchResultReference,
    ) -> None:
        self._check_open()
        self.references.append(reference)

    def finalize(
        self,
        result: LDAPResult,
    ) -> None:
        self._check_open()
        self.result = result

    def _check_open(self) -> None:
        if self.done:
            raise ValueError("The search result has already been finalized")


class PendingOperation:
    """A submitted request and the future for its result."""

    def __init__(
        self,
        message: LDAPMessage,
        future: asyncio.Future,
    ) -> None:
        self.message = message
        self.future = future
        self.search_result = SearchResult() if isinstance(message, SearchRequest) else None
        self._created = time.monotonic()

    def __repr__(self) -> str:
        return f"<PendingOperation {type(self.message).__name__} id={self.message.message_id}>"

    @property
    def elapsed(self) -> float:
        """Seconds since the operation was submitted."""
        return time.monotonic() - self._created

    def resolve(
        self,
        value: t.Any,
    ) -> None:
        # The caller may have cancelled the future to drop the result.
        if not self.future.done():
            self.future.set_result(value)

    def fail(
        self,
        exc: BaseException,
    ) -> None:
        if not self.future.done():
            self.future.set_exception(exc)


class _TransportProtocol(asyncio.Protocol):
    """Forwards the callbacks of a single transport to the connection.

    A connection opens a new transport on every connect(). Callbacks from a
    transport that is no longer the connection's current transport are
    dropped, like the connection_lost of a transport closed before a
    reconnect.
    """

    def __init__(
        self,
        connection: LDAPConnection,
    ) -> None:
        self.connection = connection
        self.transport: t.Optional[asyncio.BaseTransport] = None

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        self.transport = transport
        self.connection.connection_made(transport)

    def data_received(self, data: bytes) -> None:
        if self._is_current():
            self.connection.data_received(data)

    def connection_lost(self, exc: t.Optional[Exception]) -> None:
        if self._is_current():
            self.connection.connection_lost(exc)

    def _is_current(self) -> bool:
        return self.transport is not None and self.transport is self.connection._transport


class LDAPConnection(asyncio.Protocol):
    """A connection to an LDAP server.

    Requests are submitted with :meth:`submit`, or one of the request helpers,
    and return a future that is resolved once the server responds. Requests
    can be submitted in any state, they are queued and written in submission
    order once the connection is open. While a bind request is in flight no
    other request is written until the bind response is received.

    Searches resolve with a :class:`SearchResult`, unbind requests resolve
    with None once written and every other request resolves with the
    response message.

    All methods must be called from the event loop the connection runs on.

    Args:
        options: The connection options.
        codec: The codec used to encode requests and decode responses,
            defaults to :class:`LDAPCodec`.
        logger: The logger to use, defaults to the ``ldapconn`` logger.
        error_handler: Called with any fatal transport or protocol error. If
            not set the error is raised from the callback that found it.
    """

    def __init__(
        self,
        options: t.Optional[ConnectionOptions] = None,
        codec: t.Optional[MessageCodec] = None,
        logger: t.Optional[logging.Logger] = None,
        error_handler: t.Optional[ErrorHandler] = None,
    ) -> None:
        self.options = options or ConnectionOptions()
        self.codec: MessageCodec = codec or LDAPCodec(self.options.packing)
        self.logger = logger or log
        self.error_handler = error_handler
        self.state = ConnectionState.DISCONNECTED

        self._transport: t.Optional[asyncio.Transport] = None
        self._outgoing: t.Deque[PendingOperation] = collections.deque()
        self._in_flight: t.Dict[int, PendingOperation] = {}
        self._incoming_buffer = b""
        self._message_counter = 1
        self._connect_task: t.Optional[asyncio.Task] = None
        self._close_handle: t.Optional[asyncio.TimerHandle] = None
        self._closed = asyncio.Event()

    async def __aenter__(self) -> LDAPConnection:
        task = self.connect()
        if task:
            await task

        return self

    async def __aexit__(self, *args: t.Any) -> None:
        self.close()
        await self.wait_closed()

    def connect(self) -> t.Optional[asyncio.Task]:
        """Opens the transport to the server.

        Does nothing if the connection is already open or being opened.

        Returns:
            Optional[asyncio.Task]: The task opening the transport, or None if
            no new transport is being opened.
        """
        if self.state in [ConnectionState.CONNECTED, ConnectionState.CONNECTING]:
            return None

        if self.state == ConnectionState.CLOSING:
            raise LDAPError("Cannot connect while the connection is closing")

        self.state = ConnectionState.CONNECTING
        self._closed.clear()
        self._connect_task = asyncio.get_running_loop().create_task(self._open())

        return self._connect_task

    def submit(
        self,
        request: LDAPMessage,
    ) -> asyncio.Future:
        """Submits a request to the server.

        The request is given the next message id and queued. It is written
        straight away if the connection is open.

        Args:
            request: The request message, the message_id is replaced.

        Returns:
            asyncio.Future: Resolves with the result of the request.
        """
        message = dataclasses.replace(request, message_id=self._message_counter)
        self._message_counter += 1

        if isinstance(message, BindRequest) and (self._outgoing or self._in_flight):
            self.logger.warning(
                "Bind request %d submitted while other operations are outstanding",
                message.message_id,
            )

        operation = PendingOperation(message, asyncio.get_running_loop().create_future())
        self._outgoing.append(operation)
        self.logger.debug("Queued %r in state %s", operation, self.state.name)

        self._send_pending()

        return operation.future

    def close(
        self,
        immediate: bool = False,
    ) -> None:
        """Closes the connection.

        A graceful close waits for the queued and in-flight requests to
        complete before closing the transport. Requests submitted while
        closing are still sent. An immediate close closes the transport
        straight away and fails every outstanding request with
        :class:`ConnectionClosedError`.

        Args:
            immediate: Close the transport without waiting.
        """
        if self.state == ConnectionState.CLOSED:
            return

        if self.state == ConnectionState.CLOSING and not immediate:
            return

        self.logger.info("Closing connection to %s, immediate=%s", self.options.host, immediate)
        self.state = ConnectionState.CLOSING

        if immediate:
            if self._connect_task and not self._connect_task.done():
                self._connect_task.cancel()

            self._do_close()
            self._abandon("The connection was closed before a response was received")

        else:
            self._check_close()

    async def wait_closed(self) -> None:
        """Waits until the connection is CLOSED."""
        await self._closed.wait()

    def bind_simple(
        self,
        name: str = "",
        password: str = "",
        controls: t.Optional[t.List[LDAPControl]] = None,
    ) -> asyncio.Future:
        return self.submit(
            BindRequest(
                message_id=0,
                controls=controls or [],
                version=3,
                name=name,
                authentication=SimpleCredential(password=password),
            )
        )

    def bind_sasl(
        self,
        mechanism: str,
        credentials: t.Optional[bytes] = None,
        name: str = "",
        controls: t.Optional[t.List[LDAPControl]] = None,
    ) -> asyncio.Future:
        return self.submit(
            BindRequest(
                message_id=0,
                controls=controls or [],
                version=3,
                name=name,
                authentication=SaslCredential(mechanism=mechanism, credentials=credentials),
            )
        )

    def search(
        self,
        base_object: str = "",
        scope: SearchScope = SearchScope.SUBTREE,
        filter: t.Optional[LDAPFilter] = None,
        attributes: t.Optional[t.List[str]] = None,
        deref_aliases: DereferencingPolicy = DereferencingPolicy.NEVER,
        size_limit: int = 0,
        time_limit: int = 0,
        types_only: bool = False,
        controls: t.Optional[t.List[LDAPControl]] = None,
    ) -> asyncio.Future:
        """Searches the directory.

        The future resolves with a :class:`SearchResult` holding every entry
        and reference received along with the final LDAPResult.

        Args:
            base_object: The DN to search from.
            scope: How deep below base_object to search.
            filter: The search filter, defaults to ``(objectClass=*)``.
            attributes: The attributes to return, defaults to all user
                attributes.
            deref_aliases: How aliases are dereferenced.
            size_limit: The maximum number of entries to return.
            time_limit: The maximum seconds the server spends on the search.
            types_only: Only return attribute names.
            controls: Controls to send with the request.
        """
        return self.submit(
            SearchRequest(
                message_id=0,
                controls=controls or [],
                base_object=base_object,
                scope=scope,
                deref_aliases=deref_aliases,
                size_limit=size_limit,
                time_limit=time_limit,
                types_only=types_only,
                filter=filter or FilterPresent("objectClass"),
                attributes=attributes or [],
            )
        )

    def modify(
        self,
        dn: str,
        changes: t.List[Modification],
        controls: t.Optional[t.List[LDAPControl]] = None,
    ) -> asyncio.Future:
        return self.submit(ModifyRequest(message_id=0, controls=controls or [], object=dn, changes=changes))

    def add(
        self,
        dn: str,
        attributes: t.Dict[str, t.List[bytes]],
        controls: t.Optional[t.List[LDAPControl]] = None,
    ) -> asyncio.Future:
        return self.submit(
            AddRequest(
                message_id=0,
                controls=controls or [],
                entry=dn,
                attributes=[PartialAttribute(name, values) for name, values in attributes.items()],
            )
        )

    def delete(
        self,
        dn: str,
        controls: t.Optional[t.List[LDAPControl]] = None,
    ) -> asyncio.Future:
        return self.submit(DelRequest(message_id=0, controls=controls or [], entry=dn))

    def compare(
        self,
        dn: str,
        attribute: str,
        value: bytes,
        controls: t.Optional[t.List[LDAPControl]] = None,
    ) -> asyncio.Future:
        return self.submit(
            CompareRequest(
                message_id=0,
                controls=controls or [],
                entry=dn,
                attribute=attribute,
                value=value,
            )
        )

    def extended(
        self,
        name: str,
        value: t.Optional[bytes] = None,
        controls: t.Optional[t.List[LDAPControl]] = None,
    ) -> asyncio.Future:
        return self.submit(ExtendedRequest(message_id=0, controls=controls or [], name=name, value=value))

    def whoami(self) -> asyncio.Future:
        return self.extended(ExtendedOperations.LDAP_WHO_AM_I.value)

    def unbind(self) -> asyncio.Future:
        """Sends an unbind request, the future resolves once it is written."""
        return self.submit(UnbindRequest(message_id=0, controls=[]))

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        if self.state == ConnectionState.CLOSED:
            transport.close()
            return

        self._transport = t.cast(asyncio.Transport, transport)
        self._incoming_buffer = b""
        if self.state != ConnectionState.CLOSING:
            self.state = ConnectionState.CONNECTED

        self.logger.info("Connected to %s:%d", self.options.host, self.options.get_port())
        self._send_pending()

    def data_received(self, data: bytes) -> None:
        buffer = self._incoming_buffer + data
        view = memoryview(buffer)
        offset = 0

        while offset < len(buffer):
            try:
                message, consumed = self.codec.decode_next(view[offset:])
            except NotEnoughData:
                break
            except (ValueError, NotImplementedError) as e:
                self._incoming_buffer = b""
                self._fatal_error(ProtocolError(f"Failed to decode LDAP message: {e}"), cause=e)
                return

            offset += consumed
            self.logger.debug("Received %s for message %d", type(message).__name__, message.message_id)

            try:
                self._dispatch(message)
            except ProtocolError as e:
                self._incoming_buffer = b""
                self._fatal_error(e)
                return

        self._incoming_buffer = buffer[offset:]
        self._send_pending()

    def connection_lost(self, exc: t.Optional[Exception]) -> None:
        self._transport = None
        if self.state == ConnectionState.CLOSED:
            return

        if exc is None and not self._in_flight:
            self.logger.info("Connection to %s closed by the server", self.options.host)
            self._do_close()
            self._abandon("The connection was closed before the request was sent")
            return

        if exc is None:
            msg = f"Connection closed by the server with {len(self._in_flight)} operation(s) outstanding"
        else:
            msg = f"Connection lost: {exc}"

        self._fatal_error(TransportError(msg), cause=exc)

    async def _open(self) -> None:
        host = self.options.host
        port = self.options.get_port()
        self.logger.info("Connecting to %s:%d", host, port)

        loop = asyncio.get_running_loop()
        try:
            await loop.create_connection(lambda: _TransportProtocol(self), host, port, ssl=self.options.ssl_context)
        except OSError as e:
            self._fatal_error(TransportError(f"Failed to connect to {host}:{port}: {e}"), cause=e)

    def _send_pending(self) -> None:
        transport = self._transport
        if (
            transport is None
            or transport.is_closing()
            or self.state not in [ConnectionState.CONNECTED, ConnectionState.CLOSING]
        ):
            return

        while self._outgoing:
            if self._in_flight:
                head = next(iter(self._in_flight.values()))
                if isinstance(head.message, BindRequest):
                    self.logger.debug("Holding %d queued operation(s) until %r completes", len(self._outgoing), head)
                    break

            operation = self._outgoing.popleft()
            try:
                data = self.codec.encode(operation.message)
            except (ValueError, NotImplementedError) as e:
                err = ProtocolError(f"Failed to encode {type(operation.message).__name__}: {e}")
                err.__cause__ = e
                operation.fail(err)
                continue

            transport.write(data)
            self.logger.debug("Sent %r", operation)

            if isinstance(operation.message, UnbindRequest):
                operation.resolve(None)
            else:
                self._in_flight[operation.message.message_id] = operation

    def _dispatch(self, message: LDAPMessage) -> None:
        if not isinstance(message, Response):
            raise ProtocolError(f"Received unexpected {type(message).__name__} from the server", response=message)

        if _is_notice_of_disconnection(message):
            message = t.cast(ExtendedResponse, message)
            raise ProtocolError(
                f"Received Notice of Disconnection {message.result.result_code.name}: "
                f"{message.result.diagnostics_message}",
                response=message,
            )

        operation = self._find_operation(message)

        if isinstance(message, (SearchResultEntry, SearchResultReference, SearchResultDone)):
            if operation.search_result is None:
                raise ProtocolError(
                    f"Received {type(message).__name__} for non-search {operation!r}",
                    response=message,
                )

            if isinstance(message, SearchResultEntry):
                operation.search_result.add(message)
                return

            elif isinstance(message, SearchResultReference):
                operation.search_result.add_reference(message)
                return

        del self._in_flight[operation.message.message_id]

        if isinstance(message, SearchResultDone):
            search_result = t.cast(SearchResult, operation.search_result)
            search_result.finalize(message.result)
            operation.resolve(search_result)

        else:
            operation.resolve(message)

    def _find_operation(self, message: LDAPMessage) -> PendingOperation:
        if not self._in_flight:
            raise ProtocolError(
                f"Received unsolicited {type(message).__name__} with no outstanding requests",
                response=message,
            )

        if not self.options.correlate_by_message_id:
            return next(iter(self._in_flight.values()))

        operation = self._in_flight.get(message.message_id, None)
        if operation is None:
            raise ProtocolError(
                f"Received {type(message).__name__} for unknown message id {message.message_id}",
                response=message,
            )

        return operation

    def _check_close(self) -> None:
        self._close_handle = None
        if self.state != ConnectionState.CLOSING:
            return

        connecting = self._connect_task is not None and not self._connect_task.done()
        if self._in_flight or connecting or (self._outgoing and self._transport is not None):
            self.logger.debug(
                "Close waiting on %d queued and %d in-flight operation(s)",
                len(self._outgoing),
                len(self._in_flight),
            )
            self._close_handle = asyncio.get_running_loop().call_later(
                self.options.close_poll_interval,
                self._check_close,
            )
            return

        self._do_close()

        # Requests queued before a transport was ever opened have nothing to
        # send them.
        self._abandon("The connection was closed before the request was sent")

    def _do_close(self) -> None:
        self.state = ConnectionState.CLOSED

        if self._close_handle:
            self._close_handle.cancel()
            self._close_handle = None

        transport = self._transport
        self._transport = None
        if transport is not None:
            transport.close()

        self._closed.set()
        self.logger.info("Connection to %s closed", self.options.host)

    def _abandon(
        self,
        msg: str,
        cause: t.Optional[BaseException] = None,
    ) -> None:
        operations = list(self._in_flight.values()) + list(self._outgoing)
        self._in_flight.clear()
        self._outgoing.clear()

        for operation in operations:
            err = ConnectionClosedError(msg)
            err.__cause__ = cause
            operation.fail(err)

    def _fatal_error(
        self,
        error: LDAPError,
        cause: t.Optional[BaseException] = None,
    ) -> None:
        if cause is not None:
            error.__cause__ = cause

        self.logger.error("Fatal error on connection to %s: %s", self.options.host, error)

        transport = self._transport
        if (
            isinstance(error, ProtocolError)
            and not _is_notice_of_disconnection(error.response)
            and transport is not None
            and not transport.is_closing()
        ):
            unbind = UnbindRequest(message_id=self._message_counter, controls=[])
            self._message_counter += 1
            transport.write(self.codec.encode(unbind))

        self._do_close()
        self._abandon("The connection failed before a response was received", cause=error)

        if self.error_handler:
            self.error_handler(error)
        else:
            raise error


async def create_connection(
    host: str,
    port: t.Optional[int] = None,
    ssl_context: t.Optional[ssl.SSLContext] = None,
    codec: t.Optional[MessageCodec] = None,
    logger: t.Optional[logging.Logger] = None,
    error_handler: t.Optional[ErrorHandler] = None,
    **kwargs: t.Any,
) -> LDAPConnection:
    """Opens a connection to an LDAP server.

    Args:
        host: The server to connect to.
        port: The port, defaults to 389 or 636 with an ssl_context.
        ssl_context: Use LDAPS with this context.
        codec: The codec to use.
        logger: The logger to use.
        error_handler: The error handler for fatal connection errors.
        kwargs: Other :class:`ConnectionOptions` values.

    Returns:
        LDAPConnection: The opened connection.
    """
    options = ConnectionOptions(host=host, port=port, ssl_context=ssl_context, **kwargs)
    connection = LDAPConnection(options, codec=codec, logger=logger, error_handler=error_handler)

    task = connection.connect()
    if task:
        await task

    return connection
