# Copyright: (c) 2023, Jordan Borean (@jborean93) <jborean93@gmail.com>
# MIT License (see LICENSE or https://opensource.org/licenses/MIT)

from __future__ import annotations

import typing as t

from ._messages import LDAPMessage, LDAPResult, LDAPResultCode


class LDAPError(Exception):
    """Base class for all errors raised by the connection."""


class TransportError(LDAPError):
    """The connection to the server could not be opened or was lost."""


class ProtocolError(LDAPError):
    """Generic error to signal a protocol exception occurred.

    Raised for data that cannot be decoded, a response that does not belong
    to any outstanding request and a Notice of Disconnection from the server.

    Args:
        msg: The error message.
        response: The offending response message, if it was decoded.
    """

    def __init__(
        self,
        msg: str,
        response: t.Optional[LDAPMessage] = None,
    ) -> None:
        super().__init__(msg)
        self.response = response


class ConnectionClosedError(LDAPError):
    """The connection closed before the operation received a response."""


class LDAPResultError(LDAPError):
    def __init__(
        self,
        msg: str,
        result: LDAPResult,
    ) -> None:
        super().__init__(msg)
        self.result = result

    def __str__(self) -> str:
        inner_msg = super().__str__()
        msg = f"Received LDAPResult error {inner_msg} - {self.result.result_code.name}"
        if self.result.matched_dn:
            msg += f" - Matched DN {self.result.matched_dn}"

        if self.result.diagnostics_message:
            msg += f" - {self.result.diagnostics_message}"

        return msg


def raise_for_result(
    value: t.Any,
    msg: str = "operation failed",
    *,
    allowed: t.Iterable[LDAPResultCode] = (LDAPResultCode.SUCCESS,),
) -> None:
    """Raises an LDAPResultError if the result code is not allowed.

    Args:
        value: An LDAPResult or any object with a ``result`` attribute like a
            response message or SearchResult.
        msg: The message to use for the exception.
        allowed: The result codes that are treated as success.

    Raises:
        LDAPResultError: The result code is not in allowed.
    """
    result = value if isinstance(value, LDAPResult) else value.result
    if result is None:
        raise ValueError("Cannot check the result of an operation that has not completed")

    if result.result_code not in allowed:
        raise LDAPResultError(msg, result)
