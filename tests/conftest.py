# Copyright: (c) 2023, Jordan Borean (@jborean93) <jborean93@gmail.com>
# MIT License (see LICENSE or https://opensource.org/licenses/MIT)

from __future__ import annotations

import asyncio
import typing as t

import pytest

import ldapconn

CODEC = ldapconn.LDAPCodec()


class FakeTransport(asyncio.Transport):
    """Transport that records the data written by the connection."""

    def __init__(self) -> None:
        super().__init__()
        self.data = bytearray()
        self.closed = False

    def write(self, data: t.Union[bytes, bytearray, memoryview]) -> None:
        self.data.extend(data)

    def is_closing(self) -> bool:
        return self.closed

    def close(self) -> None:
        self.closed = True

    def abort(self) -> None:
        self.closed = True


def encode(*messages: ldapconn.LDAPMessage) -> bytes:
    return b"".join(CODEC.encode(m) for m in messages)


def decode_all(data: t.Union[bytes, bytearray]) -> t.List[ldapconn.LDAPMessage]:
    messages = []
    remaining = bytes(data)
    while remaining:
        msg, consumed = CODEC.decode_next(remaining)
        messages.append(msg)
        remaining = remaining[consumed:]

    return messages


def success(code: ldapconn.LDAPResultCode = ldapconn.LDAPResultCode.SUCCESS) -> ldapconn.LDAPResult:
    return ldapconn.LDAPResult(result_code=code)


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def errors() -> t.List[ldapconn.LDAPError]:
    return []


@pytest.fixture
def connection(
    transport: FakeTransport,
    errors: t.List[ldapconn.LDAPError],
) -> ldapconn.LDAPConnection:
    conn = ldapconn.LDAPConnection(
        ldapconn.ConnectionOptions(close_poll_interval=0.01),
        error_handler=errors.append,
    )
    conn.connection_made(transport)
    return conn
