# Copyright: (c) 2023, Jordan Borean (@jborean93) <jborean93@gmail.com>
# MIT License (see LICENSE or https://opensource.org/licenses/MIT)

from __future__ import annotations

import typing as t

from ._messages import LDAPMessage, PackingOptions, unpack_ldap_message
from ._asn1 import ASN1Reader


class MessageCodec(t.Protocol):
    """The contract the connection uses to convert messages to bytes.

    ``decode_next`` must raise :class:`NotEnoughData` when the data does not
    yet hold a complete message and ``ValueError`` or ``NotImplementedError``
    when it holds one that is invalid.
    """

    def encode(self, message: LDAPMessage) -> bytes:
        ...  # pragma: nocover

    def decode_next(self, data: t.Union[bytes, memoryview]) -> t.Tuple[LDAPMessage, int]:
        ...  # pragma: nocover


class LDAPCodec:
    """BER codec for LDAPv3 messages.

    Args:
        options: Options used to pack and unpack messages.
    """

    def __init__(
        self,
        options: t.Optional[PackingOptions] = None,
    ) -> None:
        self.options = options or PackingOptions()

    def encode(
        self,
        message: LDAPMessage,
    ) -> bytes:
        return message.pack(self.options)

    def decode_next(
        self,
        data: t.Union[bytes, memoryview],
    ) -> t.Tuple[LDAPMessage, int]:
        """Decodes the first message in data.

        Args:
            data: The received data, it may hold more than one message.

        Returns:
            Tuple[LDAPMessage, int]: The message and the number of bytes it
            used from the front of data.
        """
        reader = ASN1Reader(data)
        header = reader.peek_header()
        consumed = header.tag_length + header.length

        message = unpack_ldap_message(reader, self.options)

        return message, consumed
