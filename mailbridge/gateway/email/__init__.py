# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Email channel implementation for the gateway.

Provides email-specific protocol handling:
- EmailChannel: Channel implementation for email
- EmailChannelListener: asyncio poll loop over a blocking IMAP worker
- EmailListener: blocking IMAP session for one poll cycle
- EmailResponder: threaded markdown replies over SMTP
- SenderAuthorizer: sender allow-list checking
- Thread metadata encoding for reply recipients
"""

from mailbridge.gateway.email.adapter import EmailChannel
from mailbridge.gateway.email.channel_listener import EmailChannelListener
from mailbridge.gateway.email.listener import (
    EmailListener,
    IMAPConnectionError,
)
from mailbridge.gateway.email.parsing import (
    InboundEmail,
    ParseError,
    parse_inbound,
)
from mailbridge.gateway.email.responder import (
    EmailResponder,
    InvalidAddressError,
    SMTPSendError,
    reply_subject,
)
from mailbridge.gateway.email.security import (
    SenderAuthorizer,
    is_valid_email_identity,
)
from mailbridge.gateway.email.thread_meta import (
    REPLY_META_SEP,
    ThreadMetadata,
    decode_thread_meta,
    encode_thread_meta,
    reply_recipient,
    split_recipient,
)


__all__ = [
    # adapter
    "EmailChannel",
    # channel_listener
    "EmailChannelListener",
    # listener
    "EmailListener",
    "IMAPConnectionError",
    # parsing
    "InboundEmail",
    "ParseError",
    "parse_inbound",
    # responder
    "EmailResponder",
    "InvalidAddressError",
    "SMTPSendError",
    "reply_subject",
    # security
    "SenderAuthorizer",
    "is_valid_email_identity",
    # thread_meta
    "REPLY_META_SEP",
    "ThreadMetadata",
    "decode_thread_meta",
    "encode_thread_meta",
    "reply_recipient",
    "split_recipient",
]
