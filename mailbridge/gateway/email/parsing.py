# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Inbound email parsing.

Turns the raw RFC 822 bytes of one fetched message into an
``InboundEmail``: sender address, plain-text body and thread metadata.
Every extraction failure raises ``ParseError``; the poll loop skips that
one message and carries on with the rest of the batch.
"""

import logging
import re
from dataclasses import dataclass
from email import errors, policy
from email.message import EmailMessage, Message
from email.parser import BytesParser

from mailbridge.gateway.email.thread_meta import ThreadMetadata


logger = logging.getLogger(__name__)

# Header access under policy.default parses lazily; these are the
# exceptions the stdlib parser is known to leak on malformed input.
_HEADER_ERRORS = (errors.MessageError, IndexError, ValueError, AttributeError)

# Line break that starts a folded header continuation.
_FOLD_RE = re.compile(r"\r?\n(?=[ \t])")


class ParseError(Exception):
    """Raised when a message lacks a usable sender or body."""


@dataclass(frozen=True)
class InboundEmail:
    """One parsed message from the polled folder.

    Attributes:
        uid: IMAP UID of the message.  Stable only while the folder's
            UIDVALIDITY is unchanged; some servers reassign UIDs after
            a reconnect, in which case dedup may miss a re-delivery.
        sender: Sender address (addr-spec only, no display name).
        content: Trimmed plain-text body.
        thread: Message-ID and Subject for threading the reply.
    """

    uid: str
    sender: str
    content: str
    thread: ThreadMetadata


def parse_sender(message: Message) -> str:
    """Extract the sender address from the ``From`` header.

    A plain address yields its addr-spec; a group yields its first
    member.  Empty groups are skipped.

    Args:
        message: Message parsed with ``policy.default``.

    Returns:
        Sender address as written in the header.

    Raises:
        ParseError: If no address can be resolved.
    """
    try:
        header = message["From"]
        groups = header.groups if header is not None else ()
    except _HEADER_ERRORS as e:
        raise ParseError(f"Malformed From header: {e}") from e

    if header is None:
        raise ParseError("Missing From header")

    for group in groups:
        if not group.addresses:
            continue
        addr = group.addresses[0].addr_spec
        if addr and addr != "<>":
            return addr

    raise ParseError(f"No address in From header: {str(header)[:100]}")


def _decode_part(part: Message) -> str:
    """Decode a leaf part's payload to text using its declared charset."""
    payload = part.get_payload(decode=True)
    if not isinstance(payload, bytes):
        return ""
    charset = part.get_content_charset() or "utf-8"
    try:
        return payload.decode(charset, errors="replace")
    except LookupError:
        logger.debug("Unknown charset %s, decoding as UTF-8", charset)
        return payload.decode("utf-8", errors="replace")


def _leaf_parts(message: Message) -> list[Message]:
    return [
        part
        for part in message.walk()
        if not part.is_multipart()
        and part.get_content_disposition() != "attachment"
    ]


def extract_text_body(message: Message) -> str:
    """Extract the plain-text body.

    Multipart messages are walked in order and the first non-empty
    ``text/plain`` part wins.  Without one, the body falls back to the
    first non-empty textual part as-is, which for HTML-only mail means
    the HTML markup itself.  Single-part messages use their own payload
    whatever its type.

    Returns:
        Trimmed body text.

    Raises:
        ParseError: If the body is empty after trimming.
    """
    if message.is_multipart():
        leaves = _leaf_parts(message)
        logger.debug(
            "Multipart message with parts: %s",
            ", ".join(p.get_content_type() for p in leaves),
        )

        for part in leaves:
            if part.get_content_type() == "text/plain":
                body = _decode_part(part).strip()
                if body:
                    return body

        for part in leaves:
            if part.get_content_maintype() == "text":
                body = _decode_part(part).strip()
                if body:
                    logger.debug(
                        "No text/plain part, using %s verbatim",
                        part.get_content_type(),
                    )
                    return body
    else:
        body = _decode_part(message).strip()
        if body:
            return body

    raise ParseError("Message has no text content")


def _raw_header(message: Message, name: str) -> str | None:
    """Return the first ``name`` header exactly as received, unfolded."""
    wanted = name.lower()
    for key, value in message.raw_items():
        if key.lower() == wanted:
            return _FOLD_RE.sub("", str(value))
    return None


def extract_thread(message: Message) -> ThreadMetadata:
    """Read ``Message-ID`` and ``Subject`` verbatim.

    ``Message-ID`` is taken from the raw header with only line folding
    removed; it is never parsed, so malformed ids survive unchanged.
    ``Subject`` is RFC 2047 decoded but otherwise untouched.

    Raises:
        ParseError: If the subject cannot be decoded.
    """
    message_id = _raw_header(message, "Message-ID")
    try:
        subject = message.get("Subject")
    except _HEADER_ERRORS as e:
        raise ParseError(f"Malformed Subject header: {e}") from e

    return ThreadMetadata(
        message_id=message_id,
        subject=str(subject) if subject is not None else None,
    )


def parse_message(raw: bytes) -> EmailMessage:
    """Parse raw RFC 822 bytes with the modern email policy."""
    message = BytesParser(policy=policy.default).parsebytes(raw)
    assert isinstance(message, EmailMessage)
    return message


def parse_inbound(uid: str, raw: bytes) -> InboundEmail:
    """Parse one fetched message.

    Args:
        uid: IMAP UID the message was fetched with.
        raw: Raw RFC 822 message bytes.

    Returns:
        InboundEmail with sender, body and thread metadata.

    Raises:
        ParseError: If the message is malformed or lacks a sender or
            body.
    """
    try:
        message = parse_message(raw)
    except _HEADER_ERRORS as e:
        raise ParseError(f"Malformed MIME structure: {e}") from e

    return InboundEmail(
        uid=uid,
        sender=parse_sender(message),
        content=extract_text_body(message),
        thread=extract_thread(message),
    )
