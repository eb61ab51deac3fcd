# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Reply-thread metadata carried across the bus.

The bus only transports opaque strings, so the context needed to reply
in-thread (original Message-ID and Subject) travels inside the recipient
string itself::

    address
    address<SEP>{"message_id": ..., "subject": ...}
    address<SEP>uid<SEP>{...}        # legacy, still accepted

``<SEP>`` is ASCII 0x1F (unit separator).  It cannot appear in a valid
address, and JSON escapes control characters, so it cannot appear in the
payload either.

Malformed metadata is never an error: it decodes as "no threading
context" and the reply simply starts a new thread.
"""

import json
import logging
from dataclasses import dataclass


logger = logging.getLogger(__name__)

#: Separator between the address and the encoded metadata.
REPLY_META_SEP = "\x1f"


@dataclass(frozen=True)
class ThreadMetadata:
    """Minimal context needed to compose an in-thread reply.

    Attributes:
        message_id: ``Message-ID`` header of the message being replied to.
        subject: ``Subject`` header of the message being replied to.
    """

    message_id: str | None = None
    subject: str | None = None

    @property
    def is_empty(self) -> bool:
        """True when neither field is present."""
        return self.message_id is None and self.subject is None


def encode_thread_meta(meta: ThreadMetadata) -> str | None:
    """Serialize metadata to compact JSON.

    Returns:
        The JSON string, or None when the metadata carries no fields.
        Callers must not append anything to an id or recipient in that
        case.
    """
    if meta.is_empty:
        return None
    return json.dumps(
        {"message_id": meta.message_id, "subject": meta.subject},
        separators=(",", ":"),
    )


def decode_thread_meta(raw: str) -> ThreadMetadata | None:
    """Parse metadata produced by ``encode_thread_meta``.

    Missing keys decode as absent and unknown keys are ignored.

    Returns:
        ThreadMetadata, or None if ``raw`` is not a JSON object whose
        ``message_id``/``subject`` values are strings or null.
    """
    try:
        data = json.loads(raw)
    except (ValueError, RecursionError):
        return None

    if not isinstance(data, dict):
        return None

    message_id = data.get("message_id")
    subject = data.get("subject")
    for value in (message_id, subject):
        if value is not None and not isinstance(value, str):
            return None

    return ThreadMetadata(message_id=message_id, subject=subject)


def split_recipient(recipient: str) -> tuple[str, ThreadMetadata | None]:
    """Split a recipient wire string into address and thread metadata.

    Args:
        recipient: ``address``, ``address<SEP>json`` or the legacy
            ``address<SEP>uid<SEP>json``.

    Returns:
        Tuple of (address, metadata or None).
    """
    address, sep, rest = recipient.partition(REPLY_META_SEP)
    if not sep:
        return recipient, None

    meta = decode_thread_meta(rest)
    if meta is not None:
        return address, meta

    _, sep, legacy_meta = rest.partition(REPLY_META_SEP)
    if sep:
        return address, decode_thread_meta(legacy_meta)

    logger.debug("Ignoring undecodable thread metadata for %s", address)
    return address, None


def join_recipient(address: str, meta: ThreadMetadata | None) -> str:
    """Build a recipient wire string from an address and metadata."""
    encoded = encode_thread_meta(meta) if meta is not None else None
    if encoded is None:
        return address
    return f"{address}{REPLY_META_SEP}{encoded}"


def dedup_key(uid: str, meta: ThreadMetadata) -> str:
    """Build the deduplication key for an inbound message.

    Returns:
        ``uid`` alone, or ``uid<SEP>json`` when thread context exists.
    """
    encoded = encode_thread_meta(meta)
    if encoded is None:
        return uid
    return f"{uid}{REPLY_META_SEP}{encoded}"


def reply_recipient(sender: str, message_id: str) -> str:
    """Build the recipient for replying to an inbound message.

    Args:
        sender: ``ChannelMessage.sender``.
        message_id: ``ChannelMessage.id`` as produced by ``dedup_key``.

    Returns:
        ``sender`` alone, or ``sender<SEP>json`` when the id carries
        thread context.
    """
    _, sep, encoded = message_id.partition(REPLY_META_SEP)
    meta = decode_thread_meta(encoded) if sep else None
    return join_recipient(sender, meta)
