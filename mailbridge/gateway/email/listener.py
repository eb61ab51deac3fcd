# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Blocking IMAP session for one poll cycle.

``EmailListener`` wraps ``imaplib``.  Everything here blocks and must run
on a worker thread; ``EmailChannelListener`` owns that worker and drives
one ``poll_unseen()`` per cycle.

A cycle opens its own connection and always logs out at the end, so no
IMAP state survives between cycles.
"""

import imaplib
import logging
import ssl

from mailbridge.gateway.config import EmailChannelConfig
from mailbridge.gateway.email.parsing import (
    InboundEmail,
    ParseError,
    parse_inbound,
)


logger = logging.getLogger(__name__)

#: Seconds before an IMAP connect or read times out.
IMAP_TIMEOUT_SECONDS = 10


class IMAPConnectionError(Exception):
    """Raised when an IMAP connection or command fails."""


def _quote_mailbox(name: str) -> str:
    """Quote a mailbox name for IMAP commands if it needs it."""
    if name.startswith('"') or not any(c in name for c in ' "\\()'):
        return name
    escaped = name.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


class EmailListener:
    """Blocking IMAP client for the configured folder.

    Attributes:
        config: Email channel configuration.
        connection: Active IMAP connection (None when disconnected).
    """

    def __init__(self, config: EmailChannelConfig) -> None:
        self.config = config
        self.connection: imaplib.IMAP4 | None = None

    def connect(self) -> None:
        """Open a TLS connection and log in.

        Uses implicit TLS unless ``imap_starttls`` is set, in which case a
        plain connection is upgraded with STARTTLS before login.

        Raises:
            IMAPConnectionError: If connecting, TLS or login fails.
        """
        host, port = self.config.imap_server, self.config.imap_port
        context = ssl.create_default_context()
        connection: imaplib.IMAP4 | None = None
        try:
            if self.config.imap_starttls:
                connection = imaplib.IMAP4(
                    host, port, timeout=IMAP_TIMEOUT_SECONDS
                )
                connection.starttls(ssl_context=context)
            else:
                connection = imaplib.IMAP4_SSL(
                    host,
                    port,
                    ssl_context=context,
                    timeout=IMAP_TIMEOUT_SECONDS,
                )
            connection.login(
                self.config.imap_username, self.config.imap_password
            )
        except (imaplib.IMAP4.error, OSError) as e:
            if connection is not None:
                try:
                    connection.shutdown()
                except OSError:
                    pass
            raise IMAPConnectionError(
                f"Failed to connect to {host}:{port}: {e}"
            ) from e

        self.connection = connection
        logger.debug("Connected to IMAP server %s:%d", host, port)

    def _require_connection(self) -> imaplib.IMAP4:
        if self.connection is None:
            raise IMAPConnectionError("Not connected to IMAP server")
        return self.connection

    def select_folder(self) -> None:
        """Select the configured folder read-write.

        Raises:
            IMAPConnectionError: If the folder cannot be selected.
        """
        connection = self._require_connection()
        folder = self.config.imap_folder
        try:
            status, data = connection.select(_quote_mailbox(folder))
        except (imaplib.IMAP4.error, OSError) as e:
            raise IMAPConnectionError(
                f"Failed to select folder {folder}: {e}"
            ) from e
        if status != "OK":
            raise IMAPConnectionError(
                f"Failed to select folder {folder}: {status} {data!r}"
            )

    def search_unseen(self) -> list[bytes]:
        """Return UIDs of unseen messages in server order.

        Raises:
            IMAPConnectionError: If the search fails.
        """
        connection = self._require_connection()
        try:
            status, data = connection.uid("SEARCH", None, "UNSEEN")
        except (imaplib.IMAP4.error, OSError) as e:
            raise IMAPConnectionError(f"IMAP search failed: {e}") from e
        if status != "OK":
            raise IMAPConnectionError(f"IMAP search failed: {status}")
        if not data or not data[0]:
            return []
        return data[0].split()

    def fetch_message(self, uid: bytes) -> bytes | None:
        """Fetch the raw RFC 822 bytes of one message.

        Returns:
            Message bytes, or None if the server returned no body (for
            example because the message was expunged meanwhile).

        Raises:
            IMAPConnectionError: If the fetch command fails.
        """
        connection = self._require_connection()
        try:
            status, data = connection.uid("FETCH", uid, "(RFC822)")
        except (imaplib.IMAP4.error, OSError) as e:
            raise IMAPConnectionError(
                f"Failed to fetch message {uid.decode()}: {e}"
            ) from e
        if status != "OK":
            raise IMAPConnectionError(
                f"Failed to fetch message {uid.decode()}: {status}"
            )

        # Responses look like [(b'1 (UID 42 RFC822 {123}', b'...'), b')']
        for item in data:
            if isinstance(item, tuple) and isinstance(item[1], bytes):
                return item[1]

        logger.warning("No message body returned for UID %s", uid.decode())
        return None

    def mark_as_read(self, uid: bytes) -> None:
        """Set the ``\\Seen`` flag on a message.

        A non-OK response is logged and otherwise ignored.

        Raises:
            IMAPConnectionError: If the connection fails.
        """
        connection = self._require_connection()
        try:
            status, _ = connection.uid("STORE", uid, "+FLAGS", "(\\Seen)")
        except (imaplib.IMAP4.error, OSError) as e:
            raise IMAPConnectionError(
                f"Failed to mark message {uid.decode()} as read: {e}"
            ) from e
        if status != "OK":
            logger.warning(
                "Mark as read returned status %s for UID %s",
                status,
                uid.decode(),
            )

    def disconnect(self) -> None:
        """Log out, ignoring errors from an already broken connection."""
        if self.connection is None:
            return
        try:
            self.connection.logout()
            logger.debug("Disconnected from IMAP server")
        except (imaplib.IMAP4.error, OSError) as e:
            logger.debug("Error during IMAP logout: %s", e)
        finally:
            self.connection = None

    def poll_unseen(self) -> list[InboundEmail]:
        """Run one complete fetch cycle.

        Connects, selects the folder, fetches every unseen message in
        server order, parses it, marks it seen and logs out.  Messages
        that fail to parse are marked seen and skipped.

        Returns:
            Parsed messages, in server order.

        Raises:
            IMAPConnectionError: If any IMAP step fails.  Messages
                fetched before the failure are discarded with the rest of
                the batch.
        """
        messages: list[InboundEmail] = []
        self.connect()
        try:
            self.select_folder()
            for uid in self.search_unseen():
                raw = self.fetch_message(uid)
                if raw is not None:
                    try:
                        messages.append(parse_inbound(uid.decode(), raw))
                    except ParseError as e:
                        logger.info(
                            "Skipping message UID %s: %s", uid.decode(), e
                        )
                self.mark_as_read(uid)
        finally:
            self.disconnect()

        if messages:
            logger.info("Fetched %d unseen messages", len(messages))
        return messages

    def check_connectivity(self) -> bool:
        """Check that login and folder selection succeed.

        Returns:
            True if the server is reachable and the folder selectable.
        """
        try:
            self.connect()
            self.select_folder()
        except IMAPConnectionError as e:
            logger.warning("IMAP connectivity check failed: %s", e)
            return False
        finally:
            self.disconnect()
        return True
