# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Outbound reply composition and SMTP delivery.

Replies arrive as a markdown body plus a recipient wire string (see
``thread_meta``).  The responder recovers the thread context from the
recipient, derives the subject and threading headers, renders the HTML
alternative and sends the result over a fresh SMTP connection.

Every send builds and discards its own ``aiosmtplib.SMTP`` transport, so
concurrent sends never share connection state.
"""

import logging
import re
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formatdate, getaddresses, make_msgid, parseaddr

import aiosmtplib

from mailbridge.gateway.config import ConfigError, EmailChannelConfig
from mailbridge.gateway.email.security import is_valid_email_identity
from mailbridge.gateway.email.thread_meta import (
    ThreadMetadata,
    split_recipient,
)
from mailbridge.markdown import markdown_to_html


logger = logging.getLogger(__name__)

#: Subject used when the original message had none.
DEFAULT_REPLY_SUBJECT = "Mailbridge reply"

#: Seconds before an SMTP connect or command times out.
SMTP_TIMEOUT_SECONDS = 30

# Pattern to extract domain from an email address.
_EMAIL_DOMAIN_RE = re.compile(r"@([\w.-]+)")

# Line breaks folded out of derived subjects.
_LINE_BREAK_RE = re.compile(r"[\r\n]+")


class InvalidAddressError(ConfigError):
    """Raised when the From or To address is unsafe or malformed."""


class SMTPSendError(Exception):
    """Raised when connecting, authenticating or sending over SMTP fails."""


def _extract_domain(email_from: str) -> str:
    """Extract the domain from a bare or ``Name <addr>`` address.

    Returns:
        Domain portion, or ``"localhost"`` as fallback.
    """
    _, addr = parseaddr(email_from)
    match = _EMAIL_DOMAIN_RE.search(addr)
    return match.group(1) if match else "localhost"


def _is_single_mailbox(address: str) -> bool:
    """True if ``address`` names exactly one mailbox with an addr-spec."""
    mailboxes = getaddresses([address.strip()])
    return len(mailboxes) == 1 and "@" in mailboxes[0][1]


def generate_message_id(from_address: str) -> str:
    """Generate an RFC 5322 Message-ID in the sender's domain."""
    domain = _extract_domain(from_address)
    return make_msgid(idstring="mailbridge", domain=domain)


def reply_subject(subject: str | None) -> str:
    """Derive the reply subject from the original one.

    Examples:
        >>> reply_subject("Hello")
        'Re: Hello'
        >>> reply_subject("RE: Hello")
        'RE: Hello'
        >>> reply_subject(None)
        'Mailbridge reply'
    """
    subject = _LINE_BREAK_RE.sub(" ", subject or "").strip()
    if not subject:
        return DEFAULT_REPLY_SUBJECT
    if subject.lower().startswith("re:"):
        return subject
    return f"Re: {subject}"


def build_reply(
    body: str,
    to: str,
    from_address: str,
    thread: ThreadMetadata | None = None,
) -> MIMEMultipart:
    """Compose a threaded ``multipart/alternative`` reply.

    Args:
        body: Markdown reply text; sent verbatim as the plain part and
            rendered for the HTML part.
        to: Validated recipient address.
        from_address: Validated sender address.
        thread: Context of the message being replied to, if any.

    Returns:
        Message ready for ``send_message``.
    """
    msg = MIMEMultipart("alternative")
    msg["From"] = from_address
    msg["To"] = to
    msg["Subject"] = reply_subject(thread.subject if thread else None)
    msg["Date"] = formatdate(localtime=True)
    msg["Message-ID"] = generate_message_id(from_address)

    # Both headers point at the original so clients file the reply in
    # the same thread.
    message_id = (thread.message_id or "").strip() if thread else ""
    if message_id:
        msg["In-Reply-To"] = message_id
        msg["References"] = message_id

    msg.attach(MIMEText(body, "plain", "utf-8"))
    msg.attach(MIMEText(markdown_to_html(body), "html", "utf-8"))
    return msg


class EmailResponder:
    """SMTP reply sender.

    Attributes:
        config: Email channel configuration.
    """

    def __init__(self, config: EmailChannelConfig) -> None:
        self.config = config
        logger.debug(
            "Initialized email responder for %s:%d (%s)",
            config.smtp_server,
            config.smtp_port,
            "STARTTLS" if config.smtp_starttls else "implicit TLS",
        )

    def build_transport(self) -> aiosmtplib.SMTP:
        """Create an unconnected SMTP client for one send or probe."""
        starttls = self.config.smtp_starttls
        return aiosmtplib.SMTP(
            hostname=self.config.smtp_server,
            port=self.config.smtp_port,
            username=self.config.smtp_username,
            password=self.config.smtp_password,
            use_tls=not starttls,
            start_tls=starttls,
            timeout=SMTP_TIMEOUT_SECONDS,
        )

    async def send_reply(self, body: str, recipient: str) -> None:
        """Send a markdown reply to a recipient wire string.

        Args:
            body: Markdown reply text.
            recipient: ``address`` optionally followed by encoded thread
                metadata.

        Raises:
            InvalidAddressError: If the configured From address or the
                target address is malformed.
            SMTPSendError: If the SMTP exchange fails.
        """
        to, thread = split_recipient(recipient)

        if not is_valid_email_identity(self.config.from_address):
            raise InvalidAddressError("Invalid from address for email channel")
        if not is_valid_email_identity(to) or not _is_single_mailbox(to):
            raise InvalidAddressError(f"Invalid email recipient: {to[:100]!r}")

        msg = build_reply(body, to.strip(), self.config.from_address, thread)
        subject = msg["Subject"]

        logger.debug("Sending email to %s: %s", to, subject)
        try:
            smtp = self.build_transport()
            async with smtp:
                await smtp.send_message(msg)
        except (aiosmtplib.SMTPException, OSError, TimeoutError) as e:
            logger.error("Failed to send email to %s: %s", to, e)
            raise SMTPSendError(f"Failed to send email: {e}") from e

        logger.info("Sent email to %s: %s", to, subject)

    async def test_connection(self) -> bool:
        """Connect, authenticate and issue NOOP.

        Returns:
            True if the server accepted the session, False otherwise.
        """
        try:
            smtp = self.build_transport()
            async with smtp:
                await smtp.noop()
        except (aiosmtplib.SMTPException, OSError, TimeoutError) as e:
            logger.warning(
                "SMTP connectivity check failed for %s:%d: %s",
                self.config.smtp_server,
                self.config.smtp_port,
                e,
            )
            return False
        return True
