# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Shared pytest fixtures used across multiple test packages."""

from collections.abc import Callable
from email.message import EmailMessage

import pytest

from mailbridge.gateway.config import EmailChannelConfig
from mailbridge.logging import SecretFilter


@pytest.fixture(autouse=True)
def _clear_secrets():
    """Keep registered secrets from leaking between tests."""
    yield
    SecretFilter.clear_secrets()


@pytest.fixture
def email_config() -> EmailChannelConfig:
    """Test email channel configuration (implicit TLS on both sides)."""
    return EmailChannelConfig(
        imap_server="imap.example.com",
        imap_username="bot@example.com",
        imap_password="imap-secret",
        smtp_server="smtp.example.com",
        smtp_username="bot@example.com",
        smtp_password="smtp-secret",
        from_address="Mailbridge <bot@example.com>",
        allowed_senders=["alice@example.com"],
    )


@pytest.fixture
def make_raw_email() -> Callable[..., bytes]:
    """Return a builder for raw RFC 822 message bytes.

    The builder accepts ``sender``, ``body``, ``subject``, ``message_id``
    and ``html``.  Passing ``html`` adds a ``text/html`` alternative;
    passing ``body=None`` with ``html`` yields an HTML-only message.
    """

    def build(
        sender: str = "Alice <alice@example.com>",
        body: str | None = "Hello from Alice",
        subject: str | None = "Hello",
        message_id: str | None = "<orig-1@example.com>",
        html: str | None = None,
    ) -> bytes:
        msg = EmailMessage()
        msg["From"] = sender
        msg["To"] = "bot@example.com"
        if subject is not None:
            msg["Subject"] = subject
        if message_id is not None:
            msg["Message-ID"] = message_id

        if body is not None:
            msg.set_content(body)
            if html is not None:
                msg.add_alternative(html, subtype="html")
        elif html is not None:
            msg.set_content(html, subtype="html")
        return msg.as_bytes()

    return build
