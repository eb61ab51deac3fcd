# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Email channel adapter.

Implements the ``Channel`` protocol for email, wiring the poll loop,
sender authorization, reply composition and the connectivity check
behind ``name``/``send``/``listen``/``health_check``.
"""

from __future__ import annotations

import logging

from mailbridge.gateway.channel import ChannelStatus, MessageSink
from mailbridge.gateway.config import EmailChannelConfig
from mailbridge.gateway.email.channel_listener import EmailChannelListener
from mailbridge.gateway.email.health import check_connectivity
from mailbridge.gateway.email.responder import EmailResponder
from mailbridge.gateway.email.security import SenderAuthorizer
from mailbridge.gateway.email.thread_meta import reply_recipient


logger = logging.getLogger(__name__)


class EmailChannel:
    """Channel implementation for email (IMAP in, SMTP out)."""

    def __init__(
        self,
        config: EmailChannelConfig,
        authorizer: SenderAuthorizer,
        responder: EmailResponder,
        listener: EmailChannelListener,
    ) -> None:
        self._config = config
        self._authorizer = authorizer
        self._responder = responder
        self._listener = listener

    @classmethod
    def from_config(cls, config: EmailChannelConfig) -> EmailChannel:
        """Create a channel with all email components from config.

        This is the primary factory for production use.

        Args:
            config: Email channel configuration.

        Returns:
            Fully configured EmailChannel.
        """
        authorizer = SenderAuthorizer(config.allowed_senders)
        return cls(
            config=config,
            authorizer=authorizer,
            responder=EmailResponder(config),
            listener=EmailChannelListener(config, authorizer),
        )

    @property
    def name(self) -> str:
        return self._config.channel_type

    @property
    def config(self) -> EmailChannelConfig:
        return self._config

    @property
    def listener(self) -> EmailChannelListener:
        return self._listener

    @property
    def responder(self) -> EmailResponder:
        return self._responder

    @property
    def status(self) -> ChannelStatus:
        """Outcome of the most recent poll cycle."""
        return self._listener.status

    @staticmethod
    def reply_recipient(sender: str, message_id: str) -> str:
        """Recipient string that replies in-thread to an inbound message."""
        return reply_recipient(sender, message_id)

    async def send(self, message: str, recipient: str) -> None:
        """Send a markdown reply.

        Args:
            message: Markdown body.
            recipient: Address, optionally carrying thread metadata.

        Raises:
            InvalidAddressError: If the From or target address is invalid.
            SMTPSendError: If SMTP delivery fails.
        """
        await self._responder.send_reply(message, recipient)

    async def listen(self, sink: MessageSink) -> None:
        """Poll the mailbox until ``sink`` closes."""
        logger.info(
            "Starting email channel for %s", self._config.channel_info
        )
        await self._listener.run(sink)

    async def health_check(self) -> bool:
        return await check_connectivity(
            self._config, self._listener, self._responder
        )

    def close(self) -> None:
        """Release the IMAP worker pool."""
        self._listener.close()
