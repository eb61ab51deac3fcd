# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Shallow connectivity check for the email channel."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from mailbridge.gateway.email.security import is_valid_email_identity


if TYPE_CHECKING:
    from mailbridge.gateway.config import EmailChannelConfig
    from mailbridge.gateway.email.channel_listener import (
        EmailChannelListener,
    )
    from mailbridge.gateway.email.responder import EmailResponder


logger = logging.getLogger(__name__)


async def check_connectivity(
    config: EmailChannelConfig,
    listener: EmailChannelListener,
    responder: EmailResponder,
) -> bool:
    """Check that the channel can both receive and send.

    Validates the From address, then checks IMAP login and folder
    selection, then an SMTP session.  Stops at the first failure.

    Returns:
        True only if all three checks pass.  Failures are logged, never
        raised.
    """
    if not is_valid_email_identity(config.from_address):
        logger.warning("Health check: invalid from address")
        return False

    try:
        if not await listener.check_imap():
            return False
        return await responder.test_connection()
    except Exception as e:
        logger.warning("Health check failed: %s", e)
        return False
