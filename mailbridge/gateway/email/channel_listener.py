# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Email poll loop.

Drives the blocking ``EmailListener`` from asyncio.  IMAP work runs on a
small dedicated thread pool so a slow server never stalls other channels
sharing the event loop; only the inter-cycle sleep and the hand-off to
the message sink happen on the loop itself.

Each cycle is all-or-nothing: if any IMAP step fails, nothing from that
cycle reaches the sink, the error is logged, and the next cycle starts
from a fresh connection after the full interval.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from typing import TypeVar

from mailbridge.gateway.channel import (
    ChannelHealth,
    ChannelMessage,
    ChannelStatus,
    MessageSink,
    SinkClosedError,
)
from mailbridge.gateway.config import EmailChannelConfig
from mailbridge.gateway.email.listener import (
    EmailListener,
    IMAPConnectionError,
)
from mailbridge.gateway.email.parsing import InboundEmail
from mailbridge.gateway.email.security import SenderAuthorizer
from mailbridge.gateway.email.thread_meta import dedup_key


logger = logging.getLogger(__name__)

_T = TypeVar("_T")

#: Floor applied to the configured poll interval.
MIN_POLL_INTERVAL_SECONDS = 5

#: One worker for the poll cycle, one for connectivity checks.
IMAP_WORKERS = 2


class EmailChannelListener:
    """Polls the configured IMAP folder and feeds a message sink.

    Owns the IMAP worker pool and the set of already-delivered dedup
    keys.  The set lives for the lifetime of the process and is never
    pruned; a bounded LRU would cap memory on very long uptimes at the
    cost of re-delivering messages that fall out of it.
    """

    def __init__(
        self,
        config: EmailChannelConfig,
        authorizer: SenderAuthorizer,
        email_listener: EmailListener | None = None,
    ) -> None:
        """Initialize the poll loop.

        Args:
            config: Email channel configuration.
            authorizer: Sender allow-list.
            email_listener: Blocking IMAP client.  If None, one is
                created from the config.
        """
        self._config = config
        self._authorizer = authorizer
        self._email_listener = email_listener or EmailListener(config)
        self._log = logging.LoggerAdapter(
            logger, {"folder": config.imap_folder}
        )
        self._executor = ThreadPoolExecutor(
            max_workers=IMAP_WORKERS,
            thread_name_prefix=f"IMAP-{config.imap_server}",
        )
        self._seen_ids: set[str] = set()
        self._status = ChannelStatus(health=ChannelHealth.STARTING)

    @property
    def poll_interval(self) -> int:
        """Effective seconds between cycles."""
        return max(
            self._config.poll_interval_seconds, MIN_POLL_INTERVAL_SECONDS
        )

    @property
    def status(self) -> ChannelStatus:
        """Outcome of the most recent poll cycle."""
        return self._status

    async def _run_blocking(self, func: Callable[[], _T]) -> _T:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, func)

    async def fetch_unseen(self) -> list[InboundEmail]:
        """Run one blocking IMAP cycle on the worker pool.

        Raises:
            IMAPConnectionError: If the cycle fails.
        """
        return await self._run_blocking(self._email_listener.poll_unseen)

    async def check_imap(self) -> bool:
        """Check IMAP login and folder selection on a separate session."""
        probe = EmailListener(self._config)
        return await self._run_blocking(probe.check_connectivity)

    async def run(self, sink: MessageSink) -> None:
        """Poll forever, pushing new messages into ``sink``.

        Returns only when the sink reports that its receiver is gone.
        """
        interval = self.poll_interval
        self._log.info(
            "Email channel listening on folder %s (every %ds)",
            self._config.imap_folder,
            interval,
        )

        while True:
            try:
                messages = await self.fetch_unseen()
            except IMAPConnectionError as e:
                self._log.warning("Email poll error: %s", e)
                self._mark_degraded(e)
            except Exception as e:
                self._log.exception("Unexpected email poll failure: %s", e)
                self._mark_degraded(e)
            else:
                self._status = ChannelStatus(health=ChannelHealth.CONNECTED)
                if not await self.dispatch(messages, sink):
                    self._log.info("Message sink closed, stopping listener")
                    return

            await asyncio.sleep(interval)

    def _mark_degraded(self, error: Exception) -> None:
        self._status = ChannelStatus(
            health=ChannelHealth.DEGRADED,
            message=f"Email poll failed: {error}",
            error_type=type(error).__name__,
        )

    async def dispatch(
        self, messages: list[InboundEmail], sink: MessageSink
    ) -> bool:
        """Deduplicate, authorize and deliver one cycle's messages.

        Args:
            messages: Parsed messages in server order.
            sink: Receiving end of the bus.

        Returns:
            False if the sink is closed, True otherwise.
        """
        for inbound in messages:
            message_id = dedup_key(inbound.uid, inbound.thread)
            if message_id in self._seen_ids:
                continue
            self._seen_ids.add(message_id)

            if not self._authorizer.is_authorized(inbound.sender):
                self._log.warning(
                    "Ignoring message from unauthorized sender: %s",
                    inbound.sender,
                )
                continue

            message = ChannelMessage(
                id=message_id,
                sender=inbound.sender,
                content=inbound.content,
                channel=self._config.channel_type,
                timestamp=int(time.time()),
            )
            try:
                await sink.put(message)
            except SinkClosedError:
                return False

        return True

    def close(self) -> None:
        """Release the worker pool.  In-flight IMAP work is abandoned."""
        self._executor.shutdown(wait=False, cancel_futures=True)
