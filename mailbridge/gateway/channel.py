# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Channel protocol and message bus types.

Defines the interface between the multi-channel router and the concrete
transports (email is one of them).  The router only ever sees
``ChannelMessage`` values and opaque recipient strings; everything
protocol-specific stays inside the channel.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Protocol


@dataclass(frozen=True)
class ChannelMessage:
    """Normalized inbound message handed to the bus.

    Attributes:
        id: Deduplication key.  Two deliveries of the same physical
            message within one process lifetime carry the same id.  For
            email this also serves as the reply address suffix, so the
            router can hand it back to ``send``.
        sender: Sender identity (email address for the email channel).
        content: Plain-text message body.
        channel: Name of the channel that produced the message.
        timestamp: Receive time in unix seconds.
    """

    id: str
    sender: str
    content: str
    channel: str
    timestamp: int


class SinkClosedError(Exception):
    """Raised by a ``MessageSink`` whose receiving side has gone away."""


class MessageSink(Protocol):
    """Receiving end of the bus, as seen by a channel listener."""

    async def put(self, message: ChannelMessage) -> None:
        """Deliver a message, suspending while the receiver is saturated.

        Raises:
            SinkClosedError: If the receiver has gone away.
        """
        ...


class QueueSink:
    """Bounded ``asyncio.Queue`` sink with explicit closure.

    The consumer calls ``get()`` and, when it no longer wants messages,
    ``close()``.  After closure every ``put()`` raises
    ``SinkClosedError``; producers blocked on a full queue are released
    by draining it.
    """

    def __init__(self, maxsize: int = 100) -> None:
        self._queue: asyncio.Queue[ChannelMessage] = asyncio.Queue(maxsize)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def put(self, message: ChannelMessage) -> None:
        if self._closed:
            raise SinkClosedError("message sink is closed")
        await self._queue.put(message)
        if self._closed:
            raise SinkClosedError("message sink closed during delivery")

    async def get(self) -> ChannelMessage:
        return await self._queue.get()

    def close(self) -> None:
        self._closed = True
        while not self._queue.empty():
            self._queue.get_nowait()


class ChannelHealth(Enum):
    """Health state of a channel listener, as of its last cycle.

    Attributes:
        STARTING: No cycle has completed yet.
        CONNECTED: The last cycle reached the server and finished.
        DEGRADED: The last cycle failed; the listener keeps retrying.
    """

    STARTING = "starting"
    CONNECTED = "connected"
    DEGRADED = "degraded"


@dataclass(frozen=True)
class ChannelStatus:
    """Current status of a channel listener.

    Attributes:
        health: Current health state.
        message: Human-readable status description.
        error_type: Exception type name if degraded.
    """

    health: ChannelHealth
    message: str = ""
    error_type: str | None = None


class Channel(Protocol):
    """Interface implemented by every transport the router can use."""

    @property
    def name(self) -> str:
        """Constant channel identifier (e.g. ``"email"``)."""
        ...

    async def send(self, message: str, recipient: str) -> None:
        """Send ``message`` to ``recipient`` (channel-specific wire form).

        Raises:
            Exception: Channel-specific errors propagate to the caller;
                nothing is retried.
        """
        ...

    async def listen(self, sink: MessageSink) -> None:
        """Push inbound messages into ``sink`` until it closes.

        Never returns on its own otherwise.
        """
        ...

    async def health_check(self) -> bool:
        """Shallow connectivity check; True only if fully reachable."""
        ...
