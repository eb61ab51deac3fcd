# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Gateway subsystem.

Connects a multi-channel message router to external transports:
- Channel abstraction and bus types (Channel, ChannelMessage, MessageSink)
- Email channel implementation (gateway/email/)
- Configuration loading
"""

from mailbridge.gateway.channel import (
    Channel,
    ChannelHealth,
    ChannelMessage,
    ChannelStatus,
    MessageSink,
    QueueSink,
    SinkClosedError,
)
from mailbridge.gateway.config import (
    ConfigError,
    EmailChannelConfig,
    get_config_path,
)
from mailbridge.gateway.email import EmailChannel


__all__ = [
    # channel
    "Channel",
    "ChannelHealth",
    "ChannelMessage",
    "ChannelStatus",
    "MessageSink",
    "QueueSink",
    "SinkClosedError",
    # config
    "ConfigError",
    "EmailChannelConfig",
    "get_config_path",
    # email
    "EmailChannel",
]
