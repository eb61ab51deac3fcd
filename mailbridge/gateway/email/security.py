# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Sender authorization and outbound address validation.

- **Authorization** (``SenderAuthorizer``): decides whether an inbound
  sender may reach the bus.  Rejection is not a channel fault; the
  message is dropped with a warning.
- **Address shape** (``is_valid_email_identity``): guards outbound From
  and To values against header injection before they are written into
  a message.
"""

import logging


logger = logging.getLogger(__name__)

#: Allow-list entry that admits every sender.
WILDCARD = "*"

_ASCII_LOWER = str.maketrans(
    "ABCDEFGHIJKLMNOPQRSTUVWXYZ", "abcdefghijklmnopqrstuvwxyz"
)


def _ascii_fold(value: str) -> str:
    """Lowercase ASCII letters only, leaving other characters untouched."""
    return value.translate(_ASCII_LOWER)


def is_valid_email_identity(value: str) -> bool:
    """Check that an address is safe to place in a header.

    The value must be non-empty after trimming, contain ``@``, and
    contain neither CR nor LF.
    """
    trimmed = value.strip()
    return (
        bool(trimmed)
        and "@" in trimmed
        and "\r" not in trimmed
        and "\n" not in trimmed
    )


class SenderAuthorizer:
    """Checks inbound senders against an allow-list.

    Entries are exact addresses compared with ASCII case folding, or the
    ``"*"`` wildcard.  Domain wildcards and patterns are not supported.
    An empty list denies every sender.

    Attributes:
        allow_all: True if the wildcard is present.
        allowed: Case-folded exact addresses.
    """

    def __init__(self, allowed_senders: list[str]) -> None:
        self.allow_all = WILDCARD in allowed_senders
        self.allowed = frozenset(
            _ascii_fold(entry) for entry in allowed_senders if entry != WILDCARD
        )
        logger.debug(
            "Initialized sender authorizer (wildcard=%s, %d addresses)",
            self.allow_all,
            len(self.allowed),
        )

    def is_authorized(self, sender: str) -> bool:
        """Return True if ``sender`` may reach the bus."""
        if self.allow_all:
            return True
        if _ascii_fold(sender) in self.allowed:
            return True
        logger.debug("Sender not in allow-list: %s", sender)
        return False
