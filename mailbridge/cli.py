# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Mailbridge CLI: multi-command entry point.

Provides ``mailbridge <command>`` with subcommands for initializing
configuration, checking connectivity, running the inbound listener and
sending a reply by hand.  Running ``mailbridge`` with no arguments prints
usage information.

Subcommands:

* ``init``   : create a stub config file
* ``check``  : load config and run the channel health check
* ``listen`` : poll the mailbox and print each message as a JSON line
* ``send``   : send a markdown reply to a recipient
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import logging
import sys
from pathlib import Path

from mailbridge.gateway.channel import QueueSink
from mailbridge.gateway.config import (
    ConfigError,
    EmailChannelConfig,
    get_config_path,
)
from mailbridge.gateway.email import (
    EmailChannel,
    InvalidAddressError,
    SMTPSendError,
)
from mailbridge.logging import configure_logging


logger = logging.getLogger(__name__)

# Known subcommand names.
_SUBCOMMANDS = frozenset({"init", "check", "listen", "send"})

_USAGE = """\
usage: mailbridge <command> [args]

commands:
  init     Create a stub config file
  check    Verify config and IMAP/SMTP connectivity
  listen   Poll the mailbox and print messages as JSON lines
  send     Send a markdown reply

Run 'mailbridge <command> --help' for command-specific help.\
"""


def _base_parser(command: str, description: str) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=f"mailbridge {command}", description=description
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        metavar="PATH",
        help=(
            "Path to mailbridge.yaml config file"
            " (default: ~/.config/mailbridge/mailbridge.yaml)"
        ),
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    return parser


def _load_channel(config_path: Path | None) -> EmailChannel | None:
    """Load config and build the channel, reporting errors on stderr."""
    try:
        config = EmailChannelConfig.from_yaml(config_path=config_path)
    except ConfigError as e:
        print(f"mailbridge: configuration error: {e}", file=sys.stderr)
        return None
    return EmailChannel.from_config(config)


# ── init subcommand ─────────────────────────────────────────────────


def cmd_init(argv: list[str]) -> int:
    """Create a stub configuration file.

    Creates ``~/.config/mailbridge/mailbridge.yaml`` with a commented
    template if the file does not already exist.

    Returns:
        Exit code (always 0).
    """
    parser = argparse.ArgumentParser(
        prog="mailbridge init", description="Create a stub config file"
    )
    parser.parse_args(argv)

    config_path = get_config_path()

    if config_path.exists():
        print(f"Config already exists: {config_path}")
        return 0

    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(_STUB_CONFIG)
    print(f"Created stub config: {config_path}")
    return 0


# ── check subcommand ────────────────────────────────────────────────


def cmd_check(argv: list[str]) -> int:
    """Load configuration and run the channel health check.

    Returns:
        0 if the channel is fully reachable, 1 otherwise.
    """
    args = _base_parser(
        "check", "Verify config and IMAP/SMTP connectivity"
    ).parse_args(argv)
    configure_logging(
        level=logging.DEBUG if args.debug else logging.WARNING,
        add_secret_filter=True,
    )

    channel = _load_channel(args.config)
    if channel is None:
        return 1

    print(f"Checking {channel.name} channel: {channel.config.channel_info}")
    try:
        healthy = asyncio.run(channel.health_check())
    finally:
        channel.close()

    if healthy:
        print("OK: IMAP and SMTP reachable")
        return 0
    print("FAILED: see log output for details", file=sys.stderr)
    return 1


# ── listen subcommand ───────────────────────────────────────────────


async def _print_messages(channel: EmailChannel) -> None:
    """Run the channel and print each message until cancelled.

    Returns when the listener stops on its own; a listener failure is
    re-raised here.
    """
    sink = QueueSink()
    listen_task = asyncio.create_task(channel.listen(sink))
    get_task: asyncio.Task | None = None
    try:
        while True:
            get_task = asyncio.create_task(sink.get())
            done, _ = await asyncio.wait(
                {get_task, listen_task}, return_when=asyncio.FIRST_COMPLETED
            )
            if get_task not in done:
                listen_task.result()
                return

            message = get_task.result()
            record = dataclasses.asdict(message)
            record["reply_to"] = channel.reply_recipient(
                message.sender, message.id
            )
            print(json.dumps(record), flush=True)
    finally:
        if get_task is not None:
            get_task.cancel()
        sink.close()
        listen_task.cancel()


def cmd_listen(argv: list[str]) -> int:
    """Poll the mailbox and print inbound messages as JSON lines.

    Each line carries the message fields plus ``reply_to``, the
    recipient string to pass to ``mailbridge send --to`` for an
    in-thread reply.

    Returns:
        Exit code (0 on interrupt, 1 on configuration error or
        listener failure).
    """
    args = _base_parser(
        "listen", "Poll the mailbox and print messages as JSON lines"
    ).parse_args(argv)
    configure_logging(
        level=logging.DEBUG if args.debug else logging.INFO,
        add_secret_filter=True,
    )

    channel = _load_channel(args.config)
    if channel is None:
        return 1

    try:
        asyncio.run(_print_messages(channel))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except Exception:
        logger.exception("Email listener stopped unexpectedly")
        return 1
    finally:
        channel.close()
    return 0


# ── send subcommand ─────────────────────────────────────────────────


def cmd_send(argv: list[str]) -> int:
    """Send a markdown reply.

    The body is read from ``--file`` or, without it, from stdin.

    Returns:
        0 on success, 1 on configuration, address or SMTP errors.
    """
    parser = _base_parser("send", "Send a markdown reply")
    parser.add_argument(
        "--to",
        required=True,
        metavar="RECIPIENT",
        help="Recipient address, or a reply_to value printed by 'listen'",
    )
    parser.add_argument(
        "--file",
        type=Path,
        default=None,
        metavar="PATH",
        help="Markdown file with the message body (default: stdin)",
    )
    args = parser.parse_args(argv)
    configure_logging(
        level=logging.DEBUG if args.debug else logging.INFO,
        add_secret_filter=True,
    )

    body = args.file.read_text() if args.file else sys.stdin.read()

    channel = _load_channel(args.config)
    if channel is None:
        return 1

    try:
        asyncio.run(channel.send(body, args.to))
    except (InvalidAddressError, SMTPSendError) as e:
        logger.error("Send failed: %s", e)
        return 1
    finally:
        channel.close()
    return 0


# ── CLI plumbing ────────────────────────────────────────────────────


_DISPATCH: dict[str, str] = {
    "init": "cmd_init",
    "check": "cmd_check",
    "listen": "cmd_listen",
    "send": "cmd_send",
}


def cli() -> None:
    """Entry point for ``mailbridge``.

    When no arguments are given, prints usage information.  Requires an
    explicit subcommand for all operations.
    """
    argv = sys.argv[1:]

    if not argv or argv[0] == "--help":
        print(_USAGE)
        sys.exit(0)

    if argv[0] not in _SUBCOMMANDS:
        print(f"mailbridge: unknown command '{argv[0]}'", file=sys.stderr)
        print(_USAGE, file=sys.stderr)
        sys.exit(2)

    command = argv[0]
    rest = argv[1:]

    # Look up handler by name so tests can mock individual commands.
    import mailbridge.cli as _self

    handler = getattr(_self, _DISPATCH[command])
    sys.exit(handler(rest))


#: Stub configuration template written by ``mailbridge init``.
_STUB_CONFIG = """\
# Mailbridge Configuration
#
# Values tagged with !env are read from the environment at startup.
# A .env file next to this config (or in the working directory) is
# loaded first.

email:
  imap_server: mail.example.com
  # imap_port: 993
  # imap_starttls: false     # true: plain connect + STARTTLS
  # imap_folder: INBOX
  imap_username: bot@example.com
  imap_password: !env MAILBRIDGE_EMAIL_PASSWORD

  smtp_server: mail.example.com
  # smtp_port: 465
  # smtp_starttls: false     # true: plain connect + STARTTLS (port 587)
  # smtp_username/smtp_password default to the IMAP credentials

  from: "Mailbridge <bot@example.com>"

  # poll_interval_seconds: 60  # never less than 5

  # Exact addresses (case-insensitive), or "*" for anyone.
  # An empty list rejects every sender.
  allowed_senders:
    - you@example.com
"""
