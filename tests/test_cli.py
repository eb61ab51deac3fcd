# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Tests for the mailbridge multi-command CLI."""

import asyncio
import io
import json
from collections.abc import Iterator
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from mailbridge.cli import (
    _STUB_CONFIG,
    _print_messages,
    cli,
    cmd_check,
    cmd_init,
    cmd_listen,
    cmd_send,
)
from mailbridge.gateway.channel import ChannelMessage
from mailbridge.gateway.config import EmailChannelConfig
from mailbridge.gateway.email import SMTPSendError
from mailbridge.gateway.email.thread_meta import (
    ThreadMetadata,
    dedup_key,
)


@pytest.fixture(autouse=True)
def _no_dotenv() -> Iterator[None]:
    with patch("mailbridge.gateway.config.load_dotenv_once"):
        yield


@pytest.fixture
def mock_channel() -> Iterator[MagicMock]:
    """Patch config loading and channel construction in the CLI."""
    channel = MagicMock()
    channel.name = "email"
    channel.config.channel_info = "bot@example.com @ imap.example.com/INBOX"
    channel.health_check = AsyncMock(return_value=True)
    channel.send = AsyncMock()
    with (
        patch("mailbridge.cli.configure_logging"),
        patch("mailbridge.cli.EmailChannelConfig"),
        patch("mailbridge.cli.EmailChannel") as channel_class,
    ):
        channel_class.from_config.return_value = channel
        yield channel


# ── cmd_init ────────────────────────────────────────────────────────


class TestCmdInit:
    def test_creates_config(self, tmp_path: Path) -> None:
        config_path = tmp_path / "mailbridge" / "mailbridge.yaml"
        with patch("mailbridge.cli.get_config_path", return_value=config_path):
            assert cmd_init([]) == 0
        assert config_path.read_text() == _STUB_CONFIG

    def test_existing_config_not_overwritten(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        config_path = tmp_path / "mailbridge.yaml"
        config_path.write_text("email: {}\n")
        with patch("mailbridge.cli.get_config_path", return_value=config_path):
            assert cmd_init([]) == 0
        assert config_path.read_text() == "email: {}\n"
        assert "Config already exists" in capsys.readouterr().out

    def test_stub_config_loads(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """The template is a valid config once the password is set."""
        monkeypatch.setenv("MAILBRIDGE_EMAIL_PASSWORD", "s3cret")
        config_path = tmp_path / "mailbridge.yaml"
        config_path.write_text(_STUB_CONFIG)

        config = EmailChannelConfig.from_yaml(config_path=config_path)

        assert config.imap_password == "s3cret"
        assert config.smtp_password == "s3cret"
        assert config.smtp_username == "bot@example.com"
        assert config.allowed_senders == ["you@example.com"]


# ── cmd_check ───────────────────────────────────────────────────────


class TestCmdCheck:
    def test_healthy(
        self, mock_channel: MagicMock, capsys: pytest.CaptureFixture[str]
    ) -> None:
        assert cmd_check([]) == 0
        out = capsys.readouterr().out
        assert "Checking email channel: bot@example.com @ imap" in out
        assert "OK" in out
        mock_channel.health_check.assert_awaited_once()
        mock_channel.close.assert_called_once()

    def test_unhealthy(
        self, mock_channel: MagicMock, capsys: pytest.CaptureFixture[str]
    ) -> None:
        mock_channel.health_check.return_value = False
        assert cmd_check([]) == 1
        assert "FAILED" in capsys.readouterr().err
        mock_channel.close.assert_called_once()

    def test_missing_required_field(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        config_path = tmp_path / "mailbridge.yaml"
        config_path.write_text("email:\n  imap_server: imap.example.com\n")
        with patch("mailbridge.cli.configure_logging"):
            result = cmd_check(["--config", str(config_path)])
        assert result == 1
        err = capsys.readouterr().err
        assert "configuration error" in err
        assert "email.imap_username" in err

    def test_missing_config_file(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        with patch("mailbridge.cli.configure_logging"):
            result = cmd_check(["--config", str(tmp_path / "absent.yaml")])
        assert result == 1
        assert "not found" in capsys.readouterr().err


# ── cmd_send ────────────────────────────────────────────────────────


class TestCmdSend:
    def test_body_from_file(
        self, mock_channel: MagicMock, tmp_path: Path
    ) -> None:
        body_file = tmp_path / "reply.md"
        body_file.write_text("**Done.**\n")

        result = cmd_send(
            ["--to", "alice@example.com", "--file", str(body_file)]
        )

        assert result == 0
        mock_channel.send.assert_awaited_once_with(
            "**Done.**\n", "alice@example.com"
        )
        mock_channel.close.assert_called_once()

    def test_body_from_stdin(self, mock_channel: MagicMock) -> None:
        with patch("mailbridge.cli.sys.stdin", io.StringIO("from stdin")):
            assert cmd_send(["--to", "alice@example.com"]) == 0
        mock_channel.send.assert_awaited_once_with(
            "from stdin", "alice@example.com"
        )

    def test_smtp_failure(
        self, mock_channel: MagicMock, tmp_path: Path
    ) -> None:
        body_file = tmp_path / "reply.md"
        body_file.write_text("hi")
        mock_channel.send.side_effect = SMTPSendError("Failed to send email")

        result = cmd_send(
            ["--to", "alice@example.com", "--file", str(body_file)]
        )

        assert result == 1
        mock_channel.close.assert_called_once()

    def test_requires_recipient(self, mock_channel: MagicMock) -> None:
        with pytest.raises(SystemExit) as exc_info:
            cmd_send([])
        assert exc_info.value.code == 2


# ── listen output ───────────────────────────────────────────────────


class TestPrintMessages:
    @pytest.mark.asyncio
    async def test_prints_json_lines_with_reply_to(
        self, capsys: pytest.CaptureFixture[str]
    ) -> None:
        thread = ThreadMetadata(message_id="<m@x>", subject="Hi")
        message = ChannelMessage(
            id=dedup_key("5", thread),
            sender="alice@example.com",
            content="Hello",
            channel="email",
            timestamp=1700000000,
        )

        async def listen(sink) -> None:
            await sink.put(message)
            await asyncio.Event().wait()

        channel = MagicMock()
        channel.listen = listen
        channel.reply_recipient.return_value = "alice@example.com\x1f{}"

        with pytest.raises(TimeoutError):
            await asyncio.wait_for(_print_messages(channel), timeout=0.2)

        record = json.loads(capsys.readouterr().out.strip())
        assert record["content"] == "Hello"
        assert record["timestamp"] == 1700000000
        assert record["reply_to"] == "alice@example.com\x1f{}"
        channel.reply_recipient.assert_called_once_with(
            "alice@example.com", message.id
        )

    @pytest.mark.asyncio
    async def test_listener_failure_reraised(self) -> None:
        channel = MagicMock()
        channel.listen = AsyncMock(side_effect=RuntimeError("executor gone"))

        with pytest.raises(RuntimeError, match="executor gone"):
            await asyncio.wait_for(_print_messages(channel), timeout=5)

    @pytest.mark.asyncio
    async def test_returns_when_listener_stops(self) -> None:
        channel = MagicMock()
        channel.listen = AsyncMock(return_value=None)

        await asyncio.wait_for(_print_messages(channel), timeout=5)

        channel.reply_recipient.assert_not_called()


class TestCmdListen:
    def test_listener_failure_exits_nonzero(
        self, mock_channel: MagicMock, caplog: pytest.LogCaptureFixture
    ) -> None:
        mock_channel.listen = AsyncMock(side_effect=RuntimeError("boom"))

        assert cmd_listen([]) == 1

        assert "listener stopped unexpectedly" in caplog.text
        mock_channel.close.assert_called_once()


# ── cli() dispatch ──────────────────────────────────────────────────


class TestCli:
    def test_no_args_prints_usage(
        self, capsys: pytest.CaptureFixture[str]
    ) -> None:
        with (
            patch("mailbridge.cli.sys.argv", ["mailbridge"]),
            pytest.raises(SystemExit) as exc_info,
        ):
            cli()
        assert exc_info.value.code == 0
        assert "usage: mailbridge" in capsys.readouterr().out

    def test_unknown_command_exits_with_error(
        self, capsys: pytest.CaptureFixture[str]
    ) -> None:
        with (
            patch("mailbridge.cli.sys.argv", ["mailbridge", "serve"]),
            pytest.raises(SystemExit) as exc_info,
        ):
            cli()
        assert exc_info.value.code == 2
        assert "unknown command 'serve'" in capsys.readouterr().err

    @patch("mailbridge.cli.sys.exit")
    @patch("mailbridge.cli.cmd_init", return_value=0)
    def test_init_subcommand(
        self, mock_init: MagicMock, mock_exit: MagicMock
    ) -> None:
        with patch("mailbridge.cli.sys.argv", ["mailbridge", "init"]):
            cli()
        mock_init.assert_called_once_with([])
        mock_exit.assert_called_once_with(0)

    @patch("mailbridge.cli.sys.exit")
    @patch("mailbridge.cli.cmd_send", return_value=1)
    def test_args_forwarded_and_exit_code_propagated(
        self, mock_send: MagicMock, mock_exit: MagicMock
    ) -> None:
        with patch(
            "mailbridge.cli.sys.argv",
            ["mailbridge", "send", "--to", "alice@example.com"],
        ):
            cli()
        mock_send.assert_called_once_with(["--to", "alice@example.com"])
        mock_exit.assert_called_once_with(1)
