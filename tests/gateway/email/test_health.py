# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Tests for the email connectivity check."""

import dataclasses
from unittest.mock import AsyncMock, MagicMock

import pytest

from mailbridge.gateway.email.health import check_connectivity


def _components(
    imap: bool | Exception = True, smtp: bool | Exception = True
) -> tuple[MagicMock, MagicMock]:
    listener = MagicMock()
    listener.check_imap = AsyncMock(
        side_effect=imap if isinstance(imap, Exception) else None,
        return_value=imap,
    )
    responder = MagicMock()
    responder.test_connection = AsyncMock(
        side_effect=smtp if isinstance(smtp, Exception) else None,
        return_value=smtp,
    )
    return listener, responder


class TestCheckConnectivity:
    """Tests for check_connectivity."""

    @pytest.mark.asyncio
    async def test_all_reachable(self, email_config) -> None:
        listener, responder = _components()
        assert await check_connectivity(email_config, listener, responder)

    @pytest.mark.asyncio
    async def test_invalid_from_address(self, email_config) -> None:
        config = dataclasses.replace(email_config, from_address="no-at-sign")
        listener, responder = _components()

        assert not await check_connectivity(config, listener, responder)
        listener.check_imap.assert_not_awaited()
        responder.test_connection.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_imap_unreachable(self, email_config) -> None:
        listener, responder = _components(imap=False)

        assert not await check_connectivity(email_config, listener, responder)
        responder.test_connection.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_smtp_unreachable(self, email_config) -> None:
        listener, responder = _components(smtp=False)
        assert not await check_connectivity(email_config, listener, responder)

    @pytest.mark.asyncio
    async def test_exception_collapses_to_false(self, email_config) -> None:
        listener, responder = _components(imap=RuntimeError("executor gone"))
        assert not await check_connectivity(email_config, listener, responder)

    @pytest.mark.asyncio
    async def test_transport_construction_failure(self, email_config) -> None:
        listener, responder = _components(smtp=ValueError("bad TLS options"))
        assert not await check_connectivity(email_config, listener, responder)
