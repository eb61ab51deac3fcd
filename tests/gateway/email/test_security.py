# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Tests for sender authorization and address validation."""

import pytest

from mailbridge.gateway.email.security import (
    SenderAuthorizer,
    is_valid_email_identity,
)


class TestSenderAuthorizer:
    """Tests for SenderAuthorizer."""

    @pytest.mark.parametrize(
        "sender", ["alice@example.com", "anyone@else.org", "", "no-at-sign"]
    )
    def test_wildcard_allows_any(self, sender: str) -> None:
        assert SenderAuthorizer(["*"]).is_authorized(sender)

    def test_wildcard_alongside_addresses(self) -> None:
        authorizer = SenderAuthorizer(["alice@example.com", "*"])
        assert authorizer.allow_all
        assert authorizer.is_authorized("mallory@example.com")

    def test_exact_match_case_insensitive(self) -> None:
        authorizer = SenderAuthorizer(["Alice@Example.com"])
        assert authorizer.is_authorized("alice@example.com")
        assert authorizer.is_authorized("ALICE@EXAMPLE.COM")

    def test_rejects_other_sender(self) -> None:
        authorizer = SenderAuthorizer(["Alice@Example.com"])
        assert not authorizer.is_authorized("bob@example.com")

    @pytest.mark.parametrize(
        "sender", ["alice@example.com", "*", "", "@example.com"]
    )
    def test_empty_list_denies_all(self, sender: str) -> None:
        assert not SenderAuthorizer([]).is_authorized(sender)

    def test_no_domain_wildcards(self) -> None:
        authorizer = SenderAuthorizer(["*@example.com", "@example.com"])
        assert not authorizer.is_authorized("alice@example.com")

    def test_no_substring_match(self) -> None:
        authorizer = SenderAuthorizer(["alice@example.com"])
        assert not authorizer.is_authorized("malice@example.com")
        assert not authorizer.is_authorized("alice@example.com.evil")

    def test_ascii_only_case_folding(self) -> None:
        # Kelvin sign lowercases to "k" under Unicode rules, not ASCII.
        authorizer = SenderAuthorizer(["kate@example.com"])
        assert not authorizer.is_authorized("Kate@example.com")
        assert authorizer.is_authorized("KATE@example.com")


class TestIsValidEmailIdentity:
    """Tests for is_valid_email_identity."""

    @pytest.mark.parametrize(
        "value",
        [
            "alice@example.com",
            "  alice@example.com  ",
            "Alice <alice@example.com>",
        ],
    )
    def test_valid(self, value: str) -> None:
        assert is_valid_email_identity(value)

    @pytest.mark.parametrize(
        "value",
        [
            "aliceexample.com",
            "",
            "   ",
            "alice@example.com\r\nBcc:x",
            "alice@example.com\nBcc: x",
            "alice@\rexample.com",
        ],
    )
    def test_invalid(self, value: str) -> None:
        assert not is_valid_email_identity(value)
