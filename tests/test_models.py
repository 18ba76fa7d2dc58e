"""Tests for slack_tools.models."""

from __future__ import annotations

import dataclasses

import pytest
from conftest import ACME_URL, WIDGETS_URL, make_credentials

from slack_tools.models import Identity, SessionCookie


class TestSessionCookie:
    def test_header(self) -> None:
        assert SessionCookie(name="d", value="xoxd-abc").header() == "d=xoxd-abc"

    def test_value_hidden_from_repr(self) -> None:
        assert "xoxd-abc" not in repr(SessionCookie(name="d", value="xoxd-abc"))


class TestCredentialSet:
    def test_first_token_follows_insertion_order(self) -> None:
        credentials = make_credentials((WIDGETS_URL, "Widgets"), (ACME_URL, "Acme"))
        assert credentials.first_token is not None
        assert credentials.first_token.url == WIDGETS_URL

    def test_first_token_of_empty_set_is_none(self) -> None:
        assert make_credentials().first_token is None

    def test_with_tokens_returns_new_set(self) -> None:
        """Narrowing leaves the original set untouched."""
        credentials = make_credentials((ACME_URL, "Acme"), (WIDGETS_URL, "Widgets"))
        narrowed = credentials.with_tokens({ACME_URL: credentials.tokens[ACME_URL]})
        assert list(narrowed.tokens) == [ACME_URL]
        assert len(credentials.tokens) == 2
        assert narrowed.cookie is credentials.cookie

    def test_is_frozen(self) -> None:
        credentials = make_credentials((ACME_URL, "Acme"))
        with pytest.raises(dataclasses.FrozenInstanceError):
            credentials.cookie = SessionCookie(name="d", value="xoxd-other")  # type: ignore[misc]


class TestIdentity:
    def test_from_payload(self) -> None:
        identity = Identity.from_payload(
            {"ok": True, "user_id": "U1", "user": "bob", "team_id": "T1",
             "team": "Acme", "url": ACME_URL}
        )
        assert identity == Identity("U1", "bob", "T1", "Acme", ACME_URL)

    def test_from_payload_missing_fields(self) -> None:
        """Absent fields become empty strings."""
        assert Identity.from_payload({"ok": True}).url == ""
