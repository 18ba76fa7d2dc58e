"""Value types shared by the extraction, validation and storage layers."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

TOKEN_PREFIX = "xoxc-"
COOKIE_PREFIX = "xoxd-"


@dataclass(frozen=True)
class SessionCookie:
    """The decrypted Slack ``d`` cookie."""

    name: str
    value: str = field(repr=False)

    def header(self) -> str:
        """Return the value for a ``Cookie`` request header."""
        return f"{self.name}={self.value}"

    def to_dict(self) -> dict[str, str]:
        return {"name": self.name, "value": self.value}


@dataclass(frozen=True)
class WorkspaceToken:
    """An ``xoxc-`` API token for one connected workspace."""

    url: str
    name: str
    token: str = field(repr=False)


@dataclass(frozen=True)
class CredentialSet:
    """Workspace tokens (keyed by canonical URL) plus the shared session cookie.

    Instances are never mutated; filtering produces a new set.
    """

    tokens: dict[str, WorkspaceToken]
    cookie: SessionCookie

    @property
    def first_token(self) -> WorkspaceToken | None:
        """Return the first workspace token in insertion order, if any."""
        return next(iter(self.tokens.values()), None)

    def with_tokens(self, tokens: dict[str, WorkspaceToken]) -> CredentialSet:
        """Return a copy of this set restricted to *tokens*."""
        return CredentialSet(tokens=dict(tokens), cookie=self.cookie)


@dataclass(frozen=True)
class Identity:
    """The identity Slack confirmed for a token in an ``auth.test`` call."""

    user_id: str
    user: str
    team_id: str
    team: str
    url: str

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> Identity:
        """Build an Identity from an ``auth.test`` response body."""
        return cls(
            user_id=str(payload.get("user_id", "")),
            user=str(payload.get("user", "")),
            team_id=str(payload.get("team_id", "")),
            team=str(payload.get("team", "")),
            url=str(payload.get("url", "")),
        )
