"""Live validation of a token/cookie pair against Slack's ``auth.test``.

A rejected pair is the normal way an expired session shows up, so every
failure here raises ValidationFailedError and the broker decides whether to
re-extract.  Successful checks are cached per validator instance so one
process never re-validates a pair it has already proven.
"""

from __future__ import annotations

import logging

import httpx

from slack_tools.errors import ValidationFailedError
from slack_tools.models import Identity, SessionCookie
from slack_tools.settings import Settings

logger = logging.getLogger(__name__)


class CredentialValidator:
    """Confirms credentials with one ``auth.test`` call and remembers the result."""

    def __init__(
        self, settings: Settings, client: httpx.AsyncClient | None = None
    ) -> None:
        """Create a validator; *client* is reused when given, otherwise a
        short-lived client is opened per call."""
        self._settings = settings
        self._client = client
        self._validated: dict[tuple[str, str], Identity] = {}

    def is_validated(self, token: str, cookie: SessionCookie) -> bool:
        """Return True if this pair already passed validation in this process."""
        return (token, cookie.value) in self._validated

    def forget(self) -> None:
        """Drop every cached validation result."""
        self._validated.clear()

    async def validate(self, token: str, cookie: SessionCookie) -> Identity:
        """Return the Identity Slack reports for *token* and *cookie*.

        Raises ValidationFailedError on transport errors, non-2xx responses,
        unparsable bodies, or ``"ok": false``.
        """
        cache_key = (token, cookie.value)
        if cache_key in self._validated:
            logger.debug("auth.test already passed for this session; skipping")
            return self._validated[cache_key]

        payload = await self._auth_test(token, cookie)
        if payload.get("ok") is not True:
            error = payload.get("error")
            raise ValidationFailedError(
                f"Auth test failed: Slack returned {error or 'not ok'}",
                error_code=error,
            )

        identity = Identity.from_payload(payload)
        logger.debug("Authenticated as %s on %s", identity.user, identity.team)
        self._validated[cache_key] = identity
        return identity

    async def _auth_test(self, token: str, cookie: SessionCookie) -> dict:
        url = f"{self._settings.api_base_url.rstrip('/')}/auth.test"
        headers = {
            "Authorization": f"Bearer {token}",
            "Cookie": cookie.header(),
            "Accept": "application/json",
        }
        try:
            if self._client is not None:
                response = await self._client.post(url, headers=headers)
            else:
                async with httpx.AsyncClient(
                    timeout=self._settings.validation_timeout
                ) as client:
                    response = await client.post(url, headers=headers)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as exc:
            logger.debug("auth.test request failed", exc_info=True)
            raise ValidationFailedError(f"Auth test failed: {exc}") from exc
        except ValueError as exc:
            raise ValidationFailedError(
                "Auth test failed: response was not valid JSON"
            ) from exc

        if not isinstance(payload, dict):
            raise ValidationFailedError("Auth test failed: unexpected response shape")
        return payload
