"""Credential broker: the single entry point downstream tools use for auth.

Flow of ``get_credentials``:
  1. Load the credential set cached in the keychain (NO_CREDENTIALS → STORED).
  2. Validate its first token with auth.test (VALIDATING).
  3. Valid → return it untouched.  Rejected → clear the keychain (INVALID).
  4. Extract a fresh cookie, then fresh tokens, from the Slack app (REFRESHING).
  5. Validate the fresh set; persist it; return it (VALID).
  Any failure while refreshing is final (FATAL): the on-disk state that
  produced it will not change between attempts.

Explicit SLACK_TOKEN/SLACK_COOKIE settings bypass the keychain entirely.

Every successful exit is narrowed by ``resolve_workspace``.
"""

from __future__ import annotations

import enum
import json
import logging

from slack_tools.cookies import CookieVault
from slack_tools.errors import (
    MalformedCookieError,
    NotFoundError,
    SlackAuthError,
    UnsupportedPlatformError,
    ValidationFailedError,
    WorkspaceNotFoundError,
)
from slack_tools.keychain import SecretStore
from slack_tools.models import (
    COOKIE_PREFIX,
    TOKEN_PREFIX,
    CredentialSet,
    Identity,
    SessionCookie,
    WorkspaceToken,
)
from slack_tools.paths import ensure_supported_platform
from slack_tools.settings import Settings, get_settings
from slack_tools.tokens import WorkspaceTokenStore
from slack_tools.validation import CredentialValidator

logger = logging.getLogger(__name__)

COOKIE_KEY = "slack-cookie"
_ENV_WORKSPACE_KEY = "env"


class BrokerState(enum.Enum):
    NO_CREDENTIALS = "no_credentials"
    STORED = "stored"
    VALIDATING = "validating"
    VALID = "valid"
    INVALID = "invalid"
    REFRESHING = "refreshing"
    FATAL = "fatal"


def resolve_workspace(
    credentials: CredentialSet, selector: str | None
) -> CredentialSet:
    """Narrow *credentials* to the workspaces matching *selector*.

    Tried in order: exact URL, exact name, URL substring, name substring
    (names compared case-insensitively).  If nothing matches, the full set is
    returned unchanged.
    """
    if not selector:
        return credentials

    needle = selector.lower()
    tokens = credentials.tokens
    matchers = (
        lambda url, t: url == selector,
        lambda url, t: t.name.lower() == needle,
        lambda url, t: selector in url,
        lambda url, t: needle in t.name.lower(),
    )
    for matches in matchers:
        selected = {url: t for url, t in tokens.items() if matches(url, t)}
        if selected:
            return credentials.with_tokens(selected)

    logger.debug("No workspace matches %r; using all workspaces", selector)
    return credentials


def find_workspace_token(credentials: CredentialSet, selector: str) -> WorkspaceToken:
    """Return the token for an exact workspace URL or (case-insensitive) name.

    Raises WorkspaceNotFoundError listing the available workspaces otherwise.
    """
    if selector in credentials.tokens:
        return credentials.tokens[selector]

    for token in credentials.tokens.values():
        if token.name.lower() == selector.lower():
            return token

    available = ", ".join(
        f"{t.name} ({url})" for url, t in credentials.tokens.items()
    ) or "none"
    raise WorkspaceNotFoundError(
        f'Could not find workspace "{selector}". Available workspaces: {available}'
    )


def check_format(token: str, cookie: SessionCookie) -> None:
    """Raise if *token* or *cookie* lacks its required prefix."""
    if not token.startswith(TOKEN_PREFIX):
        raise ValidationFailedError(
            f"Invalid token format: token should start with '{TOKEN_PREFIX}'"
        )
    if not cookie.value.startswith(COOKIE_PREFIX):
        raise MalformedCookieError(
            f"Invalid cookie format: cookie should start with '{COOKIE_PREFIX}'"
        )


class CredentialBroker:
    """Owns the lifecycle of the Slack CredentialSet for one process.

    The validated flag lives on this instance (via its validator), so separate
    brokers never share validation state.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        store: SecretStore | None = None,
        vault: CookieVault | None = None,
        token_store: WorkspaceTokenStore | None = None,
        validator: CredentialValidator | None = None,
        platform: str | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._store = store or SecretStore(self._settings.keychain_service)
        self._validator = validator or CredentialValidator(self._settings)

        # Stored and env credentials work anywhere; only extraction is
        # platform-bound, so the check result is kept rather than raised here.
        self._platform_error: UnsupportedPlatformError | None = None
        try:
            ensure_supported_platform(platform)
        except UnsupportedPlatformError as exc:
            self._platform_error = exc

        self._vault = vault
        self._token_store = token_store
        if self._platform_error is None:
            self._vault = vault or CookieVault(self._settings)
            self._token_store = token_store or WorkspaceTokenStore(
                self._settings, platform=platform
            )

        self.state = BrokerState.NO_CREDENTIALS
        self.identity: Identity | None = None

    @property
    def can_extract(self) -> bool:
        """Return True if credentials can be extracted from the Slack app here."""
        return self._platform_error is None

    # ── Produced interface ──────────────────────────────────────────────────

    async def get_credentials(self, workspace: str | None = None) -> CredentialSet:
        """Return validated credentials, refreshing them from the Slack app
        when the cached set is missing or rejected.
        """
        selector = workspace if workspace is not None else self._settings.workspace
        self.state = BrokerState.NO_CREDENTIALS

        if self._settings.has_env_credentials:
            return resolve_workspace(await self._env_credentials(), selector)

        stored = self.stored_credentials()
        if stored is not None:
            self.state = BrokerState.STORED
            try:
                self.state = BrokerState.VALIDATING
                await self._validate(stored)
            except ValidationFailedError as exc:
                self.state = BrokerState.INVALID
                logger.warning(
                    "Stored credentials were rejected (%s); clearing them and "
                    "extracting fresh ones.",
                    exc,
                )
                self._store.clear()
            else:
                self.state = BrokerState.VALID
                return resolve_workspace(stored, selector)

        fresh = await self.extract_fresh()
        self.save_credentials(fresh)
        self.state = BrokerState.VALID
        return resolve_workspace(fresh, selector)

    async def clear_credentials(self) -> None:
        """Remove cached credentials and forget this process's validation."""
        self._store.clear()
        self._validator.forget()
        self.identity = None
        self.state = BrokerState.NO_CREDENTIALS

    # ── Building blocks (also used by the CLI) ──────────────────────────────

    async def extract_fresh(self) -> CredentialSet:
        """Extract and validate credentials from the Slack app, without storing."""
        self.state = BrokerState.REFRESHING
        try:
            fresh = self._extract()
            await self._validate(fresh)
        except SlackAuthError:
            self.state = BrokerState.FATAL
            raise
        return fresh

    async def import_credentials(
        self, token: str, cookie_value: str, *, persist: bool = True
    ) -> CredentialSet:
        """Validate a manually supplied token/cookie pair and cache it.

        The workspace URL and name come from the auth.test response.
        """
        cookie = SessionCookie(name=self._settings.cookie_name, value=cookie_value)
        check_format(token, cookie)
        identity = await self._validator.validate(token, cookie)
        self.identity = identity

        url = identity.url or _ENV_WORKSPACE_KEY
        credentials = CredentialSet(
            tokens={url: WorkspaceToken(url=url, name=identity.team, token=token)},
            cookie=cookie,
        )
        if persist:
            self.save_credentials(credentials)
        self.state = BrokerState.VALID
        return credentials

    def stored_credentials(self) -> CredentialSet | None:
        """Return the credential set cached in the keychain, unvalidated."""
        keys = self._store.list_keys()
        if not keys:
            return None

        cookie: SessionCookie | None = None
        tokens: dict[str, WorkspaceToken] = {}
        for key in keys:
            raw = self._store.get(key)
            if raw is None:
                continue
            try:
                data = json.loads(raw)
                if key == COOKIE_KEY:
                    cookie = SessionCookie(name=data["name"], value=data["value"])
                else:
                    tokens[key] = WorkspaceToken(
                        url=key, name=data.get("name", ""), token=data["token"]
                    )
            except (json.JSONDecodeError, KeyError, TypeError, AttributeError):
                logger.warning("Ignoring unreadable keychain entry %s", key)

        if not tokens or cookie is None:
            return None
        return CredentialSet(tokens=tokens, cookie=cookie)

    def save_credentials(self, credentials: CredentialSet) -> None:
        """Persist *credentials* as a whole, dropping entries it no longer has."""
        wanted = {COOKIE_KEY, *credentials.tokens}
        for stale in set(self._store.list_keys()) - wanted:
            self._store.delete(stale)

        for url, token in credentials.tokens.items():
            self._store.set(url, json.dumps({"name": token.name, "token": token.token}))
        if not self._store.set(COOKIE_KEY, json.dumps(credentials.cookie.to_dict())):
            logger.warning("Could not cache Slack credentials in the keychain.")

    # ── Internals ───────────────────────────────────────────────────────────

    def _extract(self) -> CredentialSet:
        if self._platform_error is not None:
            raise self._platform_error

        # Cookie first: a missing cookie database fails fast, before the
        # full Local Storage scan.
        cookie = self._vault.extract_cookie()
        tokens = self._token_store.extract_tokens()
        if not tokens:
            raise NotFoundError("No Slack workspaces found in the Slack app's Local Storage")
        return CredentialSet(tokens=tokens, cookie=cookie)

    async def _validate(self, credentials: CredentialSet) -> Identity:
        first = credentials.first_token
        if first is None:
            raise ValidationFailedError("Auth test failed: No token found")
        self.identity = await self._validator.validate(first.token, credentials.cookie)
        return self.identity

    async def _env_credentials(self) -> CredentialSet:
        settings = self._settings
        url = settings.workspace_url or _ENV_WORKSPACE_KEY
        cookie = SessionCookie(name=settings.cookie_name, value=settings.cookie)
        credentials = CredentialSet(
            tokens={url: WorkspaceToken(url=url, name=url, token=settings.token)},
            cookie=cookie,
        )

        self.state = BrokerState.VALIDATING
        try:
            identity = await self._validate(credentials)
        except SlackAuthError:
            self.state = BrokerState.FATAL
            raise
        self.state = BrokerState.VALID

        if not settings.workspace_url and identity.url:
            credentials = CredentialSet(
                tokens={
                    identity.url: WorkspaceToken(
                        url=identity.url, name=identity.team, token=settings.token
                    )
                },
                cookie=cookie,
            )
        return credentials
