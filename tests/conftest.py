"""Shared pytest fixtures for the slack-tools test suite."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from keyring.errors import PasswordDeleteError

import slack_tools.keychain as keychain_module
import slack_tools.settings as settings_module
from slack_tools.cookies import CookieVault
from slack_tools.keychain import SecretStore
from slack_tools.models import CredentialSet, Identity, SessionCookie, WorkspaceToken
from slack_tools.settings import Settings
from slack_tools.tokens import WorkspaceTokenStore
from slack_tools.validation import CredentialValidator

ACME_URL = "https://acme.slack.com/"
WIDGETS_URL = "https://widgets-inc.slack.com/"


def make_isolated_settings(**overrides: object) -> Settings:
    """Return a Settings instance isolated from .env and env vars."""
    defaults: dict[str, object] = {
        "token": "",
        "cookie": "",
        "workspace_url": "",
        "workspace": "",
        "api_base_url": "https://slack.example.invalid/api",
        "validation_timeout": 5.0,
        "keychain_service": "slack-tools-test",
        "app_key_account": "Slack App Store Key",
        "cookie_name": "d",
        "cookies_path": "",
        "leveldb_path": "",
    }
    defaults.update(overrides)
    return Settings.model_validate(defaults)


def make_credentials(*urls_and_names: tuple[str, str], cookie: str = "xoxd-cookie") -> CredentialSet:
    """Build a CredentialSet with one xoxc- token per (url, name) pair."""
    tokens = {
        url: WorkspaceToken(url=url, name=name, token=f"xoxc-{name.lower()}")
        for url, name in urls_and_names
    }
    return CredentialSet(tokens=tokens, cookie=SessionCookie(name="d", value=cookie))


class FakeKeyring:
    """In-memory stand-in for the keyring module's password functions."""

    def __init__(self) -> None:
        self.passwords: dict[tuple[str, str], str] = {}

    def get_password(self, service: str, key: str) -> str | None:
        return self.passwords.get((service, key))

    def set_password(self, service: str, key: str, value: str) -> None:
        self.passwords[(service, key)] = value

    def delete_password(self, service: str, key: str) -> None:
        if (service, key) not in self.passwords:
            raise PasswordDeleteError(key)
        del self.passwords[(service, key)]


@pytest.fixture(autouse=True)
def reset_globals() -> None:
    """Reset the cached settings singleton before and after every test."""
    settings_module._settings = None
    yield
    settings_module._settings = None


@pytest.fixture
def settings() -> Settings:
    """Return isolated settings with safe, test-only values."""
    return make_isolated_settings()


@pytest.fixture
def fake_keyring(monkeypatch: pytest.MonkeyPatch) -> FakeKeyring:
    """Replace the keyring module used by SecretStore with an in-memory fake."""
    fake = FakeKeyring()
    monkeypatch.setattr(keychain_module, "keyring", fake)
    return fake


@pytest.fixture
def secret_store(fake_keyring: FakeKeyring, settings: Settings) -> SecretStore:
    """Return a SecretStore backed by the in-memory keyring."""
    return SecretStore(settings.keychain_service)


@pytest.fixture
def identity() -> Identity:
    """Return the identity auth.test reports for the test user."""
    return Identity(
        user_id="U123",
        user="alice",
        team_id="T123",
        team="Acme",
        url=ACME_URL,
    )


@pytest.fixture
def mock_validator(identity: Identity) -> MagicMock:
    """Return a CredentialValidator mock whose validate() succeeds."""
    validator = MagicMock(spec=CredentialValidator)
    validator.validate = AsyncMock(return_value=identity)
    return validator


@pytest.fixture
def fresh_credentials() -> CredentialSet:
    """Return the credential set the mocked Slack app yields."""
    return make_credentials(
        (ACME_URL, "Acme"), (WIDGETS_URL, "Widgets"), cookie="xoxd-fresh"
    )


@pytest.fixture
def mock_vault(fresh_credentials: CredentialSet) -> MagicMock:
    """Return a CookieVault mock yielding the fresh cookie."""
    vault = MagicMock(spec=CookieVault)
    vault.extract_cookie.return_value = fresh_credentials.cookie
    return vault


@pytest.fixture
def mock_token_store(fresh_credentials: CredentialSet) -> MagicMock:
    """Return a WorkspaceTokenStore mock yielding the fresh tokens."""
    store = MagicMock(spec=WorkspaceTokenStore)
    store.extract_tokens.return_value = dict(fresh_credentials.tokens)
    return store
