"""Application settings loaded from environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """slack-tools credential configuration."""

    model_config = SettingsConfigDict(
        env_prefix="SLACK_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    token: str = ""
    """Explicit ``xoxc-`` token. When set together with ``cookie`` it overrides
    both the keychain and extraction from the Slack app (SLACK_TOKEN)."""

    cookie: str = ""
    """Explicit ``xoxd-`` value of the ``d`` cookie (SLACK_COOKIE)."""

    workspace_url: str = ""
    """Workspace URL used to key the SLACK_TOKEN override. When unset, the URL
    reported by auth.test is used."""

    workspace: str = ""
    """Default workspace selector (URL or name substring) applied when a caller
    does not pass one."""

    api_base_url: str = "https://slack.com/api"
    """Base URL of the Slack Web API."""

    validation_timeout: float = 30.0
    """Timeout, in seconds, for the auth.test round-trip."""

    keychain_service: str = "slack-tools"
    """keyring service name under which extracted credentials are cached."""

    app_key_account: str = "Slack App Store Key"
    """Keychain account holding the Slack desktop app's cookie master key."""

    cookie_name: str = "d"
    """Name of the Slack session cookie in the cookie database."""

    cookies_path: str = ""
    """Explicit path to Slack's Cookies database, probed before the defaults."""

    leveldb_path: str = ""
    """Explicit path to Slack's Local Storage leveldb directory, probed before
    the defaults."""

    @property
    def has_env_credentials(self) -> bool:
        """Return True when both SLACK_TOKEN and SLACK_COOKIE are configured."""
        return bool(self.token and self.cookie)


_settings: Settings | None = None


def get_settings() -> Settings:
    """Return the cached settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
