"""Error kinds raised by the credential acquisition layer.

Every failure surfaces the most specific class available so the CLI (and any
other caller) can print remediation that matches the cause.  Extraction errors
are never retried; ``ValidationFailedError`` is the one routine error; it is
how an expired session announces itself.
"""

from __future__ import annotations


class SlackAuthError(Exception):
    """Base class for all credential acquisition errors."""


class NotFoundError(SlackAuthError):
    """An expected artifact (database, local store, secret, cookie) is missing."""


class UnsupportedPlatformError(SlackAuthError):
    """Extraction was attempted on a platform the Slack app layout is unknown for."""


class KeyUnavailableError(SlackAuthError):
    """The Slack master key could not be read from the OS keychain."""


class MalformedCookieError(SlackAuthError):
    """The decrypted cookie does not contain a usable ``xoxd-`` value."""


class UnsupportedCookieVersionError(SlackAuthError):
    """The encrypted cookie carries a version prefix other than v10/v11."""


class AmbiguousCredentialsError(SlackAuthError):
    """Several different live session cookies were found on this machine."""


class AmbiguousConfigError(SlackAuthError):
    """Slack's local store holds more than one ``localConfig_v2`` entry."""


_LOCKED_MESSAGE = (
    "Slack's Local Storage database is locked. "
    "Please make sure Slack is completely closed:\n"
    "1. Quit Slack from the menu bar\n"
    "2. Check Activity Monitor to ensure no Slack processes are running\n"
    "3. Try running this command again"
)


class StoreLockedError(SlackAuthError):
    """Slack's local store is held open by a running Slack process."""

    def __init__(self, message: str = _LOCKED_MESSAGE) -> None:
        super().__init__(message)


class ValidationFailedError(SlackAuthError):
    """Slack rejected the token/cookie pair, or the check could not be made."""

    def __init__(self, message: str, error_code: str | None = None) -> None:
        """Initialise with a message and the Slack ``error`` code when known."""
        self.error_code = error_code
        super().__init__(message)


class WorkspaceNotFoundError(SlackAuthError):
    """No stored workspace matches the requested URL or name."""
