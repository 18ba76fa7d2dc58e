"""Recover the Slack ``d`` session cookie from the desktop app's cookie store.

The Slack desktop app is Chromium-based and encrypts cookie values the way
Chrome does on macOS:

  - the master key is an ASCII secret kept in the login keychain;
  - the AES key is PBKDF2-HMAC-SHA1(master, b"saltysalt", 1003 rounds, 16 bytes);
  - each value is ``v10``/``v11`` + AES-128-CBC(plaintext) under an IV of 16 spaces.

Newer cookie databases prepend a 32-byte host digest to the plaintext, so the
decrypted value may start with binary garbage.  The cookie itself is located
by its ``xoxd-`` prefix rather than by offset.
"""

from __future__ import annotations

import logging
import sqlite3
import subprocess
from collections.abc import Callable
from contextlib import closing
from pathlib import Path

from Crypto.Cipher import AES
from Crypto.Protocol.KDF import PBKDF2

from slack_tools.errors import (
    AmbiguousCredentialsError,
    KeyUnavailableError,
    MalformedCookieError,
    NotFoundError,
    SlackAuthError,
    StoreLockedError,
    UnsupportedCookieVersionError,
)
from slack_tools.models import COOKIE_PREFIX, SessionCookie
from slack_tools.paths import cookie_db_candidates, first_existing
from slack_tools.settings import Settings

logger = logging.getLogger(__name__)

# Must match Chromium's macOS OSCrypt parameters exactly; a mismatch does not
# fail, it just decrypts to garbage.
KDF_SALT = b"saltysalt"
KDF_ITERATIONS = 1003
KEY_LENGTH = 16
CBC_IV = b" " * 16

_SUPPORTED_VERSIONS = (b"v10", b"v11")

_QUERY = (
    "SELECT name, encrypted_value FROM cookies WHERE name = ? "
    "ORDER BY LENGTH(encrypted_value) DESC"
)


def read_master_key(account: str) -> str:
    """Read the Slack master-key material from the macOS login keychain.

    Raises KeyUnavailableError if the ``security`` tool is missing, the item
    does not exist, or the stored secret is empty.
    """
    cmd = ["security", "find-generic-password", "-wa", account]
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, check=True)
    except FileNotFoundError as exc:
        raise KeyUnavailableError(
            "The macOS 'security' tool is not available to read the Slack key."
        ) from exc
    except subprocess.CalledProcessError as exc:
        raise KeyUnavailableError(
            f"Could not retrieve {account!r} from the keychain: "
            f"{(exc.stderr or '').strip() or f'exit status {exc.returncode}'}"
        ) from exc

    secret = result.stdout.strip()
    if not secret:
        raise KeyUnavailableError(f"Keychain item {account!r} is empty.")
    return secret


def derive_key(secret: str) -> bytes:
    """Derive the 128-bit AES key from the keychain secret."""
    return PBKDF2(secret, KDF_SALT, dkLen=KEY_LENGTH, count=KDF_ITERATIONS)


def _strip_padding(data: bytes) -> bytes:
    # Drop a well-formed PKCS7 tail, then any trailing NULs. Bad padding is
    # not an error.
    pad = data[-1] if data else 0
    if 0 < pad <= AES.block_size and data.endswith(bytes([pad]) * pad):
        data = data[:-pad]
    return data.rstrip(b"\x00")


def decrypt_cookie_value(encrypted_value: bytes, key: bytes) -> str:
    """Decrypt a ``v10``/``v11`` cookie blob and return the unpadded text.

    Undecodable bytes (the host digest prefix) are replaced, not rejected.
    """
    version = bytes(encrypted_value[:3])
    if version not in _SUPPORTED_VERSIONS:
        raise UnsupportedCookieVersionError(
            f"Unsupported cookie version {version!r}; expected v10 or v11."
        )

    ciphertext = bytes(encrypted_value[3:])
    if not ciphertext or len(ciphertext) % AES.block_size:
        raise MalformedCookieError(
            "Encrypted cookie value is not a whole number of AES blocks."
        )

    cipher = AES.new(key, AES.MODE_CBC, iv=CBC_IV)
    plaintext = _strip_padding(cipher.decrypt(ciphertext))
    return plaintext.decode("utf-8", errors="replace")


def _session_value(decrypted: str) -> str | None:
    start = decrypted.find(COOKIE_PREFIX)
    return decrypted[start:] if start != -1 else None


def _classify_sqlite_error(exc: sqlite3.Error, path: Path) -> SlackAuthError:
    if "locked" in str(exc).lower():
        return StoreLockedError(
            f"Slack's cookie database at {path} is locked. "
            "Quit Slack completely and try again."
        )
    return NotFoundError(f"Slack's cookie database at {path} is not recognised: {exc}")


class CookieVault:
    """Read-only access to the Slack app's encrypted cookie database."""

    def __init__(
        self,
        settings: Settings,
        *,
        candidates: list[Path] | None = None,
        master_key_reader: Callable[[str], str] = read_master_key,
    ) -> None:
        self._settings = settings
        self._candidates = (
            candidates
            if candidates is not None
            else cookie_db_candidates(settings.cookies_path)
        )
        self._master_key_reader = master_key_reader

    def locate_database(self) -> Path:
        """Return the first existing Cookies database path."""
        return first_existing(self._candidates, "cookies database")

    def derive_encryption_key(self) -> bytes:
        """Fetch the master secret from the keychain and derive the AES key."""
        secret = self._master_key_reader(self._settings.app_key_account)
        logger.debug("Found Slack encryption key in keychain")
        return derive_key(secret)

    def read_records(self, path: Path) -> list[tuple[str, bytes]]:
        """Return ``(name, encrypted_value)`` rows for the session cookie,
        longest encrypted value first.

        The database is opened read-only; Slack may be running.
        """
        uri = f"{path.resolve().as_uri()}?mode=ro"
        try:
            with closing(sqlite3.connect(uri, uri=True)) as con:
                rows = con.execute(_QUERY, (self._settings.cookie_name,)).fetchall()
        except sqlite3.Error as exc:
            raise _classify_sqlite_error(exc, path) from exc

        records = []
        for name, value in rows:
            if isinstance(value, str):
                value = value.encode("latin-1")
            records.append((name, bytes(value or b"")))
        return records

    def extract_cookie(self) -> SessionCookie:
        """Locate, decrypt and return the Slack session cookie.

        When several rows exist, every decryptable one must carry the same
        ``xoxd-`` value; otherwise the sessions cannot be told apart.  The
        longest row is then taken as the current one.
        """
        path = self.locate_database()
        key = self.derive_encryption_key()
        records = self.read_records(path)

        cookie_name = self._settings.cookie_name
        if not records or not records[0][1]:
            raise NotFoundError(
                f'Could not find any Slack "{cookie_name}" cookies in {path}'
            )

        if len(records) > 1:
            self._ensure_single_session(records, key)

        name, encrypted = records[0]
        value = _session_value(decrypt_cookie_value(encrypted, key))
        if value is None:
            raise MalformedCookieError(
                f"Decrypted cookie value does not contain the required "
                f"{COOKIE_PREFIX} prefix"
            )
        logger.debug("Found %s cookie", name)
        return SessionCookie(name=name, value=value)

    @staticmethod
    def _ensure_single_session(records: list[tuple[str, bytes]], key: bytes) -> None:
        values: set[str] = set()
        for _name, encrypted in records:
            try:
                value = _session_value(decrypt_cookie_value(encrypted, key))
            except SlackAuthError:
                logger.debug("Skipping undecryptable cookie row", exc_info=True)
                continue
            if value is not None:
                values.add(value)

        if len(values) > 1:
            raise AmbiguousCredentialsError(
                f"Found {len(values)} different Slack session cookies. "
                "Please clear unused cookies (sign out of extra sessions)."
            )
