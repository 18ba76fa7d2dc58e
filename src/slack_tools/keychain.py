"""Secure credential storage using the OS keychain.

Uses the ``keyring`` library to keep extracted Slack credentials in the
system's credential manager (macOS Keychain, GNOME Keyring, Windows Credential
Manager, etc.) under a single service name.

keyring cannot enumerate the accounts stored under a service, so the store
keeps its own index entry listing every key it has written.  ``list_keys`` and
``clear`` work from that index.
"""

from __future__ import annotations

import json
import logging

import keyring
from keyring.errors import NoKeyringError, PasswordDeleteError

logger = logging.getLogger(__name__)

DEFAULT_SERVICE_NAME = "slack-tools"
_INDEX_KEY = "__index__"


class SecretStore:
    """Namespaced key/value access to the OS keychain.

    Writes report success as a bool and reads return None when the keychain
    backend is unavailable, so callers can fall back to fresh extraction.
    """

    def __init__(self, service: str = DEFAULT_SERVICE_NAME) -> None:
        self.service = service

    def get(self, key: str) -> str | None:
        """Return the value stored under *key*, or None if absent."""
        try:
            value = keyring.get_password(self.service, key)
        except NoKeyringError:
            logger.debug("Keychain backend unavailable; cannot read %s.", key)
            return None
        except Exception:
            logger.warning("Failed to read %s from keychain.", key, exc_info=True)
            return None
        return value if value else None

    def set(self, key: str, value: str) -> bool:
        """Store *value* under *key*, replacing any previous value."""
        try:
            keyring.set_password(self.service, key, value)
        except NoKeyringError:
            logger.debug("Keychain backend unavailable; cannot store %s.", key)
            return False
        except Exception:
            logger.warning("Failed to store %s in keychain.", key, exc_info=True)
            return False
        if key != _INDEX_KEY:
            keys = self.list_keys()
            if key not in keys:
                self._write_index([*keys, key])
        return True

    def delete(self, key: str) -> bool:
        """Remove *key*. Returns True if it is gone afterwards."""
        try:
            keyring.delete_password(self.service, key)
        except PasswordDeleteError:
            pass  # Already gone.
        except NoKeyringError:
            logger.debug("Keychain backend unavailable; nothing to delete.")
            return False
        except Exception:
            logger.warning("Failed to delete %s from keychain.", key, exc_info=True)
            return False
        if key != _INDEX_KEY:
            keys = self.list_keys()
            if key in keys:
                self._write_index([k for k in keys if k != key])
        return True

    def list_keys(self) -> list[str]:
        """Return every key written by this store, in insertion order."""
        raw = self.get(_INDEX_KEY)
        if not raw:
            return []
        try:
            keys = json.loads(raw)
            if not isinstance(keys, list):
                raise ValueError(f"expected a list, got {type(keys).__name__}")
        except ValueError:
            logger.warning("Keychain index for %s is corrupt; ignoring it.", self.service)
            return []
        return [k for k in keys if isinstance(k, str)]

    def clear(self) -> bool:
        """Delete every key in this namespace, including the index."""
        ok = True
        for key in self.list_keys():
            ok = self.delete(key) and ok
        return self.delete(_INDEX_KEY) and ok

    def _write_index(self, keys: list[str]) -> None:
        if keys:
            self.set(_INDEX_KEY, json.dumps(keys))
        else:
            self.delete(_INDEX_KEY)
