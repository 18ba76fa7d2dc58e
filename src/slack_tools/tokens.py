"""Extract per-workspace ``xoxc-`` tokens from the Slack app's Local Storage.

Slack keeps its ``localConfig_v2`` blob in Chromium's Local Storage, a LevelDB
directory.  There is no index to look the entry up by origin, so the whole
store is scanned for keys containing the marker.  The value is a Chromium
string: one type byte (``\\x00`` UTF-16-LE, ``\\x01`` Latin-1) followed by JSON::

    {"teams": {"T0123": {"name": "...", "url": "https://x.slack.com/", "token": "xoxc-..."}}}

LevelDB allows a single process to open a store.  While Slack is running the
open fails with a lock error, which is reported as StoreLockedError.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import plyvel

from slack_tools.errors import (
    AmbiguousConfigError,
    NotFoundError,
    SlackAuthError,
    StoreLockedError,
)
from slack_tools.models import TOKEN_PREFIX, WorkspaceToken
from slack_tools.paths import ensure_supported_platform, first_existing, leveldb_candidates
from slack_tools.settings import Settings

logger = logging.getLogger(__name__)

CONFIG_KEY_MARKER = b"localConfig_v2"


def classify_store_error(exc: Exception, path: Path) -> SlackAuthError:
    """Map a plyvel error raised while opening *path* to a named error kind."""
    message = str(exc)
    if isinstance(exc, plyvel.IOError) and "lock" in message.lower():
        return StoreLockedError()
    if isinstance(exc, plyvel.CorruptionError):
        return NotFoundError(f"Slack's Local Storage at {path} is corrupt: {message}")
    if "does not exist" in message:
        return NotFoundError(f"Slack's Local Storage at {path} does not exist: {message}")
    return SlackAuthError(f"Could not open Slack's Local Storage at {path}: {message}")


def decode_local_storage_value(value: bytes) -> str:
    """Strip Chromium's leading type byte and decode the remainder."""
    marker, body = value[:1], value[1:]
    if marker == b"\x00":
        return body.decode("utf-16-le")
    if marker == b"\x01":
        return body.decode("latin-1")
    return body.decode("utf-8")


def parse_local_config(value: bytes) -> dict[str, WorkspaceToken]:
    """Parse a ``localConfig_v2`` value into tokens keyed by workspace URL."""
    try:
        config: Any = json.loads(decode_local_storage_value(value))
        teams = config["teams"]
    except (UnicodeDecodeError, json.JSONDecodeError, KeyError, TypeError) as exc:
        raise NotFoundError(
            f"Slack's Local Storage not recognised: localConfig_v2 is unreadable ({exc})"
        ) from exc
    if not isinstance(teams, dict):
        raise NotFoundError(
            "Slack's Local Storage not recognised: localConfig_v2 teams is "
            f"{type(teams).__name__}, not an object"
        )

    tokens: dict[str, WorkspaceToken] = {}
    for team_id, team in teams.items():
        if not isinstance(team, dict):
            logger.warning("Skipping workspace %s: entry is not an object", team_id)
            continue
        token = team.get("token", "")
        if not str(token).startswith(TOKEN_PREFIX):
            logger.warning(
                "Skipping workspace %s: token does not start with %s",
                team.get("name", team_id),
                TOKEN_PREFIX,
            )
            continue
        url = team.get("url", "")
        tokens[url] = WorkspaceToken(url=url, name=team.get("name", ""), token=token)
    return tokens


class WorkspaceTokenStore:
    """Read-only access to the Slack app's Local Storage LevelDB."""

    def __init__(
        self,
        settings: Settings,
        *,
        candidates: list[Path] | None = None,
        platform: str | None = None,
    ) -> None:
        self._platform = platform
        self._candidates = (
            candidates
            if candidates is not None
            else leveldb_candidates(settings.leveldb_path)
        )

    def locate_store(self) -> Path:
        """Return the first existing Local Storage leveldb directory.

        Raises UnsupportedPlatformError off macOS before probing any path.
        """
        ensure_supported_platform(self._platform)
        return first_existing(self._candidates, "Local Storage directory")

    def extract_tokens(self) -> dict[str, WorkspaceToken]:
        """Scan the store for the single ``localConfig_v2`` entry and return
        its workspace tokens keyed by URL.
        """
        path = self.locate_store()
        try:
            db = plyvel.DB(str(path), create_if_missing=False)
        except plyvel.Error as exc:
            raise classify_store_error(exc, path) from exc

        try:
            matches = [value for key, value in db if CONFIG_KEY_MARKER in key]
        except plyvel.Error as exc:
            raise classify_store_error(exc, path) from exc
        finally:
            logger.debug("Closing Local Storage database")
            db.close()

        logger.debug("Found %d localConfig_v2 values", len(matches))
        if not matches:
            raise NotFoundError(
                "Slack's Local Storage not recognised: localConfig not found"
            )
        if len(matches) > 1:
            raise AmbiguousConfigError("Slack has multiple localConfig_v2 values")

        tokens = parse_local_config(matches[0])
        logger.debug("Workspaces: %s", ", ".join(t.name for t in tokens.values()))
        return tokens
