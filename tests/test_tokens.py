"""Tests for slack_tools.tokens: Local Storage parsing and WorkspaceTokenStore."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import MagicMock

import plyvel
import pytest

from slack_tools.errors import (
    AmbiguousConfigError,
    NotFoundError,
    SlackAuthError,
    StoreLockedError,
    UnsupportedPlatformError,
)
from slack_tools.models import WorkspaceToken
from slack_tools.settings import Settings
from slack_tools.tokens import (
    WorkspaceTokenStore,
    classify_store_error,
    decode_local_storage_value,
    parse_local_config,
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_CONFIG_KEY = b"_https://app.slack.com\x00\x01localConfig_v2"

_CONFIG = {
    "teams": {
        "T001": {
            "id": "T001",
            "name": "Acme",
            "url": "https://acme.slack.com/",
            "token": "xoxc-acme-token",
        },
        "T002": {
            "id": "T002",
            "name": "Widgets",
            "url": "https://widgets-inc.slack.com/",
            "token": "xoxc-widgets-token",
        },
    }
}


def _latin1_value(config: dict) -> bytes:
    return b"\x01" + json.dumps(config).encode("latin-1")


def _make_leveldb(path: Path, entries: dict[bytes, bytes]) -> Path:
    """Create a LevelDB directory at *path* holding *entries*."""
    db = plyvel.DB(str(path), create_if_missing=True)
    for key, value in entries.items():
        db.put(key, value)
    db.close()
    return path


def _make_store(settings: Settings, path: Path) -> WorkspaceTokenStore:
    return WorkspaceTokenStore(settings, candidates=[path], platform="darwin")


# ---------------------------------------------------------------------------
# TestParsing
# ---------------------------------------------------------------------------


class TestDecodeLocalStorageValue:
    """Tests for decode_local_storage_value()."""

    def test_latin1_marker(self) -> None:
        """A \\x01 marker is stripped and the rest decoded as Latin-1."""
        assert decode_local_storage_value(b'\x01{"a": "caf\xe9"}') == '{"a": "café"}'

    def test_utf16_marker(self) -> None:
        """A \\x00 marker is stripped and the rest decoded as UTF-16-LE."""
        value = b"\x00" + '{"a": 1}'.encode("utf-16-le")
        assert decode_local_storage_value(value) == '{"a": 1}'


class TestParseLocalConfig:
    """Tests for parse_local_config()."""

    def test_tokens_keyed_by_url(self) -> None:
        """Each team becomes a WorkspaceToken keyed by its URL."""
        tokens = parse_local_config(_latin1_value(_CONFIG))
        assert tokens == {
            "https://acme.slack.com/": WorkspaceToken(
                url="https://acme.slack.com/", name="Acme", token="xoxc-acme-token"
            ),
            "https://widgets-inc.slack.com/": WorkspaceToken(
                url="https://widgets-inc.slack.com/",
                name="Widgets",
                token="xoxc-widgets-token",
            ),
        }

    def test_team_without_xoxc_token_is_skipped(self) -> None:
        """Teams whose token lacks the xoxc- prefix are left out."""
        config = {
            "teams": {
                "T1": {"name": "Good", "url": "https://good.slack.com/", "token": "xoxc-1"},
                "T2": {"name": "Bad", "url": "https://bad.slack.com/", "token": "xoxb-2"},
            }
        }
        assert list(parse_local_config(_latin1_value(config))) == [
            "https://good.slack.com/"
        ]

    def test_invalid_json_raises_not_found(self) -> None:
        """A value that is not JSON after the marker raises NotFoundError."""
        with pytest.raises(NotFoundError):
            parse_local_config(b"\x01not-json")

    def test_missing_teams_raises_not_found(self) -> None:
        """JSON without a teams object raises NotFoundError."""
        with pytest.raises(NotFoundError):
            parse_local_config(_latin1_value({"other": {}}))

    @pytest.mark.parametrize("teams", [None, [], "T1", 42])
    def test_teams_not_an_object_raises_not_found(self, teams: object) -> None:
        """A teams value that is not a JSON object is an unrecognised store."""
        with pytest.raises(NotFoundError, match="not recognised"):
            parse_local_config(_latin1_value({"teams": teams}))

    @pytest.mark.parametrize("entry", ["not-a-dict", None, ["xoxc-1"]])
    def test_team_entry_not_an_object_is_skipped(self, entry: object) -> None:
        """A malformed team entry is skipped and the valid ones are kept."""
        config = {
            "teams": {
                "T1": entry,
                "T2": {"name": "Good", "url": "https://good.slack.com/", "token": "xoxc-2"},
            }
        }
        assert list(parse_local_config(_latin1_value(config))) == [
            "https://good.slack.com/"
        ]


# ---------------------------------------------------------------------------
# TestClassifyStoreError
# ---------------------------------------------------------------------------


class TestClassifyStoreError:
    """Tests for classify_store_error()."""

    def test_lock_error_is_store_locked(self, tmp_path: Path) -> None:
        """An IOError mentioning the lock maps to StoreLockedError."""
        exc = plyvel.IOError("IO error: lock /x/LOCK: Resource temporarily unavailable")
        result = classify_store_error(exc, tmp_path)
        assert isinstance(result, StoreLockedError)
        assert "Quit Slack" in str(result)

    def test_corruption_is_not_found(self, tmp_path: Path) -> None:
        """A CorruptionError maps to NotFoundError."""
        exc = plyvel.CorruptionError("Corruption: bad block")
        assert isinstance(classify_store_error(exc, tmp_path), NotFoundError)

    def test_missing_database_is_not_found(self, tmp_path: Path) -> None:
        """A 'does not exist' error maps to NotFoundError."""
        exc = plyvel.Error("Invalid argument: /x/CURRENT: does not exist")
        assert isinstance(classify_store_error(exc, tmp_path), NotFoundError)

    def test_other_errors_keep_message(self, tmp_path: Path) -> None:
        """Any other error keeps its message verbatim in a generic error."""
        exc = plyvel.IOError("IO error: disk on fire")
        result = classify_store_error(exc, tmp_path)
        assert type(result) is SlackAuthError
        assert "disk on fire" in str(result)


# ---------------------------------------------------------------------------
# TestWorkspaceTokenStore
# ---------------------------------------------------------------------------


class TestWorkspaceTokenStore:
    """Tests for WorkspaceTokenStore against a real LevelDB directory."""

    def test_extracts_tokens(self, settings: Settings, tmp_path: Path) -> None:
        """The localConfig_v2 entry yields one token per workspace."""
        path = _make_leveldb(
            tmp_path / "leveldb",
            {
                b"META:https://app.slack.com": b"\x08\x01",
                _CONFIG_KEY: _latin1_value(_CONFIG),
                b"_https://app.slack.com\x00\x01other": b"\x01{}",
            },
        )
        tokens = _make_store(settings, path).extract_tokens()
        assert set(tokens) == {"https://acme.slack.com/", "https://widgets-inc.slack.com/"}
        assert tokens["https://acme.slack.com/"].token == "xoxc-acme-token"

    def test_no_config_entry_raises_not_found(
        self, settings: Settings, tmp_path: Path
    ) -> None:
        """A store without localConfig_v2 raises NotFoundError."""
        path = _make_leveldb(tmp_path / "leveldb", {b"unrelated": b"\x01{}"})
        with pytest.raises(NotFoundError, match="localConfig not found"):
            _make_store(settings, path).extract_tokens()

    def test_multiple_config_entries_raise_ambiguous(
        self, settings: Settings, tmp_path: Path
    ) -> None:
        """Two localConfig_v2 entries raise AmbiguousConfigError."""
        path = _make_leveldb(
            tmp_path / "leveldb",
            {
                _CONFIG_KEY: _latin1_value(_CONFIG),
                b"_https://app.slack.com\x00\x01localConfig_v2_old": _latin1_value(_CONFIG),
            },
        )
        with pytest.raises(AmbiguousConfigError):
            _make_store(settings, path).extract_tokens()

    def test_locked_store_raises_store_locked(
        self, settings: Settings, tmp_path: Path
    ) -> None:
        """A store held open elsewhere raises StoreLockedError."""
        path = _make_leveldb(tmp_path / "leveldb", {_CONFIG_KEY: _latin1_value(_CONFIG)})
        holder = plyvel.DB(str(path))
        try:
            with pytest.raises(StoreLockedError):
                _make_store(settings, path).extract_tokens()
        finally:
            holder.close()

    def test_directory_that_is_not_leveldb_raises_not_found(
        self, settings: Settings, tmp_path: Path
    ) -> None:
        """An existing but empty directory is not a usable store."""
        path = tmp_path / "leveldb"
        path.mkdir()
        with pytest.raises(NotFoundError):
            _make_store(settings, path).extract_tokens()

    def test_store_is_closed_after_extraction(
        self, settings: Settings, tmp_path: Path
    ) -> None:
        """The store can be reopened right after extraction (lock released)."""
        path = _make_leveldb(tmp_path / "leveldb", {_CONFIG_KEY: _latin1_value(_CONFIG)})
        _make_store(settings, path).extract_tokens()
        db = plyvel.DB(str(path))
        db.close()

    def test_locate_store_without_candidates_raises_not_found(
        self, settings: Settings, tmp_path: Path
    ) -> None:
        """NotFoundError is raised when no candidate directory exists."""
        store = _make_store(settings, tmp_path / "missing")
        with pytest.raises(NotFoundError):
            store.locate_store()

    def test_error_during_scan_is_classified(
        self,
        settings: Settings,
        tmp_path: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """A corruption error while iterating maps to NotFoundError and the
        store is still closed."""
        fake_db = MagicMock()
        fake_db.__iter__.side_effect = plyvel.CorruptionError("Corruption: bad block")
        monkeypatch.setattr(plyvel, "DB", MagicMock(return_value=fake_db))

        with pytest.raises(NotFoundError, match="corrupt"):
            _make_store(settings, tmp_path).extract_tokens()
        fake_db.close.assert_called_once()

    def test_unsupported_platform_raises_on_locate(
        self, settings: Settings, tmp_path: Path
    ) -> None:
        """Off macOS the store can be built, but locating it raises
        UnsupportedPlatformError."""
        store = WorkspaceTokenStore(settings, candidates=[tmp_path], platform="linux")
        with pytest.raises(UnsupportedPlatformError):
            store.locate_store()
        with pytest.raises(UnsupportedPlatformError):
            store.extract_tokens()
