"""Well-known locations of the Slack desktop app's on-disk artifacts.

Only the macOS layout is known.  The Mac App Store build is sandboxed and
keeps its data under ``~/Library/Containers``; the direct-download build uses
``~/Library/Application Support``.  The sandboxed location is probed first.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterable
from pathlib import Path

from slack_tools.errors import NotFoundError, UnsupportedPlatformError

logger = logging.getLogger(__name__)

SUPPORTED_PLATFORM = "darwin"

_CONTAINER_ROOT = Path(
    "Library/Containers/com.tinyspeck.slackmacgap/Data/Library/Application Support/Slack"
)
_APP_SUPPORT_ROOT = Path("Library/Application Support/Slack")


def ensure_supported_platform(platform: str | None = None) -> None:
    """Raise UnsupportedPlatformError unless running on macOS."""
    platform = sys.platform if platform is None else platform
    if platform != SUPPORTED_PLATFORM:
        raise UnsupportedPlatformError(
            f"Extracting credentials from the Slack app only works on macOS "
            f"(current platform: {platform})."
        )


def _slack_roots(home: Path) -> list[Path]:
    return [home / _CONTAINER_ROOT, home / _APP_SUPPORT_ROOT]


def cookie_db_candidates(override: str = "", home: Path | None = None) -> list[Path]:
    """Return the Cookies database locations in probe order."""
    home = Path.home() if home is None else home
    candidates = [Path(override).expanduser()] if override else []
    candidates.extend(root / "Cookies" for root in _slack_roots(home))
    return candidates


def leveldb_candidates(override: str = "", home: Path | None = None) -> list[Path]:
    """Return the Local Storage leveldb directories in probe order."""
    home = Path.home() if home is None else home
    candidates = [Path(override).expanduser()] if override else []
    candidates.extend(
        root / "Local Storage" / "leveldb" for root in _slack_roots(home)
    )
    return candidates


def first_existing(candidates: Iterable[Path], what: str) -> Path:
    """Return the first path in *candidates* that exists.

    Raises NotFoundError naming *what* was being looked for.
    """
    for path in candidates:
        if path.exists():
            logger.debug("Using %s path: %s", what, path)
            return path
    raise NotFoundError(f"Could not find Slack's {what}")
