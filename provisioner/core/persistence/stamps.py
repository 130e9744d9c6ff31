"""
Refresh stamps: when each toolchain was last fetched or installed.

One small JSON file per toolchain under ``<state_dir>/stamps/``. The
stamps only feed the ``max-age`` refresh policy; a missing stamp means
"unknown age" and nothing else. Stamps live in the state directory,
never inside a toolchain cache, so recording one does not touch the
cache itself.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from pathlib import Path

from provisioner.core.persistence.state_file import atomic_write_text

logger = logging.getLogger(__name__)

STAMPS_DIR = "stamps"


class StampStore:
    """Read/write refresh stamps for named toolchains."""

    def __init__(self, state_dir: Path):
        self._dir = state_dir / STAMPS_DIR

    @property
    def directory(self) -> Path:
        return self._dir

    def _path(self, name: str) -> Path:
        return self._dir / f"{name}.json"

    def last_refreshed(self, name: str) -> datetime | None:
        """When ``name`` was last refreshed, or None if unknown."""
        path = self._path(name)
        if not path.is_file():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            return datetime.fromisoformat(data["refreshed_at"])
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning("Ignoring unreadable stamp %s: %s", path, e)
            return None

    def mark_refreshed(self, name: str, location: Path, when: datetime | None = None) -> None:
        """Record that ``name`` was just fetched/installed at ``location``.

        An unwritable state directory only costs the stamp: the toolchain
        counts as of unknown age on the next run.
        """
        stamp = {
            "name": name,
            "location": str(location),
            "refreshed_at": (when or datetime.now(UTC)).isoformat(),
        }
        try:
            atomic_write_text(self._path(name), json.dumps(stamp, indent=2) + "\n", prefix=".stamp_")
        except OSError as e:
            logger.warning("Could not record refresh stamp for %s in %s: %s", name, self._dir, e)
            return
        logger.debug("Stamp recorded for %s", name)
