"""
Run ledger: one NDJSON line per finished pipeline run.

Lines are only ever appended. ``provision history`` reads the tail;
nothing else consults the ledger, so a corrupt line is skipped rather
than treated as fatal.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

LEDGER_FILE = "audit.ndjson"


class RunEntry(BaseModel):
    """What one run did, as recorded in the ledger."""

    recorded_at: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    run_id: str = ""
    pipeline: str = ""
    platform: str = ""
    target: str = ""
    state: str = ""
    failed_stage: str | None = None
    exit_code: int = 0
    stages_completed: list[str] = Field(default_factory=list)
    duration_ms: int = 0
    message: str = ""
    context: dict[str, Any] = Field(default_factory=dict)


class RunLedger:
    """Append-only ledger stored at ``<state_dir>/audit.ndjson``."""

    def __init__(self, state_dir: Path):
        self.path = state_dir / LEDGER_FILE

    def append(self, entry: RunEntry) -> None:
        """Record a run. A ledger write never fails the run it records."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as fh:
                fh.write(entry.model_dump_json() + "\n")
        except OSError as e:
            logger.error("Could not append %s to %s: %s", entry.run_id, self.path, e)
            return
        logger.debug("Run %s recorded in ledger", entry.run_id)

    def _lines(self) -> Iterator[tuple[int, str]]:
        if not self.path.is_file():
            return
        with self.path.open(encoding="utf-8") as fh:
            for number, raw in enumerate(fh, start=1):
                if raw.strip():
                    yield number, raw

    def entries(self) -> list[RunEntry]:
        """Every recorded run, oldest first."""
        found: list[RunEntry] = []
        for number, raw in self._lines():
            try:
                found.append(RunEntry.model_validate_json(raw))
            except ValidationError as e:
                logger.warning("%s:%d is not a run entry, skipped (%s)", self.path, number, e)
        return found

    def tail(self, n: int = 10) -> list[RunEntry]:
        """The ``n`` most recent runs, oldest first."""
        return self.entries()[-n:] if n > 0 else []

    def __len__(self) -> int:
        return sum(1 for _ in self._lines())
