"""
PipelineRunState: what the last run did.

Serialized to .state/current.json after every run. Disposable: delete
it and the next run simply starts without history. Toolchain caches
are never inferred from this file; each stage inspects the filesystem
itself.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class StageState(BaseModel):
    """Outcome of a stage in the last run."""

    name: str
    status: str = ""                # ok, failed
    exit_code: int = 0
    duration_ms: int = 0
    detail: str = ""


class RunRecord(BaseModel):
    """Summary of the last run."""

    run_id: str = ""
    platform: str = ""
    target: str = ""
    started_at: str = ""
    ended_at: str = ""
    state: str = ""                 # Succeeded, Failed
    failed_stage: str | None = None
    exit_code: int = 0


class PipelineRunState(BaseModel):
    """Root state model: serialized to .state/current.json."""

    # ── Schema ───────────────────────────────────────────────────
    schema_version: int = 1

    # ── Identity ─────────────────────────────────────────────────
    pipeline_name: str = ""

    # ── Timestamps ───────────────────────────────────────────────
    created_at: str = Field(default_factory=_now_iso)
    updated_at: str = Field(default_factory=_now_iso)

    # ── Last run ─────────────────────────────────────────────────
    last_run: RunRecord = Field(default_factory=RunRecord)
    stages: dict[str, StageState] = Field(default_factory=dict)
    runs_total: int = 0
    runs_failed: int = 0

    # ── Extensible metadata ──────────────────────────────────────
    metadata: dict[str, Any] = Field(default_factory=dict)

    def touch(self) -> None:
        """Update the updated_at timestamp."""
        self.updated_at = _now_iso()

    def set_stage_state(self, name: str, **kwargs: Any) -> None:
        """Update or create a stage state entry."""
        if name in self.stages:
            for key, value in kwargs.items():
                setattr(self.stages[name], key, value)
        else:
            self.stages[name] = StageState(name=name, **kwargs)
