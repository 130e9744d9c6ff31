"""
Pipeline models: states, per-stage records, and the terminal result.

States:
    Idle → FetchingTools → InstallingToolchain → Preparing → Building → Succeeded

Any non-terminal state may move to Failed instead. Succeeded and
Failed are terminal.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, Field


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class PipelineState(StrEnum):
    """Pipeline driver states. Stage states double as stage names."""

    IDLE = "Idle"
    FETCHING_TOOLS = "FetchingTools"
    INSTALLING_TOOLCHAIN = "InstallingToolchain"
    PREPARING = "Preparing"
    BUILDING = "Building"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"

    @property
    def terminal(self) -> bool:
        return self in (PipelineState.SUCCEEDED, PipelineState.FAILED)


STAGE_ORDER: tuple[PipelineState, ...] = (
    PipelineState.FETCHING_TOOLS,
    PipelineState.INSTALLING_TOOLCHAIN,
    PipelineState.PREPARING,
    PipelineState.BUILDING,
)


class StageRecord(BaseModel):
    """Trace of one executed stage.

    ``started`` / ``ended`` are monotonic clock readings, comparable
    within one process; ``started_at`` / ``ended_at`` are wall-clock.
    """

    stage: str
    status: Literal["ok", "failed"] = "ok"
    started_at: str = Field(default_factory=_now_iso)
    ended_at: str = Field(default_factory=_now_iso)
    started: float = 0.0
    ended: float = 0.0
    exit_code: int = 0
    stdout: str = ""
    stderr: str = ""
    detail: str = ""

    @property
    def duration_ms(self) -> int:
        return int((self.ended - self.started) * 1000)


class PipelineResult(BaseModel):
    """Terminal outcome of one pipeline run.

    Either Succeeded, or Failed with the first failing stage and its
    exit code. There is no partial result.
    """

    run_id: str = ""
    platform: str = ""
    target: str = ""
    state: PipelineState = PipelineState.IDLE
    failed_stage: str | None = None
    exit_code: int = 0
    message: str = ""
    stdout: str = ""
    stderr: str = ""
    stages: list[StageRecord] = Field(default_factory=list)
    started_at: str = Field(default_factory=_now_iso)
    ended_at: str = ""

    @property
    def succeeded(self) -> bool:
        return self.state == PipelineState.SUCCEEDED

    @property
    def failed(self) -> bool:
        return self.state == PipelineState.FAILED

    def stage(self, name: str) -> StageRecord | None:
        """Look up the record of a stage by name."""
        for record in self.stages:
            if record.stage == name:
                return record
        return None

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude={"stdout", "stderr"})
