"""
Status use case: effective config plus the last recorded run.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from provisioner.core.config.loader import ConfigError, load_config
from provisioner.core.models.pipeline_config import PipelineConfig
from provisioner.core.models.state import PipelineRunState
from provisioner.core.persistence.state_file import default_state_path, load_state


@dataclass
class StatusResult:
    """Aggregated pipeline status."""

    config: PipelineConfig | None = None
    state: PipelineRunState | None = None
    project_root: Path | None = None
    error: str | None = None

    def to_dict(self) -> dict:
        """Convert to a JSON-serializable dictionary."""
        if self.error:
            return {"error": self.error}

        result: dict = {}
        if self.config:
            result["pipeline"] = {
                "name": self.config.name,
                "platform": self.config.platform,
                "target": self.config.target,
                "workspace": str(self.config.workspace),
                "tools": [
                    {"name": t.name, "destination": str(t.destination)}
                    for t in self.config.tools
                ],
                "toolchain": (
                    {
                        "name": self.config.toolchain.name,
                        "install_root": str(self.config.toolchain.install_root),
                    }
                    if self.config.toolchain
                    else None
                ),
                "refresh": self.config.refresh.mode,
            }

        if self.state:
            result["state"] = {
                "runs_total": self.state.runs_total,
                "runs_failed": self.state.runs_failed,
                "last_run": self.state.last_run.model_dump(mode="json"),
                "stages": {
                    name: s.model_dump(mode="json") for name, s in self.state.stages.items()
                },
            }

        return result


def get_status(config_path: Path | None = None) -> StatusResult:
    """Load the effective config and the last run state."""
    result = StatusResult()
    try:
        config, root = load_config(config_path)
    except ConfigError as e:
        result.error = str(e)
        return result

    result.config = config
    result.project_root = root
    result.state = load_state(default_state_path(config.state_dir))
    return result
