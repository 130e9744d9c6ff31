"""
Run use case: provision toolchains, prepare the workspace, build.

The full vertical slice: load config, wire the driver, run the state
machine, persist the outcome (state file + audit ledger).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from provisioner.adapters.registry import AdapterRegistry, default_registry
from provisioner.core.config.loader import ConfigError, load_config
from provisioner.core.engine.driver import PipelineDriver
from provisioner.core.models.environment import EnvironmentContext
from provisioner.core.models.pipeline import PipelineResult
from provisioner.core.models.pipeline_config import PipelineConfig
from provisioner.core.observability.logging_config import set_run_id
from provisioner.core.persistence.audit import RunEntry, RunLedger
from provisioner.core.persistence.state_file import default_state_path, load_state, save_state
from provisioner.core.stages.installer import Downloader, download_script

logger = logging.getLogger(__name__)

MOCK_BOOTSTRAP_SCRIPT = b"#!/bin/sh\n# mock bootstrap: nothing is installed\nexit 0\n"


def _mock_download(uri: str, timeout: int) -> bytes:
    logger.info("[mock] not downloading %s", uri)
    return MOCK_BOOTSTRAP_SCRIPT


@dataclass
class RunResult:
    """Result of a pipeline run."""

    result: PipelineResult | None = None
    config: PipelineConfig | None = None
    project_root: Path | None = None
    error: str | None = None

    @property
    def exit_code(self) -> int:
        if self.error or self.result is None:
            return 1
        return 0 if self.result.succeeded else self.result.exit_code

    def to_dict(self) -> dict:
        if self.error:
            return {"error": self.error}
        data: dict = {
            "pipeline": self.config.name if self.config else "",
            "project_root": str(self.project_root),
        }
        if self.result:
            data["result"] = self.result.to_dict()
        return data


def run_pipeline(
    config_path: Path | None = None,
    mock_mode: bool = False,
    registry: AdapterRegistry | None = None,
    env: EnvironmentContext | None = None,
    downloader: Downloader | None = None,
    persist: bool = True,
) -> RunResult:
    """Run the whole pipeline once.

    Args:
        config_path: Optional explicit path to pipeline.yml.
        mock_mode: If True, every adapter is a mock and nothing is
            downloaded; stages still run in order.
        registry: Optional pre-configured adapter registry.
        env: Starting environment (default: this process).
        downloader: Override for bootstrap script download.
        persist: Write state file and audit entry.

    Returns:
        RunResult. Configuration problems land in ``error``; stage
        failures are in ``result``.
    """
    run = RunResult()

    try:
        config, root = load_config(config_path)
    except ConfigError as e:
        run.error = str(e)
        return run
    run.config = config
    run.project_root = root

    if registry is None:
        registry = default_registry(mock_mode=mock_mode)
    if downloader is None:
        downloader = _mock_download if mock_mode else download_script

    try:
        driver = PipelineDriver.from_config(config, registry, env=env, downloader=downloader)
    except ConfigError as e:
        run.error = str(e)
        return run

    set_run_id(driver.run_id)
    try:
        run.result = driver.run()
    finally:
        set_run_id(None)

    if persist:
        record_run(config, run.result)

    return run


def record_run(config: PipelineConfig, result: PipelineResult) -> None:
    """Persist a finished run to the state file and audit ledger.

    Never raises for an unwritable state directory: persistence failures
    are logged and the run keeps the outcome its stages produced.
    """
    state_path = default_state_path(config.state_dir)
    state = load_state(state_path)
    state.pipeline_name = config.name
    state.runs_total += 1
    if result.failed:
        state.runs_failed += 1

    last = state.last_run
    last.run_id = result.run_id
    last.platform = result.platform
    last.target = result.target
    last.started_at = result.started_at
    last.ended_at = result.ended_at
    last.state = result.state.value
    last.failed_stage = result.failed_stage
    last.exit_code = result.exit_code

    state.stages.clear()
    for record in result.stages:
        state.set_stage_state(
            record.stage,
            status=record.status,
            exit_code=record.exit_code,
            duration_ms=record.duration_ms,
            detail=record.detail,
        )

    try:
        save_state(state, state_path)
    except OSError as e:
        logger.warning("Run %s not saved to %s (%s); recording it in the ledger only", result.run_id, state_path, e)

    RunLedger(config.state_dir).append(
        RunEntry(
            run_id=result.run_id,
            pipeline=config.name,
            platform=result.platform,
            target=result.target,
            state=result.state.value,
            failed_stage=result.failed_stage,
            exit_code=result.exit_code,
            stages_completed=[r.stage for r in result.stages if r.status == "ok"],
            duration_ms=sum(r.duration_ms for r in result.stages),
            message=result.message,
        )
    )
