"""
Pipeline driver: the provisioning state machine.

States:
    Idle → FetchingTools → InstallingToolchain → Preparing → Building → Succeeded
                 ↘               ↘                  ↘           ↘
                                    Failed(stage, cause)

Transitions:
    Idle     → FetchingTools:  run() called
    stage    → next stage:     stage completed
    Building → Succeeded:      build completed
    stage    → Failed:         stage raised a StageFailure

There is no retry, skip or rollback edge. A driver runs once; running
again means building a new driver, and each stage's own idempotency
keeps the second run cheap.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path

from provisioner.adapters.registry import AdapterRegistry
from provisioner.core.config.loader import PlatformMismatch
from provisioner.core.models.environment import EnvironmentContext
from provisioner.core.models.invocation import ExitResult
from provisioner.core.models.pipeline import (
    STAGE_ORDER,
    PipelineResult,
    PipelineState,
    StageRecord,
)
from provisioner.core.models.pipeline_config import PipelineConfig
from provisioner.core.models.toolchain import InstallerSpec, ToolchainSpec
from provisioner.core.persistence.stamps import StampStore
from provisioner.core.stages.builder import BuildInvoker
from provisioner.core.stages.errors import StageFailure
from provisioner.core.stages.fetcher import ToolFetcher
from provisioner.core.stages.installer import Downloader, ToolchainInstaller, download_script
from provisioner.core.stages.preparer import WorkspacePreparer, WorkspaceState

logger = logging.getLogger(__name__)


class InvalidTransition(RuntimeError):
    """Raised when the state machine is driven from a terminal state."""


def advance(state: PipelineState, stage_ok: bool) -> PipelineState:
    """Next state given the current state and its stage outcome.

    Pure function of its arguments; the whole transition table.
    """
    if state.terminal:
        raise InvalidTransition(f"{state.value} is terminal")
    if state == PipelineState.IDLE:
        return STAGE_ORDER[0]
    if not stage_ok:
        return PipelineState.FAILED
    position = STAGE_ORDER.index(state)
    if position + 1 < len(STAGE_ORDER):
        return STAGE_ORDER[position + 1]
    return PipelineState.SUCCEEDED


def generate_run_id() -> str:
    """Generate a unique run ID."""
    now = datetime.now(UTC).strftime("%Y%m%d-%H%M%S")
    return f"run-{now}-{uuid.uuid4().hex[:6]}"


class PipelineDriver:
    """Sequence fetch → install → prepare → build, failing fast.

    Args:
        fetcher: Stage that clones tool collections.
        tools: Tool collections to fetch, in order.
        installer: Stage that installs the language toolchain.
        toolchain: Toolchain to install, or None to skip installation.
        preparer: Workspace preparation stage.
        builder: Build stage. Must share the preparer's platform.
        workspace: Workspace root.
        env: Starting environment (default: snapshot of this process).

    Raises:
        PlatformMismatch: If preparer and builder disagree on the platform.
    """

    def __init__(
        self,
        fetcher: ToolFetcher,
        tools: list[ToolchainSpec],
        installer: ToolchainInstaller,
        toolchain: InstallerSpec | None,
        preparer: WorkspacePreparer,
        builder: BuildInvoker,
        workspace: Path,
        env: EnvironmentContext | None = None,
        run_id: str | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if preparer.platform != builder.platform:
            raise PlatformMismatch(
                f"Preparation platform {preparer.platform!r} does not match "
                f"build platform {builder.platform!r}"
            )

        self._fetcher = fetcher
        self._tools = list(tools)
        self._installer = installer
        self._toolchain = toolchain
        self._preparer = preparer
        self._builder = builder
        self._workspace = workspace
        self._env = env if env is not None else EnvironmentContext.from_environ()
        self._clock = clock

        self.run_id = run_id or generate_run_id()
        self.state = PipelineState.IDLE
        self.history: list[PipelineState] = [PipelineState.IDLE]
        self.environments: dict[str, EnvironmentContext] = {}
        self._workspace_state: WorkspaceState | None = None

    @classmethod
    def from_config(
        cls,
        config: PipelineConfig,
        registry: AdapterRegistry,
        env: EnvironmentContext | None = None,
        downloader: Downloader = download_script,
    ) -> PipelineDriver:
        """Wire every stage from a resolved PipelineConfig."""
        shell = registry.require("shell")
        git = registry.require("git")
        stamps = StampStore(config.state_dir)
        return cls(
            fetcher=ToolFetcher(git, refresh=config.refresh, stamps=stamps),
            tools=config.tools,
            installer=ToolchainInstaller(
                shell,
                refresh=config.refresh,
                stamps=stamps,
                script_dir=config.script_dir,
                downloader=downloader,
            ),
            toolchain=config.toolchain,
            preparer=WorkspacePreparer(shell, config.platform, config.prepare),
            builder=BuildInvoker(shell, config.platform, config.target, config.build),
            workspace=config.workspace,
            env=env,
        )

    @property
    def platform(self) -> str:
        return self._builder.platform

    @property
    def environment(self) -> EnvironmentContext:
        """Environment accumulated so far."""
        return self._env

    def run(self) -> PipelineResult:
        """Drive the pipeline to a terminal state.

        Raises:
            InvalidTransition: If this driver has already run.
        """
        if self.state != PipelineState.IDLE:
            raise InvalidTransition("A pipeline driver runs once; build a new one to re-run")

        result = PipelineResult(
            run_id=self.run_id,
            platform=self.platform,
            target=self._builder.target,
        )
        logger.info("Pipeline %s starting (platform=%s)", self.run_id, self.platform)
        self._transition(advance(self.state, True))

        while not self.state.terminal:
            stage = self.state
            self.environments[stage.value] = self._env
            record = StageRecord(stage=stage.value, started=self._clock())
            try:
                output = self._run_stage(stage)
            except StageFailure as failure:
                record.ended = self._clock()
                record.ended_at = datetime.now(UTC).isoformat()
                record.status = "failed"
                record.exit_code = failure.exit_code
                record.stdout = failure.stdout
                record.stderr = failure.stderr
                record.detail = failure.message
                result.stages.append(record)

                result.failed_stage = stage.value
                result.exit_code = failure.exit_code
                result.message = failure.message
                result.stdout = failure.stdout
                result.stderr = failure.stderr
                logger.error("✗ %s failed: %s", stage.value, failure.message)
                self._transition(advance(stage, False))
                continue

            record.ended = self._clock()
            record.ended_at = datetime.now(UTC).isoformat()
            if output is not None:
                record.stdout = output.stdout
                record.stderr = output.stderr
            result.stages.append(record)
            logger.info("✓ %s (%dms)", stage.value, record.duration_ms)
            self._transition(advance(stage, True))

        result.state = self.state
        result.ended_at = datetime.now(UTC).isoformat()
        if result.succeeded:
            result.stdout = "".join(r.stdout for r in result.stages)
            result.stderr = "".join(r.stderr for r in result.stages)
        return result

    def _run_stage(self, stage: PipelineState) -> ExitResult | None:
        """Execute one stage, updating the accumulated environment."""
        if stage == PipelineState.FETCHING_TOOLS:
            for spec in self._tools:
                self._env = self._fetcher.fetch(spec, self._env)
            return None

        if stage == PipelineState.INSTALLING_TOOLCHAIN:
            if self._toolchain is None:
                logger.info("No toolchain configured, nothing to install")
                return None
            self._env = self._installer.install(self._toolchain, self._env)
            return None

        if stage == PipelineState.PREPARING:
            self._workspace_state = self._preparer.prepare(self._workspace, self._env)
            return self._workspace_state.result

        if stage == PipelineState.BUILDING:
            if self._workspace_state is None:
                raise InvalidTransition("Building reached without a prepared workspace")
            return self._builder.build(self._workspace_state, self._env)

        raise InvalidTransition(f"{stage.value} is not a stage")

    def _transition(self, new_state: PipelineState) -> None:
        """Transition to a new state."""
        old = self.state
        self.state = new_state
        self.history.append(new_state)
        logger.debug("Pipeline %s: %s → %s", self.run_id, old.value, new_state.value)
