"""
WorkspacePreparer: run the external, platform-aware preparation step.

The preparation command is opaque: it is run in the workspace with the
platform as its last argument, its output is kept verbatim, and any
non-zero exit is a PreparationFailure. Whether repeated runs converge
is up to the command.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from provisioner.adapters.base import Adapter
from provisioner.core.models.environment import EnvironmentContext
from provisioner.core.models.invocation import ExitResult
from provisioner.core.models.pipeline_config import PrepareSpec, validate_platform
from provisioner.core.stages.errors import PreparationFailure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WorkspaceState:
    """A workspace that has been prepared for one platform."""

    root: Path
    platform: str
    prepared_at: str
    result: ExitResult


class WorkspacePreparer:
    """Invoke the preparation command for a fixed platform."""

    def __init__(self, shell: Adapter, platform: str, spec: PrepareSpec | None = None):
        self._shell = shell
        self._platform = validate_platform(platform)
        self._spec = spec or PrepareSpec()

    @property
    def platform(self) -> str:
        return self._platform

    def command(self) -> list[str]:
        return [*self._spec.command, self._platform]

    def prepare(self, workspace_root: Path, env: EnvironmentContext) -> WorkspaceState:
        """Run preparation in ``workspace_root``.

        Raises:
            PreparationFailure: If the workspace cannot be created or the
                command exits non-zero.
        """
        try:
            workspace_root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PreparationFailure(f"Cannot create workspace {workspace_root}: {e}") from e

        args = self.command()
        logger.info("Preparing workspace %s for %s", workspace_root, self._platform)
        result = self._shell.run(
            args,
            env=env.to_environ(),
            cwd=workspace_root,
            timeout=self._spec.timeout,
        )
        if not result.ok:
            raise PreparationFailure.from_result(
                f"{' '.join(args)} exited with {result.exit_code}", result
            )

        return WorkspaceState(
            root=workspace_root,
            platform=self._platform,
            prepared_at=datetime.now(UTC).isoformat(),
            result=result,
        )
