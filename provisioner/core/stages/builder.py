"""
BuildInvoker: invoke the build target in a prepared workspace.

The platform identifier is exported (``PLATFORM`` by default) and the
build command is run with the target as its last argument. The exit
status is passed through unchanged; this is the last stage, so its
result is the pipeline's result.
"""

from __future__ import annotations

import logging

from provisioner.adapters.base import Adapter
from provisioner.core.models.environment import EnvironmentConflict, EnvironmentContext
from provisioner.core.models.invocation import ExitResult
from provisioner.core.models.pipeline_config import BuildSpec, validate_platform
from provisioner.core.stages.errors import BuildFailure
from provisioner.core.stages.preparer import WorkspaceState

logger = logging.getLogger(__name__)


class BuildInvoker:
    """Run one build target for a fixed platform."""

    def __init__(self, shell: Adapter, platform: str, target: str, spec: BuildSpec | None = None):
        self._shell = shell
        self._platform = validate_platform(platform)
        self._target = target
        self._spec = spec or BuildSpec()

    @property
    def platform(self) -> str:
        return self._platform

    @property
    def target(self) -> str:
        return self._target

    def command(self) -> list[str]:
        return [*self._spec.command, self._target]

    def build_environment(self, env: EnvironmentContext) -> EnvironmentContext:
        """``env`` with the platform variable exported."""
        try:
            return env.with_variables({self._spec.platform_variable: self._platform})
        except EnvironmentConflict as e:
            raise BuildFailure(str(e)) from e

    def build(self, workspace: WorkspaceState, env: EnvironmentContext) -> ExitResult:
        """Invoke the target.

        Raises:
            BuildFailure: If the workspace was prepared for another
                platform or the build exits non-zero.
        """
        if workspace.platform != self._platform:
            raise BuildFailure(
                f"Workspace was prepared for {workspace.platform!r}, "
                f"not {self._platform!r}"
            )
        if not workspace.root.is_dir():
            raise BuildFailure(f"Workspace {workspace.root} does not exist")

        env = self.build_environment(env)
        args = self.command()
        logger.info("Building %s (%s=%s)", self._target, self._spec.platform_variable, self._platform)
        result = self._shell.run(
            args,
            env=env.to_environ(),
            cwd=workspace.root,
            timeout=self._spec.timeout,
        )
        if not result.ok:
            raise BuildFailure.from_result(f"{' '.join(args)} exited with {result.exit_code}", result)
        return result
