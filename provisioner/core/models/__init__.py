"""
Domain models: Pydantic types and value objects for the pipeline.

    from provisioner.core.models import PipelineConfig, EnvironmentContext, PipelineResult
"""

from provisioner.core.models.environment import EnvironmentConflict, EnvironmentContext
from provisioner.core.models.invocation import ExitResult, Invocation
from provisioner.core.models.pipeline import (
    STAGE_ORDER,
    PipelineResult,
    PipelineState,
    StageRecord,
)
from provisioner.core.models.pipeline_config import (
    BuildSpec,
    CommandSpec,
    PipelineConfig,
    PrepareSpec,
)
from provisioner.core.models.state import PipelineRunState, RunRecord, StageState
from provisioner.core.models.toolchain import InstallerSpec, RefreshPolicy, ToolchainSpec

__all__ = [
    "BuildSpec",
    "CommandSpec",
    # environment.py
    "EnvironmentConflict",
    "EnvironmentContext",
    # invocation.py
    "ExitResult",
    "InstallerSpec",
    "Invocation",
    # pipeline_config.py
    "PipelineConfig",
    # pipeline.py
    "PipelineResult",
    # state.py
    "PipelineRunState",
    "PipelineState",
    "PrepareSpec",
    "RefreshPolicy",
    "RunRecord",
    "STAGE_ORDER",
    "StageRecord",
    "StageState",
    # toolchain.py
    "ToolchainSpec",
]
