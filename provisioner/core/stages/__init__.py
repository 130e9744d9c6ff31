"""Pipeline stages: fetch, install, prepare, build."""

from provisioner.core.stages.builder import BuildInvoker
from provisioner.core.stages.errors import (
    BuildFailure,
    FetchFailure,
    InstallFailure,
    PreparationFailure,
    StageFailure,
)
from provisioner.core.stages.fetcher import ToolFetcher
from provisioner.core.stages.installer import ToolchainInstaller
from provisioner.core.stages.preparer import WorkspacePreparer, WorkspaceState

__all__ = [
    "BuildFailure",
    "BuildInvoker",
    "FetchFailure",
    "InstallFailure",
    "PreparationFailure",
    "StageFailure",
    "ToolFetcher",
    "ToolchainInstaller",
    "WorkspacePreparer",
    "WorkspaceState",
]
