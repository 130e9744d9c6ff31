"""
Host health: can this machine run the pipeline?

The pipeline assumes a base system with git, curl, a POSIX shell and
make (the reference build image installs exactly these before doing
anything else). ``provision doctor`` reports on them, on the adapters,
and on which toolchain caches are already populated.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from provisioner.adapters.registry import AdapterRegistry
from provisioner.core.models.pipeline_config import PipelineConfig
from provisioner.core.stages.fetcher import ToolFetcher
from provisioner.core.stages.installer import ToolchainInstaller

logger = logging.getLogger(__name__)

HOST_PREREQUISITES = ("git", "curl", "sh", "make")


class Status(StrEnum):
    """Check outcome, declared from least to most severe."""

    HEALTHY = "healthy"
    UNKNOWN = "unknown"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"

    @property
    def severity(self) -> int:
        return list(Status).index(self)


@dataclass(frozen=True)
class HealthCheck:
    name: str
    status: Status
    message: str = ""
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class HealthReport:
    """Every check run by ``doctor``; the most severe one sets the verdict."""

    checks: list[HealthCheck] = field(default_factory=list)
    checked_at: str = field(default_factory=lambda: datetime.now(UTC).isoformat())

    @property
    def status(self) -> Status:
        if not self.checks:
            return Status.HEALTHY
        return max((c.status for c in self.checks), key=lambda s: s.severity)

    @property
    def ok(self) -> bool:
        return self.status is not Status.UNHEALTHY

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": str(self.status),
            "timestamp": self.checked_at,
            "components": [
                {"name": c.name, "status": str(c.status), "message": c.message, "details": c.details}
                for c in self.checks
            ],
        }


def check_host_tools(required: tuple[str, ...] = HOST_PREREQUISITES) -> HealthCheck:
    """Look up each base program the pipeline shells out to on PATH."""
    located = {name: shutil.which(name) or "" for name in required}
    missing = [name for name, where in located.items() if not where]
    if missing:
        logger.debug("Host is missing %s", missing)
        return HealthCheck("host_tools", Status.UNHEALTHY, f"Missing: {', '.join(missing)}", located)
    return HealthCheck("host_tools", Status.HEALTHY, f"All {len(required)} prerequisites found", located)


def check_adapters(registry: AdapterRegistry) -> HealthCheck:
    available = registry.availability()
    if not available:
        return HealthCheck("adapters", Status.UNKNOWN, "No adapters registered")

    down = [name for name, up in available.items() if not up]
    if down:
        return HealthCheck("adapters", Status.UNHEALTHY, f"Unavailable: {', '.join(down)}", available)
    return HealthCheck("adapters", Status.HEALTHY, f"All {len(available)} adapters available", available)


def check_toolchain_caches(config: PipelineConfig) -> HealthCheck:
    """Which tool checkouts and toolchain installs already exist.

    Empty caches are normal before the first run, so they only degrade.
    """
    caches: dict[str, dict[str, Any]] = {
        tool.name: {
            "location": str(tool.destination),
            "present": ToolFetcher.is_checkout(tool.destination),
        }
        for tool in config.tools
    }
    if config.toolchain is not None:
        caches[config.toolchain.name] = {
            "location": str(config.toolchain.install_root),
            "present": ToolchainInstaller.is_installed(config.toolchain),
        }

    pending = [name for name, cache in caches.items() if not cache["present"]]
    if pending:
        return HealthCheck("toolchains", Status.DEGRADED, f"Not yet provisioned: {', '.join(pending)}", caches)
    return HealthCheck("toolchains", Status.HEALTHY, "All toolchains provisioned", caches)


def check_system_health(
    registry: AdapterRegistry | None = None,
    config: PipelineConfig | None = None,
) -> HealthReport:
    """Run the host check, plus the adapter and cache checks when given."""
    report = HealthReport(checks=[check_host_tools()])
    if registry is not None:
        report.checks.append(check_adapters(registry))
    if config is not None:
        report.checks.append(check_toolchain_caches(config))
    return report
