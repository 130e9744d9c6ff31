"""
Config check use case: validate pipeline.yml and report issues.

Errors make the config unusable; warnings flag layouts that load fine
but break the rule that each stage owns its own output directory.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from provisioner.core.config.loader import ConfigError, find_pipeline_file, load_pipeline
from provisioner.core.models.pipeline_config import PipelineConfig


@dataclass
class ConfigReport:
    path: Path | None = None
    config: PipelineConfig | None = None
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return self.config is not None and not self.errors

    def to_dict(self) -> dict:
        summary = {
            "valid": self.valid,
            "config_path": str(self.path) if self.path else None,
            "errors": self.errors,
            "warnings": self.warnings,
            "pipeline": None,
            "platform": None,
            "tool_count": 0,
        }
        if self.config is not None:
            summary.update(
                pipeline=self.config.name,
                platform=self.config.platform,
                tool_count=len(self.config.tools),
            )
        return summary


def _overlaps(a: Path, b: Path) -> bool:
    return a.is_relative_to(b) or b.is_relative_to(a)


def _audit_layout(config: PipelineConfig, report: ConfigReport) -> None:
    workspace = config.workspace
    for tool in config.tools:
        if tool.destination.is_relative_to(workspace):
            report.warnings.append(
                f"Tool '{tool.name}' is cached inside the workspace ({tool.destination}); "
                "workspace cleanup will remove it."
            )

    chain = config.toolchain
    if chain is not None:
        if chain.install_root.is_relative_to(workspace):
            report.warnings.append(
                f"Toolchain '{chain.name}' installs inside the workspace ({chain.install_root})."
            )
        report.errors.extend(
            f"Toolchain '{chain.name}' and tool '{tool.name}' share a directory; "
            "stages must not write into each other's output."
            for tool in config.tools
            if _overlaps(chain.install_root, tool.destination)
        )
    elif not config.tools:
        report.warnings.append("No tools or toolchain configured; only prepare and build will run.")

    if config.refresh.mode == "always":
        report.warnings.append("refresh mode 'always' re-fetches every toolchain on every run.")


def check_config(config_path: Path | None = None) -> ConfigReport:
    """Load pipeline.yml (found by walking up from cwd if not given) and audit its layout."""
    report = ConfigReport(path=config_path or find_pipeline_file())
    if report.path is None:
        report.errors.append("No pipeline.yml found.")
        return report

    try:
        report.config = load_pipeline(report.path)
    except ConfigError as e:
        report.errors.append(str(e))
        return report

    _audit_layout(report.config, report)
    return report
