"""
PipelineConfig: the declared shape of one provisioning pipeline.

Loaded from pipeline.yml (or built from defaults when there is none).
The defaults reproduce the reference build image: depot_tools cloned
into /opt/depot_tools, Rust installed through rustup, the workspace
prepared with ``bin/prepare-workspace <platform>`` and built with
``make cli``.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field, field_validator

from provisioner.core.models.toolchain import InstallerSpec, RefreshPolicy, ToolchainSpec

DEFAULT_PLATFORM = "unix"
DEFAULT_TARGET = "cli"
PLATFORM_VARIABLE = "PLATFORM"


def _default_tools() -> list[ToolchainSpec]:
    return [
        ToolchainSpec(
            name="depot_tools",
            source="https://chromium.googlesource.com/chromium/tools/depot_tools.git",
            destination=Path("/opt/depot_tools"),
        ),
    ]


def _default_toolchain() -> InstallerSpec:
    return InstallerSpec(
        name="rust",
        bootstrap_uri="https://sh.rustup.rs",
        install_root=Path("~/.cargo"),
        probe="cargo",
        variables={"CARGO_HOME": "{install_root}"},
    )


def validate_platform(value: str) -> str:
    """Platform tags are opaque, but must be a single non-empty token."""
    if not value or value != value.strip() or any(c.isspace() for c in value):
        raise ValueError(f"invalid platform identifier: {value!r}")
    if "/" in value or "\\" in value:
        raise ValueError(f"platform identifier must not contain path separators: {value!r}")
    return value


class CommandSpec(BaseModel):
    """An external command invoked by a stage."""

    command: list[str]
    timeout: int | None = None

    @field_validator("command")
    @classmethod
    def _not_empty(cls, value: list[str]) -> list[str]:
        if not value or not value[0]:
            raise ValueError("command must not be empty")
        return value


class PrepareSpec(CommandSpec):
    """Workspace preparation command. The platform is appended as last arg."""

    command: list[str] = Field(default_factory=lambda: ["./bin/prepare-workspace"])


class BuildSpec(CommandSpec):
    """Build command. The target is appended as last arg."""

    command: list[str] = Field(default_factory=lambda: ["make"])
    platform_variable: str = PLATFORM_VARIABLE


class PipelineConfig(BaseModel):
    """Root pipeline configuration: loaded from pipeline.yml."""

    version: int = 1

    name: str = "workspace"
    platform: str = DEFAULT_PLATFORM
    target: str = DEFAULT_TARGET

    workspace: Path = Path(".")
    state_dir: Path = Path(".state")
    script_dir: Path | None = None                # None = system temp dir

    tools: list[ToolchainSpec] = Field(default_factory=_default_tools)
    toolchain: InstallerSpec | None = Field(default_factory=_default_toolchain)
    prepare: PrepareSpec = Field(default_factory=PrepareSpec)
    build: BuildSpec = Field(default_factory=BuildSpec)
    refresh: RefreshPolicy = Field(default_factory=RefreshPolicy)

    @field_validator("platform")
    @classmethod
    def _check_platform(cls, value: str) -> str:
        return validate_platform(value)

    @field_validator("target")
    @classmethod
    def _check_target(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("target must not be empty")
        return value

    @field_validator("tools")
    @classmethod
    def _unique_tools(cls, value: list[ToolchainSpec]) -> list[ToolchainSpec]:
        names = [t.name for t in value]
        dupes = sorted({n for n in names if names.count(n) > 1})
        if dupes:
            raise ValueError(f"duplicate tool names: {', '.join(dupes)}")
        destinations = [t.destination for t in value]
        if len(set(destinations)) != len(destinations):
            raise ValueError("two tools share the same destination")
        return value

    def resolved(self, base_dir: Path) -> PipelineConfig:
        """Return a copy with every path absolute and ``~`` expanded.

        Relative paths are taken relative to ``base_dir`` (the directory
        holding pipeline.yml).
        """

        def _abs(path: Path) -> Path:
            path = path.expanduser()
            if not path.is_absolute():
                path = base_dir / path
            return path.resolve()

        tools = [
            t.model_copy(update={"destination": _abs(t.destination)}) for t in self.tools
        ]
        toolchain = (
            self.toolchain.model_copy(update={"install_root": _abs(self.toolchain.install_root)})
            if self.toolchain
            else None
        )
        return self.model_copy(
            update={
                "workspace": _abs(self.workspace),
                "state_dir": _abs(self.state_dir),
                "script_dir": _abs(self.script_dir) if self.script_dir else None,
                "tools": tools,
                "toolchain": toolchain,
            }
        )
