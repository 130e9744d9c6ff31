"""
Toolchain models: what to fetch, what to install, and when to refresh.

These are descriptors of external state: where a tool collection is
cloned to, which bootstrap script installs a language toolchain, and
which directories end up on PATH as a result.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

INSTALL_ROOT_PLACEHOLDER = "{install_root}"


class ToolchainSpec(BaseModel):
    """A VCS-distributed tool collection cloned into a fixed location.

    ``destination`` is stable across runs: fetching into a populated
    destination is a no-op or an explicit refresh, never a second copy.
    """

    name: str
    source: str                                   # clone URI
    destination: Path
    path_exports: list[str] = Field(default_factory=lambda: ["."])
    branch: str | None = None

    @field_validator("name", "source")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be empty")
        return value

    def exported_paths(self) -> list[Path]:
        """Resolved PATH entries, in declaration order."""
        paths = []
        for entry in self.path_exports:
            path = self.destination if entry in ("", ".") else self.destination / entry
            paths.append(path)
        return paths


class InstallerSpec(BaseModel):
    """A language toolchain installed by a vendor bootstrap script."""

    name: str
    bootstrap_uri: str
    install_root: Path
    bin_dir: str = "bin"
    probe: str                                    # binary proving the install works
    probe_args: list[str] = Field(default_factory=lambda: ["--version"])
    interpreter: str = "sh"
    args: list[str] = Field(default_factory=lambda: ["-y"])
    variables: dict[str, str] = Field(default_factory=dict)
    expected_shebang: str = "#!"
    sha256: str | None = None
    download_timeout: int = 60
    timeout: int | None = None

    @property
    def bin_path(self) -> Path:
        return self.install_root / self.bin_dir

    @property
    def probe_path(self) -> Path:
        return self.bin_path / self.probe

    def rendered_variables(self) -> dict[str, str]:
        """Toolchain variables with ``{install_root}`` substituted."""
        root = str(self.install_root)
        return {
            name: value.replace(INSTALL_ROOT_PLACEHOLDER, root)
            for name, value in self.variables.items()
        }


class RefreshPolicy(BaseModel):
    """When a present toolchain counts as stale.

    never:    anything already present is used as-is
    always:   refresh on every run
    max-age:  refresh when the last recorded fetch/install is older
              than ``max_age_hours`` (or was never recorded)
    """

    mode: Literal["never", "always", "max-age"] = "never"
    max_age_hours: float | None = None

    @model_validator(mode="after")
    def _check_max_age(self) -> RefreshPolicy:
        if self.mode == "max-age" and (self.max_age_hours is None or self.max_age_hours <= 0):
            raise ValueError("refresh mode 'max-age' requires a positive max_age_hours")
        return self

    def is_stale(self, refreshed_at: datetime | None, now: datetime | None = None) -> bool:
        """Decide whether a present toolchain should be refreshed."""
        if self.mode == "never":
            return False
        if self.mode == "always":
            return True
        if refreshed_at is None:
            return True
        if self.max_age_hours is None:
            return True
        now = now or datetime.now(UTC)
        return now - refreshed_at > timedelta(hours=self.max_age_hours)
