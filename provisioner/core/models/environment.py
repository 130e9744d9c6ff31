"""
EnvironmentContext: the environment each stage runs under.

Instead of mutating ``os.environ`` as stages go, every stage receives
an immutable EnvironmentContext and hands back an extended copy.
The context is append-only:

    - exported PATH entries are only ever added (duplicates ignored)
    - an exported variable may be re-exported with the same value,
      never changed or removed

Exported PATH entries are searched before the inherited PATH, newest
first, so a toolchain installed later in the pipeline wins over one
installed earlier.
"""

from __future__ import annotations

import os
import shutil
from collections.abc import Mapping
from dataclasses import dataclass, replace
from pathlib import Path

PATH_VARIABLE = "PATH"


class EnvironmentConflict(ValueError):
    """Raised when a stage tries to change or remove an earlier export."""


@dataclass(frozen=True)
class EnvironmentContext:
    """Immutable, append-only view of the process environment."""

    base: tuple[tuple[str, str], ...] = ()
    path_entries: tuple[str, ...] = ()
    variables: tuple[tuple[str, str], ...] = ()

    @classmethod
    def from_environ(cls, environ: Mapping[str, str] | None = None) -> EnvironmentContext:
        """Snapshot an environment (default: the current process)."""
        source = os.environ if environ is None else environ
        return cls(base=tuple(sorted(source.items())))

    # ── Queries ─────────────────────────────────────────────────

    @property
    def exported(self) -> dict[str, str]:
        """Variables exported by stages so far (PATH excluded)."""
        return dict(self.variables)

    def get(self, name: str, default: str | None = None) -> str | None:
        """Look up a variable, exported values first."""
        if name == PATH_VARIABLE:
            return os.pathsep.join(self.search_path)
        exported = self.exported
        if name in exported:
            return exported[name]
        return dict(self.base).get(name, default)

    @property
    def search_path(self) -> list[str]:
        """Effective PATH: exported entries newest-first, then inherited."""
        inherited = dict(self.base).get(PATH_VARIABLE, "")
        entries = list(reversed(self.path_entries))
        for entry in inherited.split(os.pathsep):
            if entry and entry not in entries:
                entries.append(entry)
        return entries

    def which(self, program: str) -> str | None:
        """Resolve a program against this context's PATH."""
        return shutil.which(program, path=os.pathsep.join(self.search_path))

    def providers(self, program: str) -> list[str]:
        """Every PATH directory that provides an executable ``program``."""
        found = []
        for entry in self.search_path:
            candidate = Path(entry) / program
            if candidate.is_file() and os.access(candidate, os.X_OK):
                found.append(entry)
        return found

    def to_environ(self) -> dict[str, str]:
        """Flatten into a mapping suitable for ``subprocess.run(env=...)``."""
        env = dict(self.base)
        env.update(self.variables)
        env[PATH_VARIABLE] = os.pathsep.join(self.search_path)
        return env

    # ── Extension (returns copies) ──────────────────────────────

    def with_path(self, *entries: str | Path) -> EnvironmentContext:
        """Return a copy with ``entries`` exported onto PATH."""
        added = list(self.path_entries)
        for entry in entries:
            text = str(entry)
            if text and text not in added:
                added.append(text)
        return replace(self, path_entries=tuple(added))

    def with_variables(self, values: Mapping[str, str]) -> EnvironmentContext:
        """Return a copy with ``values`` exported.

        Raises:
            EnvironmentConflict: If a value would overwrite an earlier
                export, or if PATH is set directly.
        """
        exported = self.exported
        additions: list[tuple[str, str]] = []
        for name, value in values.items():
            if name == PATH_VARIABLE:
                raise EnvironmentConflict("PATH can only be extended with with_path()")
            if name in exported:
                if exported[name] != value:
                    raise EnvironmentConflict(
                        f"{name} already exported as {exported[name]!r}, "
                        f"refusing to change it to {value!r}"
                    )
                continue
            additions.append((name, value))
            exported[name] = value
        if not additions:
            return self
        return replace(self, variables=self.variables + tuple(additions))
