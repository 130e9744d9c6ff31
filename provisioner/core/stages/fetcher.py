"""
ToolFetcher: clone a VCS-distributed tool collection into a fixed place.

Destination states and what happens to each:

    absent / empty dir          → clone
    checkout of the same source → nothing (or ``pull --ff-only`` if stale)
    checkout of another source  → FetchFailure
    bare ``.git`` with no HEAD   → discarded and cloned again
    anything else               → FetchFailure (never overwritten)

A killed ``git clone`` leaves a ``.git`` directory with no commit checked
out and nothing beside it; that is the only leftover repaired in place.

The destination lives outside the workspace and survives workspace
cleanup. Nothing here retries; a failed fetch fails the pipeline.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from provisioner.adapters.base import Adapter
from provisioner.core.models.environment import EnvironmentContext
from provisioner.core.models.invocation import ExitResult
from provisioner.core.models.toolchain import RefreshPolicy, ToolchainSpec
from provisioner.core.persistence.stamps import StampStore
from provisioner.core.stages.errors import FetchFailure

logger = logging.getLogger(__name__)


def _normalize_source(source: str) -> str:
    """Comparable form of a clone URI or local repository path."""
    text = source.strip().rstrip("/")
    if text.endswith(".git"):
        text = text[: -len(".git")]
    if "://" not in text and ":" not in text.split("/", 1)[0]:
        path = Path(text).expanduser()
        if path.is_absolute() or path.exists():
            return str(path.resolve()).removesuffix(".git")
    return text


class ToolFetcher:
    """Obtain tool collections through the git Invocable."""

    def __init__(
        self,
        git: Adapter,
        refresh: RefreshPolicy | None = None,
        stamps: StampStore | None = None,
        timeout: int | None = None,
    ):
        self._git = git
        self._refresh = refresh or RefreshPolicy()
        self._stamps = stamps
        self._timeout = timeout

    def fetch(self, spec: ToolchainSpec, env: EnvironmentContext) -> EnvironmentContext:
        """Make ``spec`` present at its destination and export its paths.

        Returns:
            ``env`` extended with the tool's PATH entries.

        Raises:
            FetchFailure: If cloning/refreshing fails or the destination
                holds something that is not this tool's checkout.
        """
        environ = env.to_environ()
        destination = spec.destination

        if self.is_checkout(destination) and not self._has_head(spec, environ):
            self._discard_interrupted_clone(spec)

        if self.is_checkout(destination):
            self._check_origin(spec, environ)
            if self._is_stale(spec):
                self._update(spec, environ)
            else:
                logger.info("%s already present at %s, skipping fetch", spec.name, destination)
        elif self._is_vacant(destination):
            self._clone(spec, environ)
        else:
            raise FetchFailure(
                f"{destination} exists and is not a git checkout of {spec.name}; "
                "refusing to overwrite it (remove it to re-fetch)"
            )

        return env.with_path(*spec.exported_paths())

    # ── Inspection ──────────────────────────────────────────────

    @staticmethod
    def is_checkout(destination: Path) -> bool:
        return destination.is_dir() and (destination / ".git").exists()

    @staticmethod
    def _is_vacant(destination: Path) -> bool:
        if not destination.exists():
            return True
        return destination.is_dir() and not any(destination.iterdir())

    def _inspect(self, spec: ToolchainSpec, args: list[str], environ: dict[str, str]) -> ExitResult:
        # A broken .git must never resolve to an enclosing repository
        return self._git.run(
            args,
            env={**environ, "GIT_DIR": str(spec.destination / ".git")},
            cwd=spec.destination,
            timeout=self._timeout,
        )

    def _check_origin(self, spec: ToolchainSpec, environ: dict[str, str]) -> None:
        result = self._inspect(spec, ["remote", "get-url", "origin"], environ)
        origin = result.stdout.strip()
        if not result.ok or not origin:
            raise FetchFailure(
                f"{spec.destination} has no origin remote; cannot confirm it is a checkout "
                f"of {spec.source} (remove it to re-fetch)",
                exit_code=result.exit_code if result.failed else 1,
                stderr=result.stderr,
            )
        if _normalize_source(origin) != _normalize_source(spec.source):
            raise FetchFailure(
                f"{spec.destination} is a checkout of {origin}, expected {spec.source}"
            )

    def _has_head(self, spec: ToolchainSpec, environ: dict[str, str]) -> bool:
        result = self._inspect(spec, ["rev-parse", "--verify", "--quiet", "HEAD"], environ)
        if result.failed:
            logger.debug("No HEAD in %s: %s", spec.destination, result.diagnostics.strip())
        return result.ok

    def _is_stale(self, spec: ToolchainSpec) -> bool:
        refreshed_at = self._stamps.last_refreshed(spec.name) if self._stamps else None
        return self._refresh.is_stale(refreshed_at)

    # ── Mutation ────────────────────────────────────────────────

    def _discard_interrupted_clone(self, spec: ToolchainSpec) -> None:
        destination = spec.destination
        leftovers = [p.name for p in destination.iterdir() if p.name != ".git"]
        if leftovers:
            raise FetchFailure(
                f"{destination} is a git checkout with no commit but holds {sorted(leftovers)}; "
                "refusing to overwrite it (remove it to re-fetch)"
            )
        logger.warning("%s holds an interrupted clone of %s, cloning again", destination, spec.name)
        try:
            shutil.rmtree(destination)
        except OSError as e:
            raise FetchFailure(f"Cannot remove interrupted clone at {destination}: {e}") from e

    def _clone(self, spec: ToolchainSpec, environ: dict[str, str]) -> None:
        destination = spec.destination
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FetchFailure(f"Cannot create {destination.parent}: {e}") from e

        args = ["clone"]
        if spec.branch:
            args += ["--branch", spec.branch]
        args += ["--", spec.source, str(destination)]

        logger.info("Cloning %s from %s", spec.name, spec.source)
        result = self._git.run(args, env=environ, cwd=destination.parent, timeout=self._timeout)
        if not result.ok:
            raise FetchFailure.from_result(f"Cloning {spec.name} failed", result)

        self._stamp(spec)

    def _update(self, spec: ToolchainSpec, environ: dict[str, str]) -> None:
        logger.info("Refreshing stale %s at %s", spec.name, spec.destination)
        result = self._git.run(
            ["pull", "--ff-only"],
            env=environ,
            cwd=spec.destination,
            timeout=self._timeout,
        )
        if not result.ok:
            raise FetchFailure.from_result(f"Refreshing {spec.name} failed", result)

        self._stamp(spec)

    def _stamp(self, spec: ToolchainSpec) -> None:
        if self._stamps is not None:
            self._stamps.mark_refreshed(spec.name, spec.destination)
