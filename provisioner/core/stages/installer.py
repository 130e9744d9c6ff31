"""
ToolchainInstaller: install a language toolchain from a vendor script.

Flow:
    present & fresh?  → skip straight to the probe
    otherwise         → check root writable → download → verify
                        → run from a transient file (always removed)
    then              → export bin dir + toolchain variables → probe

Re-running against an existing root runs the vendor installer again in
place (rustup, for instance, upgrades the existing install). The bin
directory is exported once; a second toolchain providing the same
binary elsewhere on PATH is reported but stays behind ours.
"""

from __future__ import annotations

import contextlib
import hashlib
import logging
import os
import tempfile
import urllib.error
import urllib.request
from collections.abc import Callable, Iterator
from pathlib import Path

from provisioner.adapters.base import Adapter
from provisioner.core.models.environment import EnvironmentConflict, EnvironmentContext
from provisioner.core.models.toolchain import InstallerSpec, RefreshPolicy
from provisioner.core.persistence.stamps import StampStore
from provisioner.core.stages.errors import InstallFailure

logger = logging.getLogger(__name__)

SCRIPT_PREFIX = "provisioner_bootstrap_"

Downloader = Callable[[str, int], bytes]


def download_script(uri: str, timeout: int) -> bytes:
    """Fetch a bootstrap script over http(s) or from a file URI.

    Raises:
        InstallFailure: If the script cannot be retrieved.
    """
    request = urllib.request.Request(uri, headers={"User-Agent": "provisioner/1.0"})
    try:
        with urllib.request.urlopen(request, timeout=timeout) as resp:
            return resp.read()
    except urllib.error.HTTPError as e:
        raise InstallFailure(f"Download of {uri} failed: HTTP {e.code} {e.reason}") from e
    except (urllib.error.URLError, OSError, ValueError) as e:
        raise InstallFailure(f"Download of {uri} failed: {e}") from e


def verify_script(content: bytes, spec: InstallerSpec) -> str:
    """Check the downloaded script is complete, executable content.

    Returns:
        The script's SHA-256 hex digest.

    Raises:
        InstallFailure: On empty, non-script or checksum-mismatched content.
    """
    if not content:
        raise InstallFailure(f"Bootstrap script from {spec.bootstrap_uri} is empty")

    if spec.expected_shebang and not content.startswith(spec.expected_shebang.encode()):
        raise InstallFailure(
            f"Bootstrap script from {spec.bootstrap_uri} does not start with "
            f"{spec.expected_shebang!r}; refusing to execute it"
        )

    digest = hashlib.sha256(content).hexdigest()
    if spec.sha256:
        expected = spec.sha256.removeprefix("sha256:").lower()
        if digest != expected:
            raise InstallFailure(
                f"SHA256 mismatch for {spec.bootstrap_uri}\n"
                f"Expected: {expected}\n"
                f"Got:      {digest}"
            )
    return digest


@contextlib.contextmanager
def transient_script(content: bytes, directory: Path | None = None) -> Iterator[Path]:
    """Write ``content`` to a private executable file, removed on exit."""
    if directory is not None:
        directory.mkdir(parents=True, exist_ok=True)
    fd, name = tempfile.mkstemp(suffix=".sh", prefix=SCRIPT_PREFIX, dir=directory)
    path = Path(name)
    try:
        with open(fd, "wb") as f:
            f.write(content)
        path.chmod(0o700)
        yield path
    finally:
        path.unlink(missing_ok=True)
        logger.debug("Removed transient script %s", path)


class ToolchainInstaller:
    """Install toolchains through the shell Invocable."""

    def __init__(
        self,
        shell: Adapter,
        refresh: RefreshPolicy | None = None,
        stamps: StampStore | None = None,
        script_dir: Path | None = None,
        downloader: Downloader = download_script,
    ):
        self._shell = shell
        self._refresh = refresh or RefreshPolicy()
        self._stamps = stamps
        self._script_dir = script_dir
        self._download = downloader

    def install(self, spec: InstallerSpec, env: EnvironmentContext) -> EnvironmentContext:
        """Ensure ``spec`` is installed and usable.

        Returns:
            ``env`` extended with the toolchain's bin dir and variables.

        Raises:
            InstallFailure: On download, verification, installer or
                probe failure, or an unwritable install root.
        """
        try:
            env = env.with_variables(spec.rendered_variables())
        except EnvironmentConflict as e:
            raise InstallFailure(str(e)) from e

        if self.is_installed(spec) and not self._is_stale(spec):
            logger.info("%s already installed at %s, skipping", spec.name, spec.install_root)
        else:
            self._run_installer(spec, env)

        env = env.with_path(spec.bin_path)
        self._probe(spec, env)
        self._report_shadowing(spec, env)
        return env

    @staticmethod
    def is_installed(spec: InstallerSpec) -> bool:
        """Whether the probe binary exists and is executable."""
        probe = spec.probe_path
        return probe.is_file() and os.access(probe, os.X_OK)

    def _is_stale(self, spec: InstallerSpec) -> bool:
        refreshed_at = self._stamps.last_refreshed(spec.name) if self._stamps else None
        return self._refresh.is_stale(refreshed_at)

    def _run_installer(self, spec: InstallerSpec, env: EnvironmentContext) -> None:
        self._ensure_writable(spec.install_root)

        logger.info("Downloading %s bootstrap script from %s", spec.name, spec.bootstrap_uri)
        content = self._download(spec.bootstrap_uri, spec.download_timeout)
        digest = verify_script(content, spec)
        logger.debug("Bootstrap script verified (%d bytes, sha256=%s)", len(content), digest)

        with transient_script(content, self._script_dir) as script:
            logger.info("Running %s installer", spec.name)
            result = self._shell.run(
                [spec.interpreter, str(script), *spec.args],
                env=env.to_environ(),
                timeout=spec.timeout,
            )

        if not result.ok:
            raise InstallFailure.from_result(f"{spec.name} installer failed", result)

        if self._stamps is not None:
            self._stamps.mark_refreshed(spec.name, spec.install_root)

    @staticmethod
    def _ensure_writable(root: Path) -> None:
        try:
            root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise InstallFailure(f"Cannot create install root {root}: {e}") from e
        if not os.access(root, os.W_OK):
            raise InstallFailure(f"Install root {root} is not writable")

    def _probe(self, spec: InstallerSpec, env: EnvironmentContext) -> None:
        result = self._shell.run([spec.probe, *spec.probe_args], env=env.to_environ())
        if not result.ok:
            raise InstallFailure.from_result(
                f"{spec.name} probe '{spec.probe}' failed after install", result
            )
        version = result.stdout.strip().splitlines()
        logger.info("%s ready: %s", spec.name, version[0] if version else spec.probe)

    @staticmethod
    def _report_shadowing(spec: InstallerSpec, env: EnvironmentContext) -> None:
        own = spec.bin_path.resolve()
        others = [p for p in env.providers(spec.probe) if Path(p).resolve() != own]
        if others:
            logger.warning(
                "%s is also provided by %s; %s takes precedence",
                spec.probe,
                ", ".join(others),
                spec.bin_path,
            )
