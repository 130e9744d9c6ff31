"""
Shell command adapter: run an external program and capture its output.

This is the most fundamental adapter. The preparation script, the
toolchain bootstrap script and the build command all go through it.
Arguments are passed as a list, never through a shell.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import time
from datetime import UTC, datetime
from pathlib import Path

from provisioner.adapters.base import Adapter
from provisioner.core.models.invocation import (
    EXIT_NOT_FOUND,
    EXIT_TIMEOUT,
    ExitResult,
    Invocation,
)

logger = logging.getLogger(__name__)


class ShellCommandAdapter(Adapter):
    """Run a command with an explicit environment and working directory.

    The invocation's ``env`` is the complete environment of the child;
    nothing is inherited implicitly. An empty ``env`` falls back to the
    current process environment.
    """

    def __init__(self, adapter_name: str = "shell"):
        self._name = adapter_name

    @property
    def name(self) -> str:
        return self._name

    def is_available(self) -> bool:
        return shutil.which("sh") is not None

    def validate(self, invocation: Invocation) -> tuple[bool, str]:
        if not invocation.args:
            return False, "Missing command arguments"

        if invocation.cwd and not Path(invocation.cwd).is_dir():
            return False, f"Working directory does not exist: {invocation.cwd}"

        return True, ""

    def execute(self, invocation: Invocation) -> ExitResult:
        args = self.command_for(invocation)
        started_at = datetime.now(UTC).isoformat()
        logger.debug("Executing: %s (cwd=%s)", " ".join(args), invocation.cwd)
        start = time.monotonic()

        try:
            result = subprocess.run(
                args,
                cwd=invocation.cwd,
                env=invocation.env or None,
                capture_output=True,
                text=True,
                timeout=invocation.timeout,
            )
        except FileNotFoundError as e:
            return ExitResult.failure(
                adapter=self.name,
                exit_code=EXIT_NOT_FOUND,
                error=f"Command not found: {args[0]} ({e})",
                started_at=started_at,
                metadata={"args": args},
            )
        except subprocess.TimeoutExpired:
            return ExitResult.failure(
                adapter=self.name,
                exit_code=EXIT_TIMEOUT,
                error=f"Command timed out after {invocation.timeout}s",
                started_at=started_at,
                metadata={"args": args, "timeout": invocation.timeout},
            )
        except OSError as e:
            return ExitResult.failure(
                adapter=self.name,
                error=f"Command execution error: {e}",
                started_at=started_at,
                metadata={"args": args},
            )

        elapsed_ms = int((time.monotonic() - start) * 1000)
        common = {
            "started_at": started_at,
            "duration_ms": elapsed_ms,
            "stdout": result.stdout,
            "stderr": result.stderr,
            "metadata": {"args": args, "cwd": invocation.cwd},
        }

        if result.returncode == 0:
            return ExitResult.success(adapter=self.name, **common)

        logger.debug("%s exited with %d", args[0], result.returncode)
        return ExitResult.failure(
            adapter=self.name,
            exit_code=result.returncode,
            error=f"Command exited with code {result.returncode}",
            **common,
        )

    def command_for(self, invocation: Invocation) -> list[str]:
        """The argv actually launched. Subclasses may prefix a program."""
        return list(invocation.args)
