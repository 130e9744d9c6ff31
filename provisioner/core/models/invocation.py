"""
Invocation and ExitResult models: the collaborator contract.

An Invocation is a request to run an external program: arguments,
environment, working directory. An ExitResult is what came back.
Stages send Invocations through adapters and receive ExitResults.
Adapters never raise: a missing binary, a timeout or a non-zero
exit all come back as a failed ExitResult with an exit code.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

# Conventional shell exit codes for failures that never reached the tool
EXIT_NOT_FOUND = 127
EXIT_TIMEOUT = 124
EXIT_ERROR = 1


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class Invocation(BaseModel):
    """A request to run an external program through an adapter."""

    args: list[str] = Field(default_factory=list)
    env: dict[str, str] = Field(default_factory=dict)
    cwd: str | None = None
    timeout: int | None = None      # seconds, None = wait forever

    @property
    def command_line(self) -> str:
        """Human-readable command line, for logs only."""
        return " ".join(self.args)


class ExitResult(BaseModel):
    """Outcome of running an Invocation.

    ``stdout`` and ``stderr`` are kept exactly as the tool wrote them
    so callers can surface raw diagnostics without translation.
    """

    adapter: str
    status: Literal["ok", "failed"] = "ok"
    exit_code: int = 0

    started_at: str = Field(default_factory=_now_iso)
    ended_at: str = Field(default_factory=_now_iso)
    duration_ms: int = 0

    stdout: str = ""
    stderr: str = ""
    error: str | None = None

    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        """Whether the invocation succeeded."""
        return self.status == "ok"

    @property
    def failed(self) -> bool:
        """Whether the invocation failed."""
        return self.status == "failed"

    @property
    def diagnostics(self) -> str:
        """Best available failure text: stderr, then error, then stdout."""
        return self.stderr or self.error or self.stdout

    @classmethod
    def success(
        cls,
        adapter: str,
        stdout: str = "",
        **kwargs: Any,
    ) -> ExitResult:
        """Create a success result."""
        return cls(
            adapter=adapter,
            status="ok",
            exit_code=0,
            stdout=stdout,
            **kwargs,
        )

    @classmethod
    def failure(
        cls,
        adapter: str,
        exit_code: int = EXIT_ERROR,
        error: str | None = None,
        **kwargs: Any,
    ) -> ExitResult:
        """Create a failure result. A zero exit code is coerced to 1."""
        return cls(
            adapter=adapter,
            status="failed",
            exit_code=exit_code or EXIT_ERROR,
            error=error,
            **kwargs,
        )
