"""
Adapter base: the Invocable contract between stages and tools.

Stages never call subprocess themselves. They hand an Invocation to an
adapter and get an ExitResult back:

    result = adapter.run(["make", "cli"], env={...}, cwd="/workspace")

Adapters are thin: they know how to launch their tool, not what the
tool does. The pipeline depends only on this interface.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from pathlib import Path

from provisioner.core.models.invocation import ExitResult, Invocation

logger = logging.getLogger(__name__)


class Adapter(ABC):
    """Abstract base class for all adapters (Invocables).

    Adapters perform external side effects and return ExitResults.
    They NEVER raise; failures are captured in the ExitResult.

    To create a new adapter:
        1. Subclass Adapter
        2. Implement name, is_available, validate, execute
        3. Register it in the AdapterRegistry
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """The adapter identifier (e.g., 'shell', 'git')."""

    @abstractmethod
    def is_available(self) -> bool:
        """Check if this adapter's underlying tool is installed.

        Should be fast and never raise.
        """

    @abstractmethod
    def validate(self, invocation: Invocation) -> tuple[bool, str]:
        """Validate that the invocation can be attempted.

        Returns:
            (is_valid, error_message). error_message is empty if valid.
        """

    @abstractmethod
    def execute(self, invocation: Invocation) -> ExitResult:
        """Run the invocation and return its result. MUST never raise."""

    def run(
        self,
        args: Sequence[str],
        env: Mapping[str, str] | None = None,
        cwd: str | Path | None = None,
        timeout: int | None = None,
    ) -> ExitResult:
        """Validate and execute in one call."""
        invocation = Invocation(
            args=list(args),
            env=dict(env or {}),
            cwd=str(cwd) if cwd is not None else None,
            timeout=timeout,
        )
        valid, error = self.validate(invocation)
        if not valid:
            logger.debug("%s refused %r: %s", self.name, invocation.command_line, error)
            return ExitResult.failure(
                adapter=self.name,
                error=f"Validation failed: {error}",
                metadata={"args": invocation.args},
            )
        return self.execute(invocation)

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
