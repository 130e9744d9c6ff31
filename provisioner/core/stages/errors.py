"""
Stage failures: one exception type per pipeline stage.

Each failure carries the stage name, the underlying tool's exit code
and its raw output. Nothing is translated: the CLI prints ``stderr``
and ``stdout`` exactly as the tool produced them.
"""

from __future__ import annotations

from typing import ClassVar

from provisioner.core.models.invocation import EXIT_ERROR, ExitResult
from provisioner.core.models.pipeline import PipelineState


def normalize_exit_code(code: int) -> int:
    """Map an exit status onto a valid non-zero process exit code.

    Negative codes (killed by signal N) become 128 + N, as a shell
    would report them. Zero becomes 1: a failure never exits 0.
    """
    if code < 0:
        return 128 + (-code)
    return code or EXIT_ERROR


class StageFailure(Exception):
    """Base class for every stage failure."""

    stage: ClassVar[str] = ""

    def __init__(
        self,
        message: str,
        exit_code: int = EXIT_ERROR,
        stdout: str = "",
        stderr: str = "",
    ):
        super().__init__(message)
        self.message = message
        self.exit_code = normalize_exit_code(exit_code)
        self.stdout = stdout
        self.stderr = stderr

    @classmethod
    def from_result(cls, message: str, result: ExitResult) -> StageFailure:
        """Build a failure from a failed ExitResult, keeping raw output."""
        stderr = result.stderr
        if not stderr and result.error:
            stderr = result.error + "\n"
        return cls(
            message,
            exit_code=result.exit_code,
            stdout=result.stdout,
            stderr=stderr,
        )

    def __str__(self) -> str:
        return f"{self.stage}: {self.message} (exit {self.exit_code})"


class FetchFailure(StageFailure):
    """A tool collection could not be cloned or refreshed."""

    stage = PipelineState.FETCHING_TOOLS.value


class InstallFailure(StageFailure):
    """A toolchain could not be downloaded, installed or probed."""

    stage = PipelineState.INSTALLING_TOOLCHAIN.value


class PreparationFailure(StageFailure):
    """The workspace preparation command failed."""

    stage = PipelineState.PREPARING.value


class BuildFailure(StageFailure):
    """The build target failed."""

    stage = PipelineState.BUILDING.value
