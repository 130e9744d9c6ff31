"""
Mock adapter: universal test double for Invocables.

Used in mock mode to simulate tools without launching anything, and in
tests to script exit codes and observe call order. Responses are keyed
by the first argument of the invocation (the program or subcommand).
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass

from provisioner.adapters.base import Adapter
from provisioner.core.models.invocation import ExitResult, Invocation


@dataclass
class MockCall:
    """One recorded invocation, with the monotonic time it happened."""

    invocation: Invocation
    at: float

    @property
    def args(self) -> list[str]:
        return self.invocation.args


class MockAdapter(Adapter):
    """Universal mock adapter for testing.

    By default, returns success for everything. Can be configured with
    custom results, failures, or side effects per leading argument.
    """

    def __init__(
        self,
        adapter_name: str = "mock",
        available: bool = True,
        default_output: str = "[mock] executed",
    ):
        self._name = adapter_name
        self._available = available
        self._default_output = default_output
        self._responses: dict[str, ExitResult] = {}
        self._side_effects: dict[str, Callable[[Invocation], None]] = {}
        self._call_log: list[MockCall] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def call_log(self) -> list[MockCall]:
        """All invocations this mock has received."""
        return self._call_log

    @property
    def call_count(self) -> int:
        return len(self._call_log)

    def calls_to(self, key: str) -> list[MockCall]:
        """Recorded calls whose first argument is ``key``."""
        return [c for c in self._call_log if c.args and c.args[0] == key]

    def is_available(self) -> bool:
        return self._available

    def set_response(self, key: str, result: ExitResult) -> None:
        """Return ``result`` for invocations starting with ``key``."""
        self._responses[key] = result

    def set_failure(
        self,
        key: str,
        exit_code: int = 1,
        stderr: str = "Mock failure",
    ) -> None:
        """Configure invocations starting with ``key`` to fail."""
        self._responses[key] = ExitResult.failure(
            adapter=self._name,
            exit_code=exit_code,
            stderr=stderr,
        )

    def set_side_effect(self, key: str, effect: Callable[[Invocation], None]) -> None:
        """Run ``effect`` whenever an invocation starts with ``key``."""
        self._side_effects[key] = effect

    def validate(self, invocation: Invocation) -> tuple[bool, str]:
        return True, ""

    def execute(self, invocation: Invocation) -> ExitResult:
        self._call_log.append(MockCall(invocation=invocation, at=time.monotonic()))
        key = invocation.args[0] if invocation.args else ""

        effect = self._side_effects.get(key)
        if effect is not None:
            effect(invocation)

        if key in self._responses:
            return self._responses[key]

        return ExitResult.success(
            adapter=self._name,
            stdout=self._default_output,
            metadata={"mock": True, "args": invocation.args},
        )

    def reset(self) -> None:
        """Clear call log, responses and side effects."""
        self._call_log.clear()
        self._responses.clear()
        self._side_effects.clear()
