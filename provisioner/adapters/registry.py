"""
Adapter registry: where stages find the shell and git adapters.

The driver resolves its adapters here exactly once. With mocks switched
on, every name resolves to a :class:`MockAdapter` instead, so a whole
pipeline can be exercised without launching a single process.
"""

from __future__ import annotations

import logging

from provisioner.adapters.base import Adapter
from provisioner.adapters.mock import MockAdapter

logger = logging.getLogger(__name__)


class AdapterRegistry:
    """Name -> adapter table with a switchable mock overlay."""

    def __init__(self, *adapters: Adapter, use_mocks: bool = False):
        self._real: dict[str, Adapter] = {}
        self._mocks: dict[str, Adapter] = {}
        self._shared_mock: Adapter | None = None
        self._use_mocks = use_mocks
        self.register(*adapters)

    @property
    def using_mocks(self) -> bool:
        return self._use_mocks

    def use_mocks(self, enabled: bool = True, shared: Adapter | None = None) -> None:
        """Switch the mock overlay on or off.

        ``shared`` answers for every name; without it each name gets its
        own silent MockAdapter the first time it is looked up.
        """
        self._use_mocks = enabled
        self._mocks.clear()
        self._shared_mock = shared if enabled else None

    def register(self, *adapters: Adapter) -> None:
        for adapter in adapters:
            if adapter.name in self._real:
                logger.warning("Adapter %s replaced by %s", adapter.name, type(adapter).__name__)
            self._real[adapter.name] = adapter

    def remove(self, name: str) -> Adapter | None:
        return self._real.pop(name, None)

    def names(self) -> list[str]:
        """Names of the real adapters, in registration order."""
        return list(self._real)

    def mock_for(self, name: str) -> Adapter:
        if self._shared_mock is not None:
            return self._shared_mock
        return self._mocks.setdefault(name, MockAdapter(adapter_name=name, default_output=""))

    def get(self, name: str) -> Adapter | None:
        if self._use_mocks:
            return self.mock_for(name)
        return self._real.get(name)

    def require(self, name: str) -> Adapter:
        """Like :meth:`get`, but a missing adapter is a KeyError."""
        adapter = self.get(name)
        if adapter is None:
            raise KeyError(f"No adapter registered for '{name}'")
        return adapter

    def availability(self) -> dict[str, bool]:
        """Whether each real adapter can run on this host.

        An adapter whose probe itself blows up counts as unavailable.
        """
        report: dict[str, bool] = {}
        for name, adapter in self._real.items():
            try:
                report[name] = bool(adapter.is_available())
            except Exception as e:
                logger.debug("Availability probe for %s failed: %s", name, e)
                report[name] = False
        return report


def default_registry(mock_mode: bool = False) -> AdapterRegistry:
    """Registry holding the real shell and git adapters."""
    from provisioner.adapters.shell.command import ShellCommandAdapter
    from provisioner.adapters.vcs.git import GitAdapter

    return AdapterRegistry(ShellCommandAdapter(), GitAdapter(), use_mocks=mock_mode)
