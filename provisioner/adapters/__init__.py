"""Adapters: Invocable bindings for external tools.

Public re-exports for convenient access.
"""

from provisioner.adapters.base import Adapter
from provisioner.adapters.mock import MockAdapter
from provisioner.adapters.registry import AdapterRegistry, default_registry

__all__ = [
    "Adapter",
    "AdapterRegistry",
    "MockAdapter",
    "default_registry",
]
