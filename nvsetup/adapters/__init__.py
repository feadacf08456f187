"""Adapters — bindings for the external commands the orchestrator drives.

Public re-exports for convenient access.
"""

from nvsetup.adapters.base import Adapter, ExecutionContext
from nvsetup.adapters.mock import MockAdapter
from nvsetup.adapters.registry import AdapterRegistry

__all__ = [
    "Adapter",
    "AdapterRegistry",
    "ExecutionContext",
    "MockAdapter",
]
