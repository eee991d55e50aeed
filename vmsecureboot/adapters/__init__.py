"""Adapters — bindings for the host tools the pipeline shells out to.

Public re-exports for convenient access.
"""

from vmsecureboot.adapters.base import Adapter, ExecutionContext
from vmsecureboot.adapters.mock import MockAdapter
from vmsecureboot.adapters.registry import AdapterRegistry, default_registry

__all__ = [
    "Adapter",
    "AdapterRegistry",
    "ExecutionContext",
    "MockAdapter",
    "default_registry",
]
