"""Kernel services (persistence side)."""

from approval_kernel.services.instance_store import InMemoryInstanceStore, SqlInstanceStore

__all__ = [
    "InMemoryInstanceStore",
    "SqlInstanceStore",
]
