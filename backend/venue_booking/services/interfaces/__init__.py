"""
Service interfaces for dependency inversion.
Allows swapping implementations without changing business logic.
"""

from .hold_store import Hold, HoldStore, hold_expired
from .memory_hold_store import InMemoryHoldStore

__all__ = ['Hold', 'HoldStore', 'hold_expired', 'InMemoryHoldStore']
