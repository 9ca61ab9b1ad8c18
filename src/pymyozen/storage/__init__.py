"""Storage layer.

:class:`SessionStorage` is the interface the core consumes;
:class:`InMemoryStorage` is the deterministic reference implementation.
"""

from pymyozen.storage.base import SessionStorage
from pymyozen.storage.memory import InMemoryStorage

__all__ = ["InMemoryStorage", "SessionStorage"]
