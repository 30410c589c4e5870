"""
Persistence for durable chat state.

InMemoryChatStore is the default; PostgresChatStore is used when
POSTGRES__ENABLED is set (see huddle.engine.build_engine).
"""

from .base import ChatStore
from .memory import InMemoryChatStore

__all__ = ["ChatStore", "InMemoryChatStore"]
