"""Huddle - message lifecycle and content visibility engine for internal chat."""

from .engine import ChatEngine, build_engine
from .models.context import ConnectionContext, Role

__version__ = "0.1.0"

__all__ = ["ChatEngine", "build_engine", "ConnectionContext", "Role", "__version__"]
