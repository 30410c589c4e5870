from .base import EphemeralStore, Subscription
from .memory import InMemoryEphemeralStore

__all__ = ["EphemeralStore", "Subscription", "InMemoryEphemeralStore"]
