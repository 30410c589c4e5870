from .service import ReactionService

__all__ = ["ReactionService"]
