from .mutation import MessageMutationService, MutationCheck
from .sending import MessageService
from .visibility import MessageView, render_message, resolve_display_text

__all__ = [
    "MessageService",
    "MessageMutationService",
    "MutationCheck",
    "MessageView",
    "render_message",
    "resolve_display_text",
]
