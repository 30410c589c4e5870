"""
Error taxonomy for the message lifecycle engine.

Every error carries a stable ``code`` so callers can react to the specific
violated precondition (e.g. grey out an edit button once the window closes).

Surfaced to callers:
- ValidationFailed: malformed input (empty/too-long content, invalid emoji)
- PermissionDenied: non-owner attempting a mutation
- WindowExpired: edit/delete attempted past the time bound
- NotFound: referenced message or conversation absent
- AlreadyDeleted: mutation attempted on a terminal message
- SendFailed: generic send failure shown to end users

Absorbed internally (logged, never block delivery):
- ModerationDegraded: generative backends failed, fallback text used
- ResourceUnavailable: ephemeral store or persistence unreachable
"""


class HuddleError(Exception):
    """Base class for all engine errors."""

    code: str = "huddle_error"

    def __init__(self, message: str | None = None):
        self.message = message or self.__class__.__name__
        super().__init__(self.message)

    def to_dict(self) -> dict[str, str]:
        return {"code": self.code, "error": self.message}


class ValidationFailed(HuddleError):
    code = "validation_failed"


class PermissionDenied(HuddleError):
    code = "permission_denied"


class WindowExpired(HuddleError):
    code = "window_expired"


class NotFound(HuddleError):
    code = "not_found"


class AlreadyDeleted(HuddleError):
    code = "already_deleted"


class ModerationDegraded(HuddleError):
    code = "moderation_degraded"


class ResourceUnavailable(HuddleError):
    code = "resource_unavailable"


class SendFailed(HuddleError):
    """User-facing send failure. Never carries internal diagnostics."""

    code = "send_failed"

    def __init__(self, message: str | None = None):
        super().__init__(message or "Failed to send message")
