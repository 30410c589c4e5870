"""
Message mutation state machine.

States: Active (``is_edited`` is an attribute) -> Deleted (terminal).

Preconditions are checked in a fixed order so the caller always learns the
first violated one:

    NotFound -> PermissionDenied -> AlreadyDeleted -> WindowExpired -> ValidationFailed

The write itself is a conditional update ("iff is_deleted is still false")
in the store, so an edit racing a delete cannot resurrect or overwrite a
deleted message; the loser gets AlreadyDeleted.
"""

from datetime import timedelta
from typing import Optional

from loguru import logger
from pydantic import BaseModel

from ...errors import (
    AlreadyDeleted,
    HuddleError,
    NotFound,
    PermissionDenied,
    ValidationFailed,
    WindowExpired,
)
from ...models.entities import Message
from ...settings import MessagingSettings, settings
from ...utils.date_utils import Clock, ensure_utc, system_clock
from ..moderation import ModerationPipeline
from ..persistence import ChatStore
from ..reactions import ReactionService


class MutationCheck(BaseModel):
    """Side-effect-free answer to "may this user edit/delete this message?"."""

    allowed: bool
    reason: Optional[str] = None
    code: Optional[str] = None


class MessageMutationService:
    """Edit and soft-delete transitions for existing messages."""

    def __init__(
        self,
        store: ChatStore,
        moderation: ModerationPipeline | None = None,
        reactions: ReactionService | None = None,
        clock: Clock = system_clock,
        messaging_settings: MessagingSettings | None = None,
    ):
        self.store = store
        self.moderation = moderation
        self.clock = clock
        self.settings = messaging_settings or settings.messaging
        self.reactions = reactions or ReactionService(store, clock, self.settings)

    async def _load(self, message_id: str) -> Message:
        message = await self.store.get_message(message_id)
        if message is None:
            raise NotFound("Message not found")
        return message

    def _check_transition(
        self, message: Message, requester_id: str, action: str, window_seconds: int
    ) -> None:
        if message.sender_id != requester_id:
            raise PermissionDenied(f"Permission denied: you can only {action} your own messages")
        if message.is_deleted:
            raise AlreadyDeleted(f"Cannot {action} a deleted message")

        age = self.clock.now() - ensure_utc(message.created_at)
        if age > timedelta(seconds=window_seconds):
            raise WindowExpired(
                f"{action.capitalize()} time window expired ({window_seconds // 60} minutes)"
            )

    def _validate_content(self, new_text: str | None) -> str:
        if not new_text or not new_text.strip():
            raise ValidationFailed("Message content cannot be empty")
        if len(new_text) > self.settings.max_content_length:
            raise ValidationFailed(
                f"Message content too long (max {self.settings.max_content_length} characters)"
            )
        return new_text

    async def _check(self, message_id: str, requester_id: str, action: str) -> MutationCheck:
        window = (
            self.settings.edit_window_seconds
            if action == "edit"
            else self.settings.delete_window_seconds
        )
        try:
            message = await self._load(message_id)
            self._check_transition(message, requester_id, action, window)
        except HuddleError as e:
            return MutationCheck(allowed=False, reason=e.message, code=e.code)
        return MutationCheck(allowed=True)

    async def can_edit(self, message_id: str, requester_id: str) -> MutationCheck:
        return await self._check(message_id, requester_id, "edit")

    async def can_delete(self, message_id: str, requester_id: str) -> MutationCheck:
        return await self._check(message_id, requester_id, "delete")

    async def edit(
        self,
        message_id: str,
        requester_id: str,
        new_text: str,
        tone: str | None = None,
    ) -> Message:
        """
        Replace a message's content.

        Both content variants are rederived: the new text becomes the
        original, and the sanitized variant is produced by the moderation
        pipeline when one is configured.

        Raises:
            NotFound, PermissionDenied, AlreadyDeleted, WindowExpired, ValidationFailed
        """
        message = await self._load(message_id)
        self._check_transition(message, requester_id, "edit", self.settings.edit_window_seconds)
        new_text = self._validate_content(new_text)

        if self.moderation is not None:
            result = await self.moderation.sanitize(new_text, tone)
            sanitized, applied_tone = result.sanitized_text, result.applied_tone
        else:
            sanitized, applied_tone = new_text.strip(), None

        now = self.clock.now()
        updated = await self.store.update_message_if_active(
            message_id,
            original_content=new_text,
            sanitized_content=sanitized,
            applied_tone=applied_tone,
            is_edited=True,
            edited_at=now,
            updated_at=now,
        )
        if updated is None:
            raise AlreadyDeleted("Cannot edit a deleted message")

        logger.info(f"Message {message_id} edited by {requester_id}")
        return updated

    async def delete(self, message_id: str, requester_id: str) -> Message:
        """
        Soft-delete a message and cascade its reactions.

        Content is retained for audit; only the flags change.

        Raises:
            NotFound, PermissionDenied, AlreadyDeleted, WindowExpired
        """
        message = await self._load(message_id)
        self._check_transition(message, requester_id, "delete", self.settings.delete_window_seconds)

        now = self.clock.now()
        deleted = await self.store.update_message_if_active(
            message_id,
            is_deleted=True,
            deleted_at=now,
            updated_at=now,
        )
        if deleted is None:
            raise AlreadyDeleted("Message already deleted")

        await self.reactions.remove_all(message_id)
        logger.info(f"Message {message_id} deleted by {requester_id}")
        return deleted
