"""
Message sending flow.

send -> validate -> resolve conversation -> membership -> moderation ->
persist -> touch conversation. Moderation never fails a send: the pipeline
degrades to its fallback internally.
"""

from typing import Optional

from loguru import logger

from ...errors import NotFound, PermissionDenied, ValidationFailed
from ...models.entities import Message
from ...settings import MessagingSettings, settings
from ...utils.date_utils import Clock, system_clock
from ..conversations import ConversationService
from ..moderation import ModerationPipeline, ToneDirective
from ..persistence import ChatStore


class MessageService:
    """Create and read messages."""

    def __init__(
        self,
        store: ChatStore,
        conversations: ConversationService | None = None,
        moderation: ModerationPipeline | None = None,
        clock: Clock = system_clock,
        messaging_settings: MessagingSettings | None = None,
    ):
        self.store = store
        self.clock = clock
        self.conversations = conversations or ConversationService(store, clock)
        self.moderation = moderation
        self.settings = messaging_settings or settings.messaging

    def _validate(self, content: str, media_ref: Optional[str]) -> None:
        if not content.strip() and not media_ref:
            raise ValidationFailed("Message must contain text or media")
        if len(content) > self.settings.max_content_length:
            raise ValidationFailed(
                f"Message content too long (max {self.settings.max_content_length} characters)"
            )

    async def send(
        self,
        conversation_id: str,
        sender_id: str,
        content: Optional[str],
        media_ref: Optional[str] = None,
        tone: Optional[str] = None,
        instruction_override: Optional[str] = None,
    ) -> Message:
        """
        Moderate and persist a new message.

        ``original_content`` is stored exactly as submitted.

        Raises:
            ValidationFailed: no text and no media, text too long, unknown tone
            PermissionDenied: sender is not admitted to the conversation
        """
        content = content or ""
        self._validate(content, media_ref)
        if tone is not None:
            ToneDirective.parse(tone)

        conversation = await self.conversations.ensure(conversation_id)
        if not conversation.admits(sender_id):
            raise PermissionDenied("Not a member of this conversation")

        sanitized, applied_tone = content, None
        if content.strip() and self.moderation is not None:
            result = await self.moderation.sanitize(content, tone, instruction_override)
            sanitized, applied_tone = result.sanitized_text, result.applied_tone

        now = self.clock.now()
        message = await self.store.create_message(
            Message(
                conversation_id=conversation.id,
                sender_id=sender_id,
                original_content=content,
                sanitized_content=sanitized,
                applied_tone=applied_tone,
                media_ref=media_ref,
                created_at=now,
                updated_at=now,
            )
        )
        await self.conversations.touch(conversation.id, now, participant_id=sender_id)

        logger.info(f"Message {message.id} sent to {conversation.id} by {sender_id}")
        return message

    async def get(self, message_id: str) -> Message:
        message = await self.store.get_message(message_id)
        if message is None:
            raise NotFound("Message not found")
        return message

    async def list_messages(
        self,
        conversation_id: str,
        viewer_id: str,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[Message]:
        """Latest page of non-deleted messages, oldest first."""
        conversation = await self.conversations.get(conversation_id)
        if not conversation.admits(viewer_id):
            raise PermissionDenied("Not a member of this conversation")

        limit = min(limit or self.settings.page_size, self.settings.page_size * 10)
        if limit < 1 or offset < 0:
            raise ValidationFailed("Invalid page parameters")
        return await self.store.list_messages(conversation_id, limit=limit, offset=offset)
