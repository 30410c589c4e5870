"""
Reaction toggle store.

Toggling is delete-first: if the (message, user, emoji) row existed it is
removed, otherwise it is inserted. Both branches lean on the storage-level
composite key, so two concurrent toggles from the same user resolve to one
row change each instead of a duplicate. Counts are always recomputed in full
after the mutation.
"""

from loguru import logger

from ...errors import NotFound, ValidationFailed
from ...models.entities import (
    Reaction,
    ReactionCount,
    ReactionToggleResult,
    Reactor,
)
from ...settings import MessagingSettings, settings
from ...utils.date_utils import Clock, system_clock
from ..persistence import ChatStore


class ReactionService:
    """Idempotent per-user emoji reactions on messages."""

    def __init__(
        self,
        store: ChatStore,
        clock: Clock = system_clock,
        messaging_settings: MessagingSettings | None = None,
    ):
        self.store = store
        self.clock = clock
        self.settings = messaging_settings or settings.messaging

    def validate_emoji(self, emoji: str | None) -> str:
        if not emoji or len(emoji) > self.settings.max_emoji_length:
            raise ValidationFailed("Invalid emoji")
        return emoji

    async def toggle(self, message_id: str, user_id: str, emoji: str) -> ReactionToggleResult:
        """
        Add the reaction if absent, remove it if present.

        Raises:
            ValidationFailed: emoji empty/too long or message deleted
            NotFound: message does not exist
        """
        emoji = self.validate_emoji(emoji)

        message = await self.store.get_message(message_id)
        if message is None:
            raise NotFound("Message not found")
        if message.is_deleted:
            raise ValidationFailed("Cannot react to deleted messages")

        if await self.store.delete_reaction(message_id, user_id, emoji):
            action = "removed"
        else:
            inserted = await self.store.insert_reaction(
                Reaction(
                    message_id=message_id,
                    user_id=user_id,
                    emoji=emoji,
                    created_at=self.clock.now(),
                )
            )
            # A racing toggle inserted first; our toggle removes it
            if inserted:
                action = "added"
            else:
                await self.store.delete_reaction(message_id, user_id, emoji)
                action = "removed"

        counts = await self.store.count_reactions(message_id)
        logger.info(f"Reaction {action}: {emoji} on {message_id} by {user_id}")
        return ReactionToggleResult(
            action=action,
            message_id=message_id,
            conversation_id=message.conversation_id,
            user_id=user_id,
            emoji=emoji,
            counts=counts,
        )

    async def get_counts(self, message_id: str) -> dict[str, int]:
        return await self.store.count_reactions(message_id)

    async def get_detailed(self, message_id: str) -> dict[str, list[Reactor]]:
        """Reactors per emoji, each list in insertion order."""
        grouped: dict[str, list[Reactor]] = {}
        for reaction in await self.store.find_reactions(message_id):
            grouped.setdefault(reaction.emoji, []).append(
                Reactor(user_id=reaction.user_id, created_at=reaction.created_at)
            )
        return grouped

    async def has_user_reacted(self, message_id: str, user_id: str, emoji: str) -> bool:
        reactions = await self.store.find_reactions(message_id)
        return any(r.user_id == user_id and r.emoji == emoji for r in reactions)

    async def get_user_reactions_in_conversation(
        self, user_id: str, conversation_id: str
    ) -> list[Reaction]:
        return await self.store.find_user_reactions(user_id, conversation_id)

    async def get_top(self, message_id: str, limit: int = 5) -> list[ReactionCount]:
        """Most used emojis; ties go to the emoji that was inserted first."""
        counts = await self.store.count_reactions(message_id)
        # counts is keyed in first-insertion order and sorted() is stable
        ranked = sorted(counts.items(), key=lambda item: -item[1])
        return [ReactionCount(emoji=emoji, count=count) for emoji, count in ranked[:limit]]

    async def remove_all(self, message_id: str) -> int:
        removed = await self.store.delete_reactions_for_message(message_id)
        logger.info(f"All reactions removed from {message_id} ({removed})")
        return removed
