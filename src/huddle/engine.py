"""
ChatEngine - connection-scoped orchestration of the message lifecycle.

Every operation takes the caller's ConnectionContext (resolved once at
connect time) and returns per-viewer rendered results. State changes are
broadcast to the conversation room ``conversation:{id}`` after the write
succeeds; a failed broadcast is logged and never undoes or fails the write.

Error surface:
- ValidationFailed, PermissionDenied, NotFound, WindowExpired, AlreadyDeleted
  reach the caller unchanged
- Any other failure while sending becomes SendFailed (details are logged only)
- Presence and typing problems are absorbed by their services

Example:
    engine = build_engine()
    await engine.start()

    alice = ConnectionContext(user_id="alice", display_name="Alice")
    inbox = await engine.connect(alice)
    await engine.join_conversation(alice, "general")
    view = await engine.send_message(alice, "general", "hello team")
"""

import asyncio
from typing import Iterable, Optional

from loguru import logger

from .errors import NotFound, PermissionDenied, SendFailed, ValidationFailed
from .models.context import ConnectionContext
from .models.entities import Conversation, ReactionToggleResult, ReadReceipt
from .services.conversations import ConversationService
from .services.dispatch import (
    Broadcaster,
    DispatchEvent,
    LocalBroadcaster,
    MessageCreated,
    MessageDeleted,
    MessageEdited,
    PresenceChanged,
    ReactionChanged,
    ReadReceiptUpdated,
    RedisBroadcaster,
    TypingStateChanged,
    conversation_room,
    user_room,
)
from .services.ephemeral import EphemeralStore, InMemoryEphemeralStore
from .services.messages import (
    MessageMutationService,
    MessageService,
    MessageView,
    MutationCheck,
    render_message,
)
from .services.moderation import ModerationPipeline
from .services.persistence import ChatStore, InMemoryChatStore
from .services.presence import PresenceService, PresenceStatus, TypingService
from .services.reactions import ReactionService
from .services.receipts import ReadReceiptService
from .settings import Settings, settings
from .utils.date_utils import Clock, system_clock


class ChatEngine:
    """Wires the lifecycle services to a broadcaster and a connection registry."""

    def __init__(
        self,
        store: ChatStore,
        ephemeral: EphemeralStore,
        moderation: ModerationPipeline | None = None,
        broadcaster: Broadcaster | None = None,
        registry: LocalBroadcaster | None = None,
        clock: Clock = system_clock,
        app_settings: Settings | None = None,
    ):
        app_settings = app_settings or settings
        self.settings = app_settings
        self.store = store
        self.ephemeral = ephemeral
        self.clock = clock

        self.registry = registry or LocalBroadcaster()
        self.broadcaster = broadcaster or self.registry

        self.moderation = moderation
        self.conversations = ConversationService(store, clock)
        self.reactions = ReactionService(store, clock, app_settings.messaging)
        self.receipts = ReadReceiptService(store, clock)
        self.messages = MessageService(
            store, self.conversations, moderation, clock, app_settings.messaging
        )
        self.mutations = MessageMutationService(
            store, moderation, self.reactions, clock, app_settings.messaging
        )
        self.presence = PresenceService(ephemeral, clock, app_settings.presence)
        self.typing = TypingService(ephemeral, clock, app_settings.presence)

    async def start(self) -> None:
        await self.store.connect()
        await self.typing.start()
        if isinstance(self.broadcaster, RedisBroadcaster):
            await self.broadcaster.start()
        logger.info("Chat engine started")

    async def stop(self) -> None:
        await self.typing.stop()
        await self.broadcaster.close()
        await self.ephemeral.close()
        await self.store.disconnect()
        logger.info("Chat engine stopped")

    async def _emit(
        self, room: str, event: DispatchEvent, exclude_connection: Optional[str] = None
    ) -> None:
        try:
            await self.broadcaster.emit_to_room(room, event, exclude_connection)
        except Exception as e:
            logger.error(f"Broadcast of {event.kind.value} to {room} failed: {e}")

    async def _emit_all(self, event: DispatchEvent) -> None:
        try:
            await self.broadcaster.emit_to_all(event)
        except Exception as e:
            logger.error(f"Broadcast of {event.kind.value} failed: {e}")

    async def _admitted(self, viewer: ConnectionContext, conversation_id: str) -> Conversation:
        conversation = await self.conversations.get(conversation_id)
        if not conversation.admits(viewer.user_id):
            raise PermissionDenied("Not a member of this conversation")
        return conversation

    # Connections and presence

    async def connect(self, viewer: ConnectionContext) -> asyncio.Queue:
        """Register a live connection and announce the user as online."""
        inbox = self.registry.connect(viewer)
        self.registry.join(viewer.connection_id, user_room(viewer.user_id))
        change = await self.presence.set_online(viewer.user_id)
        if change is not None:
            await self._emit_all(PresenceChanged(**change.model_dump()))
        logger.info(f"{viewer.user_id} connected ({viewer.connection_id})")
        return inbox

    async def disconnect(self, viewer: ConnectionContext) -> None:
        """Drop a connection; the user goes offline once their last connection is gone."""
        self.registry.disconnect(viewer.connection_id)
        if self.registry.connections_for_user(viewer.user_id):
            return
        change = await self.presence.set_offline(viewer.user_id)
        if change is not None:
            await self._emit_all(PresenceChanged(**change.model_dump()))
        logger.info(f"{viewer.user_id} disconnected")

    async def heartbeat(self, viewer: ConnectionContext) -> None:
        if await self.presence.heartbeat(viewer.user_id):
            await self._emit_all(
                PresenceChanged(
                    user_id=viewer.user_id,
                    status=PresenceStatus.ONLINE,
                    last_seen=self.clock.now(),
                )
            )

    async def get_presence(self, user_ids: Iterable[str]) -> dict[str, PresenceStatus]:
        return await self.presence.get_batch_status(user_ids)

    # Conversations

    async def join_conversation(self, viewer: ConnectionContext, conversation_id: str) -> Conversation:
        conversation = await self.conversations.ensure(conversation_id)
        if not conversation.admits(viewer.user_id):
            raise PermissionDenied("Not a member of this conversation")
        self.registry.join(viewer.connection_id, conversation_room(conversation.id))
        logger.debug(f"{viewer.user_id} joined {conversation.id}")
        return conversation

    async def leave_conversation(self, viewer: ConnectionContext, conversation_id: str) -> None:
        self.registry.leave(viewer.connection_id, conversation_room(conversation_id))
        await self.typing.stop_typing(conversation_id, viewer.user_id)

    async def open_direct_conversation(
        self, viewer: ConnectionContext, other_user_id: str
    ) -> Conversation:
        conversation = await self.conversations.get_or_create_direct(viewer.user_id, other_user_id)
        self.registry.join(viewer.connection_id, conversation_room(conversation.id))
        return conversation

    async def create_group(
        self, viewer: ConnectionContext, name: str, member_ids: Iterable[str]
    ) -> Conversation:
        conversation = await self.conversations.create_group(name, viewer.user_id, member_ids)
        self.registry.join(viewer.connection_id, conversation_room(conversation.id))
        return conversation

    # Messages

    async def send_message(
        self,
        viewer: ConnectionContext,
        conversation_id: str,
        content: Optional[str],
        media_ref: Optional[str] = None,
        tone: Optional[str] = None,
        instruction_override: Optional[str] = None,
    ) -> MessageView:
        try:
            message = await self.messages.send(
                conversation_id,
                viewer.user_id,
                content,
                media_ref=media_ref,
                tone=tone,
                instruction_override=instruction_override,
            )
        except (ValidationFailed, PermissionDenied, NotFound):
            raise
        except Exception as e:
            logger.exception(f"Send to {conversation_id} by {viewer.user_id} failed: {e}")
            raise SendFailed() from e

        await self.typing.stop_typing(message.conversation_id, viewer.user_id)
        await self._emit(
            conversation_room(message.conversation_id),
            MessageCreated(message=message, sender_name=viewer.display_name),
        )
        return render_message(message, viewer)

    async def list_messages(
        self,
        viewer: ConnectionContext,
        conversation_id: str,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[MessageView]:
        messages = await self.messages.list_messages(
            conversation_id, viewer.user_id, limit=limit, offset=offset
        )
        return [render_message(message, viewer) for message in messages]

    async def edit_message(
        self,
        viewer: ConnectionContext,
        message_id: str,
        new_text: str,
        tone: Optional[str] = None,
    ) -> MessageView:
        message = await self.mutations.edit(message_id, viewer.user_id, new_text, tone=tone)
        await self._emit(conversation_room(message.conversation_id), MessageEdited(message=message))
        return render_message(message, viewer)

    async def delete_message(self, viewer: ConnectionContext, message_id: str) -> MessageView:
        message = await self.mutations.delete(message_id, viewer.user_id)
        await self._emit(
            conversation_room(message.conversation_id),
            MessageDeleted(
                message_id=message.id,
                conversation_id=message.conversation_id,
                deleted_at=message.deleted_at,
                sender_id=message.sender_id,
            ),
        )
        return render_message(message, viewer)

    async def can_edit(self, viewer: ConnectionContext, message_id: str) -> MutationCheck:
        return await self.mutations.can_edit(message_id, viewer.user_id)

    async def can_delete(self, viewer: ConnectionContext, message_id: str) -> MutationCheck:
        return await self.mutations.can_delete(message_id, viewer.user_id)

    # Reactions and receipts

    async def toggle_reaction(
        self, viewer: ConnectionContext, message_id: str, emoji: str
    ) -> ReactionToggleResult:
        message = await self.messages.get(message_id)
        await self._admitted(viewer, message.conversation_id)
        result = await self.reactions.toggle(message_id, viewer.user_id, emoji)
        await self._emit(
            conversation_room(result.conversation_id),
            ReactionChanged(
                message_id=message_id,
                conversation_id=result.conversation_id,
                user_id=viewer.user_id,
                username=viewer.display_name,
                emoji=result.emoji,
                action=result.action,
                reaction_counts=result.counts,
            ),
        )
        return result

    async def mark_read(self, viewer: ConnectionContext, message_id: str) -> ReadReceipt:
        message = await self.messages.get(message_id)
        await self._admitted(viewer, message.conversation_id)
        receipt = await self.receipts.mark_read(message_id, viewer.user_id)
        await self._emit(
            conversation_room(message.conversation_id),
            ReadReceiptUpdated(
                message_id=message_id,
                conversation_id=message.conversation_id,
                user_id=viewer.user_id,
                username=viewer.display_name,
                read_at=receipt.read_at,
            ),
        )
        return receipt

    async def mark_conversation_read(
        self, viewer: ConnectionContext, conversation_id: str
    ) -> list[ReadReceipt]:
        await self._admitted(viewer, conversation_id)
        receipts = await self.receipts.mark_conversation_read(conversation_id, viewer.user_id)
        for receipt in receipts:
            await self._emit(
                conversation_room(conversation_id),
                ReadReceiptUpdated(
                    message_id=receipt.message_id,
                    conversation_id=conversation_id,
                    user_id=viewer.user_id,
                    username=viewer.display_name,
                    read_at=receipt.read_at,
                ),
            )
        return receipts

    # Typing

    async def start_typing(self, viewer: ConnectionContext, conversation_id: str) -> bool:
        """Returns False (and broadcasts nothing) when the call was throttled."""
        accepted = await self.typing.set_typing(
            conversation_id, viewer.user_id, viewer.display_name
        )
        if accepted:
            await self._emit(
                conversation_room(conversation_id),
                TypingStateChanged(
                    conversation_id=conversation_id,
                    user_id=viewer.user_id,
                    username=viewer.display_name,
                    is_typing=True,
                ),
                exclude_connection=viewer.connection_id,
            )
        return accepted

    async def stop_typing(self, viewer: ConnectionContext, conversation_id: str) -> None:
        await self.typing.stop_typing(conversation_id, viewer.user_id)
        await self._emit(
            conversation_room(conversation_id),
            TypingStateChanged(
                conversation_id=conversation_id,
                user_id=viewer.user_id,
                username=viewer.display_name,
                is_typing=False,
            ),
            exclude_connection=viewer.connection_id,
        )


def build_engine(app_settings: Settings | None = None, clock: Clock = system_clock) -> ChatEngine:
    """
    Build a ChatEngine from settings.

    PostgreSQL and Redis are used when enabled; otherwise everything runs
    in process.
    """
    app_settings = app_settings or settings

    if app_settings.postgres.enabled:
        from .services.persistence.postgres import PostgresChatStore

        store: ChatStore = PostgresChatStore(
            app_settings.postgres.connection_string,
            app_settings.postgres.pool_min_size,
            app_settings.postgres.pool_max_size,
        )
    else:
        store = InMemoryChatStore()

    registry = LocalBroadcaster()
    if app_settings.redis.enabled:
        from .services.ephemeral.redis_store import RedisEphemeralStore

        ephemeral: EphemeralStore = RedisEphemeralStore(
            app_settings.redis.url, app_settings.redis.socket_timeout
        )
        broadcaster: Broadcaster = RedisBroadcaster(ephemeral, registry)
    else:
        ephemeral = InMemoryEphemeralStore(clock)
        broadcaster = registry

    moderation = ModerationPipeline(
        llm_settings=app_settings.llm, moderation_settings=app_settings.moderation
    )
    logger.info(
        f"Building chat engine (postgres={app_settings.postgres.enabled}, "
        f"redis={app_settings.redis.enabled}, moderation={app_settings.moderation.enabled})"
    )
    return ChatEngine(
        store,
        ephemeral,
        moderation=moderation,
        broadcaster=broadcaster,
        registry=registry,
        clock=clock,
        app_settings=app_settings,
    )
