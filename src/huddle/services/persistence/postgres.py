"""
PostgresChatStore - asyncpg implementation of the chat store.

Concurrency guarantees come from the database, not from application code:
- Edits and deletes are ``UPDATE ... WHERE id = $1 AND is_deleted = FALSE``
  so a racing second mutation updates zero rows
- Reactions have a (message_id, user_id, emoji) primary key and insert with
  ``ON CONFLICT DO NOTHING``
- Read receipts have a (message_id, user_id) primary key and upsert with
  ``ON CONFLICT DO UPDATE SET read_at``

The ``seq`` column on reactions records insertion order, which keeps
reactor lists and top-N tie-breaks stable when timestamps collide.
"""

from datetime import datetime
from typing import Any, Iterable, Optional

import asyncpg
from loguru import logger

from ...errors import ResourceUnavailable
from ...models.entities import Conversation, Message, Reaction, ReadReceipt
from ...settings import settings
from .base import ChatStore

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS conversations (
    id TEXT PRIMARY KEY,
    name TEXT,
    kind TEXT NOT NULL DEFAULT 'open',
    member_ids TEXT[] NOT NULL DEFAULT '{}',
    last_activity_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS messages (
    id TEXT PRIMARY KEY,
    conversation_id TEXT NOT NULL REFERENCES conversations(id),
    sender_id TEXT NOT NULL,
    original_content TEXT NOT NULL DEFAULT '',
    sanitized_content TEXT NOT NULL DEFAULT '',
    applied_tone TEXT,
    media_ref TEXT,
    is_edited BOOLEAN NOT NULL DEFAULT FALSE,
    edited_at TIMESTAMPTZ,
    is_deleted BOOLEAN NOT NULL DEFAULT FALSE,
    deleted_at TIMESTAMPTZ,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_messages_conversation_created
    ON messages (conversation_id, created_at DESC);

CREATE TABLE IF NOT EXISTS reactions (
    message_id TEXT NOT NULL REFERENCES messages(id),
    user_id TEXT NOT NULL,
    emoji TEXT NOT NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    seq BIGSERIAL,
    PRIMARY KEY (message_id, user_id, emoji)
);

CREATE INDEX IF NOT EXISTS idx_reactions_user ON reactions (user_id);

CREATE TABLE IF NOT EXISTS read_receipts (
    message_id TEXT NOT NULL REFERENCES messages(id),
    user_id TEXT NOT NULL,
    read_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    PRIMARY KEY (message_id, user_id)
);
"""

# Columns the mutation state machine is allowed to change
MUTABLE_MESSAGE_FIELDS = {
    "original_content",
    "sanitized_content",
    "applied_tone",
    "is_edited",
    "edited_at",
    "is_deleted",
    "deleted_at",
    "updated_at",
}


def _conversation_from_row(row: asyncpg.Record) -> Conversation:
    data = dict(row)
    data["member_ids"] = set(data.get("member_ids") or [])
    return Conversation.model_validate(data)


class PostgresChatStore(ChatStore):
    """
    PostgreSQL chat store.

    Example:
        store = PostgresChatStore()
        await store.connect()
        await store.apply_schema()
        message = await store.get_message("msg_...")
    """

    def __init__(
        self,
        connection_string: str | None = None,
        pool_min_size: int | None = None,
        pool_max_size: int | None = None,
    ):
        self.connection_string = connection_string or settings.postgres.connection_string
        self.pool_min_size = pool_min_size or settings.postgres.pool_min_size
        self.pool_max_size = pool_max_size or settings.postgres.pool_max_size
        self.pool: Optional[asyncpg.Pool] = None

    async def connect(self) -> None:
        """Establish database connection pool."""
        logger.info(f"Connecting to PostgreSQL with pool size {self.pool_max_size}")
        try:
            self.pool = await asyncpg.create_pool(
                self.connection_string,
                min_size=self.pool_min_size,
                max_size=self.pool_max_size,
            )
        except (OSError, asyncpg.PostgresError) as e:
            raise ResourceUnavailable(f"PostgreSQL unreachable: {e}") from e
        logger.info("PostgreSQL connection pool established")

    async def disconnect(self) -> None:
        """Close database connection pool."""
        if self.pool:
            logger.info("Closing PostgreSQL connection pool")
            await self.pool.close()
            self.pool = None

    async def _pool(self) -> asyncpg.Pool:
        if not self.pool:
            await self.connect()
        return self.pool

    async def apply_schema(self) -> None:
        pool = await self._pool()
        async with pool.acquire() as conn:
            await conn.execute(SCHEMA_SQL)
        logger.info("Chat schema applied")

    # Messages

    async def create_message(self, message: Message) -> Message:
        pool = await self._pool()
        async with pool.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO messages (
                    id, conversation_id, sender_id, original_content, sanitized_content,
                    applied_tone, media_ref, is_edited, edited_at, is_deleted, deleted_at,
                    created_at, updated_at
                ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13)
                """,
                message.id,
                message.conversation_id,
                message.sender_id,
                message.original_content,
                message.sanitized_content,
                message.applied_tone,
                message.media_ref,
                message.is_edited,
                message.edited_at,
                message.is_deleted,
                message.deleted_at,
                message.created_at,
                message.updated_at,
            )
        return message

    async def get_message(self, message_id: str) -> Optional[Message]:
        pool = await self._pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow("SELECT * FROM messages WHERE id = $1", message_id)
        return Message.model_validate(dict(row)) if row else None

    async def list_messages(
        self,
        conversation_id: str,
        limit: int,
        offset: int = 0,
        include_deleted: bool = False,
    ) -> list[Message]:
        deleted_filter = "" if include_deleted else "AND is_deleted = FALSE"
        query = f"""
            SELECT * FROM messages
            WHERE conversation_id = $1 {deleted_filter}
            ORDER BY created_at DESC
            LIMIT $2 OFFSET $3
        """
        pool = await self._pool()
        async with pool.acquire() as conn:
            rows = await conn.fetch(query, conversation_id, limit, offset)
        return [Message.model_validate(dict(row)) for row in reversed(rows)]

    async def list_message_ids(
        self, conversation_id: str, exclude_sender_id: Optional[str] = None
    ) -> list[str]:
        pool = await self._pool()
        async with pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT id FROM messages
                WHERE conversation_id = $1
                  AND is_deleted = FALSE
                  AND ($2::text IS NULL OR sender_id <> $2)
                ORDER BY created_at ASC
                """,
                conversation_id,
                exclude_sender_id,
            )
        return [row["id"] for row in rows]

    async def update_message_if_active(
        self, message_id: str, **fields: Any
    ) -> Optional[Message]:
        unknown = set(fields) - MUTABLE_MESSAGE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update message fields: {sorted(unknown)}")

        columns = list(fields)
        assignments = ", ".join(f"{col} = ${i + 2}" for i, col in enumerate(columns))
        query = f"""
            UPDATE messages SET {assignments}
            WHERE id = $1 AND is_deleted = FALSE
            RETURNING *
        """
        pool = await self._pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(query, message_id, *[fields[c] for c in columns])
        return Message.model_validate(dict(row)) if row else None

    # Conversations

    async def create_conversation(self, conversation: Conversation) -> Conversation:
        pool = await self._pool()
        async with pool.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO conversations (
                    id, name, kind, member_ids, last_activity_at, created_at, updated_at
                ) VALUES ($1, $2, $3, $4, $5, $6, $7)
                """,
                conversation.id,
                conversation.name,
                conversation.kind.value,
                sorted(conversation.member_ids),
                conversation.last_activity_at,
                conversation.created_at,
                conversation.updated_at,
            )
        return conversation

    async def create_conversation_if_absent(self, conversation: Conversation) -> Conversation:
        pool = await self._pool()
        async with pool.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO conversations (
                    id, name, kind, member_ids, last_activity_at, created_at, updated_at
                ) VALUES ($1, $2, $3, $4, $5, $6, $7)
                ON CONFLICT (id) DO NOTHING
                """,
                conversation.id,
                conversation.name,
                conversation.kind.value,
                sorted(conversation.member_ids),
                conversation.last_activity_at,
                conversation.created_at,
                conversation.updated_at,
            )
            row = await conn.fetchrow(
                "SELECT * FROM conversations WHERE id = $1", conversation.id
            )
        return _conversation_from_row(row)

    async def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        pool = await self._pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                "SELECT * FROM conversations WHERE id = $1", conversation_id
            )
        return _conversation_from_row(row) if row else None

    async def touch_conversation(
        self,
        conversation_id: str,
        at: datetime,
        participant_id: Optional[str] = None,
    ) -> None:
        pool = await self._pool()
        async with pool.acquire() as conn:
            await conn.execute(
                """
                UPDATE conversations
                SET last_activity_at = $2,
                    updated_at = $2,
                    member_ids = CASE
                        WHEN $3::text IS NULL OR $3 = ANY(member_ids) THEN member_ids
                        ELSE array_append(member_ids, $3)
                    END
                WHERE id = $1
                """,
                conversation_id,
                at,
                participant_id,
            )

    # Reactions

    async def insert_reaction(self, reaction: Reaction) -> bool:
        pool = await self._pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                INSERT INTO reactions (message_id, user_id, emoji, created_at)
                VALUES ($1, $2, $3, $4)
                ON CONFLICT (message_id, user_id, emoji) DO NOTHING
                RETURNING seq
                """,
                reaction.message_id,
                reaction.user_id,
                reaction.emoji,
                reaction.created_at,
            )
        return row is not None

    async def delete_reaction(self, message_id: str, user_id: str, emoji: str) -> bool:
        pool = await self._pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                DELETE FROM reactions
                WHERE message_id = $1 AND user_id = $2 AND emoji = $3
                RETURNING seq
                """,
                message_id,
                user_id,
                emoji,
            )
        return row is not None

    async def find_reactions(self, message_id: str) -> list[Reaction]:
        pool = await self._pool()
        async with pool.acquire() as conn:
            rows = await conn.fetch(
                "SELECT * FROM reactions WHERE message_id = $1 ORDER BY seq ASC",
                message_id,
            )
        return [Reaction.model_validate(dict(row)) for row in rows]

    async def count_reactions(self, message_id: str) -> dict[str, int]:
        pool = await self._pool()
        async with pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT emoji, COUNT(*) AS count, MIN(seq) AS first_seq
                FROM reactions
                WHERE message_id = $1
                GROUP BY emoji
                ORDER BY first_seq ASC
                """,
                message_id,
            )
        return {row["emoji"]: row["count"] for row in rows}

    async def find_user_reactions(
        self, user_id: str, conversation_id: str
    ) -> list[Reaction]:
        pool = await self._pool()
        async with pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT r.* FROM reactions r
                JOIN messages m ON m.id = r.message_id
                WHERE r.user_id = $1 AND m.conversation_id = $2
                ORDER BY r.created_at DESC, r.seq DESC
                """,
                user_id,
                conversation_id,
            )
        return [Reaction.model_validate(dict(row)) for row in rows]

    async def delete_reactions_for_message(self, message_id: str) -> int:
        pool = await self._pool()
        async with pool.acquire() as conn:
            rows = await conn.fetch(
                "DELETE FROM reactions WHERE message_id = $1 RETURNING seq", message_id
            )
        return len(rows)

    # Read receipts

    async def upsert_receipt(self, receipt: ReadReceipt) -> ReadReceipt:
        pool = await self._pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                INSERT INTO read_receipts (message_id, user_id, read_at)
                VALUES ($1, $2, $3)
                ON CONFLICT (message_id, user_id) DO UPDATE SET read_at = EXCLUDED.read_at
                RETURNING *
                """,
                receipt.message_id,
                receipt.user_id,
                receipt.read_at,
            )
        return ReadReceipt.model_validate(dict(row))

    async def find_receipts(self, message_id: str) -> list[ReadReceipt]:
        pool = await self._pool()
        async with pool.acquire() as conn:
            rows = await conn.fetch(
                "SELECT * FROM read_receipts WHERE message_id = $1 ORDER BY read_at ASC",
                message_id,
            )
        return [ReadReceipt.model_validate(dict(row)) for row in rows]

    async def find_receipts_for_messages(
        self, message_ids: Iterable[str], user_id: Optional[str] = None
    ) -> list[ReadReceipt]:
        pool = await self._pool()
        async with pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT * FROM read_receipts
                WHERE message_id = ANY($1::text[])
                  AND ($2::text IS NULL OR user_id = $2)
                """,
                list(message_ids),
                user_id,
            )
        return [ReadReceipt.model_validate(dict(row)) for row in rows]

    async def count_receipts_for_messages(
        self, message_ids: Iterable[str]
    ) -> dict[str, int]:
        pool = await self._pool()
        async with pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT message_id, COUNT(*) AS count FROM read_receipts
                WHERE message_id = ANY($1::text[])
                GROUP BY message_id
                """,
                list(message_ids),
            )
        return {row["message_id"]: row["count"] for row in rows}
