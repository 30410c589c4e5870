"""
Tests for dispatch events and broadcasters.

Message text is rendered per recipient, so the same event must reach the
sender, a member and an admin with different content.
"""

import asyncio

import pytest

from huddle.models.entities import Message
from huddle.services.dispatch import (
    LocalBroadcaster,
    MessageCreated,
    MessageEdited,
    ReactionChanged,
    RedisBroadcaster,
    TypingStateChanged,
    conversation_room,
    event_from_dict,
)

ROOM = conversation_room("general")


def drain(inbox: asyncio.Queue) -> list:
    deliveries = []
    while not inbox.empty():
        deliveries.append(inbox.get_nowait())
    return deliveries


@pytest.fixture
def message(clock):
    return Message(
        conversation_id="general",
        sender_id="alice",
        original_content="this is crap",
        sanitized_content="I am frustrated with this situation.",
        created_at=clock.now(),
        updated_at=clock.now(),
    )


@pytest.fixture
def local(alice, bob, admin):
    broadcaster = LocalBroadcaster()
    for viewer in (alice, bob, admin):
        broadcaster.connect(viewer)
        broadcaster.join(viewer.connection_id, ROOM)
    return broadcaster


@pytest.mark.asyncio
class TestLocalBroadcaster:
    async def test_payload_rendered_per_viewer(self, local, alice, bob, admin, message):
        """Sender and admin get the original, members the sanitized text."""
        await local.emit_to_room(ROOM, MessageCreated(message=message, sender_name="Alice"))

        contents = {}
        for viewer in (alice, bob, admin):
            (delivery,) = drain(local.connect(viewer))
            assert delivery.kind == "message-created"
            assert delivery.room == ROOM
            contents[viewer.user_id] = delivery.payload["message"]["content"]

        assert contents == {
            "alice": "this is crap",
            "bob": "I am frustrated with this situation.",
            "root": "this is crap",
        }

    async def test_edit_payload(self, local, bob, message, clock):
        message.is_edited = True
        message.edited_at = clock.now()
        await local.emit_to_room(ROOM, MessageEdited(message=message))

        (delivery,) = drain(local.connect(bob))
        assert delivery.payload["new_content"] == "I am frustrated with this situation."
        assert delivery.payload["message_id"] == message.id
        assert delivery.payload["edited_at"] == clock.now().isoformat()

    async def test_exclude_connection(self, local, alice, bob):
        event = TypingStateChanged(conversation_id="general", user_id="alice", is_typing=True)
        await local.emit_to_room(ROOM, event, exclude_connection=alice.connection_id)

        assert drain(local.connect(alice)) == []
        assert len(drain(local.connect(bob))) == 1

    async def test_order_preserved(self, local, bob):
        for emoji in ("👍", "🎉", "🔥"):
            await local.emit_to_room(
                ROOM,
                ReactionChanged(
                    message_id="m1",
                    conversation_id="general",
                    user_id="alice",
                    emoji=emoji,
                    action="added",
                    reaction_counts={emoji: 1},
                ),
            )
        assert [d.payload["emoji"] for d in drain(local.connect(bob))] == ["👍", "🎉", "🔥"]

    async def test_emit_to_connection_and_all(self, local, alice, bob, admin):
        event = TypingStateChanged(conversation_id="general", user_id="bob", is_typing=False)
        await local.emit_to_connection(alice.connection_id, event)
        assert len(drain(local.connect(alice))) == 1
        assert drain(local.connect(bob)) == []

        await local.emit_to_all(event)
        assert all(len(drain(local.connect(v))) == 1 for v in (alice, bob, admin))

    async def test_disconnect_leaves_rooms(self, local, bob):
        local.disconnect(bob.connection_id)
        assert bob.connection_id not in local.room_members(ROOM)
        assert not local.is_connected(bob.connection_id)
        assert local.connections_for_user("bob") == []

    async def test_join_unknown_connection(self, local):
        with pytest.raises(KeyError):
            local.join("nope", ROOM)

    async def test_leave(self, local, bob):
        local.leave(bob.connection_id, ROOM)
        await local.emit_to_all(
            TypingStateChanged(conversation_id="general", user_id="x", is_typing=True)
        )
        await local.emit_to_room(
            ROOM, TypingStateChanged(conversation_id="general", user_id="x", is_typing=False)
        )
        assert len(drain(local.connect(bob))) == 1


class TestEventSerialization:
    def test_rebuild_from_dict(self, message, bob):
        """Relayed events are rebuilt from their JSON dump and still render per viewer."""
        event = MessageEdited(message=message)
        rebuilt = event_from_dict("message-edited", event.model_dump(mode="json"))
        assert rebuilt.payload_for(bob) == event.payload_for(bob)

    def test_unknown_kind(self):
        with pytest.raises(ValueError):
            event_from_dict("message-exploded", {})


@pytest.mark.asyncio
class TestRedisBroadcaster:
    async def test_relay_through_pubsub(self, ephemeral_store, alice, bob, message):
        """Published events come back through the channel and render locally."""
        local = LocalBroadcaster()
        broadcaster = RedisBroadcaster(ephemeral_store, local)
        for viewer in (alice, bob):
            local.connect(viewer)
            local.join(viewer.connection_id, ROOM)

        await broadcaster.start()
        try:
            await broadcaster.emit_to_room(ROOM, MessageCreated(message=message))
            bob_delivery = await asyncio.wait_for(local.connect(bob).get(), timeout=1)
            alice_delivery = await asyncio.wait_for(local.connect(alice).get(), timeout=1)
        finally:
            await broadcaster.close()

        assert bob_delivery.payload["message"]["content"] == message.sanitized_content
        assert alice_delivery.payload["message"]["content"] == message.original_content
        assert not broadcaster.running

    async def test_relay_exclude_and_direct(self, ephemeral_store, alice, bob):
        local = LocalBroadcaster()
        broadcaster = RedisBroadcaster(ephemeral_store, local)
        local.connect(alice)
        local.connect(bob)
        local.join(alice.connection_id, ROOM)
        local.join(bob.connection_id, ROOM)

        await broadcaster.start()
        try:
            event = TypingStateChanged(conversation_id="general", user_id="alice", is_typing=True)
            await broadcaster.emit_to_room(ROOM, event, exclude_connection=alice.connection_id)
            await broadcaster.emit_to_connection(alice.connection_id, event)

            bob_delivery = await asyncio.wait_for(local.connect(bob).get(), timeout=1)
            alice_delivery = await asyncio.wait_for(local.connect(alice).get(), timeout=1)
        finally:
            await broadcaster.close()

        assert bob_delivery.room == ROOM
        assert alice_delivery.room is None
