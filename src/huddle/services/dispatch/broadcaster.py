"""
Broadcast boundary.

Core code emits an event to a room, to one connection, or to everyone;
delivery is at-least-once and best effort. Per-sender order is kept because
each emit enqueues to every recipient before returning.

- LocalBroadcaster: in-process registry of live connections and rooms; each
  connection gets its own queue and its own rendering of the payload
- RedisBroadcaster: publishes serialized events on a Redis channel and relays
  received events into a LocalBroadcaster, so every process renders for its
  own connections
"""

import asyncio
import json
from abc import ABC, abstractmethod
from typing import Any, Optional

from loguru import logger
from pydantic import BaseModel

from ...models.context import ConnectionContext
from ..ephemeral import EphemeralStore, Subscription
from .events import DispatchEvent, event_from_dict

DISPATCH_CHANNEL = "huddle:dispatch"


def conversation_room(conversation_id: str) -> str:
    return f"conversation:{conversation_id}"


def user_room(user_id: str) -> str:
    return f"user:{user_id}"


class Delivery(BaseModel):
    """What a connection receives."""

    kind: str
    room: Optional[str] = None
    payload: dict[str, Any]


class Broadcaster(ABC):
    """Fan-out collaborator."""

    @abstractmethod
    async def emit_to_room(
        self, room: str, event: DispatchEvent, exclude_connection: Optional[str] = None
    ) -> None:
        ...

    @abstractmethod
    async def emit_to_connection(self, connection_id: str, event: DispatchEvent) -> None:
        ...

    @abstractmethod
    async def emit_to_all(self, event: DispatchEvent) -> None:
        ...

    async def close(self) -> None:
        """Release resources (no-op by default)."""


class LocalBroadcaster(Broadcaster):
    """
    In-process connection and room registry.

    Example:
        broadcaster = LocalBroadcaster()
        inbox = broadcaster.connect(viewer)
        broadcaster.join(viewer.connection_id, "conversation:general")
        delivery = await inbox.get()
    """

    def __init__(self):
        self._connections: dict[str, tuple[ConnectionContext, asyncio.Queue]] = {}
        self._rooms: dict[str, set[str]] = {}

    def connect(self, viewer: ConnectionContext) -> asyncio.Queue:
        existing = self._connections.get(viewer.connection_id)
        if existing:
            return existing[1]
        queue: asyncio.Queue[Delivery] = asyncio.Queue()
        self._connections[viewer.connection_id] = (viewer, queue)
        logger.debug(f"Connection {viewer.connection_id} registered for {viewer.user_id}")
        return queue

    def disconnect(self, connection_id: str) -> None:
        self._connections.pop(connection_id, None)
        for members in self._rooms.values():
            members.discard(connection_id)
        self._rooms = {room: members for room, members in self._rooms.items() if members}

    def join(self, connection_id: str, room: str) -> None:
        if connection_id not in self._connections:
            raise KeyError(f"Unknown connection {connection_id}")
        self._rooms.setdefault(room, set()).add(connection_id)

    def leave(self, connection_id: str, room: str) -> None:
        members = self._rooms.get(room)
        if members:
            members.discard(connection_id)
            if not members:
                del self._rooms[room]

    def room_members(self, room: str) -> set[str]:
        return set(self._rooms.get(room, set()))

    def is_connected(self, connection_id: str) -> bool:
        return connection_id in self._connections

    def connections_for_user(self, user_id: str) -> list[str]:
        return [cid for cid, (viewer, _) in self._connections.items() if viewer.user_id == user_id]

    def _deliver(self, connection_id: str, event: DispatchEvent, room: Optional[str]) -> None:
        entry = self._connections.get(connection_id)
        if entry is None:
            return
        viewer, queue = entry
        queue.put_nowait(
            Delivery(kind=event.kind.value, room=room, payload=event.payload_for(viewer))
        )

    async def emit_to_room(
        self, room: str, event: DispatchEvent, exclude_connection: Optional[str] = None
    ) -> None:
        for connection_id in sorted(self._rooms.get(room, set())):
            if connection_id != exclude_connection:
                self._deliver(connection_id, event, room)

    async def emit_to_connection(self, connection_id: str, event: DispatchEvent) -> None:
        self._deliver(connection_id, event, None)

    async def emit_to_all(self, event: DispatchEvent) -> None:
        for connection_id in list(self._connections):
            self._deliver(connection_id, event, None)


class RedisBroadcaster(Broadcaster):
    """
    Cross-process fan-out over the ephemeral store's pub/sub.

    Events are published with their full model; ``start()`` relays every
    received event into ``local`` which renders it per connection.
    """

    def __init__(
        self,
        store: EphemeralStore,
        local: LocalBroadcaster | None = None,
        channel: str = DISPATCH_CHANNEL,
    ):
        self.store = store
        self.local = local or LocalBroadcaster()
        self.channel = channel
        self._subscription: Subscription | None = None
        self._relay: asyncio.Task | None = None
        self.running = False

    async def _publish(self, target: str, event: DispatchEvent, **extra: Any) -> None:
        envelope = {
            "target": target,
            "kind": event.kind.value,
            "event": event.model_dump(mode="json"),
            **extra,
        }
        await self.store.publish(self.channel, json.dumps(envelope))

    async def emit_to_room(
        self, room: str, event: DispatchEvent, exclude_connection: Optional[str] = None
    ) -> None:
        await self._publish("room", event, room=room, exclude=exclude_connection)

    async def emit_to_connection(self, connection_id: str, event: DispatchEvent) -> None:
        await self._publish("connection", event, connection_id=connection_id)

    async def emit_to_all(self, event: DispatchEvent) -> None:
        await self._publish("all", event)

    async def relay(self, raw: str) -> None:
        """Deliver one published envelope to local connections."""
        envelope = json.loads(raw)
        event = event_from_dict(envelope["kind"], envelope["event"])
        target = envelope["target"]
        if target == "room":
            await self.local.emit_to_room(envelope["room"], event, envelope.get("exclude"))
        elif target == "connection":
            await self.local.emit_to_connection(envelope["connection_id"], event)
        else:
            await self.local.emit_to_all(event)

    async def start(self) -> None:
        if self.running:
            logger.warning("Dispatch relay already running")
            return
        self._subscription = await self.store.subscribe(self.channel)
        self.running = True
        self._relay = asyncio.create_task(self._relay_loop())
        logger.info(f"Dispatch relay subscribed to {self.channel}")

    async def _relay_loop(self) -> None:
        while self.running:
            try:
                raw = await self._subscription.get()
                if raw is not None:
                    await self.relay(raw)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Dispatch relay error: {e}")
                # Keep relaying; back off while the store is unreachable
                await asyncio.sleep(1)

    async def close(self) -> None:
        if not self.running:
            return
        self.running = False
        if self._relay:
            self._relay.cancel()
            await asyncio.gather(self._relay, return_exceptions=True)
            self._relay = None
        if self._subscription:
            await self._subscription.close()
            self._subscription = None
        logger.info("Dispatch relay stopped")
