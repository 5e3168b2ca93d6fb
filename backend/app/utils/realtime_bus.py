import asyncio
import logging
from typing import Any, List, Optional, Protocol

from pymongo.errors import PyMongoError

from app.repositories.user_repository import UserRepository
from app.services.exceptions import StaleConnectionError
from app.utils.typing_tracker import DEFAULT_TYPING_TIMEOUT, TypingTracker
from app.utils.websocket_manager import ClientConnection, PresenceRegistry


logger = logging.getLogger(__name__)

# point-to-point events
NEW_MESSAGE = "newMessage"
MESSAGE_REACTION = "messageReaction"
MESSAGES_SEEN = "messagesSeen"
MESSAGE_EDITED = "messageEdited"
MESSAGE_DELETED = "messageDeleted"
USER_TYPING = "userTyping"
RECORDING = "recording"
# request/reply
ONLINE_STATUS = "getOnlineStatus"
# broadcast
ONLINE_USERS = "getOnlineUsers"


class RealtimeGateway(Protocol):

    enabled: bool

    async def on_connect(self, user_id: str, connection: ClientConnection) -> None: ...

    async def on_disconnect(self, connection: ClientConnection) -> None: ...

    async def query_online_status(self, connection: ClientConnection, target_user_id: str, ref: Optional[str] = None) -> bool: ...

    async def route_to_peer(self, event: str, peer_user_id: str, payload: Any) -> bool: ...

    async def broadcast_roster(self) -> None: ...

    async def typing(self, user_id: str, receiver_id: str, is_typing: bool) -> None: ...

    async def recording(self, user_id: str, receiver_id: str, is_recording: bool) -> None: ...

    def shutdown(self) -> None: ...


class NoopGateway:
    """Accepts every call and delivers nothing (HTTP-only deployments)."""

    enabled = False

    async def on_connect(self, user_id: str, connection: ClientConnection) -> None:
        return

    async def on_disconnect(self, connection: ClientConnection) -> None:
        return

    async def query_online_status(self, connection: ClientConnection, target_user_id: str, ref: Optional[str] = None) -> bool:
        return False

    async def route_to_peer(self, event: str, peer_user_id: str, payload: Any) -> bool:
        return False

    async def broadcast_roster(self) -> None:
        return

    async def typing(self, user_id: str, receiver_id: str, is_typing: bool) -> None:
        return

    async def recording(self, user_id: str, receiver_id: str, is_recording: bool) -> None:
        return

    def shutdown(self) -> None:
        return


class LiveGateway:
    """Routes events over the sockets held in the presence registry.

    Delivery is at-most-once: events for offline users are dropped, and a write
    that fails is handled as that connection disconnecting.
    """

    enabled = True

    def __init__(self, registry: PresenceRegistry, users: UserRepository, typing_timeout: float = DEFAULT_TYPING_TIMEOUT) -> None:
        self.registry = registry
        self.users = users
        self.typing_tracker = TypingTracker(self._emit_typing, timeout=typing_timeout)

    async def on_connect(self, user_id: str, connection: ClientConnection) -> None:
        self.registry.bind(user_id, connection)
        logger.info("User %s connected (%r)", user_id, connection)
        await self.broadcast_roster()

    async def on_disconnect(self, connection: ClientConnection) -> None:
        connection.closed = True
        user_id = self.registry.unbind(connection)
        if user_id is None:
            return
        logger.info("User %s disconnected (%r)", user_id, connection)
        await self.typing_tracker.clear(user_id)
        try:
            await self.users.update_last_seen(user_id)
        except PyMongoError:
            logger.exception("Could not persist last_seen for %s", user_id)
        await self.broadcast_roster()

    async def query_online_status(self, connection: ClientConnection, target_user_id: str, ref: Optional[str] = None) -> bool:
        online = self.registry.is_online(target_user_id)
        await self._deliver(connection, ONLINE_STATUS, online, ref=ref)
        return online

    async def route_to_peer(self, event: str, peer_user_id: str, payload: Any) -> bool:
        connection = self.registry.connection_for(peer_user_id)
        if connection is None:
            logger.debug("Dropping %s for offline user %s", event, peer_user_id)
            return False
        return await self._deliver(connection, event, payload)

    async def broadcast_roster(self) -> None:
        roster: List[str] = self.registry.snapshot()
        connections = self.registry.connections()
        if connections:
            await asyncio.gather(*(self._deliver(conn, ONLINE_USERS, roster) for conn in connections))

    async def typing(self, user_id: str, receiver_id: str, is_typing: bool) -> None:
        if is_typing:
            await self.typing_tracker.start(user_id, receiver_id)
        else:
            await self.typing_tracker.stop(user_id)

    async def recording(self, user_id: str, receiver_id: str, is_recording: bool) -> None:
        await self.route_to_peer(RECORDING, receiver_id, {"userId": user_id, "isRecording": is_recording})

    def shutdown(self) -> None:
        self.typing_tracker.shutdown()

    async def _emit_typing(self, peer_id: str, payload: dict) -> bool:
        return await self.route_to_peer(USER_TYPING, peer_id, payload)

    async def _deliver(self, connection: ClientConnection, event: str, data: Any, ref: Optional[str] = None) -> bool:
        try:
            await connection.send(event, data, ref=ref)
        except StaleConnectionError as exc:
            logger.warning("Stale connection for %s: %s", connection.user_id, exc)
            await self.on_disconnect(connection)
            return False
        return True


def create_gateway(enabled: bool, registry: PresenceRegistry, users: UserRepository, typing_timeout: float = DEFAULT_TYPING_TIMEOUT) -> RealtimeGateway:
    if not enabled:
        logger.info("Realtime delivery disabled; using NoopGateway")
        return NoopGateway()
    return LiveGateway(registry, users, typing_timeout=typing_timeout)
