import asyncio
import itertools
import logging
from typing import Any, Dict, List, Optional, Union

from app.services.exceptions import StaleConnectionError


logger = logging.getLogger(__name__)

_connection_ids = itertools.count(1)


class ClientConnection:
    """A socket bound to one user.

    Writes are serialized through an asyncio lock, which hands out ownership in
    call order, so frames reach a single connection in the order they were sent.
    """

    def __init__(self, websocket: Any, user_id: str) -> None:
        self.websocket = websocket
        self.user_id = user_id
        self.id = next(_connection_ids)
        self.closed = False
        self._lock = asyncio.Lock()

    async def send(self, event: str, data: Any, ref: Optional[str] = None) -> None:
        frame: Dict[str, Any] = {"event": event, "data": data}
        if ref is not None:
            frame["ref"] = ref
        async with self._lock:
            if self.closed:
                raise StaleConnectionError(f"connection {self.id} is closed")
            try:
                await self.websocket.send_json(frame)
            except Exception as exc:
                self.closed = True
                raise StaleConnectionError(f"send to connection {self.id} failed: {exc}") from exc

    def __repr__(self) -> str:
        return f"<ClientConnection id={self.id} user={self.user_id}>"


class PresenceRegistry:
    """Who is online: user id -> the connection currently bound to it.

    One binding per user; binding again replaces the previous connection.
    """

    def __init__(self) -> None:
        self._bindings: Dict[str, ClientConnection] = {}

    def bind(self, user_id: str, connection: ClientConnection) -> Optional[ClientConnection]:
        previous = self._bindings.pop(user_id, None)
        self._bindings[user_id] = connection
        if previous is not None and previous is not connection:
            logger.info("User %s reconnected; replacing %r", user_id, previous)
            return previous
        return None

    def unbind(self, connection_or_user_id: Union[ClientConnection, str]) -> Optional[str]:
        if isinstance(connection_or_user_id, ClientConnection):
            user_id = connection_or_user_id.user_id
            # a replaced connection closing late must not evict the newer binding
            if self._bindings.get(user_id) is not connection_or_user_id:
                return None
        else:
            user_id = connection_or_user_id
        if self._bindings.pop(user_id, None) is None:
            return None
        return user_id

    def is_online(self, user_id: str) -> bool:
        return user_id in self._bindings

    def connection_for(self, user_id: str) -> Optional[ClientConnection]:
        return self._bindings.get(user_id)

    def user_for(self, connection: ClientConnection) -> Optional[str]:
        if self._bindings.get(connection.user_id) is connection:
            return connection.user_id
        return None

    def snapshot(self) -> List[str]:
        return list(self._bindings)

    def connections(self) -> List[ClientConnection]:
        return list(self._bindings.values())

    def __len__(self) -> int:
        return len(self._bindings)
