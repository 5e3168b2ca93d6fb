"""
Consumer-side chat state.

`ChatSession` keeps the message list of the selected conversation plus the
sidebar maps, applies realtime events to them, and mirrors every mutation
through the REST API. It holds no socket itself: whatever transport receives
gateway frames passes them to `handle_event`.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx


logger = logging.getLogger(__name__)


class SessionRequestError(Exception):

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ChatSession:

    def __init__(self, http: httpx.AsyncClient, user_id: str) -> None:
        self._http = http
        self.user_id = user_id
        self.messages: List[Dict[str, Any]] = []
        self.users: List[Dict[str, Any]] = []
        self.selected_peer: Optional[str] = None
        self.unseen: Dict[str, int] = {}
        self.last_messages: Dict[str, str] = {}
        self.online_users: List[str] = []
        self.typing_users: Dict[str, bool] = {}
        self.recording_users: Dict[str, bool] = {}

    # REST mirrors

    async def load_conversations(self) -> None:
        data = await self._request("GET", "/api/messages/users")
        self.users = data.get("peers", [])
        self.unseen = dict(data.get("unseenCounts", {}))
        self.last_messages = dict(data.get("lastMessagePreviews", {}))

    async def select_peer(self, peer_id: str) -> None:
        data = await self._request("GET", f"/api/messages/{peer_id}")
        self.selected_peer = peer_id
        self.messages = list(data.get("messages", []))
        # the fetch marked the thread seen server-side
        self.unseen.pop(peer_id, None)

    async def send(self, text: Optional[str] = None, image: Optional[str] = None, audio: Optional[str] = None, message_type: str = "text", duration: Optional[float] = None) -> Optional[Dict[str, Any]]:
        if self.selected_peer is None:
            return None
        body = {"text": text, "image": image, "audio": audio, "messageType": message_type, "duration": duration}
        data = await self._request("POST", f"/api/messages/send/{self.selected_peer}", json=body)
        message = data["newMessage"]
        # appended on acknowledgement only, never on issue
        self._append(message)
        self.last_messages[self.selected_peer] = message.get("text") or "Media"
        return message

    async def react(self, message_id: str, emoji: str) -> None:
        data = await self._request("PUT", f"/api/messages/react/{message_id}", json={"emoji": emoji})
        self._patch(message_id, {"reactions": data.get("reactions", [])})

    async def edit(self, message_id: str, text: str) -> None:
        data = await self._request("PUT", f"/api/messages/edit/{message_id}", json={"text": text})
        self._replace(data["message"])

    async def delete(self, message_id: str, scope: str = "me") -> None:
        await self._request("DELETE", f"/api/messages/delete/{message_id}", json={"deleteFor": scope})
        self._remove(message_id)

    # realtime events

    async def handle_event(self, event: str, data: Any) -> None:
        if event == "newMessage":
            await self._on_new_message(data)
        elif event == "messageReaction":
            self._patch(data["messageId"], {"reactions": data.get("reactions", [])})
        elif event == "messagesSeen":
            self._patch(data["messageId"], {"seen": True})
        elif event == "messageEdited":
            self._replace(data)
        elif event == "messageDeleted":
            self._remove(data["messageId"])
        elif event == "userTyping":
            self.typing_users[data["userId"]] = bool(data.get("isTyping"))
        elif event == "recording":
            self.recording_users[data["userId"]] = bool(data.get("isRecording"))
        elif event == "getOnlineUsers":
            self.online_users = list(data)
        else:
            logger.debug("Unhandled event %s", event)

    def is_online(self, user_id: str) -> bool:
        return user_id in self.online_users

    async def _on_new_message(self, message: Dict[str, Any]) -> None:
        sender_id = message["senderId"]
        peer = self.selected_peer
        self.last_messages[sender_id] = message.get("text") or "Media"
        if peer is not None and peer in (sender_id, message["receiverId"]):
            if self._append(message):
                try:
                    await self._request("PUT", f"/api/messages/mark/{message['_id']}")
                except SessionRequestError as exc:
                    logger.warning("Could not mark %s as seen: %s", message["_id"], exc.message)
            return
        self.unseen[sender_id] = self.unseen.get(sender_id, 0) + 1

    def _append(self, message: Dict[str, Any]) -> bool:
        if any(m["_id"] == message["_id"] for m in self.messages):
            return False
        self.messages.append(message)
        return True

    def _patch(self, message_id: str, changes: Dict[str, Any]) -> None:
        self.messages = [{**m, **changes} if m["_id"] == message_id else m for m in self.messages]

    def _replace(self, message: Dict[str, Any]) -> None:
        self.messages = [message if m["_id"] == message["_id"] else m for m in self.messages]

    def _remove(self, message_id: str) -> None:
        self.messages = [m for m in self.messages if m["_id"] != message_id]

    async def _request(self, method: str, url: str, json: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        try:
            response = await self._http.request(method, url, json=json)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise SessionRequestError(str(exc)) from exc
        data = response.json()
        if not data.get("success"):
            raise SessionRequestError(data.get("message", "Request failed"))
        return data
