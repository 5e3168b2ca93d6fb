import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List

from app.repositories.message_repository import MessageRepository
from app.repositories.user_repository import UserRepository
from app.schemas.message import MessagePublic, Reaction, SendMessageRequest
from app.services.exceptions import NotFoundError, UnauthorizedError, ValidationError
from app.utils import realtime_bus
from app.utils.blob_storage import BlobStorage
from app.utils.realtime_bus import RealtimeGateway


logger = logging.getLogger(__name__)

MEDIA_PREVIEW = "Media"
MESSAGE_TYPES = ("text", "image", "audio")
DELETE_SCOPES = ("me", "everyone")


@dataclass
class ConversationSummary:
    peers: List[Dict[str, Any]] = field(default_factory=list)
    unseen_counts: Dict[str, int] = field(default_factory=dict)
    last_message_previews: Dict[str, str] = field(default_factory=dict)


def toggle_reaction(reactions: List[Dict[str, str]], user_id: str, emoji: str) -> List[Dict[str, str]]:
    """One reaction per user: same emoji removes it, a different one replaces it."""
    existing = next((r for r in reactions if r["user_id"] == user_id), None)
    others = [r for r in reactions if r["user_id"] != user_id]
    if existing is not None and existing["emoji"] == emoji:
        return others
    return others + [{"user_id": user_id, "emoji": emoji}]


class ChatService:

    def __init__(
        self,
        message_repo: MessageRepository,
        user_repo: UserRepository,
        gateway: RealtimeGateway,
        blob_storage: BlobStorage,
    ) -> None:
        self._message_repo = message_repo
        self._user_repo = user_repo
        self._gateway = gateway
        self._blob_storage = blob_storage

    async def list_conversations(self, viewer_id: str) -> ConversationSummary:
        peers = await self._user_repo.list_users_except(viewer_id)
        summary = ConversationSummary(peers=peers)

        async def _aggregate(peer_id: str) -> None:
            count, last = await asyncio.gather(
                self._message_repo.count_unseen(peer_id, viewer_id),
                self._message_repo.get_last_between(viewer_id, peer_id),
            )
            summary.unseen_counts[peer_id] = count
            if last is not None:
                summary.last_message_previews[peer_id] = last.get("text") or MEDIA_PREVIEW

        await asyncio.gather(*(_aggregate(peer["_id"]) for peer in peers))
        return summary

    async def fetch_thread(self, viewer_id: str, peer_id: str) -> List[MessagePublic]:
        docs = await self._message_repo.get_thread(viewer_id, peer_id)
        # bulk seen is silent; senders read the flag on their next fetch
        await self._message_repo.mark_thread_seen(peer_id, viewer_id)
        return [MessagePublic.from_document(doc) for doc in docs]

    async def mark_seen(self, viewer_id: str, message_id: str) -> bool:
        doc = await self._get_message(message_id)
        if doc["receiver_id"] != viewer_id:
            raise UnauthorizedError("Only the receiver can mark a message as seen")
        changed = await self._message_repo.mark_message_seen(message_id)
        if changed:
            await self._gateway.route_to_peer(realtime_bus.MESSAGES_SEEN, doc["sender_id"], {"messageId": message_id})
        return changed

    async def send(self, sender_id: str, receiver_id: str, payload: SendMessageRequest) -> MessagePublic:
        message_type = self._validate_payload(payload)
        if sender_id == receiver_id:
            raise ValidationError("Cannot send a message to yourself")
        if await self._user_repo.get_user_by_id(receiver_id) is None:
            raise NotFoundError("Receiver not found")

        text = image = audio = None
        if message_type == "text":
            text = payload.text.strip()
        elif message_type == "image":
            image = await self._blob_storage.upload(payload.image, "image")
        else:
            audio = await self._blob_storage.upload(payload.audio, "audio")

        doc = await self._message_repo.save_message(
            sender_id=sender_id,
            receiver_id=receiver_id,
            message_type=message_type,
            text=text,
            image=image,
            audio=audio,
            duration=payload.duration if message_type == "audio" else None,
        )
        message = MessagePublic.from_document(doc)
        logger.debug("Message %s stored from %s to %s", message.id, sender_id, receiver_id)
        await self._gateway.route_to_peer(realtime_bus.NEW_MESSAGE, receiver_id, message.to_wire())
        return message

    async def react(self, user_id: str, message_id: str, emoji: str) -> List[Reaction]:
        if not emoji or not emoji.strip():
            raise ValidationError("Emoji is required")
        doc = await self._get_message(message_id)
        peer_id = self._peer_of(doc, user_id)
        reactions = toggle_reaction(doc.get("reactions") or [], user_id, emoji.strip())
        await self._message_repo.set_reactions(message_id, reactions)
        result = [Reaction.model_validate(r) for r in reactions]
        wire = [r.model_dump(by_alias=True) for r in result]
        await self._gateway.route_to_peer(realtime_bus.MESSAGE_REACTION, peer_id, {"messageId": message_id, "reactions": wire})
        return result

    async def edit(self, user_id: str, message_id: str, new_text: str) -> MessagePublic:
        doc = await self._get_message(message_id)
        if doc["sender_id"] != user_id:
            raise UnauthorizedError("Unauthorized")
        if doc.get("message_type", "text") != "text":
            raise ValidationError("Only text messages can be edited")
        if not new_text or not new_text.strip():
            raise ValidationError("Message text cannot be empty")
        updated = await self._message_repo.update_text(message_id, new_text.strip())
        if updated is None:
            # deleted between the read and the write
            raise NotFoundError("Message not found")
        message = MessagePublic.from_document(updated)
        await self._gateway.route_to_peer(realtime_bus.MESSAGE_EDITED, doc["receiver_id"], message.to_wire())
        return message

    async def delete(self, user_id: str, message_id: str, scope: str) -> None:
        if scope not in DELETE_SCOPES:
            raise ValidationError(f"Unknown delete scope: {scope}")
        doc = await self._get_message(message_id)
        if scope == "me":
            # hidden client-side only
            self._peer_of(doc, user_id)
            return
        if doc["sender_id"] != user_id:
            raise UnauthorizedError("Unauthorized")
        await self._message_repo.delete_message(message_id)
        await self._gateway.route_to_peer(realtime_bus.MESSAGE_DELETED, doc["receiver_id"], {"messageId": message_id})

    async def _get_message(self, message_id: str) -> Dict[str, Any]:
        doc = await self._message_repo.get_by_id(message_id)
        if doc is None:
            raise NotFoundError("Message not found")
        return doc

    def _peer_of(self, doc: Dict[str, Any], user_id: str) -> str:
        if doc["sender_id"] == user_id:
            return doc["receiver_id"]
        if doc["receiver_id"] == user_id:
            return doc["sender_id"]
        raise UnauthorizedError("Not a participant of this conversation")

    def _validate_payload(self, payload: SendMessageRequest) -> str:
        message_type = payload.message_type or "text"
        if message_type not in MESSAGE_TYPES:
            raise ValidationError(f"Unknown message type: {message_type}")
        variants = {
            "text": payload.text if payload.text and payload.text.strip() else None,
            "image": payload.image or None,
            "audio": payload.audio or None,
        }
        present = [name for name, value in variants.items() if value is not None]
        if not present:
            raise ValidationError("Message must contain text, image or audio")
        if present != [message_type]:
            raise ValidationError(f"Payload {present} does not match message type '{message_type}'")
        return message_type

