from datetime import datetime, timezone
from typing import List, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING

from app.models.message import MessageDocument, ReactionDocument


class MessageRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db

    @property
    def collection(self):
        return self._db["messages"]

    async def ensure_indexes(self) -> None:
        await self.collection.create_index([("sender_id", ASCENDING), ("receiver_id", ASCENDING), ("created_at", ASCENDING)])
        await self.collection.create_index([("receiver_id", ASCENDING), ("seen", ASCENDING)])

    async def save_message(
        self,
        sender_id: str,
        receiver_id: str,
        message_type: str,
        text: Optional[str] = None,
        image: Optional[str] = None,
        audio: Optional[str] = None,
        duration: Optional[float] = None,
    ) -> MessageDocument:
        now = datetime.now(timezone.utc)
        doc: MessageDocument = {
            "sender_id": sender_id,
            "receiver_id": receiver_id,
            "text": text,
            "image": image,
            "audio": audio,
            "message_type": message_type,
            "duration": duration,
            "seen": False,
            "delivered": True,
            "edited": False,
            "reactions": [],
            "created_at": now,
            "updated_at": now,
        }
        result = await self.collection.insert_one(doc)
        doc["_id"] = str(result.inserted_id)
        return doc

    async def get_by_id(self, message_id: str) -> Optional[MessageDocument]:
        oid = self._to_object_id(message_id)
        if oid is None:
            return None
        doc = await self.collection.find_one({"_id": oid})
        if doc:
            doc["_id"] = str(doc["_id"])
        return doc

    async def get_thread(self, user_a: str, user_b: str) -> List[MessageDocument]:
        query = {
            "$or": [
                {"sender_id": user_a, "receiver_id": user_b},
                {"sender_id": user_b, "receiver_id": user_a},
            ]
        }
        cursor = self.collection.find(query, sort=[("created_at", ASCENDING), ("_id", ASCENDING)])
        items = await cursor.to_list(length=None)
        for it in items:
            it["_id"] = str(it.get("_id"))
        return items

    async def get_last_between(self, user_a: str, user_b: str) -> Optional[MessageDocument]:
        query = {
            "$or": [
                {"sender_id": user_a, "receiver_id": user_b},
                {"sender_id": user_b, "receiver_id": user_a},
            ]
        }
        cursor = self.collection.find(query, sort=[("created_at", DESCENDING), ("_id", DESCENDING)], limit=1)
        items = await cursor.to_list(length=1)
        if not items:
            return None
        items[0]["_id"] = str(items[0]["_id"])
        return items[0]

    async def count_unseen(self, sender_id: str, receiver_id: str) -> int:
        return await self.collection.count_documents(
            {"sender_id": sender_id, "receiver_id": receiver_id, "seen": False}
        )

    async def mark_thread_seen(self, sender_id: str, receiver_id: str) -> int:
        result = await self.collection.update_many(
            {"sender_id": sender_id, "receiver_id": receiver_id, "seen": False},
            {"$set": {"seen": True}},
        )
        return result.modified_count or 0

    async def mark_message_seen(self, message_id: str) -> bool:
        oid = self._to_object_id(message_id)
        if oid is None:
            return False
        result = await self.collection.update_one(
            {"_id": oid, "seen": False},
            {"$set": {"seen": True}},
        )
        return bool(result.modified_count)

    async def set_reactions(self, message_id: str, reactions: List[ReactionDocument]) -> None:
        await self.collection.update_one(
            {"_id": ObjectId(message_id)},
            {"$set": {"reactions": reactions, "updated_at": datetime.now(timezone.utc)}},
        )

    async def update_text(self, message_id: str, text: str) -> Optional[MessageDocument]:
        oid = ObjectId(message_id)
        await self.collection.update_one(
            {"_id": oid},
            {"$set": {"text": text, "edited": True, "updated_at": datetime.now(timezone.utc)}},
        )
        return await self.get_by_id(message_id)

    async def delete_message(self, message_id: str) -> bool:
        oid = self._to_object_id(message_id)
        if oid is None:
            return False
        result = await self.collection.delete_one({"_id": oid})
        return bool(result.deleted_count)

    def _to_object_id(self, oid_hex: str) -> Optional[ObjectId]:
        if not ObjectId.is_valid(oid_hex):
            return None
        return ObjectId(oid_hex)
