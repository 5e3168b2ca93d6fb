from datetime import datetime, timezone
from typing import List, Optional, Union

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.models.user import UserDocument


# never leaves the store layer
_PUBLIC_PROJECTION = {"hashed_password": 0}


class UserRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._collection = db.get_collection("users")

    async def get_user_by_id(self, user_id: str) -> Optional[UserDocument]:
        user = await self._collection.find_one({"_id": self._key(user_id)}, _PUBLIC_PROJECTION)
        if user:
            user["_id"] = str(user["_id"])
        return user

    async def list_users_except(self, user_id: str) -> List[UserDocument]:
        cursor = self._collection.find({"_id": {"$ne": self._key(user_id)}}, _PUBLIC_PROJECTION)
        users = await cursor.to_list(length=None)
        for user in users:
            user["_id"] = str(user["_id"])
        return users

    async def update_last_seen(self, user_id: str, when: Optional[datetime] = None) -> None:
        await self._collection.update_one(
            {"_id": self._key(user_id)},
            {"$set": {"last_seen": when or datetime.now(timezone.utc)}},
        )

    def _key(self, user_id: str) -> Union[ObjectId, str]:
        # ids issued by the auth collaborator are ObjectIds; fixtures may use plain strings
        if ObjectId.is_valid(user_id):
            return ObjectId(user_id)
        return user_id
