from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class UserPublic(BaseModel):

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str = Field(alias="_id")
    email: Optional[str] = None
    full_name: Optional[str] = None
    profile_pic: Optional[str] = None
    bio: Optional[str] = None
    last_seen: Optional[datetime] = None

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "UserPublic":
        return cls.model_validate({**doc, "_id": str(doc["_id"])})


class TokenPayload(BaseModel):

    sub: str
    exp: int
