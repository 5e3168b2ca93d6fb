from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Reaction(_CamelModel):

    user_id: str
    emoji: str


class MessagePublic(_CamelModel):
    """Wire shape of a message, shared by REST responses and socket events."""

    id: str = Field(alias="_id")
    sender_id: str
    receiver_id: str
    text: Optional[str] = None
    image: Optional[str] = None
    audio: Optional[str] = None
    message_type: Literal["text", "image", "audio"] = "text"
    duration: Optional[float] = None
    seen: bool = False
    delivered: bool = False
    edited: bool = False
    reactions: List[Reaction] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "MessagePublic":
        return cls.model_validate({**doc, "_id": str(doc["_id"])})

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class SendMessageRequest(_CamelModel):

    text: Optional[str] = None
    # base64 data URI or remote URL, uploaded to blob storage before persisting
    image: Optional[str] = None
    audio: Optional[str] = None
    message_type: str = "text"
    duration: Optional[float] = None


class ReactRequest(_CamelModel):

    emoji: str


class EditRequest(_CamelModel):

    text: str


class DeleteRequest(_CamelModel):

    delete_for: str = "me"
