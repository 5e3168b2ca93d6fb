from datetime import datetime
from typing import List, Literal, Optional, TypedDict


MessageType = Literal["text", "image", "audio"]


class ReactionDocument(TypedDict):
    user_id: str
    emoji: str


class MessageDocument(TypedDict, total=False):
    _id: str
    sender_id: str
    receiver_id: str
    # exactly one payload, matching message_type
    text: Optional[str]
    image: Optional[str]
    audio: Optional[str]
    message_type: MessageType
    duration: Optional[float]
    # delivery states
    seen: bool
    delivered: bool
    edited: bool
    reactions: List[ReactionDocument]
    created_at: datetime
    updated_at: datetime
