from datetime import datetime
from typing import Optional, TypedDict


class UserDocument(TypedDict, total=False):

    _id: str
    email: str
    hashed_password: str
    full_name: Optional[str]
    profile_pic: Optional[str]
    bio: Optional[str]
    last_seen: Optional[datetime]
