from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import ValidationError as PayloadError

from app.core.runtime import Runtime
from app.database.connection import mongo_db_dependency
from app.repositories.message_repository import MessageRepository
from app.repositories.user_repository import UserRepository
from app.schemas.user import TokenPayload
from app.services.chat_service import ChatService
from app.utils.security import decode_access_token


_security = HTTPBearer(auto_error=False)


def _unauthorized() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid authentication credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_runtime(request: Request) -> Runtime:
    return request.app.state.runtime


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(_security),
    db=Depends(mongo_db_dependency),
) -> dict:
    if credentials is None:
        raise _unauthorized()
    payload = decode_access_token(credentials.credentials)
    if not payload:
        raise _unauthorized()
    try:
        token = TokenPayload.model_validate(payload)
    except PayloadError:
        raise _unauthorized()
    user = await UserRepository(db).get_user_by_id(token.sub)
    if not user:
        raise _unauthorized()
    return user


def get_chat_service(db=Depends(mongo_db_dependency), runtime: Runtime = Depends(get_runtime)) -> ChatService:
    return ChatService(MessageRepository(db), UserRepository(db), runtime.gateway, runtime.blob_storage)
