from fastapi import APIRouter, Depends

from app.core.runtime import Runtime
from app.database.connection import mongo_db_dependency
from app.repositories.user_repository import UserRepository
from app.utils.dependencies import get_runtime
from app.utils.envelope import fail, ok


router = APIRouter(prefix="/api/presence", tags=["chat"])


@router.get("/{user_id}")
async def presence(user_id: str, runtime: Runtime = Depends(get_runtime), db=Depends(mongo_db_dependency)):
    """
    Online status from the presence registry, with the last disconnect time from the user store.
    """
    user = await UserRepository(db).get_user_by_id(user_id)
    if user is None:
        return fail("User not found")
    last_seen = user.get("last_seen")
    return ok(
        userId=user_id,
        online=runtime.gateway.enabled and runtime.registry.is_online(user_id),
        lastSeen=last_seen.isoformat() if last_seen else None,
    )
