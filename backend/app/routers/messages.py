from typing import Any, Dict

from fastapi import APIRouter, Depends

from app.schemas.message import DeleteRequest, EditRequest, ReactRequest, SendMessageRequest
from app.schemas.user import UserPublic
from app.services.chat_service import ChatService
from app.utils.dependencies import get_chat_service, get_current_user
from app.utils.envelope import ok, run_enveloped


router = APIRouter(prefix="/api/messages", tags=["chat"])


@router.get("/users")
@router.get("/conversations")
async def list_conversations(current_user: dict = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    async def _run() -> Dict[str, Any]:
        summary = await service.list_conversations(current_user["_id"])
        return ok(
            peers=[UserPublic.from_document(p).model_dump(by_alias=True, mode="json") for p in summary.peers],
            unseenCounts=summary.unseen_counts,
            lastMessagePreviews=summary.last_message_previews,
        )

    return await run_enveloped(_run())


@router.get("/{peer_id}")
async def get_thread(peer_id: str, current_user: dict = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    async def _run() -> Dict[str, Any]:
        messages = await service.fetch_thread(current_user["_id"], peer_id)
        return ok(messages=[m.to_wire() for m in messages])

    return await run_enveloped(_run())


@router.put("/mark/{message_id}")
async def mark_seen(message_id: str, current_user: dict = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    async def _run() -> Dict[str, Any]:
        await service.mark_seen(current_user["_id"], message_id)
        return ok()

    return await run_enveloped(_run())


@router.post("/send/{peer_id}")
async def send_message(peer_id: str, body: SendMessageRequest, current_user: dict = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    async def _run() -> Dict[str, Any]:
        message = await service.send(current_user["_id"], peer_id, body)
        return ok(newMessage=message.to_wire())

    return await run_enveloped(_run())


@router.put("/react/{message_id}")
async def react_to_message(message_id: str, body: ReactRequest, current_user: dict = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    async def _run() -> Dict[str, Any]:
        reactions = await service.react(current_user["_id"], message_id, body.emoji)
        return ok(reactions=[r.model_dump(by_alias=True) for r in reactions])

    return await run_enveloped(_run())


@router.put("/edit/{message_id}")
async def edit_message(message_id: str, body: EditRequest, current_user: dict = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    async def _run() -> Dict[str, Any]:
        message = await service.edit(current_user["_id"], message_id, body.text)
        return ok(message=message.to_wire())

    return await run_enveloped(_run())


@router.delete("/delete/{message_id}")
async def delete_message(message_id: str, body: DeleteRequest | None = None, current_user: dict = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    scope = body.delete_for if body else "me"

    async def _run() -> Dict[str, Any]:
        await service.delete(current_user["_id"], message_id, scope)
        return ok()

    return await run_enveloped(_run())
