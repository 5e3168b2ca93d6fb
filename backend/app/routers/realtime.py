import json
import logging
from typing import Any, Dict

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from app.core.runtime import Runtime
from app.utils import realtime_bus
from app.utils.realtime_bus import RealtimeGateway
from app.utils.security import decode_access_token
from app.utils.websocket_manager import ClientConnection


logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])


@router.websocket("/ws")
async def realtime_socket(websocket: WebSocket):
    # identity comes from the handshake: ?token=<jwt>
    token = websocket.query_params.get("token")
    payload = decode_access_token(token) if token else None
    if not payload or not payload.get("sub"):
        await websocket.close(code=4401)
        return
    user_id = str(payload["sub"])

    runtime: Runtime = websocket.app.state.runtime
    gateway = runtime.gateway
    if not gateway.enabled:
        await websocket.close(code=4503)
        return
    await websocket.accept()
    connection = ClientConnection(websocket, user_id)
    await gateway.on_connect(user_id, connection)

    try:
        await pump_frames(gateway, connection)
    except WebSocketDisconnect:
        pass
    finally:
        await gateway.on_disconnect(connection)


async def pump_frames(gateway: RealtimeGateway, connection: ClientConnection) -> None:
    """Dispatch inbound frames until the client leaves or the connection goes stale."""
    websocket = connection.websocket
    user_id = connection.user_id
    while not connection.closed:
        raw = await websocket.receive_text()
        # a failed write unbinds the user while we wait on the next frame
        if connection.closed:
            break
        try:
            frame = json.loads(raw)
        except json.JSONDecodeError:
            logger.debug("Ignoring non-JSON frame from %s", user_id)
            continue
        if not isinstance(frame, dict):
            logger.debug("Ignoring malformed frame from %s", user_id)
            continue
        await handle_frame(gateway, connection, frame)
    logger.info("Stopped reading stale connection %r", connection)


async def handle_frame(gateway: RealtimeGateway, connection: ClientConnection, frame: Dict[str, Any]) -> None:
    event = frame.get("event")
    data = frame.get("data")
    user_id = connection.user_id
    receiver_id = str(data.get("receiverId") or "") if isinstance(data, dict) else ""

    if event in ("typing", realtime_bus.RECORDING) and receiver_id == user_id:
        logger.debug("Ignoring %r frame addressed to self from %s", event, user_id)
    elif event == "typing" and receiver_id:
        await gateway.typing(user_id, receiver_id, bool(data.get("isTyping")))
    elif event == realtime_bus.RECORDING and receiver_id:
        await gateway.recording(user_id, receiver_id, bool(data.get("isRecording")))
    elif event == realtime_bus.ONLINE_STATUS:
        # data is either the bare id or {"userId": id}
        target = data.get("userId") if isinstance(data, dict) else data
        await gateway.query_online_status(connection, str(target) if target else "", ref=frame.get("ref"))
    else:
        logger.debug("Ignoring %r frame from %s", event, user_id)
