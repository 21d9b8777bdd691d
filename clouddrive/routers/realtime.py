# Filename: clouddrive/routers/realtime.py
import logging
from typing import Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from sqlmodel import Session

from ..auth import bearer_token, decode_access_token
from ..models import User

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])

# application-defined close code for a rejected handshake
WS_UNAUTHORIZED = 4401


@router.websocket("/ws")
async def events(websocket: WebSocket, token: Optional[str] = None):
    """Per-user event stream. Clients only listen; anything they send is ignored."""
    ctx = websocket.app.state.context
    token = token or bearer_token(websocket.headers.get("authorization"))
    user_id = decode_access_token(token) if token else None
    if user_id is not None:
        with Session(ctx.engine) as session:
            if session.get(User, user_id) is None:
                user_id = None
    if user_id is None:
        await websocket.close(code=WS_UNAUTHORIZED)
        return

    await websocket.accept()
    ctx.notifier.connect(user_id, websocket)
    logger.debug("session joined user:%s", user_id)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        ctx.notifier.disconnect(user_id, websocket)
        logger.debug("session left user:%s", user_id)
