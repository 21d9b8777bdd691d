# Filename: clouddrive/realtime.py
import logging
from collections import defaultdict
from typing import Any, Dict, Set

from fastapi import BackgroundTasks, WebSocket
from fastapi.encoders import jsonable_encoder

logger = logging.getLogger(__name__)


def user_room(user_id: int) -> str:
    return f"user:{user_id}"


class Notifier:
    """Fans mutation events out to every connected session of a user.

    Delivery is best-effort: a session that is gone, or a user with no
    sessions, just means nobody hears the event.
    """

    def __init__(self) -> None:
        self._rooms: Dict[str, Set[WebSocket]] = defaultdict(set)

    def connect(self, user_id: int, websocket: WebSocket) -> None:
        self._rooms[user_room(user_id)].add(websocket)

    def disconnect(self, user_id: int, websocket: WebSocket) -> None:
        room = self._rooms.get(user_room(user_id))
        if room is None:
            return
        room.discard(websocket)
        if not room:
            del self._rooms[user_room(user_id)]

    def session_count(self, user_id: int) -> int:
        return len(self._rooms.get(user_room(user_id), ()))

    async def emit(self, user_id: int, event: str, data: Dict[str, Any]) -> int:
        """Send ``event`` to the user's room. Returns how many sessions got it."""
        room = self._rooms.get(user_room(user_id))
        if not room:
            logger.debug("no active sessions for %s, dropping %s", user_room(user_id), event)
            return 0
        message = {"event": event, "data": jsonable_encoder(data)}
        delivered = 0
        for ws in list(room):
            try:
                await ws.send_json(message)
                delivered += 1
            except Exception:
                logger.debug("dropping dead session in %s", user_room(user_id), exc_info=True)
                self.disconnect(user_id, ws)
        return delivered


def publish(background_tasks: BackgroundTasks, notifier: Notifier, user_id: int, event: str, data: Dict[str, Any]) -> None:
    """Queue an event for after the response has been sent."""
    background_tasks.add_task(notifier.emit, user_id, event, data)
