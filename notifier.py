import logging
from typing import Set

from fastapi import Request, WebSocket

logger = logging.getLogger(__name__)

DB_UPDATE = "db_update"


class ChangeNotifier:
    """Broadcasts a bare "data changed" event to every connected client.

    Delivery is best effort: a client whose send fails is dropped and nothing
    is retried.
    """

    def __init__(self):
        self.connections: Set[WebSocket] = set()

    async def connect(self, websocket: WebSocket):
        await websocket.accept()
        self.connections.add(websocket)
        logger.info(f"Subscriber connected ({len(self.connections)} total)")

    def disconnect(self, websocket: WebSocket):
        self.connections.discard(websocket)

    async def notify(self, topic: str = DB_UPDATE):
        for websocket in list(self.connections):
            try:
                await websocket.send_text(topic)
            except Exception as e:
                logger.warning(f"Dropping subscriber after failed send: {e}")
                self.disconnect(websocket)


def get_notifier(request: Request) -> ChangeNotifier:
    return request.app.state.notifier
