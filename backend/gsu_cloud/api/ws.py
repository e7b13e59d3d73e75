from typing import List

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from ..auth import check_token

router = APIRouter()


class LiveFeed:
    """Fan-out of heartbeat/alert messages to connected dashboards."""

    def __init__(self) -> None:
        self.active: List[WebSocket] = []

    def connect(self, websocket: WebSocket) -> None:
        self.active.append(websocket)

    def disconnect(self, websocket: WebSocket) -> None:
        if websocket in self.active:
            self.active.remove(websocket)

    async def broadcast(self, message: dict) -> None:
        for connection in list(self.active):
            try:
                await connection.send_json(message)
            except WebSocketDisconnect:
                self.disconnect(connection)


@router.websocket("/ws/live")
async def live_stream(websocket: WebSocket) -> None:
    """Push stream for the operator UI.

    Other code paths call ``broadcast`` whenever a heartbeat or alert arrives;
    the socket itself only keeps the connection open.
    """

    await websocket.accept()
    expected = websocket.app.state.cloud.settings.api_token
    if expected:
        auth_header = websocket.headers.get("authorization", "")
        token = websocket.query_params.get("token")
        if not check_token(expected, auth_header) and token != expected:
            await websocket.close(code=1008)
            return

    feed: LiveFeed = websocket.app.state.live_feed
    feed.connect(websocket)
    try:
        while True:
            # Clients may send pings; content is ignored.
            await websocket.receive_text()
    except WebSocketDisconnect:
        feed.disconnect(websocket)
