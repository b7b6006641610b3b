# stock_opname/api/endpoints/realtime.py
from fastapi import APIRouter, WebSocket

from stock_opname.notifications.broadcast import manager

router = APIRouter()


@router.websocket("/ws")
async def stock_events(websocket: WebSocket) -> None:
    """
    Push channel. The server only sends; anything a client sends is read
    and discarded so the connection notices when the peer goes away.
    """
    await manager.connect(websocket)
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
    finally:
        manager.disconnect(websocket)
