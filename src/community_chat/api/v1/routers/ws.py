from __future__ import annotations

import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from community_chat.realtime.hub import ChatHub

logger = logging.getLogger(__name__)
router = APIRouter(tags=["websocket"])


@router.websocket("/ws/chat")
async def ws_chat(websocket: WebSocket) -> None:
    hub: ChatHub = websocket.app.state.hub
    connection_id = await hub.open(websocket)
    try:
        await _read_loop(websocket, hub, connection_id)
    except WebSocketDisconnect:
        pass
    except Exception:
        logger.exception("WS error for %s", connection_id)
    finally:
        await hub.close(connection_id)


async def _read_loop(ws: WebSocket, hub: ChatHub, connection_id: str) -> None:
    # One frame at a time: the next frame is read only after the previous
    # event has been fully handled.
    while True:
        raw = await ws.receive_text()
        if not await hub.dispatcher.dispatch(connection_id, raw):
            await ws.close(code=1000)
            return
