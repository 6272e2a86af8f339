"""WebSocket feed pushing room and pool snapshots to a connected client."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import structlog
from starlette.websockets import WebSocket, WebSocketDisconnect

if TYPE_CHECKING:
    from lobby.services import RoomServices
    from shared.dal.models import PoolCharacter, Room

logger = structlog.get_logger()


def room_message(room: Room | None) -> dict:
    return {"type": "room", "room": room.to_record() if room is not None else None}


def pool_message(characters: list[PoolCharacter]) -> dict:
    return {"type": "pool", "characters": [c.model_dump(mode="json") for c in characters]}


async def room_feed_websocket(websocket: WebSocket) -> None:
    """Stream a room to the client until it disconnects.

    The client receives the current room and pool first, then one message per
    committed change. A deleted room is announced as ``{"type": "room", "room": null}``.
    """
    code: str = websocket.path_params["code"]
    services: RoomServices = websocket.app.state.services
    log = logger.bind(room_id=code)

    await websocket.accept()

    room = await services.lifecycle.get_room(code)
    if room is None:
        log.info("feed rejected", reason="room-not-found")
        await websocket.send_json({"type": "error", "message": "room-not-found"})
        await websocket.close(code=4000, reason="room-not-found")
        return

    # No await between the room fetch and this subscription, so no room change
    # falls between them, and the snapshot send starts before the pump can run.
    room_feed = services.notifications.subscribe_to_room(code, lambda r: websocket.send_json(room_message(r)))
    pool_feed = None
    try:
        await websocket.send_json(room_message(room))
        pool_feed = services.notifications.subscribe_to_character_pool(
            code,
            lambda characters: websocket.send_json(pool_message(characters)),
            with_snapshot=True,
        )
        log.info("feed opened")
        await _message_loop(websocket)
    except WebSocketDisconnect:
        pass
    finally:
        await room_feed.close()
        if pool_feed is not None:
            await pool_feed.close()
        log.info("feed closed")


async def _message_loop(websocket: WebSocket) -> None:
    while True:
        raw = await websocket.receive_text()
        try:
            message = json.loads(raw)
        except json.JSONDecodeError:
            await websocket.send_json({"type": "error", "message": "invalid-json"})
            continue
        if isinstance(message, dict) and message.get("type") == "ping":
            await websocket.send_json({"type": "pong"})
        else:
            await websocket.send_json({"type": "error", "message": "unsupported-message"})
