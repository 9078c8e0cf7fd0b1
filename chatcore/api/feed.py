from __future__ import annotations

import asyncio
import contextlib
import logging

from fastapi import APIRouter, WebSocket
from pydantic import ValidationError
from starlette.websockets import WebSocketDisconnect

from chatcore.api.schemas import FeedInbound, MessageOut
from chatcore.errors import ChatError, NotAMember
from chatcore.services.auth import identity_from_token
from chatcore.services.groups import get_visible_group
from chatcore.services.identity import group_id_of, is_group_key, participants_of, resolve_direct_key

logger = logging.getLogger(__name__)

router = APIRouter(tags=["feed"])

# close codes in the 4000 range mirror the HTTP status
CLOSE_UNAUTHORIZED = 4401
CLOSE_FORBIDDEN = 4403

async def _authorize(websocket: WebSocket, conversation_key: str, user_id: str) -> None:
    if is_group_key(conversation_key):
        async with websocket.app.state.db.sessionmaker() as session:
            await get_visible_group(session, group_id_of(conversation_key), user_id)
    else:
        a, b = participants_of(conversation_key)
        if user_id not in (a, b):
            raise NotAMember("not a participant of this conversation")
        # messages live under the sorted key only
        if resolve_direct_key(user_id, b if user_id == a else a) != conversation_key:
            raise NotAMember(f"{conversation_key!r} is not a canonical conversation key")

@router.websocket("/ws/conversations/{conversation_key}")
async def conversation_feed(websocket: WebSocket, conversation_key: str, token: str | None = None):
    try:
        user_id = identity_from_token(token).id
    except ChatError:
        await websocket.close(code=CLOSE_UNAUTHORIZED)
        return
    try:
        await _authorize(websocket, conversation_key, user_id)
    except ChatError as exc:
        logger.info("feed for %s refused to %s: %s", conversation_key, user_id, exc.detail)
        await websocket.close(code=CLOSE_FORBIDDEN)
        return

    await websocket.accept()
    feed = websocket.app.state.feed

    async def pump() -> None:
        async for snap in feed.watch(conversation_key, user_id):
            await websocket.send_json({
                "type": "snapshot",
                "data": {
                    "conversation_key": snap.conversation_key,
                    "messages": [MessageOut.model_validate(m).model_dump(mode="json") for m in snap.messages],
                },
            })

    async def receive() -> None:
        while True:
            text = await websocket.receive_text()
            try:
                inbound = FeedInbound.model_validate_json(text)
            except ValidationError:
                continue
            if inbound.type == "ping":
                await websocket.send_json({"type": "pong"})

    tasks = {asyncio.create_task(pump()), asyncio.create_task(receive())}
    try:
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            exc = task.exception()
            if exc is not None and not isinstance(exc, WebSocketDisconnect):
                logger.error("feed for %s failed: %r", conversation_key, exc)
    finally:
        # closing the socket releases the subscription
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError, WebSocketDisconnect, RuntimeError):
                await task
