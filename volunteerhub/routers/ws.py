"""
Messaging WebSocket

One connection hosts one messaging screen: a ConversationViewController
whose view patches are streamed to the client. Client frames are handled
concurrently so a pending send never blocks opening another chat.
"""

import asyncio
import logging
from typing import Set

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status
from pydantic import ValidationError

from volunteerhub.config import LOGIN_PATH
from volunteerhub.messaging.controller import ConversationViewController
from volunteerhub.messaging.view import ChatView
from volunteerhub.middleware.auth import authenticate_websocket
from volunteerhub.schemas.message import WsInbound

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])


async def _send_outbox(websocket: WebSocket, outbox: asyncio.Queue):
    while True:
        frame = await outbox.get()
        await websocket.send_json(frame)


async def _stop_sender(sender: asyncio.Task, user_id: str):
    """Cancel the outbox task and collect how it ended."""
    sender.cancel()
    try:
        await sender
    except asyncio.CancelledError:
        pass
    except Exception as e:
        logger.warning(f"Outbox for user {user_id} stopped early: {str(e)}")


async def _dispatch(controller: ConversationViewController, frame: WsInbound, outbox: asyncio.Queue):
    try:
        if frame.type == "ping":
            outbox.put_nowait({"type": "pong"})
        elif frame.type == "open_chat":
            await controller.open_chat(frame.partner_id, frame.partner_name)
        elif frame.type == "submit":
            await controller.submit(frame.body or "")
        elif frame.type == "toast_click":
            await controller.toast_click(frame.toast_id or "")
    except Exception as e:
        logger.error(f"Error handling {frame.type} for user {controller.user_id}: {str(e)}", exc_info=True)
        outbox.put_nowait({"type": "error", "message": "Something went wrong"})


@router.websocket("/ws/messages")
async def messages_socket(websocket: WebSocket):
    await websocket.accept()

    user_id = authenticate_websocket(websocket)
    if not user_id:
        await websocket.send_json({"type": "redirect", "location": LOGIN_PATH})
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    outbox: asyncio.Queue = asyncio.Queue()
    view = ChatView()
    view.add_listener(outbox.put_nowait)
    controller = ConversationViewController(
        websocket.app.state.store, websocket.app.state.feed, user_id, view=view
    )
    sender = asyncio.create_task(_send_outbox(websocket, outbox))
    handlers: Set[asyncio.Task] = set()
    logger.info(f"User {user_id} opened the messaging screen")

    try:
        await controller.start(
            websocket.query_params.get("recipient_id"),
            websocket.query_params.get("name"),
        )
        while True:
            text = await websocket.receive_text()
            try:
                frame = WsInbound.model_validate_json(text)
            except ValidationError:
                outbox.put_nowait({"type": "error", "message": "Invalid frame"})
                continue
            task = asyncio.create_task(_dispatch(controller, frame, outbox))
            handlers.add(task)
            task.add_done_callback(handlers.discard)
    except WebSocketDisconnect:
        logger.info(f"User {user_id} left the messaging screen")
    finally:
        # In-flight sends are allowed to finish
        if handlers:
            await asyncio.gather(*handlers, return_exceptions=True)
        await controller.close()
        view.remove_listener(outbox.put_nowait)
        await _stop_sender(sender, user_id)
