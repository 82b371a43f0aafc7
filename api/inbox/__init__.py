"""Direct message endpoints with live delivery over WebSocket."""

import asyncio
import logging
from typing import Any, Dict, Optional
from uuid import UUID

from fastapi import APIRouter, HTTPException, WebSocket, WebSocketDisconnect, status, Depends
from fastapi.responses import JSONResponse
from fastapi.websockets import WebSocketState

from auth import manager as auth_manager, get_current_user, AuthError, SESSION_COOKIE_NAME
from messages import (
    MessageManager, MessageBus, QueueHandler, BusEvent, UserMessageCreate,
    EmptyMessageError, UserNotFoundError
)
from ..dependencies import get_message_manager

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/inbox",
    tags=["Inbox"]
)


async def authenticate_websocket(websocket: WebSocket) -> Optional[UUID]:
    """User id from the session cookie, or from a first {"token": ...} frame."""
    token = websocket.cookies.get(SESSION_COOKIE_NAME)
    if not token:
        try:
            auth_message = await websocket.receive_json()
        except (WebSocketDisconnect, ValueError, KeyError):
            return None
        if not isinstance(auth_message, dict) or not isinstance(auth_message.get("token"), str):
            return None
        token = auth_message["token"]
    try:
        return await auth_manager.verify_session(token)
    except AuthError:
        return None


async def forward_messages(websocket: WebSocket, handler: QueueHandler):
    """Write queued messages to the socket in publish order."""
    while True:
        message = await handler.get()
        await websocket.send_json(BusEvent(data=message).model_dump(mode='json'))


async def drain_client(websocket: WebSocket):
    """Read and discard client frames until the socket closes."""
    while True:
        await websocket.receive_text()


@router.websocket("/ws")
async def inbox_websocket(websocket: WebSocket):
    """Push messages addressed to the logged in user as they are sent."""
    await websocket.accept()

    user_id = await authenticate_websocket(websocket)
    if user_id is None:
        if websocket.client_state == WebSocketState.CONNECTED:
            await websocket.close(code=4001, reason="Authentication required")
        return

    bus: MessageBus = websocket.app.state.message_bus
    handler = QueueHandler()
    subscription = bus.subscribe(user_id, handler)
    logger.info(f"Live inbox connected for {user_id}")

    tasks = [
        asyncio.create_task(forward_messages(websocket, handler)),
        asyncio.create_task(drain_client(websocket))
    ]
    try:
        await websocket.send_json({"type": "connection_status", "data": {"status": "connected"}})
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            exc = task.exception()
            if exc and not isinstance(exc, WebSocketDisconnect):
                logger.error(f"Live inbox for {user_id} failed: {exc}")
    except WebSocketDisconnect:
        pass
    finally:
        bus.unsubscribe(subscription)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        logger.info(f"Live inbox disconnected for {user_id}")


@router.get("")
async def list_threads(
    user: Dict[str, Any] = Depends(get_current_user),
    messages: MessageManager = Depends(get_message_manager)
):
    """All conversations of the logged in user."""
    conversations = await messages.threads_for(user['id'])
    return {"conversations": conversations}


@router.get("/{user_id}")
async def get_thread(
    user_id: UUID,
    user: Dict[str, Any] = Depends(get_current_user),
    messages: MessageManager = Depends(get_message_manager)
):
    """Messages between the logged in user and user_id, oldest first."""
    counterparty = await auth_manager.get_user(user_id)
    if not counterparty:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"User {user_id} not found"
        )
    return {
        "counterparty_id": user_id,
        "messages": await messages.thread(user['id'], user_id)
    }


def send_failure(status_code: int, error: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"status": "failure", "error": error, "message": None}
    )


@router.post("/{user_id}/send", status_code=status.HTTP_201_CREATED)
async def send_message(
    user_id: UUID,
    body: UserMessageCreate,
    user: Dict[str, Any] = Depends(get_current_user),
    messages: MessageManager = Depends(get_message_manager)
):
    """Send a message to user_id.

    Failures answer {"status": "failure", "error": ..., "message": null} with
    a short error string. Internal details stay in the log.
    """
    try:
        message = await messages.send_message(user['id'], user_id, body.content)
    except EmptyMessageError as e:
        return send_failure(status.HTTP_400_BAD_REQUEST, str(e))
    except UserNotFoundError as e:
        return send_failure(status.HTTP_404_NOT_FOUND, str(e))
    except Exception as e:
        logger.error(f"Error sending message from {user['id']} to {user_id}: {e}")
        return send_failure(status.HTTP_500_INTERNAL_SERVER_ERROR, "Message could not be sent")
    return {"status": "success", "error": None, "message": message}


__all__ = ['router']
