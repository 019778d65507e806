"""Control routes for the dashboard: connect, disconnect, clear session, status.

These only call SessionSupervisor.start()/stop() and CredentialStore.clear().
Status is served both as a snapshot (`GET /status`) and as a live push
(`/ws/status`) fed by StatusBroadcaster subscriptions.
"""

import asyncio
from concurrent.futures import TimeoutError as FutureTimeoutError

from fastapi import APIRouter, Depends, WebSocket
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from offerbridge.observability.correlation import get_correlation_id
from offerbridge.observability.logging import get_logger
from offerbridge.observability.redaction import safe_log_context
from offerbridge.runtime import Runtime
from offerbridge.session.credential_store import ConcurrentClearConflict, StoreUnavailable
from offerbridge.session.state import ConnectionState, ConnectionStatus
from offerbridge.whatsapp.transport import TransportError

from ..deps import get_runtime

router = APIRouter(tags=["control"])

logger = get_logger(__name__)


class StatusResponse(BaseModel):
    state: str
    enrollmentCode: str | None = None
    enrollmentImage: str | None = None
    reconnectAttempts: int = 0


@router.post("/connect-bot")
def connect_bot(runtime: Runtime = Depends(get_runtime)) -> dict:
    """Start the chat session if none is active."""
    supervisor = runtime.supervisor
    if supervisor.start():
        return {"message": "Starting connection..."}
    if supervisor.state == ConnectionState.OPEN:
        return {"message": "Bot already connected"}
    return {"message": "Connection already in progress"}


@router.post("/disconnect-bot")
def disconnect_bot(runtime: Runtime = Depends(get_runtime)):
    """Log out and tear down the chat session."""
    try:
        stopped = runtime.supervisor.stop()
    except (TransportError, FutureTimeoutError) as e:
        logger.error(
            "disconnect failed",
            extra={
                "extra_fields": safe_log_context(
                    correlationId=get_correlation_id(), error_type=type(e).__name__
                )
            },
        )
        return JSONResponse(status_code=500, content={"message": "Failed to disconnect"})

    if not stopped:
        return {"message": "Bot is not connected"}
    return {"message": "Disconnected"}


@router.post("/clear-session")
def clear_session(runtime: Runtime = Depends(get_runtime)):
    """Purge persisted credentials (durable store and local cache)."""
    try:
        runtime.store.clear(runtime.settings.session_key)
    except ConcurrentClearConflict:
        return JSONResponse(
            status_code=409,
            content={"success": False, "message": "Session clear already in progress"},
        )
    except StoreUnavailable as e:
        logger.error(
            "session clear failed",
            extra={
                "extra_fields": safe_log_context(
                    correlationId=get_correlation_id(), error=str(e)
                )
            },
        )
        return JSONResponse(
            status_code=500,
            content={"success": False, "message": "Failed to clear session"},
        )
    runtime.supervisor.session_cleared()
    return {"success": True, "message": "Session cleared."}


@router.get("/status", response_model=StatusResponse)
def status(runtime: Runtime = Depends(get_runtime)) -> StatusResponse:
    """Latest connection status (state and enrollment QR) for the dashboard."""
    return StatusResponse(**runtime.broadcaster.latest.to_dict())


def _status_payload(status: ConnectionStatus) -> dict:
    return StatusResponse(**status.to_dict()).model_dump()


async def _wait_closed(websocket: WebSocket) -> None:
    """Return once the client disconnects; inbound frames are ignored."""
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return


@router.websocket("/ws/status")
async def status_stream(websocket: WebSocket, runtime: Runtime = Depends(get_runtime)) -> None:
    """Push the current status, then every transition, until the client leaves."""
    await websocket.accept()
    loop = asyncio.get_running_loop()
    updates: asyncio.Queue[ConnectionStatus] = asyncio.Queue()

    # Publishes arrive on the supervisor's dispatch thread
    unsubscribe = runtime.broadcaster.subscribe(
        lambda snapshot: loop.call_soon_threadsafe(updates.put_nowait, snapshot)
    )
    closed = asyncio.ensure_future(_wait_closed(websocket))
    logger.info("status stream opened")
    try:
        await websocket.send_json(_status_payload(runtime.broadcaster.latest))
        while True:
            next_update = asyncio.ensure_future(updates.get())
            done, _ = await asyncio.wait(
                {next_update, closed}, return_when=asyncio.FIRST_COMPLETED
            )
            if next_update not in done:
                next_update.cancel()
                break
            await websocket.send_json(_status_payload(next_update.result()))
    finally:
        unsubscribe()
        closed.cancel()
        logger.info("status stream closed")
