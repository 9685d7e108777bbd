from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from kaspa_aio.exceptions import ResourceNotFoundError
from kaspa_aio.logger import get_logger
from kaspa_aio.services.installation import get_broadcaster, get_orchestrator

logger = get_logger(__name__)

router = APIRouter(prefix="/api/ws", tags=["WebSockets"])


@router.websocket("/install/{run_id}")
async def install_progress(websocket: WebSocket, run_id: str) -> None:
    """Stream progress events for one installation run.

    The first message is a snapshot of the run's current phase and service
    states; later messages are phase, service and log events in publish
    order. The socket is closed once the run finishes.
    """
    logger.info(f"WebSocket connection attempt for run {run_id}")

    try:
        run = get_orchestrator().get_run(run_id)
    except ResourceNotFoundError:
        logger.error(f"Run {run_id} not found")
        # Must accept before closing to avoid 500 error
        await websocket.accept()
        await websocket.close(code=4004, reason="Run not found")
        return

    await websocket.accept()
    broadcaster = get_broadcaster()
    subscription = broadcaster.subscribe(run)
    try:
        async for event in subscription.events():
            await websocket.send_json(event.model_dump(mode="json"))
        await websocket.close()
    except WebSocketDisconnect:
        logger.info(f"Client disconnected from run {run_id}")
    finally:
        broadcaster.unsubscribe(subscription)
