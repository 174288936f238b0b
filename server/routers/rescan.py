from fastapi import APIRouter, Depends, HTTPException, Request, WebSocket, WebSocketDisconnect
import anyio
import logging

from ..dependencies import get_coordinator
from ..state import ActionResponse, ImportKeyRequest, RescanRequest, SyncProgress
from pulse.core.coordinator import RescanCoordinator
from pulse.core.errors import AlreadyRunningError, PulseError, ValidationError
from pulse.core.progress_session import ProgressSession

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["rescan"])

def _require_wallet(coordinator: RescanCoordinator):
    if not coordinator.wallet.configured:
        raise HTTPException(status_code=503, detail="Wallet RPC client not initialized")

@router.post("/rescan", response_model=ActionResponse)
async def rescan_wallet(request: Request, coordinator: RescanCoordinator = Depends(get_coordinator)):
    """Start a wallet rescan in the background and return immediately."""
    _require_wallet(coordinator)

    # Missing or malformed body means a full rescan from genesis
    try:
        req = RescanRequest.model_validate(await request.json() or {})
    except ValueError:
        req = RescanRequest()

    try:
        message = coordinator.orchestrator.trigger_rescan(req.begin_height)
    except AlreadyRunningError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValidationError as e:
        return ActionResponse(success=False, message=str(e))

    return ActionResponse(success=True, message=message)

@router.post("/import-key", response_model=ActionResponse)
async def import_key(req: ImportKeyRequest, coordinator: RescanCoordinator = Depends(get_coordinator)):
    """Import an xpub, then discover addresses and rescan in the background."""
    _require_wallet(coordinator)

    try:
        message = coordinator.orchestrator.trigger_import(req.key, req.account_name)
    except ValidationError as e:
        return ActionResponse(success=False, message=str(e))
    except AlreadyRunningError as e:
        raise HTTPException(status_code=409, detail=str(e))

    return ActionResponse(success=True, message=message)

@router.get("/sync-progress", response_model=SyncProgress, response_model_by_alias=True)
async def get_sync_progress(coordinator: RescanCoordinator = Depends(get_coordinator)):
    """Point-in-time rescan progress."""
    update = await coordinator.sync_progress()
    return SyncProgress.from_update(update)

async def _pump(websocket: WebSocket, session: ProgressSession, cancel_scope):
    try:
        async for update in session.updates():
            try:
                await websocket.send_json(SyncProgress.from_update(update).to_json())
            except (WebSocketDisconnect, RuntimeError) as e:
                logger.info(f"Failed to write to WebSocket: {e}")
                return
        # Server-side end of stream
        try:
            await websocket.close()
        except RuntimeError:
            pass
    except PulseError as e:
        logger.error(f"Progress stream failed: {e}")
    finally:
        cancel_scope.cancel()

async def _wait_disconnect(websocket: WebSocket, cancel_scope):
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            break
    cancel_scope.cancel()

@router.websocket("/stream-progress")
async def stream_progress(websocket: WebSocket, coordinator: RescanCoordinator = Depends(get_coordinator)):
    """Push rescan progress until the rescan ends or the client goes away."""
    await websocket.accept()
    logger.info("WebSocket connection established for rescan progress streaming")

    session = coordinator.open_session()
    try:
        # Whichever side finishes first cancels the other
        async with anyio.create_task_group() as tg:
            tg.start_soon(_pump, websocket, session, tg.cancel_scope)
            tg.start_soon(_wait_disconnect, websocket, tg.cancel_scope)
    finally:
        session.close()
    logger.info("WebSocket connection closed")
