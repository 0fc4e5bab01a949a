import logging
from typing import List

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from rx_reminder.schemas.models import CheckResult, NotificationMessage, PermissionRequest
from rx_reminder.services.notifications import get_dispatcher
from rx_reminder.services.reminders import utcnow
from rx_reminder.services.scheduler import get_scheduler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("/permission")
def get_permission():
    hub = get_dispatcher().hub
    return {"permission": hub.permission, "clients": hub.connection_count}


@router.post("/permission")
def set_permission(req: PermissionRequest):
    hub = get_dispatcher().hub
    hub.permission = req.permission
    logger.info("Notification permission set to %s", req.permission)
    return {"permission": hub.permission, "clients": hub.connection_count}


@router.get("/toasts", response_model=List[NotificationMessage])
def drain_toasts():
    return get_dispatcher().toasts.drain()


@router.post("/check", response_model=CheckResult)
async def check_now():
    now = utcnow()
    fired = await get_scheduler().check_due(now)
    return CheckResult(checked_at=now, fired=fired)


@router.websocket("/ws")
async def notifications_ws(websocket: WebSocket):
    hub = get_dispatcher().hub
    await hub.connect(websocket)
    try:
        while True:
            # clients only listen; anything they send is ignored
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        hub.disconnect(websocket)
