"""
WebSocket channel for tenant-scoped processing events.

Protocol:
- Client connects to /ws/events?token=<bearer token>
- Server joins the socket to the token's tenant room and replies
  {"event": "joined_tenant", "data": {...}}
- Server then pushes {"event": <name>, "data": <payload>} frames:
  upload_started, processing_started, processing_progress,
  processing_completed, processing_failed
- Client may send {"action": "ping"} (answered with "pong") or
  {"action": "leave_tenant"} (stops delivery, keeps the socket open)
- Client may announce its own work to the rest of the room:
  {"action": "upload_started", "data": {"videoId", "filename"}} is relayed as
  upload_notification, and
  {"action": "processing_progress", "data": {"videoId", "progress", "message"}}
  is relayed as progress_update
"""

import logging
from datetime import datetime

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from videovault.errors import VideoVaultError
from videovault.services.notifier import PROGRESS_UPDATE, UPLOAD_NOTIFICATION

logger = logging.getLogger(__name__)

router = APIRouter()


def _client_data(message: dict) -> dict:
    data = message.get("data")
    return data if isinstance(data, dict) else {}


@router.websocket("/events")
async def tenant_events(websocket: WebSocket):
    accounts = websocket.app.state.accounts
    notifier = websocket.app.state.notifier

    await websocket.accept()
    try:
        current = await accounts.authenticate(websocket.query_params.get("token"))
    except VideoVaultError as e:
        logger.info(f"Rejected event socket: {e.message}")
        await websocket.send_json({"event": "error", "data": {"message": e.message}})
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    tenant_id = current.tenant_id
    await notifier.join(tenant_id, websocket)
    await websocket.send_json({
        "event": "joined_tenant",
        "data": {"message": "Connected to tenant room", "tenantId": tenant_id},
    })

    try:
        while True:
            message = await websocket.receive_json()
            action = message.get("action") if isinstance(message, dict) else None

            if action == "ping":
                await websocket.send_json({"event": "pong", "data": {}})
            elif action == "leave_tenant":
                await notifier.leave(tenant_id, websocket)
                await websocket.send_json({"event": "left_tenant", "data": {"tenantId": tenant_id}})
            elif action == "upload_started":
                data = _client_data(message)
                await notifier.emit(tenant_id, UPLOAD_NOTIFICATION, {
                    "userId": current.id,
                    "videoId": data.get("videoId"),
                    "filename": data.get("filename"),
                    "timestamp": datetime.utcnow().isoformat(),
                })
            elif action == "processing_progress":
                data = _client_data(message)
                await notifier.emit(tenant_id, PROGRESS_UPDATE, {
                    "videoId": data.get("videoId"),
                    "progress": data.get("progress"),
                    "message": data.get("message"),
                    "timestamp": datetime.utcnow().isoformat(),
                })
            else:
                await websocket.send_json({"event": "error", "data": {"message": f"Unknown action: {action}"}})

    except WebSocketDisconnect:
        logger.info(f"Event socket disconnected from tenant {tenant_id}")
    except ValueError as e:
        # receive_json on a non-JSON frame
        logger.warning(f"Closing event socket after bad frame: {e}")
        await websocket.close(code=status.WS_1003_UNSUPPORTED_DATA)
    finally:
        await notifier.leave(tenant_id, websocket)
