"""
Tenant-scoped event fan-out.

Pipeline code depends only on the `Notifier` interface
(`emit(tenant_id, event, payload)`); the WebSocket room implementation below
is what the running app injects.
"""

import asyncio
import logging
from collections import defaultdict
from typing import Any, Dict, Protocol, Set

from fastapi import WebSocket

logger = logging.getLogger(__name__)

PROCESSING_STARTED = "processing_started"
PROCESSING_PROGRESS = "processing_progress"
PROCESSING_COMPLETED = "processing_completed"
PROCESSING_FAILED = "processing_failed"
UPLOAD_STARTED = "upload_started"

# Relayed from one client to the rest of its tenant room
UPLOAD_NOTIFICATION = "upload_notification"
PROGRESS_UPDATE = "progress_update"


class Notifier(Protocol):
    async def emit(self, tenant_id: int, event: str, payload: Dict[str, Any]) -> None:
        ...


class NullNotifier:
    """Drops every event (used when no relay is configured)."""

    async def emit(self, tenant_id: int, event: str, payload: Dict[str, Any]) -> None:
        return None


class TenantNotifier:
    """
    Keeps one room of WebSocket connections per tenant.

    A failed send removes that socket from its room; it never propagates to
    the caller of emit().
    """

    def __init__(self):
        self.rooms: Dict[int, Set[WebSocket]] = defaultdict(set)
        self._lock = asyncio.Lock()

    async def join(self, tenant_id: int, websocket: WebSocket):
        async with self._lock:
            self.rooms[tenant_id].add(websocket)
        logger.info(f"Socket joined tenant {tenant_id} ({len(self.rooms[tenant_id])} connected)")

    async def leave(self, tenant_id: int, websocket: WebSocket):
        async with self._lock:
            room = self.rooms.get(tenant_id)
            if room is None:
                return
            room.discard(websocket)
            if not room:
                del self.rooms[tenant_id]
        logger.info(f"Socket left tenant {tenant_id}")

    def connection_count(self, tenant_id: int) -> int:
        return len(self.rooms.get(tenant_id, ()))

    async def emit(self, tenant_id: int, event: str, payload: Dict[str, Any]) -> None:
        async with self._lock:
            targets = list(self.rooms.get(tenant_id, ()))
        if not targets:
            return

        message = {"event": event, "data": payload}
        dead = []
        for websocket in targets:
            try:
                await websocket.send_json(message)
            except Exception as e:
                logger.warning(f"Dropping socket in tenant {tenant_id} after failed send of {event}: {e}")
                dead.append(websocket)

        for websocket in dead:
            await self.leave(tenant_id, websocket)
