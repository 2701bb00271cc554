"""
Live order view over WebSocket.

    /ws/orders/{order_id}?token=<jwt>&tables=students,classes

Server -> client:
    {"event": "progress", "data": <live view envelope>}   on connect, after each change, on refresh
    {"event": "changed", "data": <change event>}          for every change hint received
    {"event": "pong", "data": {"timestamp": ...}}
    {"event": "error", "data": {"message": ...}}
Client -> server:
    {"type": "ping"} | {"type": "refresh"}

The envelope's view is the order progress. When audit_reports are watched (or no tables are given) and
the viewer may read audits, view["audit"] carries the audit view too (null until an audit is opened).
"""

import asyncio
import contextlib
import logging
from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, status
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.api.v1.audits.service import load_audit_view
from app.api.v1.progress.service import load_progress_view
from app.auth.dependencies import current_user_from_token
from app.auth.rbac import check_permission, has_permission
from app.core.clock import utcnow
from app.core.enums import ChangeTable
from app.db.session import get_session_factory
from app.realtime.live_view import OrderLiveView
from app.realtime.notifier import ChangeNotifier, Subscription, get_change_notifier

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])


def _wants_audit(user, wanted: Optional[List[str]]) -> bool:
    """Audit views ride along when audit reports are watched and the viewer may read audits."""
    if not has_permission(user, "audits", "read"):
        return False
    return wanted is None or ChangeTable.AUDIT_REPORTS.value in wanted


async def _send(websocket: WebSocket, lock: asyncio.Lock, event: str, data: Dict[str, Any]) -> None:
    async with lock:
        await websocket.send_json({"event": event, "data": data})


async def _pump_changes(websocket: WebSocket, lock: asyncio.Lock, sub: Subscription, view: OrderLiveView) -> None:
    """Forward change hints; a burst of hints is answered with a single recompute."""
    try:
        while True:
            event = await sub.get()
            burst = [event] + sub.drain()
            for e in burst:
                view.mark_stale(e)
                await _send(websocket, lock, "changed", e.to_dict())
            await _send(websocket, lock, "progress", await view.refresh())
    except (WebSocketDisconnect, RuntimeError):
        # Socket went away mid-send; the receive loop cleans up.
        return


@router.websocket("/ws/orders/{order_id}")
async def order_live_view(
    websocket: WebSocket,
    order_id: UUID,
    token: Optional[str] = Query(None),
    tables: Optional[str] = Query(None, description="Comma-separated: orders,classes,students,audit_reports"),
    session_factory: async_sessionmaker = Depends(get_session_factory),
    notifier: ChangeNotifier = Depends(get_change_notifier),
):
    user = current_user_from_token(token) if token else None
    if user is None or not has_permission(user, "orders", "read"):
        logger.warning("Live view connection rejected for order=%s", order_id)
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    wanted = [t.strip() for t in tables.split(",") if t.strip()] if tables else None
    await websocket.accept()
    try:
        sub = await notifier.subscribe(order_id, wanted)
    except ValueError:
        await websocket.send_json({"event": "error", "data": {"message": f"Unknown table in: {tables}"}})
        await websocket.close(code=status.WS_1003_UNSUPPORTED_DATA)
        return

    include_audit = _wants_audit(user, wanted)

    async def load(oid: UUID) -> Optional[Dict[str, Any]]:
        async with session_factory() as db:
            view = await load_progress_view(db, user.tenant_id, oid)
            if view is not None and include_audit:
                view["audit"] = await load_audit_view(db, user.tenant_id, oid)
            return view

    view = OrderLiveView(order_id, load)
    lock = asyncio.Lock()
    pump: Optional[asyncio.Task] = None
    try:
        await _send(websocket, lock, "progress", await view.refresh())
        pump = asyncio.create_task(_pump_changes(websocket, lock, sub, view))
        while True:
            try:
                data = await websocket.receive_json()
            except ValueError:
                await _send(websocket, lock, "error", {"message": "Malformed message; expected a JSON object"})
                continue
            msg_type = data.get("type") if isinstance(data, dict) else None
            if msg_type == "ping":
                await _send(websocket, lock, "pong", {"timestamp": utcnow().isoformat()})
            elif msg_type == "refresh":
                view.mark_stale()
                await _send(websocket, lock, "progress", await view.refresh())
            else:
                await _send(websocket, lock, "error", {"message": f"Unknown message type: {msg_type}"})
    except WebSocketDisconnect:
        logger.info("Live view for order=%s disconnected (sub=%s)", order_id, sub.id)
    finally:
        if pump is not None:
            pump.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await pump
        await sub.close()


@router.get(
    "/api/v1/realtime/stats",
    dependencies=[Depends(check_permission("orders", "read"))],
)
async def realtime_stats(notifier: ChangeNotifier = Depends(get_change_notifier)) -> Dict[str, Any]:
    """Subscription and channel counts for the live view channel."""
    return notifier.get_stats()
