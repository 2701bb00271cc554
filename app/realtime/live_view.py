"""
Live view of one order: the single place that decides whether a viewer's data is stale.

Every change hint marks the view stale; refresh() re-runs the loader against the store and
replaces the view wholesale. Loader failures keep the last known view (flagged stale) so viewers
degrade to "last known" instead of erroring.
"""

import logging
import uuid
from typing import Any, Awaitable, Callable, Dict, Optional

from app.realtime.notifier import ChangeEvent

logger = logging.getLogger(__name__)

# Loader returns the freshly derived view, or None when the order no longer exists / is not visible.
ViewLoader = Callable[[uuid.UUID], Awaitable[Optional[Dict[str, Any]]]]


class OrderLiveView:
    def __init__(self, order_id: uuid.UUID, loader: ViewLoader):
        self.order_id = order_id
        self._loader = loader
        self.version = 0
        self.stale = True
        self.absent = False
        self.last_event_sequence = 0
        self.last_error: Optional[str] = None
        self._view: Optional[Dict[str, Any]] = None

    def mark_stale(self, event: Optional[ChangeEvent] = None) -> None:
        self.stale = True
        if event is not None and event.sequence > self.last_event_sequence:
            self.last_event_sequence = event.sequence

    async def refresh(self) -> Dict[str, Any]:
        """Re-derive from the store. Never raises; returns the envelope to push to the viewer."""
        try:
            view = await self._loader(self.order_id)
        except Exception as exc:  # keep serving the last known view
            self.last_error = str(exc)
            logger.warning("Refresh failed for order=%s, serving last known view: %s", self.order_id, exc)
            return self.envelope()

        self.last_error = None
        self.version += 1
        self.stale = False
        if view is None:
            self.absent = True
            self._view = None
        else:
            self.absent = False
            self._view = view
        return self.envelope()

    async def on_change(self, event: ChangeEvent) -> Dict[str, Any]:
        self.mark_stale(event)
        return await self.refresh()

    def envelope(self) -> Dict[str, Any]:
        return {
            "order_id": str(self.order_id),
            "version": self.version,
            "stale": self.stale,
            "absent": self.absent,
            "last_event_sequence": self.last_event_sequence,
            "view": self._view,
        }

    @property
    def view(self) -> Optional[Dict[str, Any]]:
        return self._view
