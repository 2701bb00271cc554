"""
Change notifier: in-process push channel scoped per (table, order_id).

Events are hints to refetch, never state. Delivery is at-least-once and may be reordered or
dropped (bounded queues drop the oldest hint); consumers re-read the store on every hint, so a
missed event only delays a refresh.
"""

import asyncio
import itertools
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from app.core.clock import utcnow
from app.core.config import settings
from app.core.enums import ChangeTable

logger = logging.getLogger(__name__)

ChannelKey = Tuple[str, uuid.UUID]


@dataclass(frozen=True)
class ChangeEvent:
    table: str
    order_id: uuid.UUID
    action: str  # INSERT | UPDATE | DELETE
    row_id: Optional[uuid.UUID] = None
    sequence: int = 0
    emitted_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "table": self.table,
            "order_id": str(self.order_id),
            "action": self.action,
            "row_id": str(self.row_id) if self.row_id else None,
            "sequence": self.sequence,
            "emitted_at": self.emitted_at.isoformat(),
        }


class Subscription:
    """One subscriber's view of the channel: a bounded queue of change hints."""

    def __init__(self, notifier: "ChangeNotifier", order_id: uuid.UUID, tables: Set[str], maxsize: int):
        self.id = str(uuid.uuid4())
        self.order_id = order_id
        self.tables = tables
        self.dropped = 0
        self._notifier = notifier
        self._queue: "asyncio.Queue[ChangeEvent]" = asyncio.Queue(maxsize=maxsize)

    def offer(self, event: ChangeEvent) -> None:
        if self._queue.full():
            # Oldest hint goes; the refresh it would have caused is covered by this newer one.
            self._queue.get_nowait()
            self.dropped += 1
        self._queue.put_nowait(event)

    async def get(self, timeout: Optional[float] = None) -> Optional[ChangeEvent]:
        """Next hint, or None on timeout."""
        try:
            if timeout is None:
                return await self._queue.get()
            return await asyncio.wait_for(self._queue.get(), timeout)
        except asyncio.TimeoutError:
            return None

    def drain(self) -> List[ChangeEvent]:
        """Take every pending hint at once; a burst of edits collapses into one refresh."""
        events = []
        while not self._queue.empty():
            events.append(self._queue.get_nowait())
        return events

    def pending(self) -> int:
        return self._queue.qsize()

    async def close(self) -> None:
        await self._notifier.unsubscribe(self)


class ChangeNotifier:
    """Tracks subscriptions by (table, order_id) and fans change hints out to them."""

    def __init__(self, queue_size: Optional[int] = None):
        self._queue_size = queue_size or settings.notification_queue_size
        self._subscriptions: Dict[str, Subscription] = {}
        self._channels: Dict[ChannelKey, Set[str]] = {}
        self._sequence = itertools.count(1)
        self._lock = asyncio.Lock()

    async def subscribe(
        self,
        order_id: uuid.UUID,
        tables: Optional[Iterable[str]] = None,
    ) -> Subscription:
        wanted = {ChangeTable(t).value for t in tables} if tables else {t.value for t in ChangeTable}
        sub = Subscription(self, order_id, wanted, self._queue_size)
        async with self._lock:
            self._subscriptions[sub.id] = sub
            for table in wanted:
                self._channels.setdefault((table, order_id), set()).add(sub.id)
        logger.info("Subscribed %s to order=%s tables=%s", sub.id, order_id, sorted(wanted))
        return sub

    async def unsubscribe(self, sub: Subscription) -> None:
        async with self._lock:
            if self._subscriptions.pop(sub.id, None) is None:
                return
            for table in sub.tables:
                key = (table, sub.order_id)
                ids = self._channels.get(key)
                if ids is None:
                    continue
                ids.discard(sub.id)
                if not ids:
                    del self._channels[key]
        logger.info("Unsubscribed %s from order=%s", sub.id, sub.order_id)

    async def publish(
        self,
        table: ChangeTable,
        order_id: uuid.UUID,
        action: str = "UPDATE",
        row_id: Optional[uuid.UUID] = None,
    ) -> ChangeEvent:
        """Call after commit. Never raises into the caller's write path."""
        event = ChangeEvent(
            table=ChangeTable(table).value,
            order_id=order_id,
            action=action,
            row_id=row_id,
            sequence=next(self._sequence),
        )
        ids = list(self._channels.get((event.table, order_id), ()))
        for sub_id in ids:
            sub = self._subscriptions.get(sub_id)
            if sub is not None:
                sub.offer(event)
        logger.debug("Published %s to %d subscriber(s)", event.to_dict(), len(ids))
        return event

    def subscriber_count(self, order_id: Optional[uuid.UUID] = None) -> int:
        if order_id is None:
            return len(self._subscriptions)
        return sum(1 for s in self._subscriptions.values() if s.order_id == order_id)

    def get_stats(self) -> Dict[str, Any]:
        return {
            "subscriptions": len(self._subscriptions),
            "channels": {f"{table}:{order_id}": len(ids) for (table, order_id), ids in self._channels.items()},
            "dropped_hints": sum(s.dropped for s in self._subscriptions.values()),
        }


# Global instance
change_notifier = ChangeNotifier()


def get_change_notifier() -> ChangeNotifier:
    """Get the global change notifier instance."""
    return change_notifier
