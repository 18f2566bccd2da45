"""
Row-change feed.

Routers publish {table, event, id} after every write; websocket clients
subscribed to a table get the notification and re-fetch their view.
Delivery is best-effort: a subscriber whose queue is full misses the event,
and nothing orders a notification against the HTTP response of the write.
"""

import asyncio
import logging
from datetime import datetime, timezone

from fastapi import WebSocket, WebSocketDisconnect

logger = logging.getLogger(__name__)

QUEUE_SIZE = 100


class ChangeFeed:
    def __init__(self, queue_size: int = QUEUE_SIZE):
        self.queue_size = queue_size
        self._subscribers: dict[asyncio.Queue, set[str] | None] = {}

    def subscribe(self, tables: set[str] | None = None) -> asyncio.Queue:
        """Register a subscriber; None means every table."""
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size)
        self._subscribers[queue] = set(tables) if tables else None
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        self._subscribers.pop(queue, None)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, table: str, event: str, record_id: str | None = None) -> int:
        """Notify subscribers of `table`. Returns how many were notified."""
        change = {
            "table": table,
            "event": event,
            "id": record_id,
            "at": datetime.now(timezone.utc).isoformat(),
        }
        delivered = 0
        for queue, tables in list(self._subscribers.items()):
            if tables is not None and table not in tables:
                continue
            try:
                queue.put_nowait(change)
                delivered += 1
            except asyncio.QueueFull:
                logger.warning("Dropping %s change on %s for a slow subscriber", event, table)
        return delivered


feed = ChangeFeed()


def publish_rows(table: str, event: str, rows) -> None:
    """Publish one change per returned row (or a single id-less change)."""
    rows = rows or []
    if isinstance(rows, dict):
        rows = [rows]
    if not rows:
        feed.publish(table, event)
        return
    for row in rows:
        feed.publish(table, event, row.get("id"))


async def _forward(websocket: WebSocket, queue: asyncio.Queue):
    while True:
        change = await queue.get()
        await websocket.send_json(change)


async def websocket_changes(websocket: WebSocket):
    """/ws/changes?tables=live_classes,messages"""
    raw = websocket.query_params.get("tables", "")
    tables = {t.strip() for t in raw.split(",") if t.strip()} or None
    # Subscribe before accepting so no change after the handshake is missed
    queue = feed.subscribe(tables)
    logger.info("Change feed subscriber joined (tables=%s)", sorted(tables) if tables else "all")
    sender = None
    try:
        await websocket.accept()
        sender = asyncio.create_task(_forward(websocket, queue))
        # Clients never send anything we act on; this returns on disconnect
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        if sender:
            if sender.done() and not sender.cancelled() and sender.exception():
                logger.warning("Change feed send failed: %s", sender.exception())
            sender.cancel()
        feed.unsubscribe(queue)
        logger.info("Change feed subscriber left")
