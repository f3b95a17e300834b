"""
Live status stream for long-running operations.

Subscribers are asyncio queues fed with Server-Sent-Events frames. Publishing
without subscribers is a no-op, so pipelines behave the same whether or not
anyone is listening.
"""

import asyncio
import json
import logging
import uuid
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, Optional, Set

logger = logging.getLogger(__name__)

HEARTBEAT_SECONDS = 25.0
MAX_PENDING_FRAMES = 1000

@dataclass(frozen=True)
class StatusContext:
    """Tags every event of one operation."""
    request_id: str
    operation: str

def format_sse(event: str, payload: Optional[Dict[str, Any]] = None) -> str:
    """Render one SSE frame."""
    data = json.dumps(payload or {}, ensure_ascii=False, default=str)
    return f"event: {event}\ndata: {data}\n\n"

class StatusBroadcaster:
    """Fan-out of status events to every connected stream."""

    def __init__(self, heartbeat_seconds: float = HEARTBEAT_SECONDS):
        self.heartbeat_seconds = heartbeat_seconds
        self._subscribers: Set[asyncio.Queue] = set()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def has_subscribers(self) -> bool:
        return bool(self._subscribers)

    def create_context(self, operation: str) -> StatusContext:
        return StatusContext(request_id=str(uuid.uuid4()), operation=operation)

    def context_for(self, operation: str) -> Optional[StatusContext]:
        """A new context, or None when nobody is listening."""
        return self.create_context(operation) if self.has_subscribers() else None

    def subscribe(self) -> asyncio.Queue:
        """Register a subscriber; its queue starts with a ``connected`` frame."""
        queue: asyncio.Queue = asyncio.Queue(maxsize=MAX_PENDING_FRAMES)
        queue.put_nowait(format_sse("connected"))
        self._subscribers.add(queue)
        logger.debug(f"Status subscriber connected ({len(self._subscribers)} total)")
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        self._subscribers.discard(queue)
        logger.debug(f"Status subscriber disconnected ({len(self._subscribers)} total)")

    async def stream(self) -> AsyncIterator[str]:
        """
        Yield frames for one subscriber until the consumer stops iterating.

        A ``ping`` frame is emitted whenever no event arrives within the heartbeat interval.
        """
        queue = self.subscribe()
        try:
            while True:
                try:
                    frame = await asyncio.wait_for(queue.get(), timeout=self.heartbeat_seconds)
                except asyncio.TimeoutError:
                    frame = format_sse("ping")
                yield frame
        finally:
            self.unsubscribe(queue)

    def send(self, event: str, context: Optional[StatusContext] = None,
             payload: Optional[Dict[str, Any]] = None) -> None:
        """Publish an event, tagged with ``requestId``/``operation`` from the context."""
        if not self._subscribers:
            return

        enriched = dict(payload or {})
        if context:
            enriched.setdefault("requestId", context.request_id)
            enriched.setdefault("operation", context.operation)

        frame = format_sse(event, enriched)
        for queue in list(self._subscribers):
            try:
                queue.put_nowait(frame)
            except asyncio.QueueFull:
                logger.warning(f"Dropping '{event}' for a slow status subscriber")

    def liked_start(self, context: Optional[StatusContext], **payload):
        self.send("liked-start", context, payload)

    def liked_song(self, context: Optional[StatusContext], **payload):
        self.send("liked-song", context, payload)

    def liked_complete(self, context: Optional[StatusContext], **payload):
        self.send("liked-complete", context, payload)

    def generate_start(self, context: Optional[StatusContext], **payload):
        self.send("generate-start", context, payload)

    def generate_song(self, context: Optional[StatusContext], **payload):
        self.send("generate-song", context, payload)

    def generate_complete(self, context: Optional[StatusContext], **payload):
        self.send("generate-complete", context, payload)

    def genre_start(self, context: Optional[StatusContext], **payload):
        self.send("genre-start", context, payload)

    def genre_progress(self, context: Optional[StatusContext], **payload):
        self.send("genre-progress", context, payload)

    def genre_complete(self, context: Optional[StatusContext], **payload):
        self.send("genre-complete", context, payload)

    def status_message(self, context: Optional[StatusContext], message: str, **payload):
        self.send("status-message", context, {"message": message, **payload})

    def status_error(self, context: Optional[StatusContext], message: str, **payload):
        self.send("status-error", context, {"message": message, **payload})
