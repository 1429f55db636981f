"""In-memory, plan-scoped event bus for real-time updates via SSE and polling."""

import asyncio
import json
import logging
import time
import uuid
from collections import defaultdict, deque
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

# Events kept per plan for catch-up polling
MAX_BUFFER_SIZE = 200

# Maximum subscribers per plan before we start rejecting (prevents memory runaway)
MAX_SUBSCRIBERS = 100

SUBSCRIBER_QUEUE_SIZE = 256

# Idle plans (no subscribers, no events for this long) lose their buffer
BUFFER_RETENTION_SECONDS = 3600
PRUNE_INTERVAL_SECONDS = 60


@dataclass
class Event:
    """A single event broadcast to a plan's listeners."""

    type: str  # e.g. "decision.requested", "decision.resolved"
    plan_id: str
    payload: dict[str, Any]
    metadata: dict[str, Any] = field(default_factory=dict)  # actor user_id / user_name
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    timestamp: float = field(default_factory=time.time)

    def to_sse(self) -> str:
        """Format as Server-Sent Event."""
        data = json.dumps(self.to_dict(), default=str)
        return f"id: {self.id}\nevent: {self.type}\ndata: {data}\n\n"

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON response (polling)."""
        return {
            "id": self.id,
            "type": self.type,
            "plan_id": self.plan_id,
            "payload": self.payload,
            "metadata": self.metadata,
            "timestamp": self.timestamp,
        }


class EventBus:
    """
    Process-wide event bus keyed by plan.

    - Live clients subscribe to one plan (SSE) and must unsubscribe on disconnect
    - Pollers read the per-plan replay buffer
    - Delivery is at-most-once; a subscriber whose queue is full is dropped
    """

    def __init__(self) -> None:
        self._subscribers: dict[str, list[asyncio.Queue[Event]]] = defaultdict(list)
        self._buffers: dict[str, deque[Event]] = defaultdict(lambda: deque(maxlen=MAX_BUFFER_SIZE))
        self._lock = asyncio.Lock()
        self._last_prune = time.time()

    async def publish(
        self,
        plan_id: Any,
        event_type: str,
        payload: dict[str, Any],
        metadata: dict[str, Any] | None = None,
    ) -> Event:
        """Publish an event to every listener of a plan and to its buffer."""
        key = str(plan_id)
        event = Event(type=event_type, plan_id=key, payload=payload, metadata=metadata or {})

        async with self._lock:
            self._prune(event.timestamp)
            self._buffers[key].append(event)

            dead: list[asyncio.Queue[Event]] = []
            for queue in self._subscribers.get(key, []):
                try:
                    queue.put_nowait(event)
                except asyncio.QueueFull:
                    # Subscriber can't keep up, drop them
                    dead.append(queue)
                    logger.warning("Dropping slow subscriber", extra={"plan_id": key})

            for q in dead:
                self._subscribers[key].remove(q)
            if dead and not self._subscribers[key]:
                del self._subscribers[key]

        logger.debug(
            "Published event %s (id=%s)", event_type, event.id,
            extra={"plan_id": key, "event_type": event_type},
        )
        return event

    async def subscribe(self, plan_id: Any) -> asyncio.Queue[Event]:
        """
        Create a subscriber queue for one plan.

        Caller must call unsubscribe() when the client disconnects.
        """
        key = str(plan_id)
        async with self._lock:
            if len(self._subscribers[key]) >= MAX_SUBSCRIBERS:
                raise RuntimeError("Too many subscribers for this plan")
            queue: asyncio.Queue[Event] = asyncio.Queue(maxsize=SUBSCRIBER_QUEUE_SIZE)
            self._subscribers[key].append(queue)
            logger.info(
                "New subscriber (total for plan: %d)", len(self._subscribers[key]),
                extra={"plan_id": key},
            )
            return queue

    async def unsubscribe(self, plan_id: Any, queue: asyncio.Queue[Event]) -> None:
        """Remove a subscriber queue."""
        key = str(plan_id)
        async with self._lock:
            queues = self._subscribers.get(key)
            if not queues:
                return
            try:
                queues.remove(queue)
            except ValueError:
                pass  # Already removed (e.g., by publish() due to QueueFull)
            if not queues:
                del self._subscribers[key]

    def _prune(self, now: float) -> None:
        """Drop buffers of plans nobody listens to and nothing published to lately.

        Caller must hold the lock.
        """
        if now - self._last_prune < PRUNE_INTERVAL_SECONDS:
            return
        cutoff = now - BUFFER_RETENTION_SECONDS
        idle = [
            key
            for key, buffer in self._buffers.items()
            if not self._subscribers.get(key) and (not buffer or buffer[-1].timestamp < cutoff)
        ]
        for key in idle:
            del self._buffers[key]
        self._last_prune = now
        if idle:
            logger.debug("Pruned %d idle plan buffers", len(idle))

    def get_events_since(self, plan_id: Any, since: float) -> list[dict[str, Any]]:
        """Get buffered events for a plan after a timestamp, oldest first."""
        buffer = self._buffers.get(str(plan_id), ())
        return [e.to_dict() for e in buffer if e.timestamp > since]

    def get_recent_events(self, plan_id: Any, limit: int = 50) -> list[dict[str, Any]]:
        """Get the most recent N events of a plan."""
        events = list(self._buffers.get(str(plan_id), ()))[-limit:]
        return [e.to_dict() for e in events]

    def subscriber_count(self, plan_id: Any | None = None) -> int:
        if plan_id is None:
            return sum(len(q) for q in self._subscribers.values())
        return len(self._subscribers.get(str(plan_id), []))

    def buffer_size(self, plan_id: Any) -> int:
        return len(self._buffers.get(str(plan_id), ()))


# Global singleton, owned by the broadcast side; the broker only publishes
event_bus = EventBus()
