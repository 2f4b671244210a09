"""
Stage change notifications.

`StageEventBus` is created by the application (see `hirepipe.main`) and
handed to the coordinators explicitly. Delivery is best effort: a transition
is committed before its event is published, and no publishing failure is
ever reported back to the caller of `transition`.

Without a Redis URL events stay in-process. With one, every worker publishes
to a shared channel and relays what it receives to its own subscribers.
"""

from __future__ import annotations

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from dataclasses import asdict, dataclass
from typing import AsyncIterator

import redis.asyncio as redis

logger = logging.getLogger("hirepipe.events")

STAGE_CHANNEL = "hirepipe:stage_changes"


@dataclass(frozen=True)
class StageChangeEvent:
    candidate_id: str
    from_stage: str
    to_stage: str
    changed_by: str | None
    sequence: int
    type: str = "stage_changed"

    def to_json(self) -> str:
        return json.dumps(asdict(self), ensure_ascii=False, separators=(",", ":"))


class StageEventBus:
    def __init__(self, redis_url: str = "", *, channel: str = STAGE_CHANNEL, queue_size: int = 200) -> None:
        self.redis_url = redis_url.strip()
        self.channel = channel
        self.queue_size = queue_size
        self._queues: list[asyncio.Queue[str]] = []
        self._client: redis.Redis | None = None
        self._relay_task: asyncio.Task | None = None

    @property
    def subscriber_count(self) -> int:
        return len(self._queues)

    def _deliver_local(self, data: str) -> None:
        for queue in tuple(self._queues):
            if queue.full():
                # Slow consumer: drop its oldest event.
                queue.get_nowait()
            queue.put_nowait(data)

    def _redis(self) -> redis.Redis | None:
        if not self.redis_url:
            return None
        if self._client is None:
            self._client = redis.from_url(self.redis_url, decode_responses=True)
        if self._relay_task is None or self._relay_task.done():
            self._relay_task = asyncio.create_task(self._relay(self._client))
        return self._client

    async def _relay(self, client: redis.Redis) -> None:
        pubsub = client.pubsub()
        try:
            await pubsub.subscribe(self.channel)
            async for message in pubsub.listen():
                if message.get("type") == "message" and isinstance(message.get("data"), str):
                    self._deliver_local(message["data"])
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("stage_event_relay_stopped", extra={"error": type(exc).__name__})
        finally:
            await pubsub.aclose()

    async def publish(self, event: StageChangeEvent) -> None:
        """Fan `event` out to subscribers. Never raises."""
        data = event.to_json()
        try:
            client = self._redis()
            if client is not None:
                await client.publish(self.channel, data)
                return
        except Exception as exc:
            logger.warning(
                "stage_event_publish_failed",
                extra={"candidate_id": event.candidate_id, "error": type(exc).__name__},
            )
        self._deliver_local(data)

    @asynccontextmanager
    async def subscription(self) -> AsyncIterator[asyncio.Queue[str]]:
        queue: asyncio.Queue[str] = asyncio.Queue(maxsize=self.queue_size)
        self._queues.append(queue)
        try:
            self._redis()
        except Exception as exc:
            logger.warning("stage_event_subscribe_degraded", extra={"error": type(exc).__name__})
        try:
            yield queue
        finally:
            self._queues.remove(queue)

    async def close(self) -> None:
        if self._relay_task is not None and not self._relay_task.done():
            self._relay_task.cancel()
        self._relay_task = None
        if self._client is not None:
            await self._client.aclose()
            self._client = None
