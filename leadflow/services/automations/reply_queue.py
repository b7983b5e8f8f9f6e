"""
Reply queue.

Bounded, de-duplicating work queue between the inbound webhook and the
conditional step activator:

- events are keyed by a content fingerprint
- a key that is queued, in flight, backing off or recently completed is
  dropped on submit (webhook redeliveries)
- one consumer task drains the queue
- a RateLimitError from the handler requeues the event with exponential
  back-off, up to a retry cap
"""

import asyncio
import logging
from collections import OrderedDict
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Set, Tuple

from leadflow.core.config import ReplyQueueConfig
from leadflow.core.exceptions import RateLimitError
from leadflow.core.tasks import safe_create_task
from leadflow.services.automations.types import ReplyEvent

logger = logging.getLogger(__name__)

ReplyHandler = Callable[[ReplyEvent], Awaitable[Any]]


class KeyState(str, Enum):
    QUEUED = "queued"
    IN_FLIGHT = "in_flight"
    BACKOFF = "backoff"


class ReplyQueue:
    """
    Single-consumer queue of reply events.

    Usage:
        queue = ReplyQueue(activator.handle_reply)
        queue.start()
        queue.submit(event)
        ...
        await queue.stop()
    """

    def __init__(
        self,
        handler: ReplyHandler,
        max_size: int = ReplyQueueConfig.MAX_SIZE,
        max_retries: int = ReplyQueueConfig.MAX_RETRIES,
        backoff_base: float = ReplyQueueConfig.BACKOFF_BASE_SECONDS,
        backoff_max: float = ReplyQueueConfig.BACKOFF_MAX_SECONDS,
        recent_keys: int = ReplyQueueConfig.RECENT_KEYS,
    ):
        self.handler = handler
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self.recent_keys = recent_keys

        self._queue: "asyncio.Queue[Tuple[ReplyEvent, int]]" = asyncio.Queue(maxsize=max_size)
        self._states: Dict[str, KeyState] = {}
        self._recent: "OrderedDict[str, None]" = OrderedDict()
        self._backoff_tasks: Set[asyncio.Task] = set()
        self._worker: Optional[asyncio.Task] = None

        self.processed = 0
        self.dropped_duplicates = 0
        self.dropped_full = 0
        self.gave_up = 0

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def submit(self, event: ReplyEvent) -> bool:
        """
        Enqueue an event unless it is a duplicate or the queue is full.

        Returns:
            True if accepted
        """
        key = event.fingerprint()
        if key in self._states or key in self._recent:
            self.dropped_duplicates += 1
            logger.info(f"[ReplyQueue] Duplicate reply dropped for lead {event.lead_id}")
            return False

        try:
            self._queue.put_nowait((event, 0))
        except asyncio.QueueFull:
            self.dropped_full += 1
            logger.warning(f"[ReplyQueue] Queue full, reply of lead {event.lead_id} dropped")
            return False

        self._states[key] = KeyState.QUEUED
        return True

    def start(self) -> None:
        """Start the consumer task."""
        if self.running:
            return
        self._worker = safe_create_task(self._run(), name="reply_queue")
        logger.info("[ReplyQueue] Consumer started")

    async def stop(self) -> None:
        """Stop the consumer and pending back-offs. Queued events are dropped."""
        tasks = list(self._backoff_tasks)
        if self._worker is not None:
            tasks.append(self._worker)

        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass

        self._worker = None
        self._backoff_tasks.clear()
        logger.info("[ReplyQueue] Consumer stopped")

    async def wait_idle(self, poll_seconds: float = 0.01) -> None:
        """Wait until nothing is queued, in flight or backing off."""
        while self._states:
            await asyncio.sleep(poll_seconds)

    async def _run(self) -> None:
        while True:
            event, attempt = await self._queue.get()
            try:
                await self._process(event, attempt)
            finally:
                self._queue.task_done()

    async def _process(self, event: ReplyEvent, attempt: int) -> None:
        key = event.fingerprint()
        self._states[key] = KeyState.IN_FLIGHT

        try:
            await self.handler(event)
        except RateLimitError as e:
            if attempt < self.max_retries:
                delay = self._backoff(attempt, e.retry_after)
                logger.warning(
                    f"[ReplyQueue] Rate limited on lead {event.lead_id}, "
                    f"retry {attempt + 1}/{self.max_retries} in {delay:.1f}s"
                )
                self._states[key] = KeyState.BACKOFF
                task = safe_create_task(
                    self._requeue_later(event, attempt + 1, delay),
                    name="reply_queue_backoff",
                )
                self._backoff_tasks.add(task)
                task.add_done_callback(self._backoff_tasks.discard)
                return

            self.gave_up += 1
            logger.error(
                f"[ReplyQueue] Giving up on reply of lead {event.lead_id} "
                f"after {self.max_retries} retries"
            )
        except Exception as e:
            logger.error(f"[ReplyQueue] Error handling reply of lead {event.lead_id}: {e}")

        self.processed += 1
        self._complete(key)

    def _backoff(self, attempt: int, retry_after: Optional[float]) -> float:
        if retry_after is not None:
            return min(self.backoff_max, max(0.0, retry_after))
        return min(self.backoff_max, self.backoff_base * (2 ** attempt))

    async def _requeue_later(self, event: ReplyEvent, attempt: int, delay: float) -> None:
        await asyncio.sleep(delay)
        self._states[event.fingerprint()] = KeyState.QUEUED
        await self._queue.put((event, attempt))

    def _complete(self, key: str) -> None:
        self._states.pop(key, None)
        self._recent[key] = None
        while len(self._recent) > self.recent_keys:
            self._recent.popitem(last=False)

    def stats(self) -> dict:
        return {
            "queued": self._queue.qsize(),
            "tracked_keys": len(self._states),
            "recent_keys": len(self._recent),
            "processed": self.processed,
            "dropped_duplicates": self.dropped_duplicates,
            "dropped_full": self.dropped_full,
            "gave_up": self.gave_up,
            "running": self.running,
        }
