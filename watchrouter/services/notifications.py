"""
Notification sink

Routing records a notification row right away and leaves the webhook post
to a bounded background queue, so a slow webhook never holds up routing.
"""
import asyncio
import logging
from typing import Awaitable, Callable, Dict, Optional

import httpx

logger = logging.getLogger(__name__)

NotificationJob = Callable[[], Awaitable[None]]


class NotificationQueue:
    """Single worker draining a bounded asyncio queue; failed jobs are logged, not retried"""

    def __init__(self, maxsize: int = 100):
        self.maxsize = maxsize
        self._queue: Optional[asyncio.Queue] = None
        self._worker: Optional[asyncio.Task] = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def start(self):
        if self._running:
            return
        self._queue = asyncio.Queue(maxsize=self.maxsize)
        self._running = True
        self._worker = asyncio.create_task(self._run())
        logger.info(f"✓ Notification queue started (max {self.maxsize})")

    def submit(self, job: NotificationJob) -> bool:
        if not self._running:
            logger.warning("Notification queue not running, dropping notification")
            return False
        try:
            self._queue.put_nowait(job)
        except asyncio.QueueFull:
            logger.warning(f"Notification queue full ({self.maxsize}), dropping notification")
            return False
        return True

    async def join(self):
        if self._queue is not None:
            await self._queue.join()

    async def _run(self):
        while True:
            job = await self._queue.get()
            try:
                await job()
            except Exception as e:
                logger.error(f"Notification job failed: {e}", exc_info=True)
            finally:
                self._queue.task_done()

    async def stop(self):
        self._running = False
        if self._worker is None:
            return
        await self._queue.join()
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None
        logger.info("Notification queue stopped")


class NotificationService:
    def __init__(self, db, queue: NotificationQueue, webhook_url: str = "", transport=None):
        self.db = db
        self.queue = queue
        self.webhook_url = webhook_url
        self._transport = transport

    async def post_webhook(self, payload: Dict):
        kwargs = {"timeout": 10}
        if self._transport is not None:
            kwargs["transport"] = self._transport
        async with httpx.AsyncClient(**kwargs) as client:
            resp = await client.post(self.webhook_url, json=payload)
        if resp.status_code >= 400:
            raise RuntimeError(f"Webhook answered HTTP {resp.status_code}")
        logger.info(f"✓ Notification sent for {payload.get('title')}")

    def send_watchlist_notifications(self, user: Dict, content: Dict) -> bool:
        """
        user: {id, name}; content: {title, type, key, watchlist_item_id}

        Records the notification and queues the webhook post.
        """
        self.db.record_notification(
            user["id"],
            content["title"],
            watchlist_item_id=content.get("watchlist_item_id"),
        )
        if not self.webhook_url:
            return True

        payload = {
            "event": "watchlist_add",
            "user": user.get("name"),
            "title": content["title"],
            "type": content.get("type"),
            "key": content.get("key"),
        }
        return self.queue.submit(lambda: self.post_webhook(payload))
