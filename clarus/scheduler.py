"""
Feed Polling Scheduler.

Background tasks that periodically run the podcast and YouTube feed polls,
for deployments without an external cron. Each feed type gets its own task;
the handles are process-local and cancelled on shutdown.
"""

import asyncio
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .services import FeedPoller


logger = logging.getLogger(__name__)

STARTUP_DELAY_SECONDS = 10


class FeedScheduler:
    """
    Background scheduler for feed polling.

    Runs FeedPoller.poll for each feed type every ``interval_minutes``.
    """

    def __init__(
        self,
        poller: "FeedPoller",
        interval_minutes: int = 60,
        feed_types: tuple[str, ...] = ("podcast", "youtube"),
        startup_delay: float = STARTUP_DELAY_SECONDS,
    ):
        self.poller = poller
        self.interval_minutes = interval_minutes
        self.feed_types = feed_types
        self.startup_delay = startup_delay
        self._tasks: dict[str, asyncio.Task] = {}
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def start(self):
        """Start one polling task per feed type."""
        if self._running:
            return
        self._running = True
        for feed_type in self.feed_types:
            self._tasks[feed_type] = asyncio.create_task(self._poll_loop(feed_type))
        logger.info(
            f"Feed polling scheduler started for {', '.join(self.feed_types)} "
            f"(interval: {self.interval_minutes} minutes)"
        )

    async def stop(self):
        """Cancel all polling tasks."""
        self._running = False

        for task in self._tasks.values():
            task.cancel()
        for task in self._tasks.values():
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks.clear()

        logger.info("Feed polling scheduler stopped")

    async def poll_now(self, feed_type: str):
        """Trigger an immediate poll of one feed type."""
        logger.info(f"Triggering immediate {feed_type} poll")
        return await self._do_poll(feed_type)

    async def _poll_loop(self, feed_type: str):
        """Main polling loop for one feed type."""
        # Initial delay to let the server fully start
        await asyncio.sleep(self.startup_delay)

        while self._running:
            await self._do_poll(feed_type)
            # Wait for next poll
            await asyncio.sleep(self.interval_minutes * 60)

    async def _do_poll(self, feed_type: str):
        """Perform a single poll; errors are logged so the loop keeps going."""
        try:
            return await self.poller.poll(feed_type)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception(f"{feed_type} feed poll error: {e}")
            return None
