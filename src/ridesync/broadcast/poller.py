import asyncio
import contextlib
import logging
from collections import deque
from collections.abc import Awaitable, Callable

from .events import BroadcastEvent
from .log import EventBroadcastLog

logger = logging.getLogger(__name__)

EventHandler = Callable[[BroadcastEvent], Awaitable[None]]

DEFAULT_POLL_INTERVAL_SECONDS = 3.0
SEEN_WINDOW_SIZE = 1000


class EventPoller:
    """Polls the broadcast log on a fixed interval for one user.

    Keeps a ``since`` cursor and a bounded window of delivered event ids, so
    every event is handed to ``handler`` at most once, oldest first.
    """

    def __init__(
        self,
        log: EventBroadcastLog,
        handler: EventHandler,
        user_id: str | None = None,
        interval: float = DEFAULT_POLL_INTERVAL_SECONDS,
        since: int = 0,
    ):
        self._log = log
        self._handler = handler
        self._user_id = user_id
        self._interval = interval
        self.since = since
        self._seen: set[str] = set()
        self._seen_order: deque[str] = deque()
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def _remember(self, event_id: str) -> None:
        self._seen.add(event_id)
        self._seen_order.append(event_id)
        if len(self._seen_order) > SEEN_WINDOW_SIZE:
            self._seen.discard(self._seen_order.popleft())

    async def poll_once(self) -> list[BroadcastEvent]:
        """Fetch and deliver new events. Returns the events handed to the handler."""
        if self._user_id is not None:
            events = await self._log.get_trip_events_for_user(self._user_id, self.since)
        else:
            events = await self._log.get_latest_events(self.since)

        delivered = []
        for event in sorted(events, key=lambda e: e.timestamp):
            if event.event_id in self._seen:
                continue
            self._remember(event.event_id)
            try:
                await self._handler(event)
            except Exception as e:
                logger.error(f"Event handler failed for {event.type} ({event.event_id}): {e}")
            delivered.append(event)
            # Equal timestamps stay visible one more round; the seen set drops the repeats.
            self.since = max(self.since, event.timestamp - 1)
        return delivered

    async def _run(self) -> None:
        while True:
            try:
                await self.poll_once()
            except Exception as e:
                logger.error(f"Error polling broadcast events: {e}")
            await asyncio.sleep(self._interval)

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="broadcast-poller")
        logger.info(f"Broadcast poller started (interval={self._interval}s, user={self._user_id})")

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
