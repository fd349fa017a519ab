"""
Change Feed.

In-process publish/subscribe feed of record changes. The message store
publishes an event for every row it inserts or updates; subscribers register
a filter and receive matching events in arrival order.

Each subscription owns a queue and a pump task, so a slow subscriber never
blocks the publisher or other subscribers. Unsubscribing cancels the pump and
drops any events that were not yet delivered.
"""

import asyncio
import inspect
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from volunteerhub.realtime.filters import Filter, parse_filter
from volunteerhub.utils.metrics import metrics_collector

logger = logging.getLogger(__name__)

INSERT = "INSERT"
UPDATE = "UPDATE"
ANY_EVENT = "*"


@dataclass
class FeedEvent:
    """A single change notification."""
    table: str
    event: str
    new: Dict[str, Any]
    timestamp: datetime = field(default_factory=datetime.utcnow)


FeedCallback = Callable[[FeedEvent], Union[None, Awaitable[None]]]


class Subscription:
    """Handle for one registered listener on the feed."""

    def __init__(
        self,
        channel: str,
        table: str,
        event: str,
        filter: Optional[Filter],
        callback: FeedCallback,
    ):
        self.id = str(uuid.uuid4())
        self.channel = channel
        self.table = table
        self.event = event.upper()
        self.filter = filter
        self.callback = callback
        self.active = False
        self.queue: asyncio.Queue = asyncio.Queue()
        self._busy = False
        self._task: Optional[asyncio.Task] = None

    def __repr__(self):
        return f"<Subscription {self.channel} {self.event} {self.table} {self.filter!r}>"

    @property
    def pending(self) -> bool:
        """True while events are queued or being delivered."""
        return self._busy or not self.queue.empty()

    def accepts(self, event: FeedEvent) -> bool:
        if not self.active or event.table != self.table:
            return False
        if self.event != ANY_EVENT and event.event != self.event:
            return False
        return self.filter is None or self.filter.matches(event.new)

    def start(self):
        self.active = True
        self._task = asyncio.get_running_loop().create_task(
            self._pump(), name=f"feed-{self.channel}"
        )

    def cancel(self):
        """Stop delivery. Safe to call from inside the subscription's own callback."""
        if not self.active:
            return
        self.active = False

        # Drop undelivered events so anybody waiting on the queue is released
        while not self.queue.empty():
            self.queue.get_nowait()
            self.queue.task_done()

        if self._task is not None and self._task is not asyncio.current_task():
            self._task.cancel()

    async def _pump(self):
        while self.active:
            event = await self.queue.get()
            self._busy = True
            try:
                if not self.active:
                    continue
                result = self.callback(event)
                if inspect.isawaitable(result):
                    await result
                metrics_collector.feed_event_delivered()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Feed callback error on channel {self.channel}: {str(e)}", exc_info=True)
            finally:
                self._busy = False
                self.queue.task_done()


class ChangeFeed:
    """Registry of subscriptions and the publish entry point."""

    def __init__(self):
        self._subscriptions: List[Subscription] = []

    @property
    def subscriptions(self) -> List[Subscription]:
        return list(self._subscriptions)

    def subscribe(
        self,
        table: str,
        event: str,
        filter: Union[Filter, str, None],
        callback: FeedCallback,
        channel: Optional[str] = None,
    ) -> Subscription:
        """
        Register a listener. Must be called from within a running event loop.

        Args:
            table: Table whose changes are of interest
            event: ``INSERT``, ``UPDATE`` or ``*``
            filter: Filter object, ``column=op.value`` string, or None for all rows
            callback: Plain or coroutine function receiving a FeedEvent
            channel: Human readable channel name used in logs

        Returns:
            The active Subscription handle
        """
        if isinstance(filter, str):
            filter = parse_filter(filter)

        subscription = Subscription(
            channel=channel or f"{table}-{event.lower()}",
            table=table,
            event=event,
            filter=filter,
            callback=callback,
        )
        subscription.start()
        self._subscriptions.append(subscription)
        metrics_collector.subscription_opened()
        logger.info(f"Subscribed {subscription!r}. Active subscriptions: {len(self._subscriptions)}")
        return subscription

    def unsubscribe(self, subscription: Optional[Subscription]):
        """Release a subscription. Unknown or already released handles are ignored."""
        if subscription is None or subscription not in self._subscriptions:
            return
        self._subscriptions.remove(subscription)
        subscription.cancel()
        metrics_collector.subscription_closed()
        logger.info(f"Unsubscribed {subscription!r}. Active subscriptions: {len(self._subscriptions)}")

    def publish(self, table: str, event: str, record: Dict[str, Any]) -> int:
        """
        Queue a change for every matching subscription.

        Returns:
            Number of subscriptions the event was queued for
        """
        feed_event = FeedEvent(table=table, event=event.upper(), new=dict(record))
        delivered = 0
        for subscription in list(self._subscriptions):
            if subscription.accepts(feed_event):
                subscription.queue.put_nowait(feed_event)
                delivered += 1
        logger.debug(f"Published {feed_event.event} on {table} to {delivered} subscription(s)")
        return delivered

    async def flush(self):
        """Wait until every queued event has been delivered."""
        while True:
            pending = [s for s in self._subscriptions if s.pending]
            if not pending:
                return
            await asyncio.gather(*(s.queue.join() for s in pending))

    async def close(self):
        """Release all subscriptions."""
        for subscription in list(self._subscriptions):
            self.unsubscribe(subscription)
