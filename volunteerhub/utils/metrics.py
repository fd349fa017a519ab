"""
Metrics Collection for the Messaging Service.

Counts sends, failures, feed deliveries and read receipts.
"""

import functools
import inspect
import time
from typing import Dict, Any, Callable
from collections import defaultdict
from datetime import datetime
import threading


class MetricsCollector:
    """Collects and manages messaging metrics."""

    def __init__(self):
        """Initialize metrics collector."""
        self.metrics = defaultdict(int)
        self.timers = defaultdict(float)
        self.lock = threading.Lock()

        # Initialize counters
        self.metrics["messages_sent_total"] = 0
        self.metrics["messages_send_failed_total"] = 0
        self.metrics["feed_events_delivered_total"] = 0
        self.metrics["read_receipts_failed_total"] = 0
        self.metrics["subscriptions_active"] = 0

    def increment_counter(self, metric_name: str, value: int = 1):
        """Increment a counter metric."""
        with self.lock:
            self.metrics[metric_name] += value

    def record_timer(self, metric_name: str, duration: float):
        """Record a timing metric."""
        with self.lock:
            self.timers[metric_name] += duration

    def get_metrics(self) -> Dict[str, Any]:
        """Get current metrics values."""
        with self.lock:
            return {
                "counters": dict(self.metrics),
                "timers": dict(self.timers),
                "timestamp": datetime.utcnow().isoformat()
            }

    def reset(self):
        with self.lock:
            for name in self.metrics:
                self.metrics[name] = 0
            self.timers.clear()

    def message_sent(self):
        """Record that a message was persisted by the send pipeline."""
        self.increment_counter("messages_sent_total")

    def message_send_failed(self):
        """Record that the send pipeline rolled back a message."""
        self.increment_counter("messages_send_failed_total")

    def feed_event_delivered(self):
        """Record that a change feed event reached a subscriber."""
        self.increment_counter("feed_events_delivered_total")

    def read_receipt_failed(self):
        """Record that a best-effort read receipt could not be written."""
        self.increment_counter("read_receipts_failed_total")

    def subscription_opened(self):
        self.increment_counter("subscriptions_active")

    def subscription_closed(self):
        self.increment_counter("subscriptions_active", -1)

    def time_operation(self, metric_name: str) -> Callable:
        """Decorator timing a plain or coroutine function."""
        def decorator(func):
            if inspect.iscoroutinefunction(func):
                @functools.wraps(func)
                async def async_wrapper(*args, **kwargs):
                    start_time = time.time()
                    try:
                        return await func(*args, **kwargs)
                    finally:
                        self.record_timer(metric_name, time.time() - start_time)
                return async_wrapper

            @functools.wraps(func)
            def wrapper(*args, **kwargs):
                start_time = time.time()
                try:
                    return func(*args, **kwargs)
                finally:
                    self.record_timer(metric_name, time.time() - start_time)
            return wrapper
        return decorator


# Global metrics instance
metrics_collector = MetricsCollector()
