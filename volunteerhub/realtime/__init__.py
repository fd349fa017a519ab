"""Change feed and the filter expressions it shares with the message store."""
from .filters import Filter, eq, neq, in_, and_, or_, parse_filter
from .feed import ChangeFeed, FeedEvent, Subscription

__all__ = [
    "Filter", "eq", "neq", "in_", "and_", "or_", "parse_filter",
    "ChangeFeed", "FeedEvent", "Subscription",
]
