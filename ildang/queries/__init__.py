"""Query package: live subscriptions and the read surface."""

from ildang.queries.live import Dependency, LiveQueryLayer, Subscription
from ildang.queries.surface import WorkLogQueries, month_bounds, parse_day

__all__ = [
    "Dependency",
    "LiveQueryLayer",
    "Subscription",
    "WorkLogQueries",
    "month_bounds",
    "parse_day",
]
