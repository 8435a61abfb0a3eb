"""Aggregation package: pure functions from logs to totals."""

from ildang.aggregation.engine import (
    WITHHOLDING_PER_MILLE,
    build_calendar,
    daily_totals,
    grand_totals,
    group_by_location,
    group_by_month,
    payment_stats,
    summarize_month,
    withholding_tax,
)

__all__ = [
    "WITHHOLDING_PER_MILLE",
    "build_calendar",
    "daily_totals",
    "grand_totals",
    "group_by_location",
    "group_by_month",
    "payment_stats",
    "summarize_month",
    "withholding_tax",
]
