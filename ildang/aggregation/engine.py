"""
Aggregation Engine

Pure, deterministic functions over sequences of WorkLog snapshots.
Nothing here touches the store and nothing here raises for well-formed
input; an empty input is a valid input with all-zero totals.

KNOWN QUIRK (kept on purpose): LocationSummary.days counts log entries,
not distinct calendar dates. Two entries at one site on the same date
count as two days.
"""

import calendar
from datetime import date, timedelta
from typing import Iterable, Sequence

from ildang.models.report import (
    CalendarMonth,
    DailyTotal,
    GrandTotals,
    LocationSummary,
    MonthlyData,
    PaymentStats,
)
from ildang.models.worklog import WorkLog


# Withholding estimate: 3.3% expressed as a fraction of 1000
WITHHOLDING_PER_MILLE = 33


def withholding_tax(amount: int) -> int:
    """
    floor(amount * 0.033) in exact integer arithmetic.
    
    Never rounds up; this is an estimate of statutory withholding,
    not a tax computation.
    """
    return amount * WITHHOLDING_PER_MILLE // 1000


def group_by_location(logs: Iterable[WorkLog]) -> list[LocationSummary]:
    """
    Days and amount per site, in first-seen order.
    
    Day-off entries are excluded. Callers pass logs sorted by date so
    the ordering is reproducible.
    """
    days: dict[str, int] = {}
    amounts: dict[str, int] = {}
    
    for log in logs:
        if log.is_day_off:
            continue
        days[log.location] = days.get(log.location, 0) + 1
        amounts[log.location] = amounts.get(log.location, 0) + log.amount
    
    return [
        LocationSummary(location=location, days=count, amount=amounts[location])
        for location, count in days.items()
    ]


def summarize_month(month: str, logs: Sequence[WorkLog]) -> MonthlyData:
    """Build the MonthlyData for logs already known to share a month."""
    summary = group_by_location(logs)
    total_amount = sum(s.amount for s in summary)
    return MonthlyData(
        month=month,
        logs=list(logs),
        summary=summary,
        total_days=sum(s.days for s in summary),
        total_amount=total_amount,
        tax_amount=withholding_tax(total_amount),
    )


def group_by_month(logs: Iterable[WorkLog]) -> list[MonthlyData]:
    """
    One MonthlyData per distinct YYYY-MM, sorted by month ascending.
    
    Logs keep their input order within a month.
    """
    buckets: dict[str, list[WorkLog]] = {}
    for log in logs:
        buckets.setdefault(log.month_key, []).append(log)
    
    return [summarize_month(month, buckets[month]) for month in sorted(buckets)]


def grand_totals(months: Iterable[MonthlyData]) -> GrandTotals:
    """
    Simple sums of the monthly figures.
    
    The grand tax is the sum of monthly taxes (each already floored),
    which can be less than the tax of the grand amount.
    """
    total_days = 0
    total_amount = 0
    tax_amount = 0
    for month in months:
        total_days += month.total_days
        total_amount += month.total_amount
        tax_amount += month.tax_amount
    return GrandTotals(
        total_days=total_days,
        total_amount=total_amount,
        tax_amount=tax_amount,
    )


def payment_stats(logs: Iterable[WorkLog]) -> PaymentStats:
    """Amount already received versus amount still owed."""
    paid = 0
    unpaid = 0
    for log in logs:
        if log.is_paid:
            paid += log.amount
        else:
            unpaid += log.amount
    return PaymentStats(paid=paid, unpaid=unpaid)


def daily_totals(logs: Iterable[WorkLog]) -> dict[date, DailyTotal]:
    """Per-date totals with paid/day-off flags, keyed by date."""
    grouped: dict[date, list[WorkLog]] = {}
    for log in logs:
        grouped.setdefault(log.date, []).append(log)
    
    return {
        day: DailyTotal(
            date=day,
            total=sum(log.amount for log in day_logs),
            has_logs=True,
            has_unpaid=any(not log.is_paid and not log.is_day_off for log in day_logs),
            is_day_off=all(log.is_day_off for log in day_logs),
        )
        for day, day_logs in grouped.items()
    }


def build_calendar(year: int, month: int, logs: Iterable[WorkLog]) -> CalendarMonth:
    """
    Sunday-first grid for one month.
    
    Logs outside the month are ignored.
    """
    first = date(year, month, 1)
    last_day = calendar.monthrange(year, month)[1]
    totals = daily_totals(
        log for log in logs if log.date.year == year and log.date.month == month
    )
    
    days = []
    for offset in range(last_day):
        day = first + timedelta(days=offset)
        days.append(totals.get(day, DailyTotal(date=day)))
    
    # date.weekday() is Monday=0; shift so Sunday=0
    leading_blanks = (first.weekday() + 1) % 7
    return CalendarMonth(
        year=year,
        month=month,
        leading_blanks=leading_blanks,
        days=days,
    )
