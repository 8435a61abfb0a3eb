"""Record factories shared by the test modules."""

from datetime import date

from ildang.models.worklog import DAY_OFF_LOCATION, WorkLog


def make_log(day: str, location: str = "A", amount: int = 150000, **fields) -> WorkLog:
    """Build an unsaved WorkLog; day is YYYY-MM-DD."""
    return WorkLog(date=date.fromisoformat(day), location=location, amount=amount, **fields)


def make_day_off(day: str) -> WorkLog:
    return WorkLog(
        date=date.fromisoformat(day),
        location=DAY_OFF_LOCATION,
        amount=0,
        is_day_off=True,
    )
