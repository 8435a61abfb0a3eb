"""
Report Models

Outputs of the aggregation engine and the report builder.
All of them are derived data: they are computed from WorkLog snapshots
on demand and are never persisted.
"""

import datetime as dt
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from ildang.models.worklog import WorkLog


class LocationSummary(BaseModel):
    """Days worked and wages earned at one site."""
    model_config = ConfigDict(frozen=True)
    
    location: str
    # Number of log entries, not distinct calendar dates
    days: int = Field(ge=0)
    amount: int = Field(ge=0)


class MonthlyData(BaseModel):
    """All logs of one calendar month with their per-site summary."""
    model_config = ConfigDict(frozen=True)
    
    month: str = Field(
        ...,
        pattern=r"^\d{4}-\d{2}$",
        description="Month key (YYYY-MM)"
    )
    logs: list[WorkLog] = Field(default_factory=list)
    summary: list[LocationSummary] = Field(default_factory=list)
    total_days: int = Field(default=0, ge=0)
    total_amount: int = Field(default=0, ge=0)
    tax_amount: int = Field(default=0, ge=0)
    
    @property
    def net_amount(self) -> int:
        return self.total_amount - self.tax_amount
    
    @property
    def year_number(self) -> int:
        return int(self.month[:4])
    
    @property
    def month_number(self) -> int:
        return int(self.month[5:])


class GrandTotals(BaseModel):
    """Sums across every month of a report."""
    model_config = ConfigDict(frozen=True)
    
    total_days: int = Field(default=0, ge=0)
    total_amount: int = Field(default=0, ge=0)
    tax_amount: int = Field(default=0, ge=0)
    
    @property
    def net_amount(self) -> int:
        return self.total_amount - self.tax_amount


class PaymentStats(BaseModel):
    """Money received versus money still owed."""
    model_config = ConfigDict(frozen=True)
    
    paid: int = Field(default=0, ge=0)
    unpaid: int = Field(default=0, ge=0)


class DailyTotal(BaseModel):
    """Wage total for one calendar date."""
    model_config = ConfigDict(frozen=True)
    
    date: dt.date
    total: int = Field(default=0, ge=0)
    has_logs: bool = False
    has_unpaid: bool = False
    is_day_off: bool = False


class CalendarMonth(BaseModel):
    """
    A Sunday-first month grid.
    
    leading_blanks is the number of empty cells before the 1st.
    """
    model_config = ConfigDict(frozen=True)
    
    year: int
    month: int = Field(ge=1, le=12)
    leading_blanks: int = Field(ge=0, le=6)
    days: list[DailyTotal] = Field(default_factory=list)
    
    def weeks(self) -> list[list[Optional[DailyTotal]]]:
        """Rows of seven cells, padded with None at both ends."""
        cells: list[Optional[DailyTotal]] = [None] * self.leading_blanks
        cells.extend(self.days)
        while len(cells) % 7:
            cells.append(None)
        return [cells[i:i + 7] for i in range(0, len(cells), 7)]
    
    @property
    def worked_dates(self) -> set[dt.date]:
        return {d.date for d in self.days if d.has_logs and not d.is_day_off}


class BankInfo(BaseModel):
    """Account the payment should be sent to."""
    model_config = ConfigDict(frozen=True)
    
    bank_name: str
    bank_account: str
    account_holder: str = ""


class ReportView(BaseModel):
    """
    The assembled, ready-to-render payment claim for a date range.
    
    An empty months list means "no records in range"; callers show
    an explicit empty state instead of rendering the report.
    """
    model_config = ConfigDict(frozen=True)
    
    title: str
    range_start: dt.date
    range_end: dt.date
    payee: str
    months: list[MonthlyData] = Field(default_factory=list)
    grand_totals: GrandTotals = Field(default_factory=GrandTotals)
    bank_info: Optional[BankInfo] = None
    
    @property
    def is_empty(self) -> bool:
        return not self.months
    
    @property
    def is_multi_month(self) -> bool:
        return len(self.months) > 1
    
    @property
    def logs(self) -> list[WorkLog]:
        """Every log of the report, in month order."""
        return [log for month in self.months for log in month.logs]


class MonthOverview(BaseModel):
    """Everything the month screen shows: logs, paid/unpaid sums, calendar."""
    model_config = ConfigDict(frozen=True)
    
    logs: list[WorkLog] = Field(default_factory=list)
    stats: PaymentStats = Field(default_factory=PaymentStats)
    calendar: CalendarMonth
