"""
Report Builder

Assembles a ReportView from aggregation output and the settings record.
This is an assembly step only: totals come from the aggregation engine
and are never recomputed here.
"""

from datetime import date
from typing import Optional, Sequence

from ildang.aggregation import grand_totals
from ildang.config import ReportSettings, get_settings
from ildang.models.report import BankInfo, MonthlyData, ReportView
from ildang.models.worklog import UserSettings


def month_label(month_key: str, with_year: bool = False) -> str:
    """'2024-06' -> '6월' (or '2024년 6월')."""
    year, month = month_key.split("-")
    label = f"{int(month)}월"
    return f"{int(year)}년 {label}" if with_year else label


def report_title(months: Sequence[MonthlyData], range_start: date) -> str:
    """
    Title from the first and last month of the report.
    
    Years are spelled out only when the months span more than one year.
    An empty report is titled after the month of range_start.
    """
    if not months:
        return month_label(range_start.isoformat()[:7])
    
    first, last = months[0].month, months[-1].month
    if first == last:
        return month_label(first)
    
    with_year = first[:4] != last[:4]
    return f"{month_label(first, with_year)}–{month_label(last, with_year)}"


class ReportBuilder:
    """Builds ReportView objects; holds no state besides configuration."""
    
    def __init__(self, report_settings: Optional[ReportSettings] = None):
        self._settings = report_settings or get_settings().report
    
    def build(
        self,
        months: Sequence[MonthlyData],
        settings: UserSettings,
        range_start: date,
        range_end: date,
    ) -> ReportView:
        """
        Assemble the report for a date range.
        
        An empty months list produces a view with is_empty == True;
        callers render a "no records" state for it.
        """
        bank_info = None
        if settings.has_bank_info:
            bank_info = BankInfo(
                bank_name=settings.bank_name,
                bank_account=settings.bank_account,
                account_holder=settings.account_holder,
            )
        
        return ReportView(
            title=report_title(months, range_start),
            range_start=range_start,
            range_end=range_end,
            payee=settings.user_name or self._settings.default_payee_name,
            months=list(months),
            grand_totals=grand_totals(months),
            bank_info=bank_info,
        )
