"""
Export Serializer

Turns a ReportView into the plain-text payment claim that users paste
into a messenger, and hands image rendering to the external Renderer.

DESIGN DECISION: to_text is a pure template.
Same view + same options = byte-identical output. No clock, no locale
lookups; weekday names and number grouping are spelled out here.
"""

from datetime import date
from typing import Union

from ildang.aggregation import build_calendar
from ildang.models.report import GrandTotals, MonthlyData, ReportView
from ildang.models.worklog import WorkLog
from ildang.reports.builder import month_label
from ildang.reports.renderer import RenderableReport, Renderer, RenderError


WEEKDAYS_KO = ("월", "화", "수", "목", "금", "토", "일")
RULE = "-" * 20
GRAND_TAX_NOTE = "※ 원천징수는 월별 원천징수의 합계입니다"


def won(amount: int) -> str:
    """150000 -> '150,000원'"""
    return f"{amount:,}원"


def short_date(day: date) -> str:
    """date(2024, 6, 1) -> '6/1(토)'"""
    return f"{day.month}/{day.day}({WEEKDAYS_KO[day.weekday()]})"


class ExportSerializer:
    """Text export and image delegation for report views."""
    
    def to_text(
        self,
        view: ReportView,
        show_amount: bool = True,
        show_details: bool = False,
    ) -> str:
        """
        Render the canonical text form of a report.
        
        With show_amount False every money figure is left out, including
        the withholding and net lines.
        """
        lines = [f"[{view.title} 노임 청구서 - {view.payee}]", ""]
        
        if view.is_empty:
            lines.append("선택한 기간에 기록이 없습니다")
        
        with_year = view.is_multi_month
        for month in view.months:
            lines.extend(self._month_block(month, show_amount, with_year))
            lines.append("")
        
        if view.is_multi_month:
            lines.append("■ 전체 합계")
            lines.extend(self._totals_lines(view.grand_totals, show_amount))
            if show_amount:
                lines.append(GRAND_TAX_NOTE)
            lines.append("")
        
        if show_details and not view.is_empty:
            lines.append("■ 상세 내역")
            lines.extend(self._detail_line(log, show_amount) for log in view.logs)
            lines.append("")
        
        if view.bank_info is not None:
            lines.append("[입금 계좌]")
            lines.append(f"{view.bank_info.bank_name} {view.bank_info.bank_account}")
            if view.bank_info.account_holder:
                lines.append(view.bank_info.account_holder)
            lines.append("")
        
        return "\n".join(lines).rstrip("\n") + "\n"
    
    def _month_block(self, month: MonthlyData, show_amount: bool, with_year: bool) -> list[str]:
        lines = [f"■ {month_label(month.month, with_year=True) if with_year else '현장별 요약'}"]
        for index, item in enumerate(month.summary, start=1):
            line = f"{index}. {item.location} : {item.days}일"
            if show_amount:
                line += f" / {won(item.amount)}"
            lines.append(line)
        lines.append(RULE)
        lines.extend(self._totals_lines(month, show_amount))
        return lines
    
    def _totals_lines(self, totals: Union[MonthlyData, GrandTotals], show_amount: bool) -> list[str]:
        lines = [f"총 근무: {totals.total_days}일"]
        if show_amount:
            lines.append(f"청구 금액: {won(totals.total_amount)}")
            lines.append(f"원천징수(3.3%): {won(totals.tax_amount)}")
            lines.append(f"실수령액: {won(totals.net_amount)}")
        return lines
    
    def _detail_line(self, log: WorkLog, show_amount: bool) -> str:
        line = f"{short_date(log.date)} {log.location}"
        if show_amount and not log.is_day_off:
            line += f" : {won(log.amount)}"
        return line
    
    def renderable(self, view: ReportView, show_amount: bool = True) -> RenderableReport:
        """The view plus one calendar grid per month, ready for a renderer."""
        calendars = [
            build_calendar(month.year_number, month.month_number, month.logs)
            for month in view.months
        ]
        return RenderableReport(view=view, calendars=calendars, show_amount=show_amount)
    
    async def to_image(
        self,
        view: ReportView,
        renderer: Renderer,
        show_amount: bool = True,
    ) -> bytes:
        """
        Delegate rasterization to the renderer.
        
        Raises:
            RenderError: If the renderer fails or returns nothing
        """
        try:
            image = await renderer.render(self.renderable(view, show_amount))
        except RenderError:
            raise
        except Exception as e:
            raise RenderError(f"Failed to render report image: {e}") from e
        
        if not image:
            raise RenderError("Renderer returned an empty image")
        return image


def export_file_name(prefix: str, today: date, extension: str = "png") -> str:
    """'노임청구서', date(2024, 6, 30) -> '노임청구서_2024-06-30.png'"""
    return f"{prefix}_{today.isoformat()}.{extension}"

