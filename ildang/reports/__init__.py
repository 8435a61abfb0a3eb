"""Reports package: building, serializing and rendering payment claims."""

from ildang.reports.builder import ReportBuilder, month_label, report_title
from ildang.reports.renderer import RenderableReport, Renderer, RenderError
from ildang.reports.serializer import ExportSerializer, export_file_name, short_date, won

__all__ = [
    "ExportSerializer",
    "RenderableReport",
    "Renderer",
    "RenderError",
    "ReportBuilder",
    "export_file_name",
    "month_label",
    "report_title",
    "short_date",
    "won",
]
