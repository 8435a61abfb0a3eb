"""
Renderer Contract

Rasterizing a report into an image is done by an external collaborator
(a browser canvas, a headless renderer, ...). Ildang only defines what
it hands over and what it expects back.
"""

from abc import ABC, abstractmethod

from pydantic import BaseModel, ConfigDict, Field

from ildang.models.report import CalendarMonth, ReportView


class RenderableReport(BaseModel):
    """Everything a renderer needs to draw the report card."""
    model_config = ConfigDict(frozen=True)
    
    view: ReportView
    calendars: list[CalendarMonth] = Field(default_factory=list)
    show_amount: bool = True


class Renderer(ABC):
    """External image renderer."""
    
    @abstractmethod
    async def render(self, report: RenderableReport) -> bytes:
        """
        Render the report and return image bytes (PNG).
        
        Raises:
            Exception: Any failure; callers wrap it in RenderError
        """
        pass


class RenderError(Exception):
    """The renderer failed or returned no image."""
    pass
