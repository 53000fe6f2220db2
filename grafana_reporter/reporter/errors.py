from pathlib import Path
from typing import Optional


class ReporterError(Exception):
    """Base class for every failure raised by the reporter package."""


class GrafanaError(ReporterError):
    pass


class DashboardFetchError(GrafanaError):
    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class PanelRenderError(GrafanaError):
    """A single panel could not be rendered into an image."""

    def __init__(self, message: str, panel_id: int, status: Optional[int] = None):
        super().__init__(message)
        self.panel_id = panel_id
        self.status = status


class AuthenticationError(PanelRenderError):
    """401/403 or a redirect from the render endpoint. Never retried."""


class PanelCancelledError(PanelRenderError):
    pass


class ReportError(ReporterError):
    """
    Fatal failure of one report generation. ``stage`` names the pipeline step
    that failed and ``log_path`` points at diagnostics when there are any.
    """

    def __init__(self, message: str, stage: str, log_path: Optional[Path] = None):
        super().__init__(message)
        self.stage = stage
        self.log_path = log_path


class WorkspaceError(ReportError):
    pass


class TemplateError(ReportError):
    pass


class CompileError(ReportError):
    pass


class TimeRangeError(ReporterError, ValueError):
    pass


class PanelParseError(ReporterError, ValueError):
    """A raw panel entry is not a well-formed panel object."""
