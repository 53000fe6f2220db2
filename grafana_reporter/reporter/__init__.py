"""
Grafana dashboard to PDF reporting.

The package is split so each stage can be tested on its own: the dashboard
model and normalizer, the HTTP client, concurrent image acquisition, TeX
templating, the LaTeX compiler wrapper and the report assembler that ties
them together.
"""

from .client import GrafanaClient, V4Client, V5Client, new_client
from .context import LayoutMode, ReportOptions, ReportRequest
from .dashboard import Dashboard, Panel, Row, TemplateVariable
from .errors import ReportError, ReporterError
from .report import Report, ReportState
from .timerange import TimeRange

__all__ = [
    "Dashboard",
    "GrafanaClient",
    "LayoutMode",
    "Panel",
    "Report",
    "ReportError",
    "ReportOptions",
    "ReportRequest",
    "ReportState",
    "ReporterError",
    "Row",
    "TemplateVariable",
    "TimeRange",
    "V4Client",
    "V5Client",
    "new_client",
]
