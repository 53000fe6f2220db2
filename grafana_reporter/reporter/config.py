import tempfile
from pathlib import Path

# Environment variables read by the CLI and the report builder page.
ENV_GRAFANA_URL = "GRAFANA_URL"
ENV_API_TOKEN = "GRAFANA_API_TOKEN"
ENV_TEMPLATE_DIR = "REPORTER_TEMPLATE_DIR"
ENV_SSL_CHECK = "REPORTER_SSL_CHECK"

DEFAULT_GRAFANA_URL = "http://localhost:3000"
DEFAULT_API_VERSION = "v5"
DEFAULT_TIME_SPAN = "from=now-3h&to=now"
DEFAULT_THEME = "light"
USER_AGENT = "grafana-reporter-py"

# Output locations for saved PDFs and the built-in TeX templates.
DEFAULT_REPORT_DIR = Path(__file__).resolve().parent.parent / "reports"
DEFAULT_TEMPLATE_DIR = Path(__file__).resolve().parent / "templates"
GRID_TEMPLATE = "grid.tex"
ROWS_TEMPLATE = "rows.tex"

# Every report gets its own directory below this root.
WORKSPACE_ROOT = Path(tempfile.gettempdir()) / "reporter"
IMAGE_DIR = "images"
REPORT_TEX_FILE = "report.tex"
REPORT_PDF_FILE = "report.pdf"
COMPILER_LOG_FILE = "pdflatex.log"
COMPILER_COMMAND = ("pdflatex", "-interaction=nonstopmode", "-halt-on-error")
COMPILER_PASSES = 2
COMPILER_LOG_TAIL = 2000

# HTTP behaviour towards the dashboard service.
DASHBOARD_TIMEOUT = 30.0
RENDER_TIMEOUT = 180.0
MAX_RENDER_ATTEMPTS = 3
RENDER_RETRY_DELAY = 2.0
DASHBOARD_BODY_SNIPPET = 500
RENDER_BODY_SNIPPET = 200

# Panel image sizes in pixels, keyed by panel kind.
GRID_PIXELS_PER_UNIT = 40
PANEL_SIZES = {
    "stat": (300, 150),
    "text": (1000, 100),
}
DEFAULT_PANEL_SIZE = (1000, 500)

MAX_IMAGE_WORKERS = 16
