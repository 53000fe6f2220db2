import logging
from pathlib import Path
from typing import Callable, Optional, Tuple

from .client import GrafanaClient, new_client
from .config import DEFAULT_REPORT_DIR
from .context import ReportRequest
from .latex import LatexCompiler
from .report import Report
from .report_store import save_report_pdf

logger = logging.getLogger(__name__)


def client_for(request: ReportRequest) -> GrafanaClient:
    return new_client(
        request.api_version,
        request.grafana_url,
        api_token=request.api_token,
        variables=request.variables,
        ssl_check=request.ssl_check,
        grid_layout=request.options.layout.fit_to_grid,
        pool_size=request.options.max_image_workers,
    )


def report_pdf_bytes(
    request: ReportRequest,
    client: Optional[GrafanaClient] = None,
    compiler: Optional[LatexCompiler] = None,
) -> Tuple[str, bytes]:
    """
    Generate one report and return ``(dashboard title, PDF bytes)``.
    The workspace is always removed before returning.
    """
    report = Report(client or client_for(request), request.dashboard, request.options, compiler)
    try:
        with report.generate() as pdf:
            data = pdf.read()
    finally:
        report.clean()
    return report.title, data


def save_pdf(pdf_bytes: bytes, path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(pdf_bytes)
    return path


def generate_pdf(
    request: ReportRequest,
    output_dir: Path = DEFAULT_REPORT_DIR,
    filename: Optional[str] = None,
    client: Optional[GrafanaClient] = None,
    compiler: Optional[LatexCompiler] = None,
) -> Path:
    """Generate a report and save it as ``output_dir/filename``."""
    _, pdf_bytes = report_pdf_bytes(request, client=client, compiler=compiler)
    fname = filename or f"{request.dashboard}.pdf"
    path = save_pdf(pdf_bytes, Path(output_dir) / fname)
    logger.info("Saved report to %s", path)
    return path


def stored_report_builder(report_dir: Path = DEFAULT_REPORT_DIR) -> Callable[[str, ReportRequest], Path]:
    """Builder for ``ReportQueue``: generate, then save PDF plus metadata sidecar."""

    def build(job_id: str, request: ReportRequest) -> Path:
        title, pdf_bytes = report_pdf_bytes(request)
        payload = {**request.summary(), "title": title}
        return save_report_pdf(job_id, pdf_bytes, payload, report_dir)

    return build
