"""Command line mode: generate one report and save it to a file."""

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Optional, Sequence

from .config import (
    DEFAULT_API_VERSION,
    DEFAULT_GRAFANA_URL,
    DEFAULT_TIME_SPAN,
    ENV_API_TOKEN,
    ENV_GRAFANA_URL,
    ENV_SSL_CHECK,
)
from .context import LayoutMode, ReportOptions, ReportRequest, parse_variables
from .errors import ReporterError
from .pdf import generate_pdf
from .timerange import TimeRange

__all__ = ["build_parser", "main"]

logger = logging.getLogger(__name__)


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="grafana-reporter",
        description="Render a Grafana dashboard into a PDF report via pdflatex.",
    )
    parser.add_argument("-d", "--dashboard", required=True, help="dashboard uid or slug")
    parser.add_argument(
        "--url",
        default=os.getenv(ENV_GRAFANA_URL, DEFAULT_GRAFANA_URL),
        help=f"Grafana base URL (env {ENV_GRAFANA_URL})",
    )
    parser.add_argument(
        "--api-key",
        default=os.getenv(ENV_API_TOKEN, ""),
        help=f"Grafana API token (env {ENV_API_TOKEN})",
    )
    parser.add_argument("--api-version", choices=("v4", "v5"), default=DEFAULT_API_VERSION)
    parser.add_argument("--ts", default=DEFAULT_TIME_SPAN, help="time span, e.g. 'from=now-3h&to=now'")
    parser.add_argument(
        "--var",
        action="append",
        default=[],
        metavar="NAME=VALUE",
        help="template variable, repeat for multiple values",
    )
    parser.add_argument("--template", type=Path, help="custom TeX template file")
    parser.add_argument(
        "--layout",
        choices=[m.value for m in LayoutMode],
        default=LayoutMode.SEQUENTIAL.value,
        help="sequential panels, grid-sized panels or one page per row",
    )
    parser.add_argument(
        "--no-ssl-check",
        dest="ssl_check",
        action="store_false",
        default=_env_flag(ENV_SSL_CHECK, True),
        help="skip TLS certificate verification",
    )
    parser.add_argument("-o", "--output", type=Path, default=Path("out.pdf"), help="output PDF file")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    return parser


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stdout,
    )


def request_from_args(args: argparse.Namespace) -> ReportRequest:
    options = ReportOptions(
        time_range=TimeRange.parse(args.ts),
        layout=LayoutMode(args.layout),
        template_path=args.template,
    )
    return ReportRequest(
        dashboard=args.dashboard,
        grafana_url=args.url,
        api_version=args.api_version,
        api_token=args.api_key,
        ssl_check=args.ssl_check,
        variables=parse_variables(args.var),
        options=options,
    )


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    try:
        request = request_from_args(args)
    except ValueError as exc:
        parser.error(str(exc))

    logger.info("Generating report for %s", request.summary())
    if not request.ssl_check:
        logger.info("SSL check disabled")
    try:
        path = generate_pdf(request, output_dir=args.output.parent, filename=args.output.name)
    except (ReporterError, OSError) as exc:
        logger.error("Report generation failed: %s", exc)
        return 1
    print(path)
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
