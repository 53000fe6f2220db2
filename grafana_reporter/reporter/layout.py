import os
from pathlib import Path
from typing import Dict, Optional, Sequence, Tuple

import streamlit as st

from .config import (
    DEFAULT_API_VERSION,
    DEFAULT_GRAFANA_URL,
    DEFAULT_TIME_SPAN,
    ENV_API_TOKEN,
    ENV_GRAFANA_URL,
)
from .context import LayoutMode, ReportOptions, ReportRequest, parse_variables
from .timerange import TimeRange

LAYOUT_LABELS = {
    LayoutMode.SEQUENTIAL: "Sequential",
    LayoutMode.GRID: "Grid (panel sizes follow the dashboard)",
    LayoutMode.ROWS: "Rows (one page per dashboard row)",
}


def _parse_var_lines(text: str) -> Dict[str, Tuple[str, ...]]:
    return parse_variables(line.strip() for line in text.splitlines() if line.strip())


def render_report_form(templates: Sequence[str], template_dir: Optional[Path]) -> Optional[ReportRequest]:
    """
    Report builder controls. Returns a ReportRequest once the form is
    submitted with valid input, otherwise None.
    """
    with st.form("report_request", clear_on_submit=False):
        dashboard = st.text_input("Dashboard uid or slug")
        grafana_url = st.text_input("Grafana URL", os.getenv(ENV_GRAFANA_URL, DEFAULT_GRAFANA_URL))
        api_token = st.text_input("API token", os.getenv(ENV_API_TOKEN, ""), type="password")
        api_version = st.selectbox("API version", ("v5", "v4"), index=0 if DEFAULT_API_VERSION == "v5" else 1)
        time_span = st.text_input("Time span", DEFAULT_TIME_SPAN)
        layout = st.radio(
            "Layout",
            list(LAYOUT_LABELS),
            format_func=LAYOUT_LABELS.get,
            horizontal=True,
        )
        template_name = st.selectbox("Template", ["(built-in)", *templates])
        var_text = st.text_area("Template variables (one name=value per line)")
        ssl_check = st.toggle("Verify TLS certificates", value=True)
        submitted = st.form_submit_button("Generate report", use_container_width=True)

    if not submitted:
        return None
    if not dashboard.strip():
        st.error("Enter a dashboard uid or slug.")
        return None
    try:
        time_range = TimeRange.parse(time_span)
        variables = _parse_var_lines(var_text)
    except ValueError as exc:
        st.error(str(exc))
        return None

    template_path = None
    if template_dir is not None and template_name in templates:
        template_path = template_dir / template_name

    return ReportRequest(
        dashboard=dashboard.strip(),
        grafana_url=grafana_url.strip(),
        api_version=api_version,
        api_token=api_token.strip(),
        ssl_check=ssl_check,
        variables=variables,
        options=ReportOptions(time_range=time_range, layout=layout, template_path=template_path),
    )
