import logging
import os
from pathlib import Path

import streamlit as st

from reporter.config import DEFAULT_REPORT_DIR, ENV_TEMPLATE_DIR
from reporter.layout import render_report_form
from reporter.pdf import stored_report_builder
from reporter.report_queue import ReportQueue
from reporter.tex_template import list_templates

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

st.set_page_config(page_title="Grafana Reporter", layout="centered")

JOBS_KEY = "report_jobs"


@st.cache_resource(show_spinner=False)
def get_queue() -> ReportQueue:
    return ReportQueue(max_workers=2)


def _template_dir() -> Path | None:
    value = os.getenv(ENV_TEMPLATE_DIR, "").strip()
    return Path(value) if value else None


def _render_jobs(queue: ReportQueue) -> None:
    job_ids = st.session_state.get(JOBS_KEY, [])
    if not job_ids:
        return
    st.subheader("Reports")
    if st.button("Refresh status"):
        st.rerun()
    for job_id in reversed(job_ids):
        job = queue.get(job_id)
        if job is None:
            continue
        label = f"{job.request.dashboard} ({job.request.options.layout.value}, {job_id})"
        if job.status == "completed" and job.result_path:
            pdf_path = Path(job.result_path)
            if pdf_path.exists():
                st.download_button(
                    f"Download {label}",
                    pdf_path.read_bytes(),
                    pdf_path.name,
                    "application/pdf",
                    key=f"dl_{job_id}",
                    use_container_width=True,
                )
        elif job.status == "failed":
            st.error(f"{label} failed: {job.error}")
        else:
            st.info(f"{label}: {job.status}")


st.title("Grafana Reporter")
st.caption("Render a dashboard to PDF. Every report re-fetches the dashboard and its panel images.")

template_dir = _template_dir()
templates = list_templates(template_dir) if template_dir else []
queue = get_queue()

request = render_report_form(templates, template_dir)
if request is not None:
    job_id = queue.submit(request, stored_report_builder(DEFAULT_REPORT_DIR))
    st.session_state.setdefault(JOBS_KEY, []).append(job_id)
    st.success(f"Report queued ({job_id}).")

_render_jobs(queue)
