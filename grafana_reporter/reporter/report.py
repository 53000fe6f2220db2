"""
Report assembly: one dashboard in, one compiled PDF out.

``Report`` owns a private workspace directory and walks a fixed sequence of
stages::

    CREATED -> DASHBOARD_FETCHED -> IMAGES_ACQUIRED -> TEMPLATE_RENDERED
            -> COMPILED -> EXPOSED

Any failure moves the report to FAILED, removes the workspace and raises a
``ReportError`` naming the stage. Once EXPOSED the caller holds an open
handle on the PDF and is responsible for calling ``clean()`` after reading
it.
"""

import logging
import shutil
import threading
import uuid
from enum import Enum
from pathlib import Path
from typing import BinaryIO, List, Optional

from jinja2 import TemplateError as JinjaTemplateError

from .client import GrafanaClient
from .config import COMPILER_LOG_FILE, IMAGE_DIR, REPORT_PDF_FILE, REPORT_TEX_FILE
from .context import LayoutMode, ReportOptions
from .dashboard import Dashboard, Panel, snippet
from .errors import CompileError, ReportError, ReporterError, TemplateError, WorkspaceError
from .images import AcquisitionResult, ImageCoordinator
from .latex import LatexCompiler, read_log_tail
from .tex_template import ReportView, load_template, render_template

logger = logging.getLogger(__name__)


class ReportState(str, Enum):
    CREATED = "created"
    DASHBOARD_FETCHED = "dashboard_fetched"
    IMAGES_ACQUIRED = "images_acquired"
    TEMPLATE_RENDERED = "template_rendered"
    COMPILED = "compiled"
    EXPOSED = "exposed"
    FAILED = "failed"


# Step that runs next from each state; names the stage of unexpected failures.
_FAILING_STAGE = {
    ReportState.CREATED: "fetch",
    ReportState.DASHBOARD_FETCHED: "images",
    ReportState.IMAGES_ACQUIRED: "template",
    ReportState.TEMPLATE_RENDERED: "compile",
    ReportState.COMPILED: "verify",
}


class Workspace:
    """A uniquely named directory holding every artifact of one report."""

    def __init__(self, path: Path):
        self.path = path

    @classmethod
    def create(cls, root: Path) -> "Workspace":
        path = Path(root) / uuid.uuid4().hex
        try:
            path.mkdir(parents=True, exist_ok=False)
        except OSError as exc:
            raise WorkspaceError(f"error creating report workspace {path}: {exc}", stage="workspace") from exc
        logger.info("Report workspace: %s", path)
        return cls(path)

    @property
    def image_dir(self) -> Path:
        return self.path / IMAGE_DIR

    @property
    def tex_path(self) -> Path:
        return self.path / REPORT_TEX_FILE

    @property
    def pdf_path(self) -> Path:
        return self.path / REPORT_PDF_FILE

    @property
    def log_path(self) -> Path:
        return self.path / COMPILER_LOG_FILE

    def remove(self) -> bool:
        try:
            shutil.rmtree(self.path)
        except FileNotFoundError:
            return True
        except OSError as exc:
            logger.warning("Could not clean up workspace %s: %s", self.path, exc)
            return False
        logger.info("Cleaned up workspace %s", self.path)
        return True


def panels_for_layout(dash: Dashboard, layout: LayoutMode) -> List[Panel]:
    if layout is LayoutMode.ROWS:
        return dash.row_panels()
    return dash.grid_panels()


class Report:
    def __init__(
        self,
        client: GrafanaClient,
        dash_name: str,
        options: Optional[ReportOptions] = None,
        compiler: Optional[LatexCompiler] = None,
    ):
        self.client = client
        self.dash_name = dash_name
        self.options = options or ReportOptions()
        self.compiler = compiler or LatexCompiler(self.options.compiler_command)
        self.template = load_template(self.options.layout, self.options.template_path)
        self.workspace = Workspace.create(self.options.workspace_root)
        self.state = ReportState.CREATED
        self.acquisition: Optional[AcquisitionResult] = None
        self._title = ""
        self._cancel = threading.Event()
        self._clean_lock = threading.Lock()
        self._cleaned = False

    @property
    def title(self) -> str:
        """Dashboard title; empty until the dashboard has been fetched."""
        return self._title

    def _advance(self, state: ReportState) -> None:
        logger.debug("Report %s: %s -> %s", self.dash_name, self.state.value, state.value)
        self.state = state

    def generate(self) -> BinaryIO:
        if self._cleaned or self._cancel.is_set():
            raise ReportError(
                f"report workspace {self.workspace.path} was already cleaned", stage="workspace"
            )
        if self.state is not ReportState.CREATED:
            raise ReportError(f"report already run (state {self.state.value})", stage=self.state.value)
        try:
            dash = self._fetch_dashboard()
            self._acquire_images(dash)
            self._render_tex(dash)
            self._compile()
            return self._expose()
        except ReportError:
            self._advance(ReportState.FAILED)
            self.clean()
            raise
        except Exception as exc:
            stage = _FAILING_STAGE.get(self.state, self.state.value)
            self._advance(ReportState.FAILED)
            self.clean()
            raise ReportError(
                f"error generating report for {self.dash_name!r} during {stage}: {exc}", stage=stage
            ) from exc

    def _fetch_dashboard(self) -> Dashboard:
        try:
            dash = self.client.get_dashboard(self.dash_name)
        except ReporterError as exc:
            raise ReportError(f"error getting dashboard {self.dash_name!r}: {exc}", stage="fetch") from exc
        if not dash.uid:
            logger.warning("Dashboard uid is empty after fetching %r; using the requested name.", self.dash_name)
            dash.uid = self.dash_name
        self._title = dash.title
        self._advance(ReportState.DASHBOARD_FETCHED)
        return dash

    def _acquire_images(self, dash: Dashboard) -> None:
        try:
            self.workspace.image_dir.mkdir(exist_ok=True)
        except OSError as exc:
            raise WorkspaceError(
                f"error creating image directory {self.workspace.image_dir}: {exc}", stage="images"
            ) from exc
        coordinator = ImageCoordinator(
            self.client,
            dash.uid,
            self.options.time_range,
            self.workspace.image_dir,
            max_workers=self.options.max_image_workers,
            cancel=self._cancel,
        )
        self.acquisition = coordinator.acquire(panels_for_layout(dash, self.options.layout))
        self._advance(ReportState.IMAGES_ACQUIRED)

    def _render_tex(self, dash: Dashboard) -> None:
        time_range = self.options.time_range
        view = ReportView(
            title=dash.title,
            description=dash.description,
            variable_values=dash.variable_summary(),
            from_formatted=time_range.from_formatted,
            to_formatted=time_range.to_formatted,
            layout=self.options.layout,
            rows=dash.rows(),
            panels=dash.grid_panels(),
        )
        try:
            source = render_template(self.template, view)
        except (JinjaTemplateError, TypeError, ValueError) as exc:
            raise TemplateError(
                f"error rendering template {self.template.name}: {exc}\n"
                f"Template content sample:\n{snippet(self.template.source, 500)}\n"
                f"(workspace: {self.workspace.path})",
                stage="template",
            ) from exc
        try:
            self.workspace.tex_path.write_text(source, encoding="utf-8")
        except OSError as exc:
            raise TemplateError(
                f"error writing {self.workspace.tex_path}: {exc}", stage="template"
            ) from exc
        logger.info("Created LaTeX file %s", self.workspace.tex_path)
        self._advance(ReportState.TEMPLATE_RENDERED)

    def _compile(self) -> None:
        image_dir = self.workspace.image_dir
        if not any(image_dir.iterdir()):
            logger.warning("Image directory %s is empty; LaTeX may fail to find images.", image_dir)
        self.compiler.compile(self.workspace.path, self.workspace.tex_path.name, self.workspace.log_path)
        self._advance(ReportState.COMPILED)

    def _expose(self) -> BinaryIO:
        pdf_path = self.workspace.pdf_path
        if not pdf_path.is_file():
            raise CompileError(
                f"LaTeX completed but {pdf_path} was not produced. Check the LaTeX log "
                f"{self.workspace.log_path}\nLog Content Tail:\n{read_log_tail(self.workspace.log_path)}",
                stage="verify",
                log_path=self.workspace.log_path,
            )
        try:
            handle = pdf_path.open("rb")
        except OSError as exc:
            raise ReportError(f"error opening {pdf_path}: {exc}", stage="expose") from exc
        logger.info("Created PDF file %s", pdf_path)
        self._advance(ReportState.EXPOSED)
        return handle

    def clean(self) -> None:
        """Remove the workspace. Safe to call repeatedly and after failures."""
        self._cancel.set()
        with self._clean_lock:
            if self._cleaned:
                return
            self._cleaned = self.workspace.remove()

    def __enter__(self) -> "Report":
        return self

    def __exit__(self, *exc_info) -> None:
        self.clean()
