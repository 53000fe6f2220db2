"""
Jinja2 rendering of the LaTeX report source.

LaTeX already gives meaning to ``{``, ``}``, ``%`` and ``#``, so templates
use square-bracket delimiters instead:

* ``[[ expression ]]``
* ``[% statement %]``
* ``[# comment #]``

Two helpers are available in every template: ``escape_latex`` (function and
filter) for free-form text and ``panel_image_path(id)`` for the image of a
panel, relative to the document.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from jinja2 import Environment, FileSystemLoader, StrictUndefined

from .config import DEFAULT_TEMPLATE_DIR, GRID_TEMPLATE, IMAGE_DIR, ROWS_TEMPLATE
from .context import LayoutMode
from .dashboard import Panel, Row
from .images import image_filename

logger = logging.getLogger(__name__)

_LATEX_ESCAPES = [
    ("&", r"\&"),
    ("%", r"\%"),
    ("$", r"\$"),
    ("#", r"\#"),
    ("_", r"\_"),
    ("{", r"\{"),
    ("}", r"\}"),
    ("~", r"\textasciitilde{}"),
    ("^", r"\textasciicircum{}"),
]
_BACKSLASH = "\x00BACKSLASH\x00"


def escape_latex(value: Any) -> str:
    text = "" if value is None else str(value)
    text = text.replace("\\", _BACKSLASH)
    for char, escaped in _LATEX_ESCAPES:
        text = text.replace(char, escaped)
    return text.replace(_BACKSLASH, r"\textbackslash{}")


def panel_image_path(panel_id: int) -> str:
    return f"{IMAGE_DIR}/{image_filename(panel_id)}"


def build_env(search_path: Sequence[Path] = ()) -> Environment:
    env = Environment(
        loader=FileSystemLoader([str(p) for p in (*search_path, DEFAULT_TEMPLATE_DIR)]),
        block_start_string="[%",
        block_end_string="%]",
        variable_start_string="[[",
        variable_end_string="]]",
        comment_start_string="[#",
        comment_end_string="#]",
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
        autoescape=False,
        undefined=StrictUndefined,
    )
    env.filters["escape_latex"] = escape_latex
    env.globals["escape_latex"] = escape_latex
    env.globals["panel_image_path"] = panel_image_path
    return env


@dataclass(frozen=True)
class TexTemplate:
    """Template text plus the directory it came from, for includes."""

    name: str
    source: str
    directory: Optional[Path] = None

    @property
    def is_builtin(self) -> bool:
        return self.directory is None


def builtin_template(layout: LayoutMode) -> TexTemplate:
    name = ROWS_TEMPLATE if layout is LayoutMode.ROWS else GRID_TEMPLATE
    source = (DEFAULT_TEMPLATE_DIR / name).read_text(encoding="utf-8")
    return TexTemplate(name=name, source=source)


def load_template(layout: LayoutMode, template_path: Optional[Path] = None) -> TexTemplate:
    """Read a custom template, falling back to the built-in one for ``layout``."""
    if template_path is not None:
        path = Path(template_path)
        try:
            source = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Failed to read custom template %s: %s. Falling back to default.", path, exc)
        else:
            logger.info("Using custom template %s", path)
            return TexTemplate(name=path.name, source=source, directory=path.resolve().parent)
    template = builtin_template(layout)
    logger.info("Using built-in template %s", template.name)
    return template


def list_templates(template_dir: Path) -> List[str]:
    if not template_dir.is_dir():
        return []
    return sorted(p.name for p in template_dir.glob("*.tex"))


@dataclass(frozen=True)
class ReportView:
    """Values bound into the template."""

    title: str
    description: str
    variable_values: str
    from_formatted: str
    to_formatted: str
    layout: LayoutMode
    rows: Sequence[Row] = ()
    panels: Sequence[Panel] = ()
    img_dir: str = IMAGE_DIR
    extra: Dict[str, Any] = field(default_factory=dict)

    def as_context(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "variable_values": self.variable_values,
            "from_formatted": self.from_formatted,
            "to_formatted": self.to_formatted,
            "layout": self.layout.value,
            "use_row_layout": self.layout is LayoutMode.ROWS,
            "use_grid_layout": self.layout is LayoutMode.GRID,
            "rows": list(self.rows),
            "panels": list(self.panels),
            "img_dir": self.img_dir,
            **self.extra,
        }


def render_template(template: TexTemplate, view: ReportView) -> str:
    """Render to LaTeX source. Jinja2 syntax and undefined-name errors propagate."""
    search_path = [template.directory] if template.directory is not None else []
    env = build_env(search_path)
    compiled = env.from_string(template.source)
    return compiled.render(**view.as_context())
