"""
Dashboard model and the panel/row normalizer.

The dashboard service hands back panels as loosely typed JSON: a ``row``
panel carries its own nested ``panels`` array, older dashboards keep
everything under a deprecated ``rows`` array, and individual entries may be
malformed. ``Dashboard.normalize`` turns that into two ordered views which
the rest of the pipeline consumes:

* ``grid_panels()``: every renderable panel, rows flattened away.
* ``rows()``: one ``Row`` per row container with its own nested panels.

A panel inside a row shows up in both views.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from .errors import PanelParseError
from .timerange import TimeRange

logger = logging.getLogger(__name__)

ROW_TYPE = "row"
TEXT_TYPE = "text"
STAT_TYPES = frozenset({"singlestat", "stat"})
FULL_GRID_WIDTH = 24

_UID_RE = re.compile(r"^[A-Za-z0-9-]+$")

CurrentValue = Union[str, Tuple[str, ...], None]


def looks_like_uid(name: str) -> bool:
    """Dashboard uids are longer than 8 chars of letters, digits and dashes."""
    return len(name) > 8 and bool(_UID_RE.match(name))


def snippet(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


def _number(raw: Mapping[str, Any], key: str) -> float:
    value = raw.get(key, 0)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise PanelParseError(f"gridPos.{key} is not a number: {value!r}")
    return float(value)


@dataclass(frozen=True)
class GridPos:
    x: float = 0.0
    y: float = 0.0
    w: float = 0.0
    h: float = 0.0

    @classmethod
    def from_json(cls, raw: Any) -> "GridPos":
        if raw is None:
            return cls()
        if not isinstance(raw, Mapping):
            raise PanelParseError(f"gridPos is not an object: {raw!r}")
        return cls(x=_number(raw, "x"), y=_number(raw, "y"), w=_number(raw, "w"), h=_number(raw, "h"))


def _reading_order(item: Union["Panel", "Row"]) -> Tuple[float, float]:
    return (item.grid_pos.y, item.grid_pos.x)


@dataclass(frozen=True)
class Panel:
    """One dashboard panel. Row containers keep their nested entries undecoded."""

    id: int
    type: str
    title: str = ""
    grid_pos: GridPos = field(default_factory=GridPos)
    collapsed: bool = False
    nested: Tuple[Any, ...] = field(default=(), repr=False)

    @classmethod
    def from_json(cls, raw: Any) -> "Panel":
        if not isinstance(raw, Mapping):
            raise PanelParseError(f"panel entry is not an object: {type(raw).__name__}")
        panel_id = raw.get("id")
        if isinstance(panel_id, bool) or not isinstance(panel_id, int):
            raise PanelParseError(f"panel id is missing or not an integer: {panel_id!r}")
        panel_type = raw.get("type") or ""
        title = raw.get("title") or ""
        if not isinstance(panel_type, str) or not isinstance(title, str):
            raise PanelParseError(f"panel {panel_id} has a non-string type or title")
        nested: Tuple[Any, ...] = ()
        if panel_type == ROW_TYPE:
            entries = raw.get("panels") or []
            if not isinstance(entries, list):
                raise PanelParseError(f"row {panel_id} has a non-list 'panels' field")
            nested = tuple(entries)
        return cls(
            id=panel_id,
            type=panel_type,
            title=title,
            grid_pos=GridPos.from_json(raw.get("gridPos")),
            collapsed=bool(raw.get("collapsed", False)),
            nested=nested,
        )

    @property
    def is_row(self) -> bool:
        return self.type == ROW_TYPE

    @property
    def is_stat(self) -> bool:
        return self.type in STAT_TYPES

    @property
    def is_text(self) -> bool:
        return self.type == TEXT_TYPE

    @property
    def kind(self) -> str:
        if self.is_stat:
            return "stat"
        return self.type

    @property
    def is_partial_width(self) -> bool:
        return self.grid_pos.w < FULL_GRID_WIDTH

    # Fractions of the text width, used by grid templates.
    @property
    def width(self) -> float:
        return self.grid_pos.w * 0.04

    @property
    def height(self) -> float:
        return self.grid_pos.h * 0.04


@dataclass(frozen=True)
class Row:
    id: int
    title: str
    visible: bool
    grid_pos: GridPos
    panels: Tuple[Panel, ...] = ()


class Visibility(IntEnum):
    VISIBLE = 0
    LABEL_ONLY = 1
    HIDDEN = 2


@dataclass(frozen=True)
class VariableOption:
    text: str
    value: str
    selected: bool = False


def _current(value: Any) -> CurrentValue:
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        return tuple(str(v) for v in value)
    return str(value)


@dataclass(frozen=True)
class TemplateVariable:
    name: str
    label: str = ""
    type: str = ""
    hide: Visibility = Visibility.VISIBLE
    multi: bool = False
    include_all: bool = False
    current_text: CurrentValue = None
    current_value: CurrentValue = None
    options: Tuple[VariableOption, ...] = ()

    @classmethod
    def from_json(cls, raw: Mapping[str, Any]) -> "TemplateVariable":
        current = raw.get("current") or {}
        options = tuple(
            VariableOption(
                text=str(opt.get("text", "")),
                value=str(opt.get("value", "")),
                selected=bool(opt.get("selected", False)),
            )
            for opt in raw.get("options") or []
            if isinstance(opt, Mapping)
        )
        try:
            hide = Visibility(int(raw.get("hide") or 0))
        except ValueError:
            hide = Visibility.VISIBLE
        return cls(
            name=str(raw.get("name", "")),
            label=str(raw.get("label") or ""),
            type=str(raw.get("type") or ""),
            hide=hide,
            multi=bool(raw.get("multi", False)),
            include_all=bool(raw.get("includeAll", False)),
            current_text=_current(current.get("text")) if isinstance(current, Mapping) else None,
            current_value=_current(current.get("value")) if isinstance(current, Mapping) else None,
            options=options,
        )

    @property
    def display_label(self) -> str:
        return self.label or self.name

    def _selects_all(self) -> bool:
        value = self.current_value
        if isinstance(value, tuple):
            return self.include_all and value == ("$__all",)
        return self.include_all and value == "$__all"

    def display_value(self) -> str:
        """Human readable current selection, empty when nothing is selected."""
        text = self.current_text
        if isinstance(text, tuple):
            if self._selects_all():
                return "All"
            return ", ".join(text)
        if text is not None:
            return text
        value = self.current_value
        if isinstance(value, tuple):
            return ", ".join(value)
        if value and self.multi and value.startswith("[") and value.endswith("]"):
            return value[1:-1].replace('","', ", ").replace('"', "")
        return value or ""

    def summary(self) -> Optional[str]:
        if self.hide is Visibility.HIDDEN:
            return None
        value = "" if self.hide is Visibility.LABEL_ONLY else self.display_value()
        if value:
            return f"{self.display_label}: {value}"
        return self.display_label


def format_variables(variables: Sequence[TemplateVariable]) -> str:
    parts = [s for s in (v.summary() for v in variables) if s is not None]
    return "; ".join(parts)


@dataclass(frozen=True)
class NormalizedLayout:
    panels: Tuple[Panel, ...]
    rows: Tuple[Row, ...]


def _legacy_row(raw: Any, index: int) -> Any:
    """Reshape a pre-v5 ``rows`` entry into a v5 row panel."""
    if not isinstance(raw, Mapping) or "type" in raw or "panels" not in raw:
        return raw
    return {
        "id": raw.get("id", -(index + 1)),
        "type": ROW_TYPE,
        "title": raw.get("title", ""),
        "collapsed": raw.get("collapse", False),
        "gridPos": {"x": 0, "y": index, "w": FULL_GRID_WIDTH, "h": 1},
        "panels": raw.get("panels"),
    }


@dataclass
class Dashboard:
    title: str = ""
    description: str = ""
    uid: str = ""
    slug: str = ""
    timezone: str = ""
    time_range: TimeRange = field(default_factory=TimeRange)
    variables: Tuple[TemplateVariable, ...] = ()
    raw_panels: Tuple[Any, ...] = field(default=(), repr=False)
    raw_rows: Tuple[Any, ...] = field(default=(), repr=False)
    _layout: Optional[NormalizedLayout] = field(default=None, init=False, repr=False, compare=False)

    @classmethod
    def from_json(cls, payload: Mapping[str, Any]) -> "Dashboard":
        """Decode the ``{"meta": ..., "dashboard": ...}`` document of the metadata endpoint."""
        meta = payload.get("meta") or {}
        dash = payload.get("dashboard") or {}
        if not isinstance(dash, Mapping):
            raise ValueError("'dashboard' is not an object")
        time = dash.get("time") or {}
        templating = dash.get("templating") or {}
        variables = tuple(
            TemplateVariable.from_json(v)
            for v in templating.get("list") or []
            if isinstance(v, Mapping)
        )
        return cls(
            title=str(dash.get("title") or ""),
            description=str(dash.get("description") or ""),
            uid=str(dash.get("uid") or ""),
            slug=str(meta.get("slug") or "") if isinstance(meta, Mapping) else "",
            timezone=str(dash.get("timezone") or ""),
            time_range=TimeRange(from_=str(time.get("from") or "now-6h"), to=str(time.get("to") or "now")),
            variables=variables,
            raw_panels=tuple(dash.get("panels") or ()),
            raw_rows=tuple(dash.get("rows") or ()),
        )

    def _source_entries(self) -> List[Any]:
        if self.raw_panels or not self.raw_rows:
            return list(self.raw_panels)
        logger.info("Using deprecated 'rows' field for panel data.")
        return [_legacy_row(raw, i) for i, raw in enumerate(self.raw_rows)]

    def normalize(self) -> NormalizedLayout:
        if self._layout is not None:
            return self._layout

        entries = self._source_entries()
        logger.debug("Processing %d raw panel/row entries...", len(entries))
        panels: List[Panel] = []
        rows: List[Row] = []
        seen: Dict[int, str] = {}

        def accept(panel: Panel) -> bool:
            if panel.id in seen:
                logger.warning(
                    "Skipping panel %d (%r): id already used by %r", panel.id, panel.title, seen[panel.id]
                )
                return False
            seen[panel.id] = panel.title
            panels.append(panel)
            return True

        for raw in entries:
            try:
                panel = Panel.from_json(raw)
            except PanelParseError as exc:
                logger.warning("Skipping panel entry: %s. JSON: %s", exc, snippet(repr(raw), 100))
                continue

            if not panel.is_row:
                accept(panel)
                continue

            nested: List[Panel] = []
            for nested_raw in panel.nested:
                try:
                    child = Panel.from_json(nested_raw)
                except PanelParseError as exc:
                    logger.warning(
                        "Skipping nested panel in row %d: %s. JSON: %s",
                        panel.id,
                        exc,
                        snippet(repr(nested_raw), 100),
                    )
                    continue
                if child.is_row:
                    logger.warning("Skipping row %d nested inside row %d", child.id, panel.id)
                    continue
                if accept(child):
                    nested.append(child)
            rows.append(
                Row(
                    id=panel.id,
                    title=panel.title,
                    visible=not panel.collapsed,
                    grid_pos=panel.grid_pos,
                    panels=tuple(sorted(nested, key=_reading_order)),
                )
            )

        self._layout = NormalizedLayout(
            panels=tuple(sorted(panels, key=_reading_order)),
            rows=tuple(sorted(rows, key=_reading_order)),
        )
        logger.info(
            "Finished processing dashboard %r: %d panels, %d rows.",
            self.title,
            len(self._layout.panels),
            len(self._layout.rows),
        )
        return self._layout

    def grid_panels(self) -> List[Panel]:
        return list(self.normalize().panels)

    def rows(self) -> List[Row]:
        return list(self.normalize().rows)

    def row_panels(self) -> List[Panel]:
        """Nested panels of every row, in row order."""
        return [p for row in self.normalize().rows for p in row.panels]

    def variable_summary(self) -> str:
        return format_variables(self.variables)
