from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from .config import (
    COMPILER_COMMAND,
    DEFAULT_API_VERSION,
    DEFAULT_GRAFANA_URL,
    MAX_IMAGE_WORKERS,
    WORKSPACE_ROOT,
)
from .timerange import TimeRange


class LayoutMode(str, Enum):
    """How panels are laid out in the document and which panels get images."""

    SEQUENTIAL = "sequential"
    GRID = "grid"
    ROWS = "rows"

    @property
    def fit_to_grid(self) -> bool:
        return self is LayoutMode.GRID


@dataclass(frozen=True)
class ReportOptions:
    """
    Everything the report assembler needs besides the client and the dashboard
    name. Passed explicitly at construction so concurrent reports never share
    behaviour switches.
    """

    time_range: TimeRange = field(default_factory=TimeRange)
    layout: LayoutMode = LayoutMode.SEQUENTIAL
    template_path: Optional[Path] = None
    workspace_root: Path = WORKSPACE_ROOT
    compiler_command: Tuple[str, ...] = COMPILER_COMMAND
    max_image_workers: int = MAX_IMAGE_WORKERS


@dataclass(frozen=True)
class ReportRequest:
    """Canonical description of a report asked for by the CLI or the builder page."""

    dashboard: str
    grafana_url: str = DEFAULT_GRAFANA_URL
    api_version: str = DEFAULT_API_VERSION
    api_token: str = ""
    ssl_check: bool = True
    variables: Dict[str, Tuple[str, ...]] = field(default_factory=dict)
    options: ReportOptions = field(default_factory=ReportOptions)

    def summary(self) -> Dict[str, str]:
        """Plain values for logs and report metadata; never includes the token."""
        return {
            "dashboard": self.dashboard,
            "grafana_url": self.grafana_url,
            "api_version": self.api_version,
            "layout": self.options.layout.value,
            "from": self.options.time_range.from_,
            "to": self.options.time_range.to,
        }


def parse_variables(pairs: Iterable[str]) -> Dict[str, Tuple[str, ...]]:
    """``["host=a", "host=b", "env=prod"]`` -> ``{"host": ("a", "b"), "env": ("prod",)}``."""
    variables: Dict[str, List[str]] = {}
    for pair in pairs:
        name, sep, value = pair.partition("=")
        if not sep or not name:
            raise ValueError(f"template variable must look like name=value: {pair!r}")
        variables.setdefault(name, []).append(value)
    return {k: tuple(v) for k, v in variables.items()}
