from __future__ import annotations

import json
import sys
import threading
from pathlib import Path
from typing import Any

import pytest

from reporter.client import V5Client
from reporter.context import LayoutMode, ReportOptions
from reporter.latex import LatexCompiler
from reporter.timerange import TimeRange

BASE_URL = "http://grafana.test"

FAKE_COMPILER = """
import pathlib
import sys

tex = pathlib.Path(sys.argv[-1])
counter = pathlib.Path("passes.txt")
n = int(counter.read_text()) + 1 if counter.exists() else 1
counter.write_text(str(n))
print(f"This is fakeTeX, pass {n} on {tex.name}")
mode = "{mode}"
if mode == "fail":
    print("! LaTeX Error: File `missing.sty' not found.")
    sys.exit(1)
if mode == "ok" and n == 2:
    pathlib.Path(tex.stem + ".pdf").write_bytes(b"%PDF-1.4 fake report")
"""


class FakeResponse:
    def __init__(
        self,
        status_code: int = 200,
        content: bytes = b"",
        json_data: Any = None,
        headers: dict | None = None,
    ):
        self.status_code = status_code
        self.content = json.dumps(json_data).encode() if json_data is not None else content
        self.headers = headers or {}

    @property
    def text(self) -> str:
        return self.content.decode("utf-8", errors="replace")

    def json(self) -> Any:
        return json.loads(self.content.decode("utf-8"))


class FakeSession:
    """
    Stand-in for ``requests.Session``. Dashboard responses are keyed by URL;
    render outcomes are queued per panel id (the last one repeats). An outcome
    is a FakeResponse or an exception instance to raise.
    """

    def __init__(self):
        self.headers: dict = {}
        self.calls: list = []
        self.dashboards: dict = {}
        self.renders: dict = {}
        self._lock = threading.Lock()

    def get(self, url, params=None, timeout=None, allow_redirects=True, verify=True):
        with self._lock:
            self.calls.append(
                {"url": url, "params": params, "timeout": timeout, "allow_redirects": allow_redirects}
            )
            if "/render/" not in url:
                return self.dashboards.get(url, FakeResponse(404, b'{"message":"Dashboard not found"}'))
            panel_id = int(dict(params)["panelId"])
            outcomes = self.renders.get(panel_id)
            if not outcomes:
                outcome = FakeResponse(200, f"PNG-{panel_id}".encode())
            elif len(outcomes) > 1:
                outcome = outcomes.pop(0)
            else:
                outcome = outcomes[0]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    def render_calls(self, panel_id: int) -> list:
        return [c for c in self.calls if "/render/" in c["url"] and dict(c["params"])["panelId"] == str(panel_id)]


def sample_dashboard_json() -> dict:
    return {
        "meta": {"slug": "ops-overview"},
        "dashboard": {
            "title": "Ops & Overview",
            "description": "Daily_ops summary",
            "uid": "ops-overview-uid",
            "time": {"from": "now-6h", "to": "now"},
            "templating": {
                "list": [
                    {
                        "name": "host",
                        "label": "Host",
                        "multi": True,
                        "current": {"text": ["web1", "web2"], "value": ["web1", "web2"]},
                    },
                    {"name": "secret", "hide": 2, "current": {"text": "x", "value": "x"}},
                ]
            },
            "panels": [
                {
                    "id": 10,
                    "type": "row",
                    "title": "Traffic",
                    "collapsed": False,
                    "gridPos": {"x": 0, "y": 4, "w": 24, "h": 1},
                    "panels": [
                        {"id": 3, "type": "graph", "title": "Errors", "gridPos": {"x": 12, "y": 5, "w": 12, "h": 8}},
                        {"id": 2, "type": "graph", "title": "Requests", "gridPos": {"x": 0, "y": 5, "w": 12, "h": 8}},
                    ],
                },
                {"id": 1, "type": "singlestat", "title": "Uptime", "gridPos": {"x": 0, "y": 0, "w": 6, "h": 4}},
            ],
        },
    }


@pytest.fixture
def session() -> FakeSession:
    fake = FakeSession()
    fake.dashboards[f"{BASE_URL}/api/dashboards/db/ops"] = FakeResponse(200, json_data=sample_dashboard_json())
    return fake


@pytest.fixture
def delays() -> list:
    return []


@pytest.fixture
def client(session: FakeSession, delays: list) -> V5Client:
    return V5Client(BASE_URL, api_token="secret-token", session=session, retry_delay=0.5, sleep=delays.append)


def _compiler(tmp_path: Path, mode: str) -> LatexCompiler:
    script = tmp_path / f"fake_tex_{mode}.py"
    script.write_text(FAKE_COMPILER.replace("{mode}", mode), encoding="utf-8")
    return LatexCompiler(command=(sys.executable, str(script)))


@pytest.fixture
def fake_compiler(tmp_path: Path) -> LatexCompiler:
    return _compiler(tmp_path, "ok")


@pytest.fixture
def failing_compiler(tmp_path: Path) -> LatexCompiler:
    return _compiler(tmp_path, "fail")


@pytest.fixture
def silent_compiler(tmp_path: Path) -> LatexCompiler:
    """Exits cleanly but never writes a PDF."""
    return _compiler(tmp_path, "silent")


@pytest.fixture
def workspace_root(tmp_path: Path) -> Path:
    return tmp_path / "workspaces"


@pytest.fixture
def options(workspace_root: Path) -> ReportOptions:
    return ReportOptions(
        time_range=TimeRange("1700000000000", "now"),
        layout=LayoutMode.SEQUENTIAL,
        workspace_root=workspace_root,
    )
