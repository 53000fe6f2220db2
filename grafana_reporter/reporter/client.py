"""
HTTP client for the dashboard service.

Two operations matter to the report pipeline: fetching a dashboard
definition and rendering a single panel to PNG. Dashboard fetches are never
retried. Panel renders are retried on server errors and transport failures
with a linearly growing delay; authentication problems and other client
errors fail immediately.
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

import requests
from requests.adapters import HTTPAdapter

from .config import (
    DASHBOARD_BODY_SNIPPET,
    DASHBOARD_TIMEOUT,
    DEFAULT_PANEL_SIZE,
    DEFAULT_THEME,
    GRID_PIXELS_PER_UNIT,
    MAX_IMAGE_WORKERS,
    MAX_RENDER_ATTEMPTS,
    PANEL_SIZES,
    RENDER_BODY_SNIPPET,
    RENDER_RETRY_DELAY,
    RENDER_TIMEOUT,
    USER_AGENT,
)
from .dashboard import Dashboard, Panel, looks_like_uid, snippet
from .errors import AuthenticationError, DashboardFetchError, PanelCancelledError, PanelRenderError
from .timerange import TimeRange

logger = logging.getLogger(__name__)


class GrafanaClient(ABC):
    """
    Base client; subclasses only decide which endpoints to call.
    ``session`` and ``sleep`` are injectable so tests can run offline.
    ``pool_size`` should be at least the number of concurrent image workers.
    """

    api_version = ""

    def __init__(
        self,
        base_url: str,
        api_token: str = "",
        variables: Optional[Mapping[str, Sequence[str]]] = None,
        ssl_check: bool = True,
        grid_layout: bool = False,
        session: Optional[requests.Session] = None,
        max_attempts: int = MAX_RENDER_ATTEMPTS,
        retry_delay: float = RENDER_RETRY_DELAY,
        sleep: Callable[[float], None] = time.sleep,
        pool_size: int = MAX_IMAGE_WORKERS,
    ):
        self.base_url = base_url.rstrip("/")
        self.variables = {k: tuple(v) for k, v in (variables or {}).items()}
        self.ssl_check = ssl_check
        self.grid_layout = grid_layout
        self.max_attempts = max(1, max_attempts)
        self.retry_delay = retry_delay
        self._sleep = sleep
        self.session = session or self._build_session(pool_size)
        self.session.headers["User-Agent"] = USER_AGENT
        if api_token:
            self.session.headers["Authorization"] = f"Bearer {api_token}"

    @staticmethod
    def _build_session(pool_size: int = MAX_IMAGE_WORKERS) -> requests.Session:
        session = requests.Session()
        adapter = HTTPAdapter(pool_connections=4, pool_maxsize=max(1, pool_size))
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        return session

    @abstractmethod
    def dashboard_url(self, dash_name: str) -> str:
        ...

    @abstractmethod
    def render_url(self, dash_uid: str) -> str:
        ...

    def get_dashboard(self, dash_name: str) -> Dashboard:
        url = self.dashboard_url(dash_name)
        logger.info("Getting dashboard definition from %s", url)
        try:
            resp = self.session.get(url, timeout=DASHBOARD_TIMEOUT, verify=self.ssl_check)
        except requests.RequestException as exc:
            raise DashboardFetchError(f"error requesting dashboard {url}: {exc}") from exc

        if resp.status_code != 200:
            raise DashboardFetchError(
                f"error getting dashboard {url}: status {resp.status_code}, "
                f"body: {snippet(resp.text, DASHBOARD_BODY_SNIPPET)}",
                status=resp.status_code,
            )
        try:
            dash = Dashboard.from_json(resp.json())
        except (ValueError, AttributeError, TypeError) as exc:
            raise DashboardFetchError(
                f"error decoding dashboard JSON from {url}: {exc}\n"
                f"Raw JSON response snippet:\n{snippet(resp.text, DASHBOARD_BODY_SNIPPET)}",
                status=resp.status_code,
            ) from exc

        if not dash.uid:
            dash.uid = self._fallback_uid(dash, dash_name)
        logger.info("Fetched dashboard %r (uid %s)", dash.title, dash.uid)
        return dash

    @staticmethod
    def _fallback_uid(dash: Dashboard, dash_name: str) -> str:
        if looks_like_uid(dash_name):
            logger.info("Dashboard JSON has no uid, using requested name %r", dash_name)
            return dash_name
        if dash.slug:
            logger.warning("Dashboard JSON has no uid, using slug %r", dash.slug)
            return dash.slug
        logger.warning("Dashboard JSON has no uid or slug, using requested name %r", dash_name)
        return dash_name

    def panel_size(self, panel: Panel) -> Tuple[int, int]:
        if self.grid_layout and panel.grid_pos.w > 0 and panel.grid_pos.h > 0:
            return (
                int(panel.grid_pos.w * GRID_PIXELS_PER_UNIT),
                int(panel.grid_pos.h * GRID_PIXELS_PER_UNIT),
            )
        return PANEL_SIZES.get(panel.kind, DEFAULT_PANEL_SIZE)

    def render_params(self, panel: Panel, time_range: TimeRange) -> List[Tuple[str, str]]:
        width, height = self.panel_size(panel)
        params = [
            ("panelId", str(panel.id)),
            ("width", str(width)),
            ("height", str(height)),
            ("tz", "UTC"),
            ("from", time_range.from_),
            ("to", time_range.to),
            ("theme", DEFAULT_THEME),
        ]
        for name, values in self.variables.items():
            key = name if name.startswith("var-") else f"var-{name}"
            params.extend((key, value) for value in values)
        return params

    def get_panel_png(
        self,
        panel: Panel,
        dash_uid: str,
        time_range: TimeRange,
        cancel: Optional[threading.Event] = None,
    ) -> bytes:
        if not dash_uid:
            raise PanelRenderError(f"error rendering panel {panel.id}: dashboard uid is empty", panel.id)
        url = self.render_url(dash_uid)
        params = self.render_params(panel, time_range)
        logger.debug("Requesting panel %r (id %d) from %s", panel.title, panel.id, url)
        return self._render(url, params, panel.id, cancel)

    def _wait(self, delay: float, cancel: Optional[threading.Event]) -> bool:
        """Sleep before a retry; returns True when the wait was cut short by ``cancel``."""
        if cancel is None:
            self._sleep(delay)
            return False
        return cancel.wait(delay)

    def _render(
        self,
        url: str,
        params: List[Tuple[str, str]],
        panel_id: int,
        cancel: Optional[threading.Event],
    ) -> bytes:
        last_failure = ""
        last_status: Optional[int] = None
        for attempt in range(1, self.max_attempts + 1):
            if attempt > 1:
                delay = self.retry_delay * (attempt - 1)
                logger.info("Retrying render of panel %d after %.1fs...", panel_id, delay)
                if self._wait(delay, cancel):
                    raise PanelCancelledError(f"render of panel {panel_id} cancelled", panel_id, last_status)
            if cancel is not None and cancel.is_set():
                raise PanelCancelledError(f"render of panel {panel_id} cancelled", panel_id, last_status)

            try:
                resp = self.session.get(
                    url,
                    params=params,
                    timeout=RENDER_TIMEOUT,
                    allow_redirects=False,
                    verify=self.ssl_check,
                )
            except (requests.Timeout, requests.ConnectionError) as exc:
                last_failure = f"transport error: {exc}"
                logger.warning(
                    "Render request for panel %d failed (attempt %d/%d): %s",
                    panel_id,
                    attempt,
                    self.max_attempts,
                    exc,
                )
                continue
            except requests.RequestException as exc:
                raise PanelRenderError(f"error requesting render of panel {panel_id}: {exc}", panel_id) from exc

            status = resp.status_code
            if status == 200:
                logger.debug("Rendered panel %d (attempt %d)", panel_id, attempt)
                return resp.content

            body = snippet(resp.text, RENDER_BODY_SNIPPET)
            if 300 <= status < 400:
                location = resp.headers.get("Location", "")
                raise AuthenticationError(
                    f"error rendering panel {panel_id}: redirect ({status}) to {location!r}, "
                    "check the API token",
                    panel_id,
                    status,
                )
            if status in (401, 403):
                raise AuthenticationError(
                    f"error rendering panel {panel_id}: authorization failed ({status}). Body: {body}",
                    panel_id,
                    status,
                )
            if status < 500:
                raise PanelRenderError(
                    f"error rendering panel {panel_id}: client error status {status}. Body: {body}",
                    panel_id,
                    status,
                )
            last_status = status
            last_failure = f"last status {status}. Body: {body}"
            logger.warning(
                "Server error %d rendering panel %d (attempt %d/%d)",
                status,
                panel_id,
                attempt,
                self.max_attempts,
            )

        raise PanelRenderError(
            f"error rendering panel {panel_id} after {self.max_attempts} attempts: {last_failure}",
            panel_id,
            last_status,
        )


class V4Client(GrafanaClient):
    api_version = "v4"

    def dashboard_url(self, dash_name: str) -> str:
        return f"{self.base_url}/api/dashboards/db/{dash_name}"

    def render_url(self, dash_uid: str) -> str:
        return f"{self.base_url}/render/dashboard-solo/db/{dash_uid}"


class V5Client(GrafanaClient):
    api_version = "v5"

    def dashboard_url(self, dash_name: str) -> str:
        if looks_like_uid(dash_name):
            return f"{self.base_url}/api/dashboards/uid/{dash_name}"
        return f"{self.base_url}/api/dashboards/db/{dash_name}"

    def render_url(self, dash_uid: str) -> str:
        return f"{self.base_url}/render/d-solo/{dash_uid}"


CLIENTS: Dict[str, type] = {"v4": V4Client, "v5": V5Client}


def new_client(api_version: str, base_url: str, **kwargs) -> GrafanaClient:
    try:
        cls = CLIENTS[api_version]
    except KeyError:
        raise ValueError(f"unsupported API version {api_version!r}; expected one of {sorted(CLIENTS)}") from None
    logger.info("Using Grafana %s client for %s", api_version, base_url)
    return cls(base_url, **kwargs)
