import logging
import threading
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from .client import GrafanaClient
from .config import MAX_IMAGE_WORKERS
from .dashboard import Panel
from .timerange import TimeRange

logger = logging.getLogger(__name__)


def image_filename(panel_id: int) -> str:
    return f"image{panel_id}.png"


@dataclass(frozen=True)
class PanelFailure:
    panel_id: int
    title: str
    message: str

    def __str__(self) -> str:
        return f"panel {self.panel_id} ({self.title!r}): {self.message}"


class FailureSink:
    """Append-only failure collection shared by the download workers."""

    def __init__(self):
        self._items: List[PanelFailure] = []
        self._lock = threading.Lock()

    def add(self, failure: PanelFailure) -> None:
        with self._lock:
            self._items.append(failure)

    def snapshot(self) -> Tuple[PanelFailure, ...]:
        with self._lock:
            return tuple(self._items)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


@dataclass(frozen=True)
class AcquisitionResult:
    downloaded: Tuple[int, ...] = ()
    skipped: Tuple[int, ...] = ()
    failures: Tuple[PanelFailure, ...] = ()

    @property
    def failed_ids(self) -> Tuple[int, ...]:
        return tuple(f.panel_id for f in self.failures)

    def summary(self) -> str:
        if not self.failures:
            return f"{len(self.downloaded)} image(s) downloaded"
        lines = "\n- ".join(str(f) for f in self.failures)
        return (
            f"{len(self.downloaded)} image(s) downloaded, {len(self.failures)} error(s):\n- {lines}"
        )


class ImageCoordinator:
    """
    Downloads one PNG per non-text panel into ``image_dir``, all at once.
    Individual failures are collected and summarised; they never stop the
    other downloads and never fail the stage.
    """

    def __init__(
        self,
        client: GrafanaClient,
        dash_uid: str,
        time_range: TimeRange,
        image_dir: Path,
        max_workers: int = MAX_IMAGE_WORKERS,
        cancel: Optional[threading.Event] = None,
    ):
        self.client = client
        self.dash_uid = dash_uid
        self.time_range = time_range
        self.image_dir = image_dir
        self.max_workers = max(1, max_workers)
        self.cancel = cancel

    def image_path(self, panel_id: int) -> Path:
        return self.image_dir / image_filename(panel_id)

    def acquire(self, panels: Sequence[Panel]) -> AcquisitionResult:
        scheduled = []
        skipped = []
        for panel in panels:
            if panel.is_text:
                logger.info("Skipping image download for text panel %d (%s)", panel.id, panel.title)
                skipped.append(panel.id)
            else:
                scheduled.append(panel)

        if not scheduled:
            logger.warning("No panels to download images for.")
            return AcquisitionResult(skipped=tuple(skipped))

        sink = FailureSink()
        logger.info("Downloading images for %d panels...", len(scheduled))
        workers = min(self.max_workers, len(scheduled))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="panel") as executor:
            futures = {executor.submit(self._download, panel, sink): panel.id for panel in scheduled}
            wait(futures)
        downloaded = tuple(pid for future, pid in futures.items() if future.result())

        result = AcquisitionResult(downloaded=downloaded, skipped=tuple(skipped), failures=sink.snapshot())
        if result.failures:
            logger.warning(
                "Finished downloading images with %d error(s). Report generation will continue.\n- %s",
                len(result.failures),
                "\n- ".join(str(f) for f in result.failures),
            )
        else:
            logger.info("Finished downloading %d images.", len(downloaded))
        return result

    def _download(self, panel: Panel, sink: FailureSink) -> bool:
        path = self.image_path(panel.id)
        try:
            data = self.client.get_panel_png(panel, self.dash_uid, self.time_range, cancel=self.cancel)
            path.write_bytes(data)
        except Exception as exc:  # collected into the sink, reported after the barrier
            path.unlink(missing_ok=True)
            logger.warning("Failed to download image for panel %d (%r): %s", panel.id, panel.title, exc)
            sink.add(PanelFailure(panel_id=panel.id, title=panel.title, message=str(exc)))
            return False
        logger.debug("Saved panel %d image to %s", panel.id, path)
        return True
