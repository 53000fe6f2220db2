from __future__ import annotations

from pathlib import Path

from conftest import FakeResponse, FakeSession
from reporter.client import V5Client
from reporter.dashboard import Panel
from reporter.images import AcquisitionResult, FailureSink, ImageCoordinator, PanelFailure, image_filename
from reporter.timerange import TimeRange


def _coordinator(client: V5Client, image_dir: Path, workers: int = 4) -> ImageCoordinator:
    image_dir.mkdir(parents=True, exist_ok=True)
    return ImageCoordinator(client, "ops-uid", TimeRange("now-1h", "now"), image_dir, max_workers=workers)


def test_partial_failures_do_not_stop_other_downloads(
    client: V5Client, session: FakeSession, tmp_path: Path
) -> None:
    session.renders[4] = [FakeResponse(500), FakeResponse(404, b"gone")]
    session.renders[5] = [FakeResponse(500, b"renderer down")]
    panels = [Panel(id=i, type="graph", title=f"panel {i}") for i in range(1, 6)]

    result = _coordinator(client, tmp_path / "images").acquire(panels)

    assert sorted(result.downloaded) == [1, 2, 3]
    assert sorted(result.failed_ids) == [4, 5]
    files = sorted(p.name for p in (tmp_path / "images").iterdir())
    assert files == ["image1.png", "image2.png", "image3.png"]
    assert (tmp_path / "images" / "image2.png").read_bytes() == b"PNG-2"
    summary = result.summary()
    assert "panel 4" in summary and "panel 5" in summary
    assert "2 error(s)" in summary
    assert len(session.render_calls(4)) == 2
    assert len(session.render_calls(5)) == 3


def test_text_panels_are_skipped(client: V5Client, session: FakeSession, tmp_path: Path) -> None:
    panels = [Panel(id=1, type="text", title="notes"), Panel(id=2, type="stat", title="up")]

    result = _coordinator(client, tmp_path / "images").acquire(panels)

    assert result.skipped == (1,)
    assert result.downloaded == (2,)
    assert session.render_calls(1) == []
    assert not (tmp_path / "images" / image_filename(1)).exists()


def test_only_text_panels_downloads_nothing(client: V5Client, session: FakeSession, tmp_path: Path) -> None:
    result = _coordinator(client, tmp_path / "images").acquire([Panel(id=9, type="text")])

    assert result == AcquisitionResult(skipped=(9,))
    assert session.calls == []


def test_single_worker_still_downloads_everything(client: V5Client, tmp_path: Path) -> None:
    panels = [Panel(id=i, type="graph") for i in range(1, 8)]

    result = _coordinator(client, tmp_path / "images", workers=1).acquire(panels)

    assert sorted(result.downloaded) == list(range(1, 8))
    assert result.summary() == "7 image(s) downloaded"


def test_failure_sink_snapshot_is_immutable() -> None:
    sink = FailureSink()
    sink.add(PanelFailure(1, "cpu", "boom"))
    snap = sink.snapshot()
    sink.add(PanelFailure(2, "mem", "boom"))

    assert len(snap) == 1
    assert len(sink) == 2
    assert str(snap[0]) == "panel 1 ('cpu'): boom"
