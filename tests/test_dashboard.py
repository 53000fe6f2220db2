from __future__ import annotations

import logging

import pytest

from conftest import sample_dashboard_json
from reporter.dashboard import (
    Dashboard,
    GridPos,
    Panel,
    TemplateVariable,
    Visibility,
    format_variables,
    looks_like_uid,
)
from reporter.errors import PanelParseError


def _dash(panels=None, rows=None) -> Dashboard:
    payload = {"dashboard": {"title": "T", "panels": panels or [], "rows": rows or []}}
    return Dashboard.from_json(payload)


def _panel(pid, x, y, ptype="graph", **extra) -> dict:
    return {"id": pid, "type": ptype, "title": f"p{pid}", "gridPos": {"x": x, "y": y, "w": 6, "h": 4}, **extra}


def test_flat_list_counts_valid_non_row_entries_including_nested() -> None:
    dash = _dash(
        panels=[
            _panel(1, 0, 0),
            {"id": 20, "type": "row", "title": "R", "gridPos": {"x": 0, "y": 10}, "panels": [_panel(2, 0, 11), "junk"]},
            {"type": "graph"},
            _panel(3, 6, 0, ptype="text"),
        ]
    )

    ids = [p.id for p in dash.grid_panels()]

    assert ids == [1, 3, 2]
    assert all(not p.is_row for p in dash.grid_panels())


def test_panels_sorted_by_y_then_x_stably() -> None:
    dash = _dash(panels=[_panel(1, 12, 5), _panel(2, 0, 5), _panel(3, 0, 0), _panel(4, 0, 5)])

    assert [p.id for p in dash.grid_panels()] == [3, 2, 4, 1]


def test_rows_in_grid_order_with_sorted_nested_panels() -> None:
    dash = _dash(
        panels=[
            {
                "id": 31,
                "type": "row",
                "title": "Second",
                "collapsed": True,
                "gridPos": {"x": 0, "y": 20},
                "panels": [_panel(5, 12, 21), _panel(4, 0, 21)],
            },
            {"id": 30, "type": "row", "title": "First", "gridPos": {"x": 0, "y": 0}, "panels": []},
        ]
    )

    rows = dash.rows()

    assert [r.title for r in rows] == ["First", "Second"]
    assert rows[0].panels == ()
    assert rows[0].visible is True
    assert rows[1].visible is False
    assert [p.id for p in rows[1].panels] == [4, 5]
    assert [p.id for p in dash.row_panels()] == [4, 5]


def test_nested_panels_appear_in_both_views() -> None:
    dash = Dashboard.from_json(sample_dashboard_json())

    flat = dash.grid_panels()
    nested = dash.rows()[0].panels

    assert [p.id for p in flat] == [1, 2, 3]
    assert set(nested) <= set(flat)
    assert [p.id for p in flat].count(2) == 1


def test_dashboard_without_rows_is_all_flat() -> None:
    dash = _dash(panels=[_panel(1, 0, 0), _panel(2, 0, 1)])

    assert dash.rows() == []
    assert len(dash.grid_panels()) == 2


def test_normalize_is_memoized(monkeypatch: pytest.MonkeyPatch) -> None:
    dash = Dashboard.from_json(sample_dashboard_json())
    calls = []
    original = Panel.from_json.__func__

    def counting(cls, raw):
        calls.append(raw)
        return original(cls, raw)

    monkeypatch.setattr(Panel, "from_json", classmethod(counting))

    first = dash.normalize()
    parsed = len(calls)
    second = dash.normalize()

    assert first is second
    assert parsed == 4
    assert len(calls) == parsed
    assert dash.grid_panels() == list(first.panels)


def test_malformed_entries_are_skipped_with_warning(caplog: pytest.LogCaptureFixture) -> None:
    dash = _dash(panels=[_panel(1, 0, 0), {"id": "x"}, {"id": 2, "gridPos": {"x": "left"}}, 7])

    with caplog.at_level(logging.WARNING, logger="reporter.dashboard"):
        panels = dash.grid_panels()

    assert [p.id for p in panels] == [1]
    assert sum("Skipping panel entry" in r.getMessage() for r in caplog.records) == 3


def test_duplicate_ids_keep_first_occurrence() -> None:
    dash = _dash(
        panels=[
            _panel(1, 0, 0),
            {"id": 9, "type": "row", "title": "R", "gridPos": {"y": 2}, "panels": [_panel(1, 0, 3), _panel(2, 0, 3)]},
        ]
    )

    assert [p.id for p in dash.grid_panels()] == [1, 2]
    assert [p.id for p in dash.rows()[0].panels] == [2]


def test_legacy_rows_field_is_used_when_panels_empty() -> None:
    dash = _dash(
        rows=[
            {"title": "Old row", "collapse": True, "panels": [{"id": 1, "type": "graph", "title": "cpu"}]},
            {"title": "Other", "panels": [{"id": 2, "type": "singlestat", "title": "mem"}]},
        ]
    )

    rows = dash.rows()

    assert [r.title for r in rows] == ["Old row", "Other"]
    assert rows[0].visible is False
    assert [p.id for p in dash.grid_panels()] == [1, 2]


def test_panel_from_json_rejects_bad_shapes() -> None:
    with pytest.raises(PanelParseError):
        Panel.from_json([])
    with pytest.raises(PanelParseError):
        Panel.from_json({"id": True})
    with pytest.raises(PanelParseError):
        Panel.from_json({"id": 1, "type": "row", "panels": {"a": 1}})


def test_panel_helpers() -> None:
    stat = Panel(id=1, type="stat", grid_pos=GridPos(w=6, h=4))
    graph = Panel(id=2, type="graph", grid_pos=GridPos(w=24, h=8))

    assert stat.is_stat and stat.kind == "stat"
    assert Panel(id=3, type="singlestat").kind == "stat"
    assert stat.is_partial_width and not graph.is_partial_width
    assert stat.width == pytest.approx(0.24)
    assert graph.height == pytest.approx(0.32)


def test_variable_summary_formats_visible_variables() -> None:
    dash = Dashboard.from_json(sample_dashboard_json())

    assert dash.variable_summary() == "Host: web1, web2"


@pytest.mark.parametrize(
    "raw, expected",
    [
        ({"name": "env", "current": {"text": "prod", "value": "prod"}}, "env: prod"),
        ({"name": "env", "label": "Environment", "hide": 1, "current": {"text": "prod"}}, "Environment"),
        ({"name": "env", "hide": 2, "current": {"text": "prod"}}, None),
        (
            {"name": "dc", "includeAll": True, "current": {"text": ["a", "b"], "value": ["$__all"]}},
            "dc: All",
        ),
        ({"name": "dc", "multi": True, "current": {"value": '["a","b"]'}}, "dc: a, b"),
        ({"name": "empty", "current": {}}, "empty"),
    ],
)
def test_template_variable_summary(raw, expected) -> None:
    assert TemplateVariable.from_json(raw).summary() == expected


def test_format_variables_joins_with_semicolons() -> None:
    variables = [
        TemplateVariable(name="a", current_text="1"),
        TemplateVariable(name="b", hide=Visibility.HIDDEN, current_text="2"),
        TemplateVariable(name="c", current_text=("x", "y")),
    ]

    assert format_variables(variables) == "a: 1; c: x, y"


def test_looks_like_uid() -> None:
    assert looks_like_uid("000000012")
    assert looks_like_uid("abcDEF-123")
    assert not looks_like_uid("short")
    assert not looks_like_uid("my_dashboard_slug")
