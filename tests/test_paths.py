import pandas as pd
import pytest

from uxsignal.errors import MalformedRow
from uxsignal.events import SessionPathMetrics, parse_row
from uxsignal.workers.paths import breakdown, classify, from_rows, metrics_from_events


def m(sid="s", **kw):
    return SessionPathMetrics(session_id=sid, **kw)


@pytest.mark.parametrize("metrics,pattern", [
    (dict(event_count=9), "minimal"),
    (dict(event_count=9, dead_click_count=5, max_scroll_depth=0.9), "minimal"),
    (dict(event_count=60, max_scroll_depth=0.85, dead_click_count=0), "lost"),
    (dict(event_count=20, dead_click_count=3), "lost"),
    (dict(event_count=50, max_scroll_depth=0.85, dead_click_count=0), "focused"),
    (dict(event_count=20, max_scroll_depth=0.6, dead_click_count=0), "focused"),
    (dict(event_count=20, max_scroll_depth=0.5, dead_click_count=0), "exploring"),
    (dict(event_count=20, max_scroll_depth=0.3, dead_click_count=1), "exploring"),
    (dict(event_count=20, max_scroll_depth=0.9, dead_click_count=2), "exploring"),
])
def test_decision_tree(metrics, pattern):
    assert classify(m(**metrics)).pattern == pattern


def test_directness_score():
    assert classify(m(event_count=20, dead_click_count=1)).directness_score == 0.5
    assert classify(m(event_count=20, dead_click_count=0)).directness_score == 0.8


def test_breakdown_counts_and_erratic_share():
    report = breakdown([
        m("a", event_count=5),
        m("b", event_count=20, max_scroll_depth=0.7, erratic_segments=2),
        m("c", event_count=20, max_scroll_depth=0.2),
    ])
    assert report.total_sessions == 3
    assert report.pattern_breakdown.model_dump() == {"focused": 1, "exploring": 1, "lost": 0, "minimal": 1}
    assert report.erratic_sessions == 1
    assert report.erratic_percentage == 33.3
    assert [s.session_id for s in report.sessions] == ["a", "b", "c"]


def test_breakdown_empty():
    report = breakdown([])
    assert report.total_sessions == 0
    assert report.erratic_percentage == 0.0


def test_from_rows_skips_bad_rows(caplog):
    rows = [
        {"session_id": "ok", "event_count": 12, "max_scroll_depth": 0.4, "dead_click_count": 0},
        {"session_id": "bad", "event_count": -1},
        {"event_count": 3},
        "nonsense",
    ]
    out = from_rows(rows)
    assert [x.session_id for x in out] == ["ok"]
    assert "[paths] skip malformed" in caplog.text


def test_metrics_from_events():
    depths = [0.1, 0.3, 0.2, 0.4, 0.3, 0.5]
    ev = [{"session_id": "s1", "timestamp": i * 500, "type": "scroll", "scroll_depth": d}
          for i, d in enumerate(depths)]
    ev.append({"session_id": "s1", "timestamp": 3000, "type": "dead_click"})
    ev.append({"session_id": "s1", "timestamp": 3500, "type": "click", "is_dead_click": True})
    ev += [{"session_id": "s1", "timestamp": 4000 + i * 500, "type": "hover"} for i in range(4)]
    ev.append({"session_id": "s0", "timestamp": 10, "type": "click"})

    out = metrics_from_events(pd.DataFrame(ev))
    assert [x.session_id for x in out] == ["s0", "s1"]
    s0, s1 = out
    assert s0.event_count == 1
    assert s0.max_scroll_depth == 0.0
    assert s1.event_count == 12
    assert s1.max_scroll_depth == 0.5
    assert s1.dead_click_count == 2
    assert s1.erratic_segments == 1
    assert s1.duration_ms == 5500
    assert classify(s1).pattern == "exploring"


def test_metrics_from_events_empty():
    assert metrics_from_events(pd.DataFrame()) == []


def test_parse_row_reports_malformed_rows():
    with pytest.raises(MalformedRow, match="session row"):
        parse_row(SessionPathMetrics, {"session_id": "x", "event_count": -1}, "session")
    assert parse_row(SessionPathMetrics, {"session_id": "x", "event_count": 3}, "session").event_count == 3
