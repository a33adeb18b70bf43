from __future__ import annotations

import logging
from typing import Iterable, List, Sequence

import numpy as np
import pandas as pd
from ..errors import MalformedRow
from ..events import (
    PathReport,
    PatternBreakdown,
    SessionPathClassification,
    SessionPathMetrics,
    parse_row,
)

MINIMAL_EVENTS = 10
LOST_DEAD_CLICKS = 2
LOST_SCROLL_DEPTH = 0.8
LOST_EVENTS = 50
FOCUSED_SCROLL_DEPTH = 0.5

logger = logging.getLogger(__name__)

WINDOW_MS = 5000       # erratic-segment window
ERRATIC_FLIPS = 3      # scroll direction reversals inside one window


def classify(metrics: SessionPathMetrics) -> SessionPathClassification:
    # first match wins; order matters
    if metrics.event_count < MINIMAL_EVENTS:
        pattern = "minimal"
    elif metrics.dead_click_count > LOST_DEAD_CLICKS or (
        metrics.max_scroll_depth > LOST_SCROLL_DEPTH and metrics.event_count > LOST_EVENTS
    ):
        pattern = "lost"
    elif metrics.max_scroll_depth > FOCUSED_SCROLL_DEPTH and metrics.dead_click_count == 0:
        pattern = "focused"
    else:
        pattern = "exploring"

    # placeholder heuristic, not a fitted model
    directness = 0.5 if metrics.dead_click_count > 0 else 0.8
    return SessionPathClassification(
        session_id=metrics.session_id, pattern=pattern, directness_score=directness,
    )


def breakdown(metrics: Sequence[SessionPathMetrics]) -> PathReport:
    sessions = [classify(m) for m in metrics]
    counts = PatternBreakdown()
    for s in sessions:
        setattr(counts, s.pattern, getattr(counts, s.pattern) + 1)
    n = len(metrics)
    erratic = sum(1 for m in metrics if m.erratic_segments > 0)
    return PathReport(
        total_sessions=n,
        erratic_sessions=erratic,
        erratic_percentage=round(erratic / n * 100, 1) if n else 0.0,
        pattern_breakdown=counts,
        sessions=sessions,
    )


def _direction_changes(depths: Sequence[float]) -> int:
    # sign flips of successive non-zero deltas
    flips = 0
    last = 0
    for d in np.diff(np.asarray(depths, dtype=float)):
        if d == 0:
            continue
        if last != 0 and np.sign(d) != np.sign(last):
            flips += 1
        last = d
    return flips


def _erratic_segments(scrolls: pd.DataFrame) -> int:
    if len(scrolls) < ERRATIC_FLIPS + 1:
        return 0
    start = scrolls["timestamp"].iloc[0]
    bucket = ((scrolls["timestamp"] - start) // WINDOW_MS).astype(int)
    return int(sum(
        1 for _, w in scrolls.groupby(bucket, sort=True)
        if _direction_changes(w["scroll_depth"].to_numpy()) >= ERRATIC_FLIPS
    ))


def metrics_from_events(df: pd.DataFrame) -> List[SessionPathMetrics]:
    """Per-session counters from raw events (timestamp in ms), in session_id order."""
    if df is None or df.empty:
        return []
    df = df.copy()
    df["timestamp"] = pd.to_numeric(df["timestamp"], errors="coerce")
    df = df.dropna(subset=["timestamp"]).sort_values(["session_id", "timestamp"], kind="mergesort")
    if "scroll_depth" in df.columns:
        df["scroll_depth"] = pd.to_numeric(df["scroll_depth"], errors="coerce")
    else:
        df["scroll_depth"] = np.nan
    dead_flag = df["is_dead_click"] if "is_dead_click" in df.columns else False
    df["dead"] = (df["type"] == "dead_click") | pd.Series(dead_flag, index=df.index).fillna(False).astype(bool)

    out = []
    for session_id, g in df.groupby("session_id", sort=True):
        scrolls = g[(g["type"] == "scroll") & g["scroll_depth"].notna()]
        depth = float(scrolls["scroll_depth"].max()) if len(scrolls) else 0.0
        out.append(SessionPathMetrics(
            session_id=str(session_id),
            event_count=int(len(g)),
            max_scroll_depth=min(max(depth, 0.0), 1.0),
            dead_click_count=int(g["dead"].sum()),
            erratic_segments=_erratic_segments(scrolls),
            duration_ms=int(g["timestamp"].max() - g["timestamp"].min()),
        ))
    return out


def from_rows(rows: Iterable[dict]) -> List[SessionPathMetrics]:
    out = []
    for row in rows:
        try:
            out.append(parse_row(SessionPathMetrics, row, "session"))
        except MalformedRow as e:
            logger.warning("[paths] skip malformed session row %r: %s",
                           row.get("session_id") if isinstance(row, dict) else None, e)
    return out
