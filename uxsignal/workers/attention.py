from __future__ import annotations

import logging
from typing import Iterable, List, Optional

import pandas as pd

from ..errors import MalformedRow
from ..events import AttentionMap, AttentionZone, HeatmapPoint, HoverRow, parse_row

logger = logging.getLogger(__name__)

GROUP_KEYS = ["element_selector", "element_tag", "zone"]


def infer_zone(y_relative: Optional[float]) -> str:
    """Fallback bucket from vertical position when the tracker sent no zone."""
    if y_relative is None:
        return "content"
    if y_relative < 0.15:
        return "heading"
    if y_relative > 0.85:
        return "footer"
    if y_relative < 0.3:
        return "interactive"
    return "content"


def _valid_rows(rows: Iterable) -> List[dict]:
    good, skipped = [], 0
    for row in rows:
        try:
            hr = row if isinstance(row, HoverRow) else parse_row(HoverRow, row, "hover")
        except MalformedRow:
            skipped += 1
            continue
        rec = hr.model_dump()
        if not rec["zone"]:
            rec["zone"] = infer_zone(hr.y_relative)
        rec["element_tag"] = rec["element_tag"] or ""
        rec["x_relative"] = rec["x_relative"] or 0.0
        rec["y_relative"] = rec["y_relative"] or 0.0
        good.append(rec)
    if skipped:
        logger.warning("[attention] dropped %d malformed hover rows", skipped)
    return good


def aggregate(hover_rows: Iterable) -> AttentionMap:
    """
    Hover rows → per-element heatmap points and per-zone attention shares.

    Both lists come back longest-duration first; equal durations keep the order
    in which their group was first seen in the input.
    """
    rows = _valid_rows(hover_rows)
    if not rows:
        return AttentionMap()
    df = pd.DataFrame(rows)

    pts = df.groupby(GROUP_KEYS, sort=False).agg(
        duration=("hover_duration_ms", "sum"),
        hits=("hover_duration_ms", "size"),
        avg_duration=("hover_duration_ms", "mean"),
        x=("x_relative", "mean"),
        y=("y_relative", "mean"),
    ).reset_index()
    total = float(pts["duration"].sum())
    pts["intensity"] = pts["duration"] / total if total > 0 else 0.0
    pts = pts.sort_values("duration", ascending=False, kind="mergesort")

    zones = df.groupby("zone", sort=False).agg(
        total_time_ms=("hover_duration_ms", "sum"),
        event_count=("hover_duration_ms", "size"),
        unique_sessions=("session_id", "nunique"),
    ).reset_index()
    zones["percentage"] = (zones["total_time_ms"] / total * 100).round(1) if total > 0 else 0.0
    zones = zones.sort_values("total_time_ms", ascending=False, kind="mergesort")

    heatmap_points = [
        HeatmapPoint(
            selector=r.element_selector, tag=r.element_tag, zone=r.zone,
            duration=float(r.duration), count=int(r.hits), avg_duration=float(r.avg_duration),
            x=round(float(r.x), 4), y=round(float(r.y), 4), intensity=float(r.intensity),
        )
        for r in pts.itertuples(index=False)
    ]
    attention_zones = [
        AttentionZone(
            zone=r.zone, total_time_ms=float(r.total_time_ms), event_count=int(r.event_count),
            unique_sessions=int(r.unique_sessions), percentage=float(r.percentage),
        )
        for r in zones.itertuples(index=False)
    ]
    return AttentionMap(
        heatmap_points=heatmap_points,
        attention_zones=attention_zones,
        total_hover_time_ms=total,
    )
