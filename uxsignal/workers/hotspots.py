from __future__ import annotations

import logging
from math import hypot
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import pandas as pd

from ..events import Hotspot, RageClickPoint

logger = logging.getLogger(__name__)

CLUSTER_RADIUS = 50.0  # px
RAGE_MS = 0.6          # three clicks inside this many seconds...
RAGE_RADIUS = 50.0     # ...and this many px count as one rage burst
RAGE_CLICK_COUNT = 3

SEVERITY_BANDS = ((80, "critical"), (60, "high"), (40, "medium"))
SIZE_BANDS = ((10, "large", 48), (5, "medium", 36), (3, "small", 28))


def severity_band(score: float) -> str:
    for floor, name in SEVERITY_BANDS:
        if score >= floor:
            return name
    return "low"


def size_band(count: int) -> str:
    for floor, name, _ in SIZE_BANDS:
        if count >= floor:
            return name
    return "minimal"


def marker_size_px(count: int) -> int:
    for floor, _, px in SIZE_BANDS:
        if count >= floor:
            return px
    return 24


def cluster(points: Iterable[RageClickPoint], radius_px: float = CLUSTER_RADIUS) -> List[Hotspot]:
    """
    Greedy single pass over ``points`` in input order. A point joins the first
    hotspot whose anchor is within ``radius_px`` on both axes (a square, not a
    circle); otherwise it anchors a new one. Anchors never move, so the result
    depends on input order.
    """
    hotspots: List[Hotspot] = []
    for p in points:
        home = None
        for h in hotspots:
            if abs(h.x - p.x) < radius_px and abs(h.y - p.y) < radius_px:
                home = h
                break
        if home is None:
            hotspots.append(Hotspot(
                x=p.x, y=p.y, count=p.count,
                frustration_score=p.frustration_score,
                element_selector=p.element_selector,
                page_path=p.page_path,
                rage_click_count=p.rage_click_count,
                dead_click_count=p.dead_click_count,
            ))
            continue
        home.count += p.count
        home.rage_click_count += p.rage_click_count
        home.dead_click_count += p.dead_click_count
        home.frustration_score = max(home.frustration_score, p.frustration_score)
        home.members += 1

    for h in hotspots:
        h.severity = severity_band(h.frustration_score)
        h.size = size_band(h.count)
    return hotspots


def summarize(hotspots: Sequence[Hotspot]) -> Dict[str, float]:
    n = len(hotspots)
    return {
        "total_hotspots": n,
        "total_clicks": sum(h.count for h in hotspots),
        "total_rage_clicks": sum(h.rage_click_count for h in hotspots),
        "total_dead_clicks": sum(h.dead_click_count for h in hotspots),
        "critical": sum(1 for h in hotspots if h.severity == "critical"),
        "affected_pages": len({h.page_path for h in hotspots}),
        "avg_frustration_score": round(sum(h.frustration_score for h in hotspots) / n) if n else 0,
    }


def burst_members(clicks: Sequence[Tuple[float, float, float]],
                  window_s: float = RAGE_MS, radius: float = RAGE_RADIUS) -> List[bool]:
    """
    Flag every ``(t_ms, x, y)`` click that is part of a run of three consecutive
    clicks spanning at most ``window_s`` seconds and ``radius`` px. Flags line
    up with the input, which need not be time-ordered.
    """
    flags = [False] * len(clicks)
    order = sorted(range(len(clicks)), key=lambda i: clicks[i][0])
    window_ms = window_s * 1000
    for k in range(len(order) - (RAGE_CLICK_COUNT - 1)):
        run = order[k:k + RAGE_CLICK_COUNT]
        t0, x0, y0 = clicks[run[0]]
        t2, x2, y2 = clicks[run[-1]]
        if t2 - t0 <= window_ms and hypot(x2 - x0, y2 - y0) <= radius:
            for i in run:
                flags[i] = True
    return flags


def _burst_flags(df: pd.DataFrame, window_s: float, radius: float) -> pd.Series:
    # plain clicks that carry no click_count are judged from their timing
    burst = pd.Series(False, index=df.index)
    if "timestamp" not in df.columns:
        return burst
    ts = pd.to_numeric(df["timestamp"], errors="coerce")
    cand = df[(df["type"] == "click") & df["click_count"].isna() & ts.notna()].assign(ts=ts)
    keys = [k for k in ("session_id", "page_path", "element_selector") if k in cand.columns]
    for _, g in cand.groupby(keys, sort=False):
        flags = burst_members(list(zip(g["ts"], g["x"], g["y"])), window_s, radius)
        burst.loc[g.index[flags]] = True
    return burst


def rage_points_from_clicks(rows: Iterable[dict], window_s: float = RAGE_MS,
                            radius: float = RAGE_RADIUS, limit: Optional[int] = None) -> List[RageClickPoint]:
    """
    Per (page_path, element_selector): average position, rage/dead counts and a
    0-100 frustration score. Groups with no rage click and at most two dead
    clicks are not hotspots. Output is ordered by score, then rage count, and
    cut to the first ``limit`` groups when given.

    A click is rage when its type says so, when the tracker counted three or
    more clicks on it, or, lacking a count, when it sits in a timed burst.
    """
    df = pd.DataFrame(list(rows))
    if df.empty or "element_selector" not in df.columns:
        return []
    for col, default in (("type", "click"), ("click_count", None), ("is_dead_click", False),
                         ("page_path", ""), ("x", 0.0), ("y", 0.0)):
        if col not in df.columns:
            df[col] = default
    df = df[df["element_selector"].notna() & (df["element_selector"] != "")]
    df = df[df["type"].isin(["click", "dead_click", "rage_click"])]
    if df.empty:
        return []

    df = df.assign(
        x=pd.to_numeric(df["x"], errors="coerce"),
        y=pd.to_numeric(df["y"], errors="coerce"),
        click_count=pd.to_numeric(df["click_count"], errors="coerce"),
    )
    df = df.assign(
        is_rage=(df["type"] == "rage_click") | (df["click_count"].fillna(0) >= RAGE_CLICK_COUNT)
        | _burst_flags(df, window_s, radius),
        is_dead=(df["type"] == "dead_click") | df["is_dead_click"].fillna(False).astype(bool),
    )
    g = df.groupby(["page_path", "element_selector"], sort=False).agg(
        x=("x", "mean"), y=("y", "mean"),
        rage=("is_rage", "sum"), dead=("is_dead", "sum"), total=("type", "size"),
    ).reset_index()
    g = g[(g["rage"] > 0) | (g["dead"] > 2)]
    if g.empty:
        return []
    g["score"] = ((g["rage"] * 10 + g["dead"] * 5) / g["total"].clip(lower=1) * 10).astype(int).clip(upper=100)
    g = g.sort_values(["score", "rage"], ascending=False, kind="mergesort")
    if limit is not None:
        g = g.head(limit)

    points = []
    for row in g.itertuples(index=False):
        points.append(RageClickPoint(
            x=float(int(row.x)) if pd.notna(row.x) else 0.0,
            y=float(int(row.y)) if pd.notna(row.y) else 0.0,
            count=int(row.rage) + int(row.dead),
            frustration_score=float(row.score),
            element_selector=str(row.element_selector),
            page_path=str(row.page_path),
            rage_click_count=int(row.rage),
            dead_click_count=int(row.dead),
        ))
    logger.debug("[hotspots] %d candidate points from %d click rows", len(points), len(df))
    return points
