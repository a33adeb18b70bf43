from __future__ import annotations

import argparse
import logging
from pathlib import Path

import pandas as pd

from ..config import REPO, configure_logging, load_config
from ..store.parquet_store import ParquetEventStore
from ..workers import attention, hotspots, paths

OUT_DIR = REPO / "data" / "reports"

logger = logging.getLogger(__name__)


def pattern_table(store, site_id: str, page_path: str) -> pd.DataFrame:
    metrics = paths.from_rows(store.get_session_aggregates(site_id, page_path))
    report = paths.breakdown(metrics)
    df = pd.DataFrame([s.model_dump() for s in report.sessions],
                      columns=["session_id", "pattern", "directness_score"])
    m = pd.DataFrame([x.model_dump() for x in metrics], columns=["session_id", "event_count",
                     "max_scroll_depth", "dead_click_count", "erratic_segments", "duration_ms"])
    return df.merge(m, on="session_id", how="left")


def zone_table(store, site_id: str, page_path: str, device_type: str) -> pd.DataFrame:
    amap = attention.aggregate(store.get_hover_events(site_id, page_path, device_type))
    return pd.DataFrame([z.model_dump() for z in amap.attention_zones],
                        columns=["zone", "total_time_ms", "event_count", "unique_sessions", "percentage"])


def hotspot_table(store, site_id: str, page_path: str, radius: float,
                  window_s: float = hotspots.RAGE_MS) -> pd.DataFrame:
    points = hotspots.rage_points_from_clicks(store.get_click_events(site_id, page_path), window_s=window_s)
    found = hotspots.cluster(points, radius)
    return pd.DataFrame([h.model_dump() for h in found],
                        columns=["x", "y", "count", "frustration_score", "element_selector",
                                 "rage_click_count", "dead_click_count", "severity", "size", "members"])


def main(argv=None):
    ap = argparse.ArgumentParser(description="Per-page behaviour report from the parquet event store")
    ap.add_argument("site_id")
    ap.add_argument("page_path")
    ap.add_argument("--device", default="desktop")
    ap.add_argument("--data-dir", type=Path, default=None)
    ap.add_argument("--out", type=Path, default=OUT_DIR)
    args = ap.parse_args(argv)

    cfg = load_config()
    configure_logging(cfg)
    store = ParquetEventStore(args.data_dir or cfg.data_dir)

    tables = {
        "patterns": pattern_table(store, args.site_id, args.page_path),
        "zones": zone_table(store, args.site_id, args.page_path, args.device),
        "hotspots": hotspot_table(store, args.site_id, args.page_path, cfg.cluster_radius_px, cfg.rage_window_s),
    }
    args.out.mkdir(parents=True, exist_ok=True)
    slug = args.page_path.strip("/").replace("/", "_") or "root"
    for name, df in tables.items():
        path = args.out / f"{args.site_id}_{slug}_{name}.csv"
        df.to_csv(path, index=False)
        logger.info("[report] wrote %s (%d rows)", path, len(df))
        print(f"[report] {name}:\n", df.to_string(index=False) if len(df) else "  (no data)")
    return tables


if __name__ == "__main__":
    main()
