from __future__ import annotations

import logging
from typing import List, Optional

import numpy as np
import pandas as pd

from .base import ALL_TIME, EventStore, Row, TimeRange
from ..workers.paths import metrics_from_events

logger = logging.getLogger(__name__)

EVENT_COLUMNS = [
    "site_id", "session_id", "timestamp", "type", "page_path", "device_type",
    "element_selector", "element_tag", "zone", "hover_duration_ms",
    "x_relative", "y_relative", "x", "y", "scroll_depth", "click_count", "is_dead_click",
]
EXPOSURE_COLUMNS = ["experiment_id", "variant_id", "session_id", "timestamp", "converted"]


def normalize_events(df: pd.DataFrame) -> pd.DataFrame:
    df = df.copy()
    for col in EVENT_COLUMNS:
        if col not in df.columns:
            df[col] = np.nan
    df["timestamp"] = pd.to_numeric(df["timestamp"], errors="coerce")
    bad = df["timestamp"].isna()
    if bad.any():
        logger.warning("[store] dropping %d event rows without a usable timestamp", int(bad.sum()))
        df = df[~bad]
    return df.sort_values(["site_id", "session_id", "timestamp"], kind="mergesort").reset_index(drop=True)


def _in_range(df: pd.DataFrame, time_range: TimeRange) -> pd.Series:
    mask = pd.Series(True, index=df.index)
    if time_range.start_ms is not None:
        mask &= df["timestamp"] >= time_range.start_ms
    if time_range.end_ms is not None:
        mask &= df["timestamp"] <= time_range.end_ms
    return mask


def _records(df: pd.DataFrame) -> List[Row]:
    # NaN -> None so rows validate cleanly downstream
    return df.astype(object).where(df.notna(), None).to_dict(orient="records")


class FrameEventStore(EventStore):
    """
    Answers the hover/session/variant queries from two pandas frames: raw
    interaction events and experiment exposures. Subclasses decide where the
    frames (and replay chunks) come from.
    """

    def events_frame(self) -> pd.DataFrame:
        raise NotImplementedError

    def exposures_frame(self) -> pd.DataFrame:
        raise NotImplementedError

    def get_hover_events(self, site_id: str, page_path: str, device_type: Optional[str],
                         time_range: TimeRange = ALL_TIME) -> List[Row]:
        df = self.events_frame()
        mask = (df["site_id"] == site_id) & (df["page_path"] == page_path) & (df["type"] == "hover")
        if device_type:
            mask &= df["device_type"] == device_type
        mask &= _in_range(df, time_range)
        cols = ["session_id", "element_selector", "element_tag", "zone",
                "hover_duration_ms", "x_relative", "y_relative"]
        return _records(df.loc[mask, cols])

    def get_session_aggregates(self, site_id: str, page_path: str,
                               time_range: TimeRange = ALL_TIME) -> List[Row]:
        df = self.events_frame()
        mask = (df["site_id"] == site_id) & (df["page_path"] == page_path) & _in_range(df, time_range)
        return [m.model_dump() for m in metrics_from_events(df.loc[mask])]

    def get_variant_counts(self, experiment_id: str, time_range: TimeRange = ALL_TIME) -> List[Row]:
        ex = self.exposures_frame()
        if ex.empty:
            return []
        ex = ex[(ex["experiment_id"] == experiment_id) & _in_range(ex, time_range)]
        if ex.empty:
            return []
        converted = ex[ex["converted"].fillna(False).astype(bool)]
        users = ex.groupby("variant_id", sort=True)["session_id"].nunique().rename("users")
        conv = converted.groupby("variant_id", sort=True)["session_id"].nunique().rename("conversions")
        out = pd.concat([users, conv], axis=1).fillna(0).astype(int).reset_index()
        return out.to_dict(orient="records")

    def get_click_events(self, site_id: str, page_path: Optional[str] = None,
                         device_type: Optional[str] = None,
                         time_range: TimeRange = ALL_TIME) -> List[Row]:
        df = self.events_frame()
        mask = (df["site_id"] == site_id) & df["type"].isin(["click", "dead_click", "rage_click"])
        if page_path:
            mask &= df["page_path"] == page_path
        if device_type:
            mask &= df["device_type"] == device_type
        mask &= _in_range(df, time_range)
        cols = ["session_id", "timestamp", "type", "page_path", "element_selector", "x", "y",
                "click_count", "is_dead_click"]
        return _records(df.loc[mask, cols])
