from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import pandas as pd

from ..events import ReplayChunk
from .frames import EVENT_COLUMNS, EXPOSURE_COLUMNS, FrameEventStore, normalize_events

logger = logging.getLogger(__name__)


class ParquetEventStore(FrameEventStore):
    """
    Reads the parquet files the ingest workers drop into ``data_dir``:

      events_*.parquet     raw interaction events, one row each
      exposures_*.parquet  experiment_id, variant_id, session_id, timestamp, converted
      replay_*.parquet     site_id, session_id, sequence_id, events (JSON text)

    Files are read lazily and held for the lifetime of the store.
    """

    def __init__(self, data_dir):
        self.data_dir = Path(data_dir)
        self._events: Optional[pd.DataFrame] = None
        self._exposures: Optional[pd.DataFrame] = None

    def _load(self, pattern: str, columns: List[str]) -> pd.DataFrame:
        files = sorted(self.data_dir.glob(pattern))
        if not files:
            logger.info("[parquet] no %s files in %s", pattern, self.data_dir)
            return pd.DataFrame(columns=columns)
        df = pd.concat([pd.read_parquet(f, engine="pyarrow") for f in files], ignore_index=True)
        for col in columns:
            if col not in df.columns:
                df[col] = pd.NA
        return df

    def events_frame(self) -> pd.DataFrame:
        if self._events is None:
            self._events = normalize_events(self._load("events_*.parquet", EVENT_COLUMNS))
        return self._events

    def exposures_frame(self) -> pd.DataFrame:
        if self._exposures is None:
            self._exposures = self._load("exposures_*.parquet", EXPOSURE_COLUMNS)
        return self._exposures

    def get_replay_chunks(self, site_id: str, session_id: str) -> List[ReplayChunk]:
        files = sorted(self.data_dir.glob("replay_*.parquet"))
        parts = [
            pd.read_parquet(f, engine="pyarrow",
                            filters=[("site_id", "==", site_id), ("session_id", "==", session_id)])
            for f in files
        ]
        parts = [p for p in parts if not p.empty]
        if not parts:
            return []
        df = pd.concat(parts, ignore_index=True).sort_values("sequence_id", kind="mergesort")
        return [ReplayChunk(sequence_id=int(seq), events=ev)
                for seq, ev in df[["sequence_id", "events"]].itertuples(index=False)]
