from __future__ import annotations

from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Tuple

import pandas as pd

from ..events import InteractionEvent, ReplayChunk
from .frames import EVENT_COLUMNS, EXPOSURE_COLUMNS, FrameEventStore, normalize_events


class MemoryEventStore(FrameEventStore):
    """Everything held in process; used by tests and the synthetic demo."""

    def __init__(self, events: Optional[Iterable] = None, exposures: Optional[Iterable[dict]] = None):
        self._events: List[dict] = []
        self._exposures: List[dict] = []
        self._chunks: Dict[Tuple[str, str], List[ReplayChunk]] = defaultdict(list)
        self._frame: Optional[pd.DataFrame] = None
        for ev in events or []:
            self.add_event(ev)
        for row in exposures or []:
            self.add_exposure(**row)

    def add_event(self, ev) -> None:
        if isinstance(ev, InteractionEvent):
            ev = ev.model_dump()
        self._events.append(dict(ev))
        self._frame = None

    def add_exposure(self, experiment_id: str, variant_id: str, session_id: str,
                     converted: bool = False, timestamp: int = 0) -> None:
        self._exposures.append({
            "experiment_id": experiment_id, "variant_id": variant_id,
            "session_id": session_id, "timestamp": timestamp, "converted": converted,
        })

    def add_chunk(self, site_id: str, session_id: str, chunk: ReplayChunk) -> None:
        self._chunks[(site_id, session_id)].append(chunk)

    def get_replay_chunks(self, site_id: str, session_id: str) -> List[ReplayChunk]:
        chunks = self._chunks.get((site_id, session_id), [])
        return sorted(chunks, key=lambda c: c.sequence_id)

    def events_frame(self) -> pd.DataFrame:
        if self._frame is None:
            self._frame = normalize_events(pd.DataFrame(self._events, columns=EVENT_COLUMNS))
        return self._frame

    def exposures_frame(self) -> pd.DataFrame:
        return pd.DataFrame(self._exposures, columns=EXPOSURE_COLUMNS)
