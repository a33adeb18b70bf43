from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..events import ReplayChunk

Row = Dict[str, Any]


@dataclass(frozen=True)
class TimeRange:
    """Inclusive [start_ms, end_ms]; either side may be open."""
    start_ms: Optional[int] = None
    end_ms: Optional[int] = None

    def contains(self, ts_ms) -> bool:
        if ts_ms is None:
            return False
        if self.start_ms is not None and ts_ms < self.start_ms:
            return False
        if self.end_ms is not None and ts_ms > self.end_ms:
            return False
        return True


ALL_TIME = TimeRange()


class EventStore(ABC):
    """
    Read contract the engine needs from the durable stores.

    Implementations own retries and timeouts; the engine calls each method once
    and treats any exception as a failed load.
    """

    @abstractmethod
    def get_replay_chunks(self, site_id: str, session_id: str) -> List[ReplayChunk]:
        """Chunks for one session, ascending by sequence_id."""

    @abstractmethod
    def get_hover_events(self, site_id: str, page_path: str, device_type: Optional[str],
                         time_range: TimeRange = ALL_TIME) -> List[Row]:
        """Rows with session_id, element_selector, element_tag, zone,
        hover_duration_ms, x_relative, y_relative."""

    @abstractmethod
    def get_session_aggregates(self, site_id: str, page_path: str,
                               time_range: TimeRange = ALL_TIME) -> List[Row]:
        """One row per session: session_id, event_count, max_scroll_depth,
        dead_click_count, erratic_segments, duration_ms."""

    @abstractmethod
    def get_variant_counts(self, experiment_id: str, time_range: TimeRange = ALL_TIME) -> List[Row]:
        """Pre-aggregated rows: variant_id, users, conversions."""

    def get_click_events(self, site_id: str, page_path: Optional[str] = None,
                         device_type: Optional[str] = None,
                         time_range: TimeRange = ALL_TIME) -> List[Row]:
        """Click, dead_click and rage_click rows with page_path, element_selector,
        x, y, click_count, is_dead_click. Optional for adapters that only serve replays."""
        raise NotImplementedError(f"{type(self).__name__} does not serve click rows")
