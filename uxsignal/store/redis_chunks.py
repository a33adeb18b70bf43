from __future__ import annotations

import json
import logging
from typing import Any, List, Optional

import redis

from ..events import ReplayChunk
from .base import ALL_TIME, EventStore, Row, TimeRange

logger = logging.getLogger(__name__)


def _key(site_id: str, session_id: str) -> str:
    return f"replay:{site_id}:{session_id}"


class RedisChunkStore:
    """
    Replay batches in one Redis list per session. Each list item is a JSON
    record ``{"seq": <int>, "events": <batch>}``; ``seq`` comes from a per-session
    INCR so it grows with write order even when batches arrive reordered.
    """

    def __init__(self, client: Optional[redis.Redis] = None, url: str = "redis://localhost:6379/0"):
        self.r = client if client is not None else redis.Redis.from_url(url, decode_responses=False)

    def append_chunk(self, site_id: str, session_id: str, events: Any) -> int:
        seq = int(self.r.incr(_key(site_id, session_id) + ":seq"))
        self.r.rpush(_key(site_id, session_id), json.dumps({"seq": seq, "events": events}))
        return seq

    def get_replay_chunks(self, site_id: str, session_id: str) -> List[ReplayChunk]:
        chunks = []
        for raw in self.r.lrange(_key(site_id, session_id), 0, -1):
            try:
                rec = json.loads(raw)
                chunks.append(ReplayChunk(sequence_id=int(rec["seq"]), events=rec["events"]))
            except (TypeError, ValueError, KeyError) as e:
                logger.warning("[redis-chunks] skip undecodable record for %s: %r",
                               _key(site_id, session_id), e)
        chunks.sort(key=lambda c: c.sequence_id)
        return chunks

    def ping(self) -> bool:
        try:
            return bool(self.r.ping())
        except redis.RedisError:
            return False


class SplitEventStore(EventStore):
    """Replay chunks from one source, event/experiment rows from another."""

    def __init__(self, rows: EventStore, chunks):
        self.rows = rows
        self.chunks = chunks

    def get_replay_chunks(self, site_id: str, session_id: str) -> List[ReplayChunk]:
        return self.chunks.get_replay_chunks(site_id, session_id)

    def get_hover_events(self, site_id: str, page_path: str, device_type: Optional[str],
                         time_range: TimeRange = ALL_TIME) -> List[Row]:
        return self.rows.get_hover_events(site_id, page_path, device_type, time_range)

    def get_session_aggregates(self, site_id: str, page_path: str,
                               time_range: TimeRange = ALL_TIME) -> List[Row]:
        return self.rows.get_session_aggregates(site_id, page_path, time_range)

    def get_variant_counts(self, experiment_id: str, time_range: TimeRange = ALL_TIME) -> List[Row]:
        return self.rows.get_variant_counts(experiment_id, time_range)

    def get_click_events(self, site_id: str, page_path: Optional[str] = None,
                         device_type: Optional[str] = None,
                         time_range: TimeRange = ALL_TIME) -> List[Row]:
        return self.rows.get_click_events(site_id, page_path, device_type, time_range)
