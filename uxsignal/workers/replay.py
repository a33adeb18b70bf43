"""
Stitch a session's replay chunks back into one playable event stream.

Chunks are written with increasing sequence ids but can land out of order,
and events inside them carry their own capture timestamp. Playback order is
(timestamp, sequence_id, position in chunk): chunks are laid out by sequence
id first, then the flattened stream is stable-sorted on timestamp.
"""
from __future__ import annotations

import gzip
import json
import logging
import math
from numbers import Real
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..errors import MalformedChunk, SessionNotFound, require
from ..events import ReconstructedSession, ReplayChunk

logger = logging.getLogger(__name__)

GZIP_MAGIC = b"\x1f\x8b"


def parse_batch(chunk: ReplayChunk) -> List[Any]:
    """Return the chunk's event list, decoding JSON / gzip payloads when needed."""
    payload = chunk.events
    if isinstance(payload, list):
        return payload
    if isinstance(payload, bytes):
        if payload[:2] == GZIP_MAGIC:
            try:
                payload = gzip.decompress(payload)
            except (OSError, EOFError) as e:
                raise MalformedChunk(chunk.sequence_id, f"bad gzip payload ({e})") from e
        try:
            payload = payload.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedChunk(chunk.sequence_id, "payload is not utf-8") from e
    if not isinstance(payload, str):
        raise MalformedChunk(chunk.sequence_id, f"unsupported payload type {type(payload).__name__}")
    try:
        batch = json.loads(payload)
    except ValueError as e:
        raise MalformedChunk(chunk.sequence_id, f"invalid JSON ({e})") from e
    if not isinstance(batch, list):
        raise MalformedChunk(chunk.sequence_id, f"expected a list of events, got {type(batch).__name__}")
    return batch


def _timestamp(ev) -> Optional[Real]:
    if not isinstance(ev, dict):
        return None
    ts = ev.get("timestamp")
    if isinstance(ts, bool) or not isinstance(ts, Real) or not math.isfinite(ts):
        return None
    return ts


def merge_chunks(chunks: Iterable[ReplayChunk]) -> Tuple[List[Dict[str, Any]], int]:
    """Flatten and order chunk batches. Returns (events, skipped_chunk_count)."""
    ordered = sorted(chunks, key=lambda c: c.sequence_id)
    flat: List[Dict[str, Any]] = []
    skipped = 0
    for chunk in ordered:
        try:
            batch = parse_batch(chunk)
        except MalformedChunk as e:
            logger.warning("[replay] skip %s", e)
            skipped += 1
            continue
        dropped = 0
        for ev in batch:
            if _timestamp(ev) is None:
                dropped += 1
                continue
            flat.append(ev)
        if dropped:
            logger.warning("[replay] chunk seq=%s: dropped %d events without a timestamp",
                           chunk.sequence_id, dropped)
    # list.sort is stable: equal timestamps keep chunk order, then intra-chunk order
    flat.sort(key=_timestamp)
    return flat, skipped


def reconstruct(store, site_id: str, session_id: str) -> ReconstructedSession:
    require(site_id=site_id, session_id=session_id)
    chunks = store.get_replay_chunks(site_id, session_id)
    if not chunks:
        raise SessionNotFound(site_id, session_id)

    events, skipped = merge_chunks(chunks)
    if not events:
        raise SessionNotFound(site_id, session_id)

    start = events[0]["timestamp"]
    end = events[-1]["timestamp"]
    logger.debug("[replay] %s/%s: %d chunks → %d events", site_id, session_id, len(chunks), len(events))
    return ReconstructedSession(
        site_id=site_id,
        session_id=session_id,
        events=events,
        start_time=int(start),
        end_time=int(end),
        duration_ms=int(end - start),
        total_events=len(events),
        skipped_chunks=skipped,
    )
