import json

import pandas as pd
import pytest

from uxsignal.store.base import TimeRange
from uxsignal.store.memory import MemoryEventStore
from uxsignal.store.parquet_store import ParquetEventStore
from uxsignal.store.redis_chunks import RedisChunkStore, SplitEventStore
from uxsignal.synthetic.personas import T0
from uxsignal.workers import attention, paths
from uxsignal.workers.replay import reconstruct


class TestMemoryStore:

    def test_session_patterns_for_personas(self, demo_store):
        rows = demo_store.get_session_aggregates("site_demo", "/pricing")
        report = paths.breakdown(paths.from_rows(rows))
        patterns = {s.session_id: s.pattern for s in report.sessions}
        assert patterns == {"s_form_lost": "lost", "s_rager": "lost",
                            "s_reader": "focused", "s_skimmer": "exploring"}

    def test_other_page_is_empty(self, demo_store):
        assert demo_store.get_session_aggregates("site_demo", "/nope") == []
        assert demo_store.get_hover_events("site_demo", "/nope", "desktop") == []

    def test_hover_rows_feed_attention(self, demo_store):
        rows = demo_store.get_hover_events("site_demo", "/pricing", "desktop")
        assert rows and all(r["zone"] for r in rows)
        amap = attention.aggregate(rows)
        assert sum(p.intensity for p in amap.heatmap_points) == pytest.approx(1.0)
        assert demo_store.get_hover_events("site_demo", "/pricing", "mobile") == []

    def test_time_range_filters(self, demo_store):
        early = demo_store.get_hover_events("site_demo", "/pricing", None, TimeRange(end_ms=T0 + 1000))
        later = demo_store.get_hover_events("site_demo", "/pricing", None, TimeRange(start_ms=T0 + 1001))
        everything = demo_store.get_hover_events("site_demo", "/pricing", None)
        assert len(early) + len(later) == len(everything)

    def test_variant_counts(self, demo_store):
        rows = demo_store.get_variant_counts("exp_cta")
        assert [r["variant_id"] for r in rows] == ["control", "variant_b"]
        assert [r["users"] for r in rows] == [200, 200]
        assert all(0 <= r["conversions"] <= r["users"] for r in rows)
        assert demo_store.get_variant_counts("exp_missing") == []

    def test_replay_from_shuffled_chunks(self, demo_store):
        s = reconstruct(demo_store, "site_demo", "s_reader")
        ts = [e["timestamp"] for e in s.events]
        assert ts == sorted(ts)
        assert s.total_events == 46

    def test_click_rows(self, demo_store):
        rows = demo_store.get_click_events("site_demo", "/pricing")
        kinds = {r["type"] for r in rows}
        assert kinds == {"click", "dead_click", "rage_click"}


class TestParquetStore:

    @pytest.fixture
    def data_dir(self, tmp_path):
        events = [
            {"site_id": "s", "session_id": "a", "timestamp": 1000 + i * 100, "type": "scroll",
             "page_path": "/", "device_type": "desktop", "scroll_depth": 0.05 * i}
            for i in range(12)
        ]
        events.append({"site_id": "s", "session_id": "a", "timestamp": 5000, "type": "hover",
                       "page_path": "/", "device_type": "desktop", "element_selector": "#cta",
                       "element_tag": "button", "zone": "hero", "hover_duration_ms": 800.0,
                       "x_relative": 0.5, "y_relative": 0.1})
        pd.DataFrame(events).to_parquet(tmp_path / "events_20240101T000000.parquet", index=False)
        pd.DataFrame([
            {"experiment_id": "e", "variant_id": "a", "session_id": "u1", "timestamp": 1, "converted": True},
            {"experiment_id": "e", "variant_id": "a", "session_id": "u2", "timestamp": 2, "converted": False},
            {"experiment_id": "e", "variant_id": "b", "session_id": "u3", "timestamp": 3, "converted": False},
        ]).to_parquet(tmp_path / "exposures_1.parquet", index=False)
        pd.DataFrame([
            {"site_id": "s", "session_id": "a", "sequence_id": 2, "events": json.dumps([{"timestamp": 3}])},
            {"site_id": "s", "session_id": "a", "sequence_id": 1, "events": json.dumps([{"timestamp": 5}, {"timestamp": 1}])},
            {"site_id": "s", "session_id": "other", "sequence_id": 1, "events": json.dumps([{"timestamp": 9}])},
        ]).to_parquet(tmp_path / "replay_1.parquet", index=False)
        return tmp_path

    def test_reads_all_views(self, data_dir):
        store = ParquetEventStore(data_dir)
        (agg,) = store.get_session_aggregates("s", "/")
        assert agg["event_count"] == 13
        assert agg["max_scroll_depth"] == pytest.approx(0.55)
        (hover,) = store.get_hover_events("s", "/", "desktop")
        assert hover["element_selector"] == "#cta"
        counts = {r["variant_id"]: (r["users"], r["conversions"]) for r in store.get_variant_counts("e")}
        assert counts == {"a": (2, 1), "b": (1, 0)}

    def test_replay_chunks_in_sequence_order(self, data_dir):
        store = ParquetEventStore(data_dir)
        assert [c.sequence_id for c in store.get_replay_chunks("s", "a")] == [1, 2]
        s = reconstruct(store, "s", "a")
        assert [e["timestamp"] for e in s.events] == [1, 3, 5]

    def test_empty_dir(self, tmp_path):
        store = ParquetEventStore(tmp_path)
        assert store.get_replay_chunks("s", "a") == []
        assert store.get_session_aggregates("s", "/") == []
        assert store.get_variant_counts("e") == []


class TestRedisChunks:

    def test_append_and_read(self, fake_redis):
        chunks = RedisChunkStore(client=fake_redis)
        assert chunks.append_chunk("s", "a", [{"timestamp": 20}]) == 1
        assert chunks.append_chunk("s", "a", [{"timestamp": 10}]) == 2
        got = chunks.get_replay_chunks("s", "a")
        assert [c.sequence_id for c in got] == [1, 2]
        assert chunks.ping()

    def test_undecodable_records_are_skipped(self, fake_redis, caplog):
        chunks = RedisChunkStore(client=fake_redis)
        chunks.append_chunk("s", "a", [{"timestamp": 1}])
        fake_redis.rpush("replay:s:a", b"garbage", json.dumps({"events": []}))
        assert [c.sequence_id for c in chunks.get_replay_chunks("s", "a")] == [1]
        assert "[redis-chunks] skip" in caplog.text

    def test_split_store_reconstructs(self, fake_redis):
        chunks = RedisChunkStore(client=fake_redis)
        chunks.append_chunk("s", "a", json.dumps([{"timestamp": 7}, {"timestamp": 4}]))
        store = SplitEventStore(rows=MemoryEventStore(), chunks=chunks)
        s = reconstruct(store, "s", "a")
        assert [e["timestamp"] for e in s.events] == [4, 7]
        assert store.get_variant_counts("nothing") == []
