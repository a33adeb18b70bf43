import time
from typing import List, Optional

import redis
from fastapi import Body, FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .analysis.experiments import results_with_fallback
from .cache import MemoryTTLCache, RedisTTLCache, cache_key, cached
from .config import EngineConfig, configure_logging, load_config
from .errors import InvalidArgument, NotFound, require
from .store.base import TimeRange
from .store.parquet_store import ParquetEventStore
from .store.redis_chunks import RedisChunkStore, SplitEventStore
from .workers import attention, hotspots, paths, replay


class _Req(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    site_id: Optional[str] = None
    start_date: Optional[int] = None  # epoch ms
    end_date: Optional[int] = None

    def time_range(self) -> TimeRange:
        return TimeRange(self.start_date, self.end_date)


class ReplayRequest(_Req):
    session_id: Optional[str] = None


class PageRequest(_Req):
    page_path: Optional[str] = None
    device_type: Optional[str] = None


class HotspotRequest(PageRequest):
    radius: Optional[float] = None
    limit: int = Field(50, ge=1)


class ExperimentRequest(_Req):
    experiment_id: Optional[str] = None
    started_at: Optional[int] = None  # epoch ms
    variants: List[dict] = []  # configured {"id", "name"} for the empty-state fallback


MAX_HOTSPOTS = 200
DAY_MS = 24 * 60 * 60 * 1000


def _dump(model) -> dict:
    return model.model_dump(by_alias=True)


def create_app(store, cache=None, cfg: Optional[EngineConfig] = None, health_check=None,
               clock=time.time) -> FastAPI:
    """
    HTTP surface over the engine. ``store`` implements the EventStore contract,
    ``cache`` is any TTLCache (or None for no caching).
    """
    cfg = cfg or load_config()
    app = FastAPI(title="UX Signal API", version="0.2.0")

    @app.exception_handler(InvalidArgument)
    async def _bad_request(request: Request, exc: InvalidArgument):
        return JSONResponse(status_code=400, content={"error": str(exc)})

    @app.exception_handler(NotFound)
    async def _not_found(request: Request, exc: NotFound):
        return JSONResponse(status_code=404, content={"error": str(exc)})

    @app.get("/health")
    def health():
        ok = health_check() if health_check else True
        return {"ok": True, "service": "uxsignal-api", "store": ok}

    @app.post("/sessions/replay")
    def session_replay(req: ReplayRequest = Body(...)):
        session = replay.reconstruct(store, req.site_id, req.session_id)
        return {
            "events": session.events,
            "meta": {
                "totalEvents": session.total_events,
                "startTime": session.start_time,
                "endTime": session.end_time,
                "duration": session.duration_ms,
                "skippedChunks": session.skipped_chunks,
            },
        }

    @app.post("/frustration-hotspots")
    def frustration_hotspots(req: HotspotRequest = Body(...)):
        require(site_id=req.site_id)
        rows = store.get_click_events(req.site_id, req.page_path, req.device_type, req.time_range())
        points = hotspots.rage_points_from_clicks(rows, window_s=cfg.rage_window_s,
                                                  limit=min(req.limit, MAX_HOTSPOTS))
        found = hotspots.cluster(points, req.radius or cfg.cluster_radius_px)
        summary = {to_camel(k): v for k, v in hotspots.summarize(found).items()}
        return {"hotspots": [_dump(h) for h in found], "summary": summary}

    @app.post("/cursor-paths")
    def cursor_paths(req: PageRequest = Body(...)):
        require(site_id=req.site_id, page_path=req.page_path)
        rows = store.get_session_aggregates(req.site_id, req.page_path, req.time_range())
        return _dump(paths.breakdown(paths.from_rows(rows)))

    @app.post("/hover-heatmap")
    def hover_heatmap(req: PageRequest = Body(...)):
        require(site_id=req.site_id, page_path=req.page_path)
        device = req.device_type or "desktop"
        key = cache_key(req.site_id, "hover-heatmap", {
            "page": req.page_path, "device": device, "start": req.start_date, "end": req.end_date,
        })
        return cached(cache, key, cfg.heatmap_cache_ttl, lambda: _dump(attention.aggregate(
            store.get_hover_events(req.site_id, req.page_path, device, req.time_range()))))

    @app.post("/experiments/results")
    def experiment_results(req: ExperimentRequest = Body(...)):
        require(site_id=req.site_id, experiment_id=req.experiment_id)
        key = cache_key(req.site_id, "experiment-results", {
            "experiment": req.experiment_id, "start": req.start_date, "end": req.end_date,
            "started": req.started_at,
            "variants": ",".join(f"{c.get('id')}={c.get('name')}" for c in req.variants) or None,
        })
        days_running = None
        if req.started_at is not None:
            days_running = max(0, int(clock() * 1000 - req.started_at) // DAY_MS)

        def compute():
            rows = store.get_variant_counts(req.experiment_id, req.time_range())
            res = results_with_fallback(rows, req.variants, alpha=cfg.alpha,
                                        min_sample_size=cfg.min_sample_size, mde=cfg.mde, power=cfg.power,
                                        days_running=days_running)
            return {"experimentId": req.experiment_id, **_dump(res)}

        return {"results": cached(cache, key, cfg.experiment_cache_ttl, compute)}

    return app


def build_cache(cfg: EngineConfig, client=None):
    """Result cache named by ``cfg.cache_backend``: "redis", "memory" or "none"."""
    if cfg.cache_backend == "redis":
        return RedisTTLCache(client if client is not None else redis.Redis.from_url(cfg.redis_url))
    if cfg.cache_backend == "memory":
        return MemoryTTLCache(max_entries=cfg.cache_max_entries)
    if cfg.cache_backend == "none":
        return None
    raise ValueError(f"unknown cache backend {cfg.cache_backend!r}")


def _default_app() -> FastAPI:
    cfg = load_config()
    configure_logging(cfg)
    r = redis.Redis.from_url(cfg.redis_url, decode_responses=False)
    chunks = RedisChunkStore(client=r)
    store = SplitEventStore(rows=ParquetEventStore(cfg.data_dir), chunks=chunks)
    return create_app(store, cache=build_cache(cfg, r), cfg=cfg, health_check=chunks.ping)


app = _default_app()
