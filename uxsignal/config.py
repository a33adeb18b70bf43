from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

REPO = Path(__file__).resolve().parents[1]

DEFAULTS = {
    "cluster_radius_px": 50.0,
    "rage_window_s": 0.6,
    "min_sample_size": 10,    # per variant, below this z is forced to 0
    "alpha": 0.05,
    "power": 0.8,
    "mde": 0.1,               # relative lift the sample size is planned for
    "experiment_cache_ttl": 60,
    "heatmap_cache_ttl": 300,
    "cache_backend": "redis",  # redis | memory | none
    "cache_max_entries": 500,
    "data_dir": str(REPO / "data" / "parquet"),
    "redis_url": "redis://localhost:6379/0",
    "log_level": "INFO",
}


def _env(name: str, default: str = "") -> str:
    return str(os.environ.get(name, default) or "").strip()


@dataclass(frozen=True)
class EngineConfig:
    cluster_radius_px: float
    rage_window_s: float
    min_sample_size: int
    alpha: float
    power: float
    mde: float
    experiment_cache_ttl: int
    heatmap_cache_ttl: int
    cache_backend: str
    cache_max_entries: int
    data_dir: Path
    redis_url: str
    log_level: str


def load_config(**overrides) -> EngineConfig:
    """DEFAULTS, then UXSIGNAL_* environment variables, then explicit overrides."""
    values = {}
    for key, default in DEFAULTS.items():
        raw = _env(f"UXSIGNAL_{key.upper()}")
        if key in overrides:
            values[key] = overrides[key]
        elif raw:
            try:
                values[key] = type(default)(raw)
            except ValueError as e:
                raise ValueError(f"UXSIGNAL_{key.upper()}={raw!r}: {e}") from e
        else:
            values[key] = default
    values["data_dir"] = Path(values["data_dir"])
    values["log_level"] = str(values["log_level"]).upper()
    values["cache_backend"] = str(values["cache_backend"]).lower()
    return EngineConfig(**values)


def configure_logging(cfg: EngineConfig | None = None) -> None:
    cfg = cfg or load_config()
    logging.basicConfig(
        level=getattr(logging, cfg.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
