from pathlib import Path

import pytest

from uxsignal.config import DEFAULTS, load_config
from uxsignal.errors import InvalidArgument, require


def test_defaults(monkeypatch):
    for key in DEFAULTS:
        monkeypatch.delenv(f"UXSIGNAL_{key.upper()}", raising=False)
    cfg = load_config()
    assert cfg.cluster_radius_px == 50.0
    assert cfg.min_sample_size == 10
    assert cfg.mde == 0.1
    assert cfg.cache_backend == "redis"
    assert isinstance(cfg.data_dir, Path)


def test_env_then_overrides(monkeypatch):
    monkeypatch.setenv("UXSIGNAL_HEATMAP_CACHE_TTL", "30")
    monkeypatch.setenv("UXSIGNAL_ALPHA", "0.01")
    monkeypatch.setenv("UXSIGNAL_LOG_LEVEL", "debug")
    monkeypatch.setenv("UXSIGNAL_CACHE_BACKEND", "Memory")
    cfg = load_config(alpha=0.1)
    assert cfg.heatmap_cache_ttl == 30
    assert cfg.alpha == 0.1
    assert cfg.log_level == "DEBUG"
    assert cfg.cache_backend == "memory"


def test_bad_env_value(monkeypatch):
    monkeypatch.setenv("UXSIGNAL_MIN_SAMPLE_SIZE", "lots")
    with pytest.raises(ValueError, match="UXSIGNAL_MIN_SAMPLE_SIZE"):
        load_config()


def test_require():
    require(site_id="a", page_path="/")
    with pytest.raises(InvalidArgument, match="site_id, page_path"):
        require(site_id=" ", page_path=None)
