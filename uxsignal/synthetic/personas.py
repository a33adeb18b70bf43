from __future__ import annotations

import json
import random
from typing import Dict, List

from ..events import ReplayChunk

T0 = 1_700_000_000_000  # fixed epoch ms so seeded runs are reproducible
ZONES = (("hero", 0.1), ("nav", 0.05), ("content", 0.5), ("footer", 0.95))


def _ev(site, sid, ts, kind, page, **extra) -> Dict:
    return {"site_id": site, "session_id": sid, "timestamp": int(ts), "type": kind,
            "page_path": page, "device_type": "desktop", **extra}


def reader(rng: random.Random, site="site_demo", sid="s_reader", page="/pricing", t0=T0) -> List[Dict]:
    """Steady scroll to the bottom, hovers on content, no dead clicks."""
    ev = []
    depth = 0.0
    for i in range(40):
        ts = t0 + i * 1000
        depth = min(1.0, depth + rng.uniform(0.015, 0.025))
        ev.append(_ev(site, sid, ts, "scroll", page, scroll_depth=round(depth, 3)))
        if i % 8 == 3:
            ev.append(_ev(site, sid, ts + 50, "hover", page, element_selector="section.plans",
                          element_tag="section", zone="content", hover_duration_ms=rng.randint(800, 1600),
                          x_relative=0.5, y_relative=0.5))
        if i == 30:
            ev.append(_ev(site, sid, ts + 80, "click", page, element_selector="a#next",
                          x=600.0, y=400.0))
    return ev


def skimmer(rng: random.Random, site="site_demo", sid="s_skimmer", page="/pricing", t0=T0) -> List[Dict]:
    """Short, shallow visit: jumps around the hero and leaves."""
    ev = []
    for i in range(14):
        ts = t0 + i * 700
        ev.append(_ev(site, sid, ts, "scroll", page, scroll_depth=round(rng.uniform(0.05, 0.35), 3)))
        if i % 3 == 0:
            ev.append(_ev(site, sid, ts + 20, "hover", page, element_selector="div.hero",
                          element_tag="div", zone="hero", hover_duration_ms=rng.randint(200, 600),
                          x_relative=0.4, y_relative=0.1))
    return ev


def rager(rng: random.Random, site="site_demo", sid="s_rager", page="/pricing", t0=T0) -> List[Dict]:
    """Rage-click bursts on a dead element near the footer."""
    ev = []
    for i in range(24):
        ts = t0 + i * 800
        ev.append(_ev(site, sid, ts, "scroll", page, scroll_depth=round(0.6 + 0.1 * (i % 2), 3)))
        if i % 8 == 4:
            for j in range(3):
                ev.append(_ev(site, sid, ts + 50 + 10 * j, "rage_click", page,
                              element_selector="div#dead", x=300.0 + j, y=600.0, click_count=3))
            ev.append(_ev(site, sid, ts + 90, "dead_click", page, element_selector="div#dead",
                          x=302.0, y=602.0, is_dead_click=True))
    ev.append(_ev(site, sid, t0 + 20_000, "hover", page, element_selector="div#dead",
                  element_tag="div", zone="footer", hover_duration_ms=2400,
                  x_relative=0.3, y_relative=0.9))
    return ev


def form_lost(rng: random.Random, site="site_demo", sid="s_form", page="/pricing", t0=T0) -> List[Dict]:
    """Dead clicks on form labels and long hovers on the CTA."""
    ev = []
    for i in range(30):
        ts = t0 + i * 1200
        ev.append(_ev(site, sid, ts, "scroll", page, scroll_depth=round(rng.uniform(0.2, 0.4), 3)))
        if i % 10 == 8:
            ev.append(_ev(site, sid, ts + 400, "dead_click", page, element_selector="label#name",
                          x=705.0, y=425.0, is_dead_click=True))
        if i % 6 == 2:
            ev.append(_ev(site, sid, ts + 100, "hover", page, element_selector="button#cta",
                          element_tag="button", zone="hero", hover_duration_ms=rng.randint(1500, 3000),
                          x_relative=0.7, y_relative=0.12))
    return ev


PERSONAS = {"reader": reader, "skimmer": skimmer, "rager": rager, "form_lost": form_lost}


def replay_chunks(events: List[Dict], rng: random.Random, chunk_size: int = 25) -> List[ReplayChunk]:
    """Split a session into sequence-numbered chunks and hand them back in shuffled arrival order."""
    ordered = sorted(events, key=lambda e: e["timestamp"])
    chunks = [
        ReplayChunk(sequence_id=n + 1, events=json.dumps(ordered[i:i + chunk_size]) if n % 2 else ordered[i:i + chunk_size])
        for n, i in enumerate(range(0, len(ordered), chunk_size))
    ]
    rng.shuffle(chunks)
    return chunks


def seed_store(store, site_id: str = "site_demo", page_path: str = "/pricing", seed: int = 7,
               experiment_id: str = "exp_cta") -> Dict[str, List[Dict]]:
    """Populate a MemoryEventStore with one session per persona plus experiment exposures."""
    rng = random.Random(seed)
    sessions = {}
    for name, make in PERSONAS.items():
        sid = f"s_{name}"
        events = make(rng, site=site_id, sid=sid, page=page_path)
        sessions[sid] = events
        for e in events:
            store.add_event(e)
        for chunk in replay_chunks(events, rng):
            store.add_chunk(site_id, sid, chunk)

    for i in range(400):
        variant = "control" if i % 2 == 0 else "variant_b"
        rate = 0.10 if variant == "control" else 0.18
        store.add_exposure(experiment_id, variant, f"u{i}", converted=rng.random() < rate,
                           timestamp=T0 + i * 1000)
    return sessions
