"""
A/B significance for conversion experiments.

Method: pooled two-proportion z-test of the best-converting variant against
each of the others, two-sided at ``alpha`` (0.05 → |z| >= 1.96). The result
is significant only if every comparison is, and the reported z/confidence are
those of the closest competitor. Ties on the top rate go to the variant seen
first, and a tie can never be significant (z = 0).
"""
from __future__ import annotations

import logging
import math
from typing import Iterable, List, Optional, Sequence

from scipy.stats import norm

from ..errors import MalformedRow
from ..events import ExperimentResult, VariantStats, parse_row

logger = logging.getLogger(__name__)

ALPHA = 0.05
MIN_SAMPLE_SIZE = 10
DEFAULT_BASELINE = 0.05
DEFAULT_MDE = 0.1  # relative lift the sample size is planned for
MIN_USERS_FOR_VERDICT = 100


def conversion_rate(users: int, conversions: int) -> float:
    return conversions / users * 100 if users > 0 else 0.0


def z_score(control: VariantStats, variant: VariantStats, min_sample_size: int = MIN_SAMPLE_SIZE) -> float:
    """Positive when ``variant`` converts better than ``control``."""
    n1, n2 = control.users, variant.users
    if n1 < min_sample_size or n2 < min_sample_size:
        return 0.0
    p1 = control.conversions / n1
    p2 = variant.conversions / n2
    p = (control.conversions + variant.conversions) / (n1 + n2)
    if p <= 0 or p >= 1:
        return 0.0
    se = math.sqrt(p * (1 - p) * (1 / n1 + 1 / n2))
    if se == 0:
        return 0.0
    return (p2 - p1) / se


def confidence_level(z: float) -> float:
    """Two-sided confidence in percent, e.g. |z| = 1.96 → 95.0."""
    return round((1 - 2 * norm.sf(abs(z))) * 100, 1)


def lift(control: VariantStats, variant: VariantStats) -> float:
    c = control.conversions / control.users if control.users else 0.0
    v = variant.conversions / variant.users if variant.users else 0.0
    if c == 0:
        return 100.0 if v > 0 else 0.0
    return (v - c) / c * 100


def minimum_sample_size(baseline_rate: float, mde: float,
                        confidence: float = 0.95, power: float = 0.8) -> Optional[int]:
    """Users per variant needed to detect a relative lift of ``mde`` over ``baseline_rate``."""
    za = norm.ppf(1 - (1 - confidence) / 2)
    zb = norm.ppf(power)
    p1 = baseline_rate
    p2 = baseline_rate * (1 + mde)
    p_avg = (p1 + p2) / 2
    denom = (p2 - p1) ** 2
    if denom == 0:
        return None
    return int(math.ceil(2 * (za + zb) ** 2 * p_avg * (1 - p_avg) / denom))


def days_to_significance(total_users: int, per_variant: Optional[int], n_variants: int,
                         days_running: Optional[float]) -> Optional[int]:
    """
    Further days until every variant reaches ``per_variant`` users at the traffic
    seen so far. ``None`` when the run length is unknown or under a day.
    """
    if per_variant is None or total_users <= 0 or days_running is None or days_running < 1:
        return None
    daily = total_users / days_running
    remaining = per_variant * n_variants - total_users
    return max(0, int(math.ceil(remaining / daily)))


def status_message(confidence: float, significant: bool, winner: Optional[str], total_users: int) -> str:
    if total_users < MIN_USERS_FOR_VERDICT:
        return f"Collecting data... Need at least {MIN_USERS_FOR_VERDICT} visitors per variant."
    if not significant:
        if confidence >= 80:
            return f"Trending towards significance ({confidence}% confidence). Continue test."
        return "No significant difference detected yet. Continue running the test."
    if winner:
        return f"Winner found! {winner} with {confidence}% confidence."
    return f"Statistically significant result at {confidence}% confidence."


def evaluate(variants: Iterable[VariantStats], alpha: float = ALPHA,
             min_sample_size: int = MIN_SAMPLE_SIZE, mde: float = DEFAULT_MDE,
             power: float = 0.8, days_running: Optional[float] = None) -> ExperimentResult:
    stats = [
        v.model_copy(update={"conversion_rate": conversion_rate(v.users, v.conversions)})
        for v in variants
    ]
    total = sum(v.users for v in stats)
    per_variant = minimum_sample_size(_baseline(stats), mde, 1 - alpha, power)
    result = ExperimentResult(
        variants=stats,
        total_users=total,
        sample_size_needed=per_variant,
        days_running=None if days_running is None else int(days_running),
        days_to_significance=days_to_significance(total, per_variant, max(len(stats), 2), days_running),
    )
    if len(stats) < 2 or any(v.users == 0 for v in stats):
        result.status_message = status_message(0.0, False, None, total)
        return result

    leader = stats[0]
    for v in stats[1:]:
        if v.conversion_rate > leader.conversion_rate:
            leader = v

    # weakest comparison decides
    z_crit = norm.ppf(1 - alpha / 2)
    weakest_z, rival = None, None
    for v in stats:
        if v is leader:
            continue
        z = z_score(v, leader, min_sample_size)
        if weakest_z is None or abs(z) < abs(weakest_z):
            weakest_z, rival = z, v

    significant = abs(weakest_z) >= z_crit and weakest_z > 0
    result.z_score = round(weakest_z, 3)
    result.confidence_level = confidence_level(weakest_z)
    result.lift_percentage = round(lift(rival, leader), 1)
    result.is_significant = bool(significant)
    result.winner = leader.variant_id if significant else None
    result.status_message = status_message(result.confidence_level, result.is_significant,
                                           result.winner, total)
    return result


def _baseline(stats: Sequence[VariantStats]) -> float:
    users = sum(v.users for v in stats)
    conv = sum(v.conversions for v in stats)
    if users == 0 or conv == 0 or conv >= users:
        return DEFAULT_BASELINE
    return conv / users


def from_rows(rows: Iterable[dict]) -> List[VariantStats]:
    out = []
    for row in rows:
        try:
            out.append(parse_row(VariantStats, row, "variant"))
        except MalformedRow as e:
            logger.warning("[experiments] skip %s", e)
    return out


def results_with_fallback(rows: Iterable[dict], configured: Sequence[dict] = (), **kwargs) -> ExperimentResult:
    """
    Evaluate query rows; when the query returned nothing yet, report one
    zero-filled variant per configured ``{"id", "name"}`` instead of failing.
    """
    stats = from_rows(rows)
    names = {c.get("id"): c.get("name") for c in configured}
    for v in stats:
        if v.variant_name is None:
            v.variant_name = names.get(v.variant_id, v.variant_id)
    if not stats:
        stats = [VariantStats(variant_id=c["id"], variant_name=c.get("name", c["id"]))
                 for c in configured if c.get("id")]
    return evaluate(stats, **kwargs)
