# psychometric_core/validity.py
"""Validity & distortion analysis.

Four signal families feed one verdict:

1. trap items (fake_good / fake_bad / random_check / inconsistency) tallied
   against their suspicious answers, each counter capped at its trap count;
2. contradiction pairs declared in the definition;
3. the mean response time (too fast / too slow / normal / not measured);
4. statistical checks: self-report variance (straight-lining) and the gap
   between self-report and observed telemetry indicators.

Content is never rejected here; careless or dishonest answers are what this
module is for.  Only a vector that does not match the definition raises.
"""
from __future__ import annotations
import logging
from statistics import mean, pvariance
from typing import Dict, List, Optional, Tuple
from .definitions import COUNTER_FLAG, TRAP_TYPES, AssessmentDefinition, ContradictionPair, ItemSpec, VerdictRule
from .errors import ShapeError
from .types import Response, ResponseVector, TimeProfile, ValidityVerdict

log = logging.getLogger(__name__)


def _answer(item: ItemSpec, resp: Response):
    return str(resp.value) if item.has_options else float(resp.value)

def _is_suspicious(item: ItemSpec, resp: Response) -> bool:
    a = _answer(item, resp)
    if item.has_options:
        return a in item.suspicious
    return any(a == float(s) for s in item.suspicious)

def trap_counters(definition: AssessmentDefinition, vector: ResponseVector) -> Tuple[Dict[str, int], Dict[str, int]]:
    """``(counters, totals)`` per trap type; counters never exceed totals."""
    counts = {t: 0 for t in TRAP_TYPES}
    totals = {t: 0 for t in TRAP_TYPES}
    for item, resp in zip(definition.items, vector):
        if not item.is_trap:
            continue
        if item.trap_type == "inconsistency" and not item.suspicious:
            continue  # pair member only
        totals[item.trap_type] += 1
        if _is_suspicious(item, resp):
            counts[item.trap_type] += 1
    return {t: min(counts[t], totals[t]) for t in TRAP_TYPES}, totals

def _pair_triggered(definition: AssessmentDefinition, pair: ContradictionPair, vector: ResponseVector) -> bool:
    i1, i2 = definition.item_index(pair.first), definition.item_index(pair.second)
    it1, it2 = definition.items[i1], definition.items[i2]
    a1, a2 = _answer(it1, vector[i1]), _answer(it2, vector[i2])
    if pair.mode == "same":
        return a1 == a2
    return a1 in pair.agree_first and a2 in pair.agree_second

def contradictions(definition: AssessmentDefinition, vector: ResponseVector) -> List[str]:
    """Ids (``first/second``) of the declared pairs answered contradictorily."""
    return [f"{p.first}/{p.second}" for p in definition.validity.contradictions if _pair_triggered(definition, p, vector)]

def time_profile(definition: AssessmentDefinition, vector: ResponseVector) -> Tuple[TimeProfile, Optional[float]]:
    times = vector.response_times()
    if not times:
        return "not_measured", None
    m = mean(times)
    spec = definition.validity
    if m < spec.too_fast_ms: return "too_fast", m
    if m > spec.too_slow_ms: return "too_slow", m
    return "normal", m

def _self_report(definition: AssessmentDefinition, vector: ResponseVector) -> List[float]:
    """Effective Likert self-report values (reverse keyed), traps excluded."""
    vals = []
    for item, resp in zip(definition.items, vector):
        if item.kind != "likert":
            continue
        v = float(resp.value)
        vals.append(item.scale_min + item.scale_max - v if item.reversed else v)
    return vals

def self_report_variance(definition: AssessmentDefinition, vector: ResponseVector) -> Optional[float]:
    raws = [float(r.value) for it, r in zip(definition.items, vector) if it.kind == "likert"]
    return pvariance(raws) if len(raws) >= 2 else None

def cross_check(definition: AssessmentDefinition, vector: ResponseVector) -> Optional[float]:
    """Self-report percentage minus observed indicator percentage."""
    cc = definition.validity.cross_check
    if cc is None:
        return None
    sr = _self_report(definition, vector)
    if not sr:
        return None
    observed = []
    for item_id, invert in cc.indicators:
        idx = definition.item_index(item_id)
        item, v = definition.items[idx], float(vector[idx].value)
        pct = (v - item.scale_min) / (item.scale_max - item.scale_min) * 100.0
        observed.append(100.0 - pct if invert else pct)
    return mean(sr) * cc.self_report_scale - mean(observed)

def _rule_hit(rule: VerdictRule, counters: Dict[str, int], total: int, flags: List[str]) -> bool:
    for key, threshold in rule.thresholds.items():
        value = total if key == "total_flags" else counters.get(key, 0)
        if value >= threshold:
            return True
    return any(f in flags for f in rule.flags)

def analyze(definition: AssessmentDefinition, vector: ResponseVector) -> ValidityVerdict:
    if len(vector) != definition.expected_item_count:
        raise ShapeError(f"{definition.id}: vector holds {len(vector)} responses, expected {definition.expected_item_count}")
    spec = definition.validity
    counters, totals = trap_counters(definition, vector)
    pairs = contradictions(definition, vector)
    counters["inconsistency"] = counters["inconsistency"] + len(pairs)
    profile, mean_rt = time_profile(definition, vector)
    variance = self_report_variance(definition, vector)
    divergence = cross_check(definition, vector)

    flags: List[str] = []
    for key, name in COUNTER_FLAG.items():
        if counters[key] >= spec.flag_thresholds.get(key, 1) and counters[key] > 0:
            flags.append(name)
    if profile == "too_fast": flags.append("response_time_too_fast")
    if profile == "too_slow": flags.append("response_time_too_slow")
    sl_count = sum(1 for it in definition.items if it.kind == "likert")
    if variance is not None and sl_count >= spec.straight_line_min_items and variance <= spec.straight_line_max_variance:
        flags.append("straight_lining")
    if divergence is not None and spec.cross_check is not None:
        if divergence > spec.cross_check.tolerance: flags.append("overclaiming")
        elif divergence < -spec.cross_check.tolerance: flags.append("underreporting")

    total = sum(counters.values())
    components: Dict[str, float] = {}
    if spec.mode == "weighted":
        components = _weighted_components(definition, vector, counters, totals, variance, divergence)
        index = sum(spec.component_weights[k] * components[k] for k in spec.component_weights)
        score = max(0.0, min(spec.score_max, (1.0 - index) * spec.score_max))
        if score >= spec.invalid_at: reliability = "invalid"
        elif score >= spec.questionable_at: reliability = "questionable"
        else: reliability = "valid"
    else:
        w = spec.score_weights
        raw = sum(w.get(k, 1.0) * counters[k] for k in COUNTER_FLAG)
        raw += sum(w.get(f, 1.0) for f in flags if f not in COUNTER_FLAG.values())
        score = max(0.0, min(spec.score_max, raw))
        components = {k: float(counters[k]) for k in COUNTER_FLAG}
        if _rule_hit(spec.invalid, counters, total, flags): reliability = "invalid"
        elif _rule_hit(spec.questionable, counters, total, flags): reliability = "questionable"
        else: reliability = "valid"

    log.debug("%s validity: score=%.2f reliability=%s flags=%s", definition.id, score, reliability, flags)
    return ValidityVerdict(
        score=round(score, 4),
        score_max=spec.score_max,
        reliability=reliability,
        flags=flags,
        fake_good=counters["fake_good"],
        fake_bad=counters["fake_bad"],
        inconsistency=counters["inconsistency"],
        random_check=counters["random_check"],
        response_time_profile=profile,
        mean_response_time_ms=None if mean_rt is None else round(mean_rt, 2),
        trap_totals={t: totals[t] for t in TRAP_TYPES if totals[t]},
        response_variance=None if variance is None else round(variance, 6),
        divergence=None if divergence is None else round(divergence, 4),
        components={k: round(v, 6) for k, v in components.items()},
    )

def _weighted_components(definition: AssessmentDefinition, vector: ResponseVector, counters: Dict[str, int],
                         totals: Dict[str, int], variance: Optional[float], divergence: Optional[float]) -> Dict[str, float]:
    """Goodness of each component in [0, 1]; 1 means no sign of distortion."""
    spec = definition.validity
    out: Dict[str, float] = {}
    if "social_desirability" in spec.component_weights:
        rate = counters["fake_good"] / totals["fake_good"] if totals["fake_good"] else 0.0
        out["social_desirability"] = 1.0 - rate
    if "cross_check" in spec.component_weights:
        out["cross_check"] = 1.0 - min(1.0, abs(divergence or 0.0) / 100.0)
    if "time_awareness" in spec.component_weights:
        idx = definition.item_index(spec.time_awareness_item)
        item = definition.items[idx]
        out["time_awareness"] = (float(vector[idx].value) - item.scale_min) / (item.scale_max - item.scale_min)
    if "consistency" in spec.component_weights:
        out["consistency"] = 1.0 if variance is None else max(0.0, 1.0 - variance / 4.0)
    return out
