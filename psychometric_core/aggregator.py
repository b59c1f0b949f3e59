"""Dimension aggregator.

Folds a validated ``ResponseVector`` into one ``DimensionScore`` per declared
dimension plus the overall composite.  Two modes are driven by
``ScoringSpec.mode``:

* ``mean``: weighted mean of the (reversed / effectiveness-substituted) item
  values in the dimension window, times the dimension's scale factor.
* ``multi_source``: per-source means (self report, scenarios, time tasks,
  behavioral simulations) brought to 0-100 and blended by source weight.
  Sources without evidence are dropped and the remaining weights renormalized;
  no evidence at all yields the definition's neutral value.

Trap and indicator items never reach a dimension; the loader already refuses
definitions that would put them there.
"""
from __future__ import annotations

import logging
from typing import Dict, List, Optional, Tuple

from .definitions import AssessmentDefinition, DimensionSpec, ItemSpec
from .errors import ConfigError
from .levels import clamp_pct, level_for
from .types import DimensionScore, Response, ResponseVector

log = logging.getLogger(__name__)


def reverse(value: float, lo: float, hi: float) -> float:
    return (lo + hi) - value


def base_value(item: ItemSpec, resp: Response) -> float:
    """Numeric value of a self-report answer before any dimension logic."""
    if item.option_values:
        return float(item.option_values[str(resp.value)])
    return float(resp.value)


def time_accuracy(estimate: float, reference: float) -> float:
    return max(0.0, 100.0 - abs(estimate - reference) / reference * 100.0)


def item_value(
    definition: AssessmentDefinition,
    dim: DimensionSpec,
    item: ItemSpec,
    resp: Response,
) -> Tuple[Optional[float], Optional[float]]:
    """``(effective value, style position)`` of one item inside ``dim``.

    The effective value is None when the answer carries no evidence for the
    dimension (a scenario option that does not touch it).
    """
    if item.kind in ("scenario", "behavioral"):
        v = item.option_scores[str(resp.value)].get(dim.id)
        return (None if v is None else float(v)), None
    if item.kind == "time_estimate":
        return time_accuracy(float(resp.value), float(item.reference)), None
    if dim.effectiveness and definition.effectiveness is not None:
        opt = str(resp.value)
        return definition.effectiveness.lookup(item.id, opt), float(item.options.index(opt))
    v = base_value(item, resp)
    if item.reversed:
        lo, hi = item.value_bounds()
        v = reverse(v, lo, hi)
    return v, None


def _wmean(pairs: List[Tuple[float, float]]) -> Optional[float]:
    wsum = sum(w for _, w in pairs)
    if not pairs or wsum <= 0:
        return None
    return sum(v * w for v, w in pairs) / wsum


def normalize_score(definition: AssessmentDefinition, score: float, offset: float = 0.0) -> float:
    sc = definition.scoring
    pct = (score - sc.score_min) / (sc.score_max - sc.score_min) * 100.0
    return clamp_pct(pct + offset)


def _make(definition: AssessmentDefinition, dim: DimensionSpec, raw: float, count: int,
          style: Optional[float] = None, sources: Optional[Dict[str, float]] = None) -> DimensionScore:
    sc = definition.scoring
    score = raw * dim.scale_factor
    normalized = normalize_score(definition, score, dim.norm_offset)
    level = level_for(normalized, sc.levels, sc.level_default)
    return DimensionScore(
        dimension=dim.id,
        label=dim.label,
        raw=round(raw, 6),
        score=round(score, 6),
        normalized=round(normalized, 4),
        level=level,
        interpretation=dim.interpretations.get(level, f"{dim.label}: {level}"),
        item_count=count,
        style_mean=None if style is None else round(style, 6),
        sources=dict(sources or {}),
    )


def _mean_dimension(definition: AssessmentDefinition, dim: DimensionSpec, vector: ResponseVector,
                    trace: Optional[List[dict]]) -> DimensionScore:
    pairs: List[Tuple[float, float]] = []
    styles: List[float] = []
    for idx in dim.indices:
        item, resp = definition.items[idx], vector[idx]
        v, style = item_value(definition, dim, item, resp)
        pairs.append((v, item.weight))
        if style is not None:
            styles.append(style)
        if trace is not None:
            trace.append(_trace_row(definition, idx, item, resp, dim.id, v))
    raw = _wmean(pairs)
    if raw is None:
        # only reachable for definitions assembled outside the loader
        raise ConfigError(f"dimension {dim.id!r} has no weighted items", assessment_id=definition.id)
    style_mean = sum(styles) / len(styles) if styles else None
    return _make(definition, dim, raw, len(pairs), style=style_mean)


def _multi_source_dimension(definition: AssessmentDefinition, dim: DimensionSpec, vector: ResponseVector,
                            trace: Optional[List[dict]]) -> DimensionScore:
    sc = definition.scoring
    by_source: Dict[str, List[Tuple[float, float]]] = {}
    for idx in dim.indices:
        item, resp = definition.items[idx], vector[idx]
        v, _ = item_value(definition, dim, item, resp)
        if trace is not None:
            trace.append(_trace_row(definition, idx, item, resp, dim.id, v))
        if v is None or item.source not in sc.sources:
            continue
        by_source.setdefault(item.source, []).append((v, item.weight))

    means: Dict[str, float] = {}
    for name, spec in sc.sources.items():
        m = _wmean(by_source.get(name, []))
        if m is not None:
            means[name] = round(clamp_pct(m * spec.scale), 6)
    wsum = sum(sc.sources[n].weight for n in means)
    if wsum > 0:
        raw = sum(means[n] * sc.sources[n].weight for n in means) / wsum
    else:
        log.debug("%s/%s: no evidence, using neutral %.1f", definition.id, dim.id, sc.neutral)
        raw = sc.neutral
    count = sum(len(v) for v in by_source.values())
    return _make(definition, dim, raw, count, sources=means)


def _trace_row(definition: AssessmentDefinition, idx: int, item: ItemSpec, resp: Response,
               dim_id: Optional[str], effective: Optional[float]) -> dict:
    return {
        "assessment": definition.id,
        "index": idx,
        "item_id": item.id,
        "kind": item.kind,
        "dimension": dim_id,
        "raw": resp.value,
        "effective": None if effective is None else round(effective, 6),
        "rt_ms": resp.rt_ms,
    }


def aggregate(
    definition: AssessmentDefinition,
    vector: ResponseVector,
    trace: Optional[List[dict]] = None,
) -> Dict[str, DimensionScore]:
    """Score every dimension in declaration order.

    When ``trace`` is a list, one row per (item, dimension) contribution is
    appended to it.
    """
    fold = _multi_source_dimension if definition.scoring.mode == "multi_source" else _mean_dimension
    out: Dict[str, DimensionScore] = {}
    for dim in definition.dimensions:
        out[dim.id] = fold(definition, dim, vector, trace)
    if trace is not None:
        used = {r["index"] for r in trace if r["assessment"] == definition.id}
        for idx, item in enumerate(definition.items):
            if idx not in used:
                trace.append(_trace_row(definition, idx, item, vector[idx], None, None))
    return out


def overall(definition: AssessmentDefinition, scores: Dict[str, DimensionScore]) -> DimensionScore:
    """Composite over the dimension scores: plain mean or declared weights."""
    sc = definition.scoring
    dims = definition.dimensions
    if sc.overall_mode == "weighted":
        value = sum(scores[d.id].score * float(d.weight or 0.0) for d in dims)
    else:
        value = sum(scores[d.id].score for d in dims) / len(dims)
    normalized = normalize_score(definition, value)
    level = level_for(normalized, sc.levels, sc.level_default)
    return DimensionScore(
        dimension=sc.overall_id,
        label=sc.overall_label,
        raw=round(value, 6),
        score=round(value, 6),
        normalized=round(normalized, 4),
        level=level,
        interpretation=f"{sc.overall_label}: {level}",
        item_count=sum(scores[d.id].item_count for d in dims),
    )
