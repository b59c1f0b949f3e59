"""Risk indices: weighted blends of dimension percentages and telemetry
indicators, banded low / moderate / high."""
from __future__ import annotations

from typing import Dict, Mapping

from .definitions import AssessmentDefinition, RiskSpec
from .levels import clamp_pct, risk_level
from .types import DimensionScore, ResponseVector, RiskIndex


def _source_pct(definition: AssessmentDefinition, source: str,
                scores: Mapping[str, DimensionScore], vector: ResponseVector) -> float:
    if source in scores:
        return scores[source].normalized
    idx = definition.item_index(source)
    item = definition.items[idx]
    return clamp_pct((float(vector[idx].value) - item.scale_min) / (item.scale_max - item.scale_min) * 100.0)


def risk_index(definition: AssessmentDefinition, spec: RiskSpec,
               scores: Mapping[str, DimensionScore], vector: ResponseVector) -> RiskIndex:
    total = 0.0
    for term in spec.terms:
        pct = _source_pct(definition, term.source, scores, vector)
        total += term.weight * ((100.0 - pct) if term.invert else pct)
    factors = []
    for f in spec.factors:
        pct = _source_pct(definition, f.source, scores, vector)
        if (f.below is not None and pct < f.below) or (f.above is not None and pct > f.above):
            factors.append(f.label)
    score = round(total, 4)
    return RiskIndex(name=spec.name, label=spec.label, score=score,
                     level=risk_level(score, spec.moderate, spec.high), factors=factors)


def assess_risks(definition: AssessmentDefinition, scores: Mapping[str, DimensionScore],
                 vector: ResponseVector) -> Dict[str, RiskIndex]:
    return {spec.name: risk_index(definition, spec, scores, vector) for spec in definition.risks}
