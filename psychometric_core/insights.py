# psychometric_core/insights.py
from __future__ import annotations
from typing import Mapping, Optional
from .definitions import AssessmentDefinition
from .types import DimensionScore, Insights, ValidityVerdict


def band(definition: AssessmentDefinition, ds: DimensionScore) -> str:
    """``high`` / ``mid`` / ``low`` for one dimension; the three bands are exclusive."""
    spec = definition.insights
    x = ds.normalized if spec.basis == "normalized" else ds.score
    if x >= spec.high: return "high"
    if x <= spec.low: return "low"
    return "mid"

def synthesize(
    definition: AssessmentDefinition,
    scores: Mapping[str, DimensionScore],
    verdict: Optional[ValidityVerdict] = None,
) -> Insights:
    """Table lookup only: every dimension yields exactly one statement plus its
    band's recommendations, in definition order."""
    spec = definition.insights
    strengths, challenges, opportunities, recs = [], [], [], []
    for dim in definition.dimensions:
        table = spec.dimensions[dim.id]
        b = band(definition, scores[dim.id])
        if b == "high": strengths.append(table.strength)
        elif b == "low": challenges.append(table.challenge)
        else: opportunities.append(table.opportunity)
        recs.extend(table.recommendations.get(b, ()))
    if verdict is not None and verdict.reliability != "valid":
        note = spec.validity_notes.get(verdict.reliability)
        if note: recs.append(note)
    return Insights(strengths=strengths, challenges=challenges, opportunities=opportunities, recommendations=recs)
