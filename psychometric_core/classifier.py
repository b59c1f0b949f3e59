# psychometric_core/classifier.py
from __future__ import annotations
import logging
from typing import Dict, List, Mapping, Optional
from .aggregator import overall as overall_score
from .definitions import AssessmentDefinition, ProfileSpec
from .types import DimensionScore, ProfileResult

log = logging.getLogger(__name__)


def rank_dimensions(definition: AssessmentDefinition, scores: Mapping[str, DimensionScore]) -> List[str]:
    """Dimension ids by descending score; ties keep declaration order."""
    order = list(definition.dimension_ids)
    # sorted() is stable, so equal scores stay in declaration order
    return sorted(order, key=lambda d: -scores[d].score)


def distribution(definition: AssessmentDefinition, scores: Mapping[str, DimensionScore]) -> Dict[str, float]:
    total = sum(scores[d].score for d in definition.dimension_ids)
    if total <= 0:
        share = round(100.0 / len(definition.dimension_ids), 4)
        return {d: share for d in definition.dimension_ids}
    return {d: round(scores[d].score / total * 100.0, 4) for d in definition.dimension_ids}


def _metric(definition: AssessmentDefinition, spec: ProfileSpec,
            scores: Mapping[str, DimensionScore], overall: Optional[DimensionScore]) -> DimensionScore:
    if spec.metric == definition.scoring.overall_id:
        return overall if overall is not None else overall_score(definition, scores)
    return scores[spec.metric]


def classify(
    definition: AssessmentDefinition,
    scores: Mapping[str, DimensionScore],
    overall: Optional[DimensionScore] = None,
) -> ProfileResult:
    """Map a score vector to exactly one profile of ``definition``.

    Band cascades are first-match on ``score >= min`` and fall through to the
    declared default; rank mode picks primary/secondary by score; top-set mode
    matches rules against the top-N dimensions.  Never raises for a complete
    score map.
    """
    spec = definition.profile
    ranking = rank_dimensions(definition, scores)
    n = spec.top_n
    common = dict(
        ranking=ranking,
        primary=ranking[0],
        secondary=ranking[1] if len(ranking) > 1 else None,
        distribution=distribution(definition, scores),
        top=ranking[:n],
        bottom=ranking[-n:],
    )

    if spec.mode == "bands":
        m = _metric(definition, spec, scores, overall)
        for band in spec.bands:
            if m.score >= band.min:
                return ProfileResult(profile=band.profile, label=band.label, confidence=m.normalized, **common)
        return ProfileResult(profile=spec.default_profile, label=spec.default_label, confidence=m.normalized, **common)

    primary = scores[ranking[0]]
    if spec.mode == "rank":
        label = spec.labels.get(primary.dimension, primary.label)
        return ProfileResult(profile=primary.dimension, label=label, confidence=primary.normalized, **common)

    top = set(ranking[:n])
    for rule in spec.rules:
        if rule.all_of and not set(rule.all_of) <= top:
            continue
        if rule.any_of and not top & set(rule.any_of):
            continue
        return ProfileResult(profile=rule.profile, label=rule.label, confidence=primary.normalized, **common)
    log.debug("%s: no top-set rule matched %s", definition.id, sorted(top))
    return ProfileResult(profile=spec.default_profile, label=spec.default_label, confidence=primary.normalized, **common)
