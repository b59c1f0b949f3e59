# psychometric_core/engine.py
from __future__ import annotations
from typing import Any, Dict, List, Optional, Sequence
import logging

from .definitions import AssessmentDefinition, DefinitionRegistry, default_registry
from .normalizer import normalize
from .aggregator import aggregate, overall
from .classifier import classify
from .validity import analyze
from .insights import synthesize
from .risk import assess_risks
from .types import ScoringResult
from .config import DEBUG_TRACE, TRACE_FIELDS


log = logging.getLogger(__name__)


def _emit_trace(**values: object) -> None:
    if not DEBUG_TRACE:
        return
    ordered = []
    for key in TRACE_FIELDS:
        if key in values:
            ordered.append(f"{key}={values[key]}")
    if ordered:
        log.info("trace %s", " ".join(str(val) for val in ordered))


def score(definition: AssessmentDefinition, raw_responses: Sequence[Any], trace: bool = False) -> ScoringResult:
    """Run the full pipeline for one submission.

    Normalize -> aggregate -> (classify, analyze) -> synthesize.  ``ShapeError``
    and ``RangeError`` from the normalizer abort the run; nothing is partially
    scored.  With ``trace`` the result carries one row per item contribution.
    """
    vector = normalize(definition, raw_responses)
    rows: Optional[List[Dict[str, object]]] = [] if (trace or DEBUG_TRACE) else None
    dims = aggregate(definition, vector, rows)
    total = overall(definition, dims)
    profile = classify(definition, dims, total)
    verdict = analyze(definition, vector)
    insights = synthesize(definition, dims, verdict)
    risks = assess_risks(definition, dims, vector)

    for row in rows or []:
        _emit_trace(**row)
    log.debug(
        "scored %s v%s: overall=%.3f profile=%s reliability=%s",
        definition.id, definition.version, total.score, profile.profile, verdict.reliability,
    )
    return ScoringResult(
        assessment_id=definition.id,
        version=definition.version,
        dimension_scores=dims,
        overall=total,
        profile=profile,
        validity=verdict,
        insights=insights,
        risk=risks,
        trace=list(rows) if (trace and rows is not None) else [],
    )


def score_assessment(assessment_id: str, raw_responses: Sequence[Any],
                     registry: Optional[DefinitionRegistry] = None, trace: bool = False) -> ScoringResult:
    reg = registry if registry is not None else default_registry()
    return score(reg.get(assessment_id), raw_responses, trace=trace)
