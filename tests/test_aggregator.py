from __future__ import annotations

import dataclasses
from statistics import mean

import pytest

from psychometric_core.aggregator import aggregate, overall, time_accuracy
from psychometric_core.classifier import classify
from psychometric_core.errors import ConfigError
from psychometric_core.normalizer import normalize
from tests.conftest import build_synthetic_definition, load, uniform_answers


def _scores(defn, answers):
    vec = normalize(defn, answers)
    dims = aggregate(defn, vec)
    return dims, overall(defn, dims)


def test_tech_integration_all_threes(registry):
    defn = registry.get("technology_integration")
    dims, total = _scores(defn, [3] * 25)
    assert [d.score for d in dims.values()] == [3.0, 3.0, 3.0, 3.0]
    assert total.dimension == "overall_tech_integration"
    assert total.score == 3.0
    assert total.normalized == 50.0
    assert classify(defn, dims, total).profile == "Boundary Building Learner"


def test_dimension_window_item_counts(registry):
    defn = registry.get("technology_integration")
    dims, total = _scores(defn, [4] * 25)
    assert [d.item_count for d in dims.values()] == [6, 6, 7, 6]
    assert total.item_count == 25


def test_reversed_item_scores_mirror():
    defn = load(build_synthetic_definition(dims=(1, 2), reversed_items=(0,)))
    for v in range(1, 6):
        dims, _ = _scores(defn, [v, 3, 3])
        assert dims["d0"].score == 6 - v


def test_item_weights_are_respected():
    raw = build_synthetic_definition(dims=(2, 2))
    raw["items"][0]["weight"] = 3
    defn = load(raw)
    dims, _ = _scores(defn, [5, 1, 3, 3])
    assert dims["d0"].score == pytest.approx((5 * 3 + 1) / 4)


def test_effectiveness_substitution(registry):
    defn = registry.get("communication_competencies")
    answers = ["A"] * defn.expected_item_count
    dims, _ = _scores(defn, answers)
    for dim in defn.dimensions:
        expected = mean(defn.effectiveness.lookup(defn.items[i].id, "A") for i in dim.indices)
        assert dims[dim.id].score == pytest.approx(expected)
        assert dims[dim.id].style_mean == 0.0

    dims, _ = _scores(defn, ["D"] * defn.expected_item_count)
    assert all(d.style_mean == 3.0 for d in dims.values())


def test_weighted_overall(registry):
    defn = registry.get("leadership_behaviors")
    answers = [5] * 7 + [1] * 33
    dims, total = _scores(defn, answers)
    assert dims["visionary_leadership"].score == 5.0
    assert total.score == pytest.approx(0.2 * 5 + 0.8 * 1)


def test_forced_choice_scale_factor(registry):
    defn = registry.get("cair_plus")
    answers = uniform_answers(defn)  # every "A"
    dims, _ = _scores(defn, answers)
    for dim in defn.dimensions:
        keyed = [defn.items[i] for i in dim.indices]
        expected = sum(0 if it.reversed else 1 for it in keyed) / len(keyed) * 100
        assert dims[dim.id].score == pytest.approx(expected)
        assert 0.0 <= dims[dim.id].normalized <= 100.0


def _multi_source_raw() -> dict:
    return {
        "id": "multi",
        "items": [
            {"id": "l1", "kind": "likert", "dimension": "a"},
            {"id": "l2", "kind": "likert", "dimension": "b"},
            {
                "id": "b1",
                "kind": "behavioral",
                "options": ["X", "Y"],
                "option_scores": {"X": {"a": 5}, "Y": {"a": 1, "c": 3}},
            },
        ],
        "scoring": {
            "mode": "multi_source",
            "score_range": [0, 100],
            "neutral": 50,
            "sources": {"self_report": {"weight": 0.6, "scale": 20}, "behavioral": {"weight": 0.4, "scale": 20}},
        },
        "dimensions": [{"id": "a"}, {"id": "b"}, {"id": "c"}],
        "profile": {"mode": "rank"},
        "insights": {
            "basis": "normalized",
            "high": 80,
            "low": 40,
            "templates": {
                "strength": "{label}+",
                "challenge": "{label}-",
                "opportunity": "{label}~",
                "recommendations": {"high": [], "mid": [], "low": []},
            },
        },
    }


def test_multi_source_blend_and_renormalization():
    defn = load(_multi_source_raw())
    dims, _ = _scores(defn, [4, 2, "X"])
    assert dims["a"].sources == {"self_report": 80.0, "behavioral": 100.0}
    assert dims["a"].score == pytest.approx(80 * 0.6 + 100 * 0.4)
    # only self report reaches b; its weight is renormalized to 1
    assert dims["b"].sources == {"self_report": 40.0}
    assert dims["b"].score == pytest.approx(40.0)


def test_multi_source_without_evidence_is_neutral():
    defn = load(_multi_source_raw())
    dims, _ = _scores(defn, [4, 2, "X"])
    assert dims["c"].sources == {}
    assert dims["c"].score == 50.0
    dims, _ = _scores(defn, [4, 2, "Y"])
    assert dims["c"].score == pytest.approx(60.0)


def test_time_accuracy_is_deterministic():
    assert time_accuracy(120, 120) == 100.0
    assert time_accuracy(60, 120) == 50.0
    assert time_accuracy(400, 120) == 0.0


def test_digital_wellness_sources_are_percentages(registry):
    defn = registry.get("digital_wellness")
    dims, total = _scores(defn, uniform_answers(defn))
    for ds in dims.values():
        assert set(ds.sources) <= {"self_report", "scenario", "time_estimate", "behavioral"}
        assert all(0.0 <= v <= 100.0 for v in ds.sources.values())
        assert 0.0 <= ds.score <= 100.0
        # time estimates equal to their reference are perfectly accurate
        if "time_estimate" in ds.sources:
            assert ds.sources["time_estimate"] == 100.0
    assert total.dimension == "overall_wellness"


def test_trace_rows_cover_every_item():
    raw = build_synthetic_definition(traps=[{"id": "t1", "trap_type": "fake_good", "suspicious": [5]}])
    defn = load(raw)
    rows: list = []
    aggregate(defn, normalize(defn, [3] * 7), rows)
    assert sorted({r["index"] for r in rows}) == list(range(7))
    trap_row = [r for r in rows if r["item_id"] == "t1"][0]
    assert trap_row["dimension"] is None
    assert trap_row["effective"] is None


def test_hand_built_empty_dimension_is_config_error():
    defn = load(build_synthetic_definition())
    empty = dataclasses.replace(defn.dimensions[0], indices=())
    broken = dataclasses.replace(defn, dimensions=(empty,) + tuple(defn.dimensions[1:]))
    with pytest.raises(ConfigError, match="'d0' has no weighted items") as exc:
        aggregate(broken, normalize(broken, uniform_answers(broken)))
    assert exc.value.assessment_id == "synthetic"
