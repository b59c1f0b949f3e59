from __future__ import annotations

import json

import pytest
import yaml

from psychometric_core.definitions import (
    DefinitionRegistry,
    definition_paths,
    load_definitions,
    parse_definition,
)
from psychometric_core.errors import ConfigError, UnknownAssessmentError
from tests.conftest import build_forced_choice_definition, build_synthetic_definition, load


def _packaged_raw(name: str) -> dict:
    path = next(p for p in definition_paths(None) if p.name == f"{name}.json")
    return json.loads(path.read_text(encoding="utf-8"))


def test_packaged_definitions_load(registry):
    assert registry.ids() == [
        "cair_plus",
        "communication_competencies",
        "digital_wellness",
        "leadership_behaviors",
        "technology_integration",
        "work_preferences",
        "work_values",
    ]
    counts = {aid: registry.get(aid).expected_item_count for aid in registry.ids()}
    assert counts["technology_integration"] == 25
    assert counts["communication_competencies"] == 30
    assert counts["leadership_behaviors"] == 40
    assert counts["work_values"] == 45
    assert counts["work_preferences"] == 35
    assert counts["cair_plus"] == 120
    assert counts["digital_wellness"] == 43


def test_cair_traps_and_pairs(registry):
    defn = registry.get("cair_plus")
    assert len(defn.traps("fake_good")) == 8
    assert len(defn.traps("fake_bad")) == 4
    assert len(defn.traps("random_check")) == 4
    assert len(defn.traps("inconsistency")) == 4
    assert [(p.first, p.second) for p in defn.validity.contradictions] == [("ic001", "ic002"), ("ic003", "ic004")]


def test_synthetic_builder_is_valid(synthetic):
    assert synthetic.dimension_ids == ("d0", "d1")
    assert synthetic.dimension("d1").indices == (3, 4, 5)
    assert synthetic.profile.profiles == ("high", "mid", "low")


def test_empty_window_rejected():
    raw = build_synthetic_definition()
    raw["dimensions"][0]["window"] = [0, 0]
    with pytest.raises(ConfigError, match="has no items"):
        load(raw)


def test_window_past_end_rejected():
    raw = build_synthetic_definition()
    raw["dimensions"][1]["window"] = [3, 9]
    with pytest.raises(ConfigError):
        load(raw)


def test_trap_inside_window_rejected():
    raw = build_synthetic_definition(traps=[{"id": "t1", "trap_type": "fake_good", "suspicious": [5]}])
    raw["dimensions"][1]["window"] = [3, 7]
    with pytest.raises(ConfigError, match="trap"):
        load(raw)


def test_overlapping_bands_rejected():
    raw = build_synthetic_definition(profile={
        "mode": "bands",
        "bands": [{"min": 3.0, "profile": "mid"}, {"min": 4.0, "profile": "high"}],
        "default": {"profile": "low"},
    })
    with pytest.raises(ConfigError, match="overlap"):
        load(raw)


def test_band_profile_needs_default():
    raw = build_synthetic_definition()
    del raw["profile"]["default"]
    with pytest.raises(ConfigError, match="default"):
        load(raw)


def test_band_threshold_outside_score_range_rejected():
    raw = build_synthetic_definition()
    raw["profile"]["bands"][0]["min"] = 7.5
    with pytest.raises(ConfigError):
        load(raw)


def test_insight_coverage_required():
    raw = build_synthetic_definition()
    raw["insights"] = {
        "dimensions": {
            "d0": {
                "strength": "s", "challenge": "c", "opportunity": "o",
                "recommendations": {"high": [], "mid": [], "low": []},
            }
        }
    }
    with pytest.raises(ConfigError, match="d1"):
        load(raw)


def test_recommendation_bands_required():
    raw = build_synthetic_definition()
    del raw["insights"]["templates"]["recommendations"]["mid"]
    with pytest.raises(ConfigError, match="mid"):
        load(raw)


def test_effectiveness_gap_rejected():
    raw = _packaged_raw("communication_competencies")
    del raw["effectiveness"]["cc_01"]["A"]
    with pytest.raises(ConfigError, match="cc_01"):
        parse_definition(raw)


def test_weights_must_sum_to_one():
    raw = build_synthetic_definition()
    raw["scoring"]["overall"] = {"mode": "weighted"}
    raw["dimensions"][0]["weight"] = 0.5
    raw["dimensions"][1]["weight"] = 0.4
    with pytest.raises(ConfigError, match="sum to 1.0"):
        load(raw)
    raw["dimensions"][1]["weight"] = 0.5
    assert load(raw).scoring.overall_mode == "weighted"


def test_duplicate_item_ids_rejected():
    raw = build_synthetic_definition()
    raw["items"][1]["id"] = raw["items"][0]["id"]
    with pytest.raises(ConfigError, match="duplicate"):
        load(raw)


def test_unknown_item_kind_rejected():
    raw = build_synthetic_definition()
    raw["items"][0]["kind"] = "essay"
    with pytest.raises(ConfigError):
        load(raw)


def test_contradiction_pair_unknown_item():
    raw = build_forced_choice_definition()
    raw["validity"]["contradictions"][0]["second"] = "ic999"
    with pytest.raises(ConfigError, match="ic999"):
        load(raw)


def test_suspicious_answer_must_be_an_option():
    raw = build_forced_choice_definition()
    next(it for it in raw["items"] if it["id"] == "fg000")["suspicious"] = ["Z"]
    with pytest.raises(ConfigError):
        load(raw)


def test_config_error_names_assessment():
    raw = build_synthetic_definition()
    raw["dimensions"][0]["window"] = [0, 0]
    with pytest.raises(ConfigError) as exc:
        load(raw)
    assert exc.value.assessment_id == "synthetic"
    assert str(exc.value).startswith("[synthetic]")


def test_definition_is_immutable(synthetic):
    with pytest.raises(AttributeError):
        synthetic.id = "other"  # type: ignore[misc]
    with pytest.raises(TypeError):
        synthetic.profile.labels["x"] = "y"  # type: ignore[index]


def test_yaml_and_json_files_load(tmp_path):
    (tmp_path / "synthetic.yaml").write_text(yaml.safe_dump(build_synthetic_definition()), encoding="utf-8")
    fc = build_forced_choice_definition()
    (tmp_path / "fc.json").write_text(json.dumps(fc), encoding="utf-8")
    (tmp_path / "notes.txt").write_text("ignored", encoding="utf-8")
    defs = load_definitions(tmp_path)
    assert sorted(defs) == ["fc_validity", "synthetic"]


def test_invalid_json_is_config_error(tmp_path):
    (tmp_path / "broken.json").write_text("{", encoding="utf-8")
    with pytest.raises(ConfigError, match="broken.json"):
        load_definitions(tmp_path)


def _bad_window(raw):
    raw["dimensions"][0]["window"] = ["a", 3]


def _band_without_profile(raw):
    raw["profile"]["bands"][0] = {"min": 4.0}


def _dimension_as_string(raw):
    raw["dimensions"][0] = "d0"


def _scalar_score_range(raw):
    raw["scoring"]["score_range"] = 5


@pytest.mark.parametrize("mutate", [_bad_window, _band_without_profile, _dimension_as_string, _scalar_score_range])
def test_wrongly_shaped_fields_are_config_errors(mutate):
    raw = build_synthetic_definition()
    mutate(raw)
    with pytest.raises(ConfigError, match="malformed definition") as exc:
        parse_definition(raw, source="shapes.json")
    assert exc.value.assessment_id == "synthetic"
    assert "shapes.json" in str(exc.value)


def test_duplicate_assessment_id_across_files(tmp_path):
    raw = build_synthetic_definition()
    (tmp_path / "a.json").write_text(json.dumps(raw), encoding="utf-8")
    (tmp_path / "b.json").write_text(json.dumps(raw), encoding="utf-8")
    with pytest.raises(ConfigError, match="duplicate"):
        load_definitions(tmp_path)


def test_registry_lookup_and_reload(tmp_path):
    (tmp_path / "synthetic.json").write_text(json.dumps(build_synthetic_definition()), encoding="utf-8")
    reg = DefinitionRegistry.from_directory(tmp_path)
    assert len(reg) == 1
    assert "synthetic" in reg
    with pytest.raises(UnknownAssessmentError):
        reg.get("fc_validity")
    with pytest.raises(KeyError):
        reg.get("fc_validity")

    (tmp_path / "fc.json").write_text(json.dumps(build_forced_choice_definition()), encoding="utf-8")
    reg.reload(tmp_path)
    assert reg.ids() == ["fc_validity", "synthetic"]

    (tmp_path / "zz.json").write_text("{", encoding="utf-8")
    with pytest.raises(ConfigError):
        reg.reload(tmp_path)
    # the failed reload leaves the previous table in place
    assert reg.ids() == ["fc_validity", "synthetic"]
