from __future__ import annotations

import json

import app_cli.run_assessment as run_assessment
import tools.validate_definitions as validate_definitions
from tests.conftest import build_synthetic_definition


def test_runner_lists_assessments_without_args(capsys):
    assert run_assessment.main([]) == 1
    assert "technology_integration" in capsys.readouterr().out


def test_runner_scores_and_saves(monkeypatch, tmp_path, capsys):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr("builtins.input", lambda prompt="": "4")
    assert run_assessment.main(["technology_integration"]) == 0
    saved = list((tmp_path / "reports").glob("result_technology_integration_*.json"))
    assert len(saved) == 1
    body = json.loads(saved[0].read_text(encoding="utf-8"))
    assert body["profile"]["profile"] == "Digital Balance Achiever"
    assert "Result saved to" in capsys.readouterr().out


def test_validate_definitions_reports_thin_dimensions(monkeypatch, tmp_path, capsys):
    monkeypatch.setattr(validate_definitions, "MIN_ITEMS", 4)
    (tmp_path / "synthetic.json").write_text(json.dumps(build_synthetic_definition()), encoding="utf-8")
    assert validate_definitions.main([str(tmp_path)]) == 0
    out = capsys.readouterr().out
    assert "synthetic.d0 has 3 items (<4)" in out


def test_validate_packaged_definitions(capsys):
    assert validate_definitions.main([]) == 0
    assert "No errors." in capsys.readouterr().out


def test_runner_rejects_unknown_assessment(capsys):
    assert run_assessment.main(["no_such_assessment"]) == 1
    out = capsys.readouterr().out
    assert "Unknown assessment: no_such_assessment" in out
    assert "technology_integration" in out
