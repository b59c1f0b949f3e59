from __future__ import annotations

import copy

import pytest

from psychometric_core.definitions import AssessmentDefinition, DefinitionRegistry, parse_definition


def build_synthetic_definition(
    *,
    dims: tuple[int, ...] = (3, 3),
    reversed_items: tuple[int, ...] = (),
    traps: list[dict] | None = None,
    contradictions: list[dict] | None = None,
    profile: dict | None = None,
    validity: dict | None = None,
) -> dict:
    """Deterministic raw Likert definition: ``dims[k]`` items for dimension ``dk``."""

    items: list[dict] = []
    dimensions: list[dict] = []
    pos = 0
    for k, n in enumerate(dims):
        dimensions.append({"id": f"d{k}", "label": f"Dimension {k}", "window": [pos, pos + n]})
        for _ in range(n):
            items.append({"id": f"q{pos:02d}", "kind": "likert", "reversed": pos in reversed_items})
            pos += 1
    for trap in traps or []:
        items.append(dict({"kind": "trap"}, **trap))
    raw = {
        "id": "synthetic",
        "title": "Synthetic",
        "version": "0",
        "items": items,
        "scoring": {"mode": "mean", "score_range": [1, 5]},
        "dimensions": dimensions,
        "profile": profile
        or {
            "mode": "bands",
            "metric": "overall",
            "bands": [{"min": 4.0, "profile": "high"}, {"min": 3.0, "profile": "mid"}],
            "default": {"profile": "low"},
        },
        "validity": dict({"mode": "flags", "contradictions": contradictions or []}, **(validity or {})),
        "insights": {
            "templates": {
                "strength": "{label} strength",
                "challenge": "{label} challenge",
                "opportunity": "{label} opportunity",
                "recommendations": {"high": [], "mid": ["grow {label}"], "low": ["fix {label}", "ask about {label}"]},
            },
            "validity_notes": {"questionable": "check me", "invalid": "do not use"},
        },
    }
    return raw


def build_forced_choice_definition(*, fake_good: int = 8, personality: int = 80) -> dict:
    """Forced-choice A/B layout with fake-good, fake-bad and random-check traps."""

    items: list[dict] = []
    for i in range(personality):
        items.append({"id": f"p{i:03d}", "kind": "forced_choice", "dimension": "trait_a" if i % 2 else "trait_b"})
    for i in range(fake_good):
        items.append({"id": f"fg{i:03d}", "kind": "trap", "trap_type": "fake_good", "suspicious": ["A"]})
    for i in range(4):
        items.append({"id": f"fb{i:03d}", "kind": "trap", "trap_type": "fake_bad", "suspicious": ["A"]})
    for i in range(4):
        items.append({"id": f"rr{i:03d}", "kind": "trap", "trap_type": "random_check", "suspicious": ["B"]})
    items.append({"id": "ic001", "kind": "trap", "trap_type": "inconsistency"})
    items.append({"id": "ic002", "kind": "trap", "trap_type": "inconsistency"})
    return {
        "id": "fc_validity",
        "version": "1",
        "option_sets": {"tf": {"options": ["A", "B"], "option_values": {"A": 1, "B": 0}}},
        "item_defaults": {"option_set": "tf"},
        "items": items,
        "scoring": {"mode": "mean", "score_range": [0, 100]},
        "dimensions": [
            {"id": "trait_a", "label": "Trait A", "scale_factor": 100},
            {"id": "trait_b", "label": "Trait B", "scale_factor": 100},
        ],
        "profile": {"mode": "rank"},
        "validity": {
            "contradictions": [{"first": "ic001", "second": "ic002", "agree": {"ic001": ["A"], "ic002": ["A"]}}],
        },
        "insights": {
            "basis": "normalized",
            "high": 75,
            "low": 40,
            "templates": {
                "strength": "s {label}",
                "challenge": "c {label}",
                "opportunity": "o {label}",
                "recommendations": {"high": [], "mid": [], "low": []},
            },
        },
    }


def uniform_answers(defn: AssessmentDefinition, *, likert: int = 3, option: int = 0,
                    indicator: float = 50.0) -> list:
    """One plausible answer per item: a fixed scale point, a fixed option index,
    time estimates equal to their reference."""
    out: list = []
    for it in defn.items:
        if it.has_options:
            out.append(it.options[min(option, len(it.options) - 1)])
        elif it.kind == "time_estimate":
            out.append(it.reference)
        elif it.kind == "indicator":
            out.append(indicator)
        else:
            out.append(likert)
    return out


def honest_answers(defn: AssessmentDefinition) -> list:
    """Uniform answers adjusted so that no trap and no contradiction pair fires."""
    out = uniform_answers(defn)
    for idx, it in enumerate(defn.items):
        if not it.is_trap or not it.suspicious:
            continue
        if it.has_options:
            out[idx] = next(o for o in it.options if o not in it.suspicious)
        else:
            out[idx] = next(v for v in range(int(it.scale_min), int(it.scale_max) + 1)
                            if float(v) not in {float(s) for s in it.suspicious})
    for pair in defn.validity.contradictions:
        i1, i2 = defn.item_index(pair.first), defn.item_index(pair.second)
        it1, it2 = defn.items[i1], defn.items[i2]
        if pair.mode == "same":
            out[i2] = next(o for o in it2.options if o != out[i1])
        else:
            out[i1] = next(o for o in it1.options if o not in pair.agree_first)
    return out


def random_answers(defn: AssessmentDefinition, rng) -> list:
    out: list = []
    for it in defn.items:
        if it.has_options:
            out.append(it.options[rng.randrange(len(it.options))])
        elif it.kind == "time_estimate":
            out.append(round(rng.uniform(0.0, 2.5 * it.reference), 1))
        elif it.kind == "indicator":
            out.append(round(rng.uniform(it.scale_min, it.scale_max), 2))
        else:
            out.append(rng.randint(int(it.scale_min), int(it.scale_max)))
    return out


def load(raw: dict) -> AssessmentDefinition:
    return parse_definition(copy.deepcopy(raw), source="test")


@pytest.fixture(scope="session")
def registry() -> DefinitionRegistry:
    return DefinitionRegistry.from_directory(None)


@pytest.fixture
def synthetic() -> AssessmentDefinition:
    return load(build_synthetic_definition())
