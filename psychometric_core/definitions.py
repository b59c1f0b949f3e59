"""Assessment definitions: data model, loader and load-time validation.

A definition is plain data (JSON or YAML) describing the items of one
assessment, how they fold into dimensions, how the resulting score vector is
classified, which items are validity traps and which statements the insight
tables emit.  Everything that can be wrong with a definition is detected here,
so the scoring components never see an inconsistent one.
"""
from __future__ import annotations

import importlib.resources as ir
import json
import logging
import math
import threading
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from . import config
from .errors import ConfigError, UnknownAssessmentError

log = logging.getLogger(__name__)

ITEM_KINDS: tuple[str, ...] = (
    "likert",
    "forced_choice",
    "scenario",
    "time_estimate",
    "behavioral",
    "indicator",
    "trap",
)
TRAP_TYPES: tuple[str, ...] = ("fake_good", "fake_bad", "random_check", "inconsistency")
SOURCE_OF_KIND: Dict[str, str] = {
    "likert": "self_report",
    "forced_choice": "self_report",
    "scenario": "scenario",
    "time_estimate": "time_estimate",
    "behavioral": "behavioral",
}
SOURCE_NAMES: tuple[str, ...] = ("self_report", "scenario", "time_estimate", "behavioral")
INSIGHT_BANDS: tuple[str, ...] = ("high", "mid", "low")
VALIDITY_FLAGS: tuple[str, ...] = (
    "high_social_desirability",
    "fake_bad_responding",
    "random_responding",
    "inconsistent_responding",
    "response_time_too_fast",
    "response_time_too_slow",
    "straight_lining",
    "underreporting",
    "overclaiming",
)
COUNTER_FLAG: Dict[str, str] = {
    "fake_good": "high_social_desirability",
    "fake_bad": "fake_bad_responding",
    "random_check": "random_responding",
    "inconsistency": "inconsistent_responding",
}

def _empty() -> Mapping[str, Any]:
    return MappingProxyType({})


def _frozen(d: Mapping[str, Any] | None) -> Mapping[str, Any]:
    return MappingProxyType(dict(d or {}))


# ---------------------------------------------------------------- data model

@dataclass(frozen=True)
class ItemSpec:
    id: str
    kind: str
    dimension: Optional[str] = None
    text: str = ""
    reversed: bool = False
    weight: float = 1.0
    scale_min: float = 1.0
    scale_max: float = 5.0
    options: Tuple[str, ...] = ()
    option_values: Mapping[str, float] = field(default_factory=_empty)
    option_scores: Mapping[str, Mapping[str, float]] = field(default_factory=_empty)
    reference: Optional[float] = None
    trap_type: Optional[str] = None
    suspicious: Tuple[Any, ...] = ()

    @property
    def is_trap(self) -> bool:
        return self.kind == "trap"

    @property
    def has_options(self) -> bool:
        return bool(self.options)

    @property
    def source(self) -> Optional[str]:
        return SOURCE_OF_KIND.get(self.kind)

    def value_bounds(self) -> Tuple[float, float]:
        """Bounds of the effective value before reverse scoring."""
        if self.option_values:
            vals = list(self.option_values.values())
            return float(min(vals)), float(max(vals))
        return float(self.scale_min), float(self.scale_max)


@dataclass(frozen=True)
class DimensionSpec:
    id: str
    label: str
    indices: Tuple[int, ...]
    weight: Optional[float] = None
    scale_factor: float = 1.0
    norm_offset: float = 0.0
    effectiveness: bool = False
    interpretations: Mapping[str, str] = field(default_factory=_empty)


class EffectivenessTable:
    """``(question_id, raw_option) -> effectiveness weight`` lookups."""

    def __init__(self, weights: Mapping[Tuple[str, str], float]):
        self._weights: Mapping[Tuple[str, str], float] = MappingProxyType(dict(weights))

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Mapping[str, Any]]) -> "EffectivenessTable":
        weights: Dict[Tuple[str, str], float] = {}
        for qid, per_option in raw.items():
            if not isinstance(per_option, Mapping):
                raise ConfigError(f"effectiveness entry for {qid!r} must map options to weights")
            for option, w in per_option.items():
                weights[(str(qid), str(option))] = _as_float(w, f"effectiveness[{qid}][{option}]")
        return cls(weights)

    def lookup(self, question_id: str, option: str) -> float:
        return self._weights[(question_id, option)]

    def missing(self, item: ItemSpec) -> List[str]:
        return [opt for opt in item.options if (item.id, opt) not in self._weights]

    def question_ids(self) -> set[str]:
        return {qid for qid, _ in self._weights}

    def __len__(self) -> int:
        return len(self._weights)


@dataclass(frozen=True)
class SourceSpec:
    name: str
    weight: float
    scale: float


@dataclass(frozen=True)
class ScoringSpec:
    mode: str = "mean"
    score_min: float = 0.0
    score_max: float = 5.0
    overall_id: str = "overall"
    overall_label: str = "Overall"
    overall_mode: str = "mean"
    neutral: float = config.DEFAULT_NEUTRAL
    levels: Tuple[Tuple[float, str], ...] = config.LEVEL_BANDS
    level_default: str = config.LEVEL_DEFAULT
    sources: Mapping[str, SourceSpec] = field(default_factory=_empty)


@dataclass(frozen=True)
class Band:
    min: float
    profile: str
    label: str


@dataclass(frozen=True)
class TopSetRule:
    profile: str
    label: str
    all_of: Tuple[str, ...] = ()
    any_of: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ProfileSpec:
    mode: str
    metric: Optional[str] = None
    bands: Tuple[Band, ...] = ()
    rules: Tuple[TopSetRule, ...] = ()
    labels: Mapping[str, str] = field(default_factory=_empty)
    default_profile: Optional[str] = None
    default_label: Optional[str] = None
    top_n: int = 3

    @property
    def profiles(self) -> Tuple[str, ...]:
        keys = [b.profile for b in self.bands] + [r.profile for r in self.rules]
        if self.default_profile:
            keys.append(self.default_profile)
        return tuple(dict.fromkeys(keys))


@dataclass(frozen=True)
class ContradictionPair:
    first: str
    second: str
    mode: str = "agree"
    agree_first: Tuple[Any, ...] = ()
    agree_second: Tuple[Any, ...] = ()


@dataclass(frozen=True)
class CrossCheck:
    indicators: Tuple[Tuple[str, bool], ...]
    tolerance: float = 30.0
    self_report_scale: float = 20.0


@dataclass(frozen=True)
class VerdictRule:
    thresholds: Mapping[str, float] = field(default_factory=_empty)
    flags: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ValiditySpec:
    mode: str = "flags"
    score_max: float = config.VALIDITY_SCORE_MAX
    too_fast_ms: float = float(config.RT_TOO_FAST_MS)
    too_slow_ms: float = float(config.RT_TOO_SLOW_MS)
    contradictions: Tuple[ContradictionPair, ...] = ()
    straight_line_max_variance: float = config.STRAIGHT_LINE_MAX_VARIANCE
    straight_line_min_items: int = config.STRAIGHT_LINE_MIN_ITEMS
    flag_thresholds: Mapping[str, int] = field(default_factory=_empty)
    score_weights: Mapping[str, float] = field(default_factory=_empty)
    invalid: VerdictRule = VerdictRule()
    questionable: VerdictRule = VerdictRule()
    cross_check: Optional[CrossCheck] = None
    component_weights: Mapping[str, float] = field(default_factory=_empty)
    time_awareness_item: Optional[str] = None
    questionable_at: float = 30.0
    invalid_at: float = 50.0


@dataclass(frozen=True)
class DimensionInsights:
    strength: str
    challenge: str
    opportunity: str
    recommendations: Mapping[str, Tuple[str, ...]] = field(default_factory=_empty)


@dataclass(frozen=True)
class InsightSpec:
    high: float = config.INSIGHT_HIGH
    low: float = config.INSIGHT_LOW
    basis: str = "score"
    dimensions: Mapping[str, DimensionInsights] = field(default_factory=_empty)
    validity_notes: Mapping[str, str] = field(default_factory=_empty)


@dataclass(frozen=True)
class RiskTerm:
    source: str
    weight: float
    invert: bool = False


@dataclass(frozen=True)
class RiskFactor:
    source: str
    label: str
    below: Optional[float] = None
    above: Optional[float] = None


@dataclass(frozen=True)
class RiskSpec:
    name: str
    label: str
    terms: Tuple[RiskTerm, ...]
    moderate: float = 40.0
    high: float = 70.0
    factors: Tuple[RiskFactor, ...] = ()


@dataclass(frozen=True)
class AssessmentDefinition:
    id: str
    title: str
    version: str
    items: Tuple[ItemSpec, ...]
    dimensions: Tuple[DimensionSpec, ...]
    scoring: ScoringSpec
    profile: ProfileSpec
    validity: ValiditySpec
    insights: InsightSpec
    risks: Tuple[RiskSpec, ...] = ()
    effectiveness: Optional[EffectivenessTable] = field(default=None, compare=False)

    @property
    def expected_item_count(self) -> int:
        return len(self.items)

    @property
    def dimension_ids(self) -> Tuple[str, ...]:
        return tuple(d.id for d in self.dimensions)

    def dimension(self, dim_id: str) -> DimensionSpec:
        for d in self.dimensions:
            if d.id == dim_id:
                return d
        raise KeyError(dim_id)

    def item_index(self, item_id: str) -> int:
        for idx, it in enumerate(self.items):
            if it.id == item_id:
                return idx
        raise KeyError(item_id)

    def traps(self, trap_type: Optional[str] = None) -> List[ItemSpec]:
        return [it for it in self.items if it.is_trap and (trap_type is None or it.trap_type == trap_type)]


# ------------------------------------------------------------------- parsing

def _as_float(value: Any, where: str, assessment_id: Optional[str] = None) -> float:
    if isinstance(value, bool):
        raise ConfigError(f"{where}: expected a number, got {value!r}", assessment_id=assessment_id)
    try:
        out = float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{where}: expected a number, got {value!r}", assessment_id=assessment_id) from None
    if not math.isfinite(out):
        raise ConfigError(f"{where}: must be finite", assessment_id=assessment_id)
    return out


def _descending_bands(raw: Any, where: str, aid: str) -> Tuple[Tuple[float, str], ...]:
    bands: List[Tuple[float, str]] = []
    for entry in raw or []:
        if not isinstance(entry, Mapping) or "min" not in entry or "label" not in entry:
            raise ConfigError(f"{where}: each band needs 'min' and 'label'", assessment_id=aid)
        bands.append((_as_float(entry["min"], where, aid), str(entry["label"])))
    for (a, _), (b, _) in zip(bands, bands[1:]):
        if not b < a:
            raise ConfigError(f"{where}: thresholds must be strictly descending ({a} then {b})", assessment_id=aid)
    return tuple(bands)


class _Parser:
    """One-shot parser for a raw definition mapping."""

    def __init__(self, raw: Mapping[str, Any], source: str):
        if not isinstance(raw, Mapping):
            raise ConfigError(f"{source}: definition must be a mapping")
        self.raw = raw
        self.source = source
        self.aid = str(raw.get("id") or "").strip()
        if not self.aid:
            raise ConfigError(f"{source}: definition has no id")

    def fail(self, message: str) -> ConfigError:
        return ConfigError(message, assessment_id=self.aid)

    # -- items
    def items(self) -> Tuple[ItemSpec, ...]:
        defaults = dict(self.raw.get("item_defaults") or {})
        option_sets = dict(self.raw.get("option_sets") or {})
        raw_items = self.raw.get("items") or []
        if not raw_items:
            raise self.fail("definition declares no items")
        out: List[ItemSpec] = []
        seen: set[str] = set()
        for pos, entry in enumerate(raw_items):
            if not isinstance(entry, Mapping):
                raise self.fail(f"item #{pos} must be a mapping")
            merged = dict(defaults)
            merged.update(entry)
            set_name = merged.pop("option_set", None)
            if set_name is not None:
                oset = option_sets.get(set_name)
                if not isinstance(oset, Mapping):
                    raise self.fail(f"item #{pos} references unknown option_set {set_name!r}")
                for key in ("options", "option_values", "option_scores"):
                    if key in oset:
                        merged.setdefault(key, oset[key])
            item = self._item(pos, merged)
            if item.id in seen:
                raise self.fail(f"duplicate item id {item.id!r}")
            seen.add(item.id)
            out.append(item)
        return tuple(out)

    def _item(self, pos: int, d: Mapping[str, Any]) -> ItemSpec:
        iid = str(d.get("id") or "").strip()
        if not iid:
            raise self.fail(f"item #{pos} has no id")
        kind = str(d.get("kind") or "")
        if kind not in ITEM_KINDS:
            raise self.fail(f"item {iid!r}: unknown kind {kind!r}")
        where = f"item {iid!r}"

        scale = d.get("scale")
        if scale is not None:
            if not isinstance(scale, (list, tuple)) or len(scale) != 2:
                raise self.fail(f"{where}: scale must be [min, max]")
            smin, smax = _as_float(scale[0], where, self.aid), _as_float(scale[1], where, self.aid)
        elif kind == "indicator":
            smin, smax = 0.0, 100.0
        else:
            smin, smax = 1.0, 5.0
        if not smin < smax:
            raise self.fail(f"{where}: scale min must be below max")

        options = tuple(str(o) for o in (d.get("options") or ()))
        if len(set(options)) != len(options):
            raise self.fail(f"{where}: duplicate options")
        if kind in ("forced_choice", "scenario", "behavioral") and len(options) < 2:
            raise self.fail(f"{where}: {kind} items need at least two options")

        option_values: Dict[str, float] = {}
        if kind == "forced_choice" or (kind == "trap" and options):
            raw_vals = d.get("option_values")
            if raw_vals is None:
                option_values = {opt: float(i) for i, opt in enumerate(options)}
            else:
                option_values = {str(k): _as_float(v, where, self.aid) for k, v in dict(raw_vals).items()}
                if set(option_values) != set(options):
                    raise self.fail(f"{where}: option_values must cover exactly the options")
            if kind == "forced_choice" and len(set(option_values.values())) < 2:
                raise self.fail(f"{where}: option_values must not all be equal")

        option_scores: Dict[str, Mapping[str, float]] = {}
        if kind in ("scenario", "behavioral"):
            raw_scores = d.get("option_scores") or {}
            for opt in options:
                per = raw_scores.get(opt)
                if not isinstance(per, Mapping):
                    raise self.fail(f"{where}: option {opt!r} has no score map")
                option_scores[opt] = _frozen({str(k): _as_float(v, where, self.aid) for k, v in per.items()})
            extra = set(raw_scores) - set(options)
            if extra:
                raise self.fail(f"{where}: option_scores for undeclared options {sorted(extra)}")

        reference = None
        if kind == "time_estimate":
            reference = _as_float(d.get("reference"), f"{where} reference", self.aid)
            if reference <= 0:
                raise self.fail(f"{where}: reference must be positive")

        trap_type = d.get("trap_type")
        suspicious: Tuple[Any, ...] = ()
        if kind == "trap":
            if trap_type not in TRAP_TYPES:
                raise self.fail(f"{where}: trap_type must be one of {TRAP_TYPES}")
            suspicious = tuple(d.get("suspicious") or ())
            if trap_type != "inconsistency" and not suspicious:
                raise self.fail(f"{where}: trap needs at least one suspicious answer")
            for s in suspicious:
                if options and str(s) not in options:
                    raise self.fail(f"{where}: suspicious answer {s!r} is not an option")
                if not options and not (smin <= _as_float(s, where, self.aid) <= smax):
                    raise self.fail(f"{where}: suspicious answer {s!r} outside scale")
            if options:
                suspicious = tuple(str(s) for s in suspicious)
        elif trap_type is not None:
            raise self.fail(f"{where}: only trap items carry a trap_type")

        weight = _as_float(d.get("weight", 1.0), where, self.aid)
        if weight <= 0:
            raise self.fail(f"{where}: weight must be positive")

        return ItemSpec(
            id=iid,
            kind=kind,
            dimension=(str(d["dimension"]) if d.get("dimension") else None),
            text=str(d.get("text") or ""),
            reversed=bool(d.get("reversed", False)),
            weight=weight,
            scale_min=smin,
            scale_max=smax,
            options=options,
            option_values=_frozen(option_values),
            option_scores=_frozen(option_scores),
            reference=reference,
            trap_type=trap_type if kind == "trap" else None,
            suspicious=suspicious,
        )

    # -- scoring
    def scoring(self) -> ScoringSpec:
        d = dict(self.raw.get("scoring") or {})
        mode = d.get("mode", "mean")
        if mode not in ("mean", "multi_source"):
            raise self.fail(f"scoring.mode must be 'mean' or 'multi_source', got {mode!r}")
        rng = d.get("score_range", [0.0, 100.0] if mode == "multi_source" else [0.0, 5.0])
        smin, smax = _as_float(rng[0], "score_range", self.aid), _as_float(rng[1], "score_range", self.aid)
        if not smin < smax:
            raise self.fail("score_range min must be below max")
        overall = dict(d.get("overall") or {})
        overall_mode = overall.get("mode", "mean")
        if overall_mode not in ("mean", "weighted"):
            raise self.fail(f"overall.mode must be 'mean' or 'weighted', got {overall_mode!r}")
        neutral = _as_float(d.get("neutral", config.DEFAULT_NEUTRAL), "neutral", self.aid)
        if not 0.0 <= neutral <= 100.0:
            raise self.fail("neutral must be a percentage in [0, 100]")

        levels_raw = d.get("levels")
        if levels_raw is None:
            levels = config.LEVEL_BANDS
            level_default = config.LEVEL_DEFAULT
        else:
            levels = _descending_bands(levels_raw.get("bands"), "scoring.levels", self.aid)
            level_default = str(levels_raw.get("default") or "")
            if not level_default:
                raise self.fail("scoring.levels needs a default label")

        sources: Dict[str, SourceSpec] = {}
        if mode == "multi_source":
            for name, sd in dict(d.get("sources") or {}).items():
                if name not in SOURCE_NAMES:
                    raise self.fail(f"unknown evidence source {name!r}")
                w = _as_float(sd.get("weight"), f"sources.{name}.weight", self.aid)
                if w <= 0:
                    raise self.fail(f"sources.{name}.weight must be positive")
                sources[name] = SourceSpec(name, w, _as_float(sd.get("scale", 1.0), f"sources.{name}.scale", self.aid))
            if not sources:
                raise self.fail("multi_source scoring needs at least one source")

        return ScoringSpec(
            mode=mode,
            score_min=smin,
            score_max=smax,
            overall_id=str(overall.get("id") or "overall"),
            overall_label=str(overall.get("label") or "Overall"),
            overall_mode=overall_mode,
            neutral=neutral,
            levels=levels,
            level_default=level_default,
            sources=_frozen(sources),
        )

    # -- dimensions
    def dimensions(
        self,
        items: Tuple[ItemSpec, ...],
        scoring: ScoringSpec,
        effectiveness: Optional[EffectivenessTable],
    ) -> Tuple[DimensionSpec, ...]:
        raw_dims = self.raw.get("dimensions") or []
        if not raw_dims:
            raise self.fail("definition declares no dimensions")
        template = str((self.raw.get("scoring") or {}).get("interpretation_template") or "{label}: {level}")
        level_labels = [lbl for _, lbl in scoring.levels] + [scoring.level_default]
        ids = [str(d.get("id") or "") for d in raw_dims]
        if "" in ids or len(set(ids)) != len(ids):
            raise self.fail("dimension ids must be present and unique")
        if scoring.overall_id in ids:
            raise self.fail(f"overall id {scoring.overall_id!r} collides with a dimension id")
        id_to_idx = {it.id: i for i, it in enumerate(items)}

        for it in items:
            if it.dimension and it.kind in SOURCE_OF_KIND and it.dimension not in ids:
                raise self.fail(f"item {it.id!r} is tagged with undeclared dimension {it.dimension!r}")

        out: List[DimensionSpec] = []
        for d in raw_dims:
            did = str(d["id"])
            label = str(d.get("label") or did.replace("_", " ").title())
            if "window" in d:
                win = d["window"]
                if not isinstance(win, (list, tuple)) or len(win) != 2:
                    raise self.fail(f"dimension {did!r}: window must be [start, end)")
                start, end = int(win[0]), int(win[1])
                if start < 0 or end > len(items) or start > end:
                    raise self.fail(f"dimension {did!r}: window [{start}, {end}) outside 0..{len(items)}")
                indices = tuple(range(start, end))
            elif "items" in d:
                try:
                    indices = tuple(id_to_idx[str(x)] for x in d["items"])
                except KeyError as e:
                    raise self.fail(f"dimension {did!r}: unknown item {e.args[0]!r}") from None
            else:
                indices = tuple(i for i, it in enumerate(items) if self._contributes(it, did, scoring))
            if not indices:
                raise self.fail(f"dimension {did!r} has no items")
            if len(set(indices)) != len(indices):
                raise self.fail(f"dimension {did!r} lists an item twice")
            for i in indices:
                it = items[i]
                if it.is_trap:
                    raise self.fail(f"dimension {did!r} includes trap item {it.id!r}")
                if it.source is None:
                    raise self.fail(f"dimension {did!r} includes non-scored item {it.id!r} ({it.kind})")
                if scoring.mode == "mean" and it.source != "self_report":
                    raise self.fail(f"dimension {did!r}: {it.kind} items need multi_source scoring")
                if it.kind in ("scenario", "behavioral") and not any(did in s for s in it.option_scores.values()):
                    raise self.fail(f"dimension {did!r}: item {it.id!r} scores no option for it")

            uses_eff = bool(d.get("effectiveness", False))
            if uses_eff:
                if effectiveness is None:
                    raise self.fail(f"dimension {did!r} uses effectiveness but no table is declared")
                for i in indices:
                    it = items[i]
                    if not it.has_options:
                        raise self.fail(f"dimension {did!r}: effectiveness item {it.id!r} has no options")
                    missing = effectiveness.missing(it)
                    if missing:
                        raise self.fail(f"effectiveness table misses {it.id!r} options {missing}")

            interps = dict(d.get("interpretations") or {})
            for lvl in level_labels:
                interps.setdefault(lvl, template.format(label=label, level=lvl))

            weight = d.get("weight")
            out.append(
                DimensionSpec(
                    id=did,
                    label=label,
                    indices=indices,
                    weight=None if weight is None else _as_float(weight, f"dimension {did} weight", self.aid),
                    scale_factor=_as_float(d.get("scale_factor", 1.0), f"dimension {did} scale_factor", self.aid),
                    norm_offset=_as_float(d.get("norm_offset", 0.0), f"dimension {did} norm_offset", self.aid),
                    effectiveness=uses_eff,
                    interpretations=_frozen(interps),
                )
            )

        if scoring.overall_mode == "weighted":
            weights = [dim.weight for dim in out]
            if any(w is None or w < 0 for w in weights):
                raise self.fail("weighted overall needs a non-negative weight on every dimension")
            total = sum(w for w in weights if w is not None)
            if abs(total - 1.0) > config.WEIGHT_SUM_TOLERANCE:
                raise self.fail(f"dimension weights must sum to 1.0, got {total:.6f}")
        if effectiveness is not None:
            unknown = effectiveness.question_ids() - set(id_to_idx)
            if unknown:
                raise self.fail(f"effectiveness table references unknown items {sorted(unknown)}")
        return tuple(out)

    @staticmethod
    def _contributes(it: ItemSpec, did: str, scoring: ScoringSpec) -> bool:
        if it.is_trap or it.source is None:
            return False
        if it.kind in ("scenario", "behavioral"):
            return any(did in s for s in it.option_scores.values())
        if scoring.mode == "mean" and it.source != "self_report":
            return False
        if it.kind == "time_estimate" and it.dimension is None:
            # untagged time tasks are shared evidence for every dimension
            return True
        return it.dimension == did

    # -- profile
    def profile(self, scoring: ScoringSpec, dim_ids: Tuple[str, ...]) -> ProfileSpec:
        d = dict(self.raw.get("profile") or {})
        mode = d.get("mode")
        default = d.get("default") or {}
        default_profile = default.get("profile")
        default_label = default.get("label") or default_profile
        top_n = int(d.get("top_n", 3))

        if mode == "bands":
            metric = str(d.get("metric") or scoring.overall_id)
            if metric not in dim_ids and metric != scoring.overall_id:
                raise self.fail(f"profile metric {metric!r} is not a dimension or the overall score")
            bands: List[Band] = []
            for entry in d.get("bands") or []:
                bands.append(
                    Band(
                        min=_as_float(entry.get("min"), "profile band", self.aid),
                        profile=str(entry["profile"]),
                        label=str(entry.get("label") or entry["profile"]),
                    )
                )
            if not bands:
                raise self.fail("band profile declares no bands")
            for a, b in zip(bands, bands[1:]):
                if not b.min < a.min:
                    raise self.fail(f"profile bands overlap: {a.min} is not above {b.min}")
            for b in bands:
                if not scoring.score_min < b.min <= scoring.score_max:
                    raise self.fail(
                        f"profile band {b.profile!r} threshold {b.min} outside ({scoring.score_min}, {scoring.score_max}]"
                    )
            if not default_profile:
                raise self.fail("band profile has no default")
            spec = ProfileSpec(mode=mode, metric=metric, bands=tuple(bands),
                               default_profile=default_profile, default_label=default_label, top_n=top_n)
        elif mode == "rank":
            labels = {str(k): str(v) for k, v in dict(d.get("labels") or {}).items()}
            if labels and set(labels) != set(dim_ids):
                raise self.fail("rank profile labels must cover every dimension exactly")
            if len(dim_ids) < 2:
                raise self.fail("rank profile needs at least two dimensions")
            spec = ProfileSpec(mode=mode, labels=_frozen(labels), top_n=top_n)
        elif mode == "top_set":
            rules: List[TopSetRule] = []
            for entry in d.get("rules") or []:
                all_of = tuple(str(x) for x in entry.get("all_of") or ())
                any_of = tuple(str(x) for x in entry.get("any_of") or ())
                if not all_of and not any_of:
                    raise self.fail("top_set rule needs all_of or any_of")
                unknown = set(all_of + any_of) - set(dim_ids)
                if unknown:
                    raise self.fail(f"top_set rule references unknown dimensions {sorted(unknown)}")
                rules.append(TopSetRule(str(entry["profile"]), str(entry.get("label") or entry["profile"]), all_of, any_of))
            if not rules:
                raise self.fail("top_set profile declares no rules")
            if not default_profile:
                raise self.fail("top_set profile has no default")
            if not 1 <= top_n <= len(dim_ids):
                raise self.fail(f"top_n must be within 1..{len(dim_ids)}")
            spec = ProfileSpec(mode=mode, rules=tuple(rules), default_profile=default_profile,
                               default_label=default_label, top_n=top_n)
        else:
            raise self.fail(f"profile.mode must be bands, rank or top_set, got {mode!r}")
        return spec

    # -- validity
    def validity(self, items: Tuple[ItemSpec, ...]) -> ValiditySpec:
        d = dict(self.raw.get("validity") or {})
        by_id = {it.id: it for it in items}
        mode = d.get("mode", "flags")
        if mode not in ("flags", "weighted"):
            raise self.fail(f"validity.mode must be flags or weighted, got {mode!r}")

        rt = dict(d.get("response_time") or {})
        too_fast = _as_float(rt.get("too_fast_ms", config.RT_TOO_FAST_MS), "too_fast_ms", self.aid)
        too_slow = _as_float(rt.get("too_slow_ms", config.RT_TOO_SLOW_MS), "too_slow_ms", self.aid)
        if not too_fast < too_slow:
            raise self.fail("response_time.too_fast_ms must be below too_slow_ms")

        pairs: List[ContradictionPair] = []
        for entry in d.get("contradictions") or []:
            first, second = str(entry.get("first")), str(entry.get("second"))
            for iid in (first, second):
                if iid not in by_id:
                    raise self.fail(f"contradiction pair references unknown item {iid!r}")
            pmode = entry.get("mode", "agree")
            if pmode not in ("agree", "same"):
                raise self.fail(f"contradiction mode must be agree or same, got {pmode!r}")
            agree = dict(entry.get("agree") or {})
            af = tuple(self._answer_key(by_id[first], v) for v in agree.get(first, ()))
            asec = tuple(self._answer_key(by_id[second], v) for v in agree.get(second, ()))
            if pmode == "agree" and (not af or not asec):
                raise self.fail(f"contradiction pair {first}/{second} needs agree answers for both items")
            pairs.append(ContradictionPair(first, second, pmode, af, asec))

        sl = dict(d.get("straight_lining") or {})
        thresholds = dict(config.FLAG_THRESHOLDS)
        thresholds.update({str(k): int(v) for k, v in dict(d.get("flag_thresholds") or {}).items()})
        unknown = set(thresholds) - set(COUNTER_FLAG)
        if unknown:
            raise self.fail(f"unknown flag thresholds {sorted(unknown)}")

        weights = {k: 1.0 for k in list(COUNTER_FLAG) + list(VALIDITY_FLAGS)}
        for k, v in dict(d.get("score_weights") or {}).items():
            if k not in weights:
                raise self.fail(f"unknown score weight {k!r}")
            w = _as_float(v, f"score_weights.{k}", self.aid)
            if w < 0:
                raise self.fail(f"score_weights.{k} must be non-negative")
            weights[k] = w

        cross = None
        if d.get("cross_check"):
            cc = dict(d["cross_check"])
            inds: List[Tuple[str, bool]] = []
            for ind in cc.get("indicators") or []:
                iid = str(ind.get("item"))
                it = by_id.get(iid)
                if it is None or it.kind != "indicator":
                    raise self.fail(f"cross_check indicator {iid!r} is not an indicator item")
                inds.append((iid, bool(ind.get("invert", False))))
            if not inds:
                raise self.fail("cross_check needs at least one indicator")
            cross = CrossCheck(
                indicators=tuple(inds),
                tolerance=_as_float(cc.get("tolerance", 30.0), "cross_check.tolerance", self.aid),
                self_report_scale=_as_float(cc.get("self_report_scale", 20.0), "cross_check.self_report_scale", self.aid),
            )

        ta_item = d.get("time_awareness_item")
        if ta_item is not None and (ta_item not in by_id or by_id[ta_item].kind != "indicator"):
            raise self.fail(f"time_awareness_item {ta_item!r} is not an indicator item")

        components = {}
        if mode == "weighted":
            components = {
                str(k): _as_float(v, f"components.{k}", self.aid)
                for k, v in dict(d.get("components") or {}).items()
            }
            allowed = {"social_desirability", "cross_check", "time_awareness", "consistency"}
            if not components or set(components) - allowed:
                raise self.fail(f"weighted validity components must be drawn from {sorted(allowed)}")
            if abs(sum(components.values()) - 1.0) > config.WEIGHT_SUM_TOLERANCE:
                raise self.fail("weighted validity components must sum to 1.0")
            if "cross_check" in components and cross is None:
                raise self.fail("cross_check component needs a cross_check block")
            if "time_awareness" in components and ta_item is None:
                raise self.fail("time_awareness component needs time_awareness_item")

        score_max = _as_float(d.get("score_max", 100.0 if mode == "weighted" else config.VALIDITY_SCORE_MAX),
                              "score_max", self.aid)
        if score_max <= 0:
            raise self.fail("validity score_max must be positive")
        q_at = _as_float(d.get("questionable_at", 30.0), "questionable_at", self.aid)
        i_at = _as_float(d.get("invalid_at", 50.0), "invalid_at", self.aid)
        if mode == "weighted" and not 0 < q_at < i_at <= score_max:
            raise self.fail("weighted validity needs 0 < questionable_at < invalid_at <= score_max")

        return ValiditySpec(
            mode=mode,
            score_max=score_max,
            too_fast_ms=too_fast,
            too_slow_ms=too_slow,
            contradictions=tuple(pairs),
            straight_line_max_variance=_as_float(
                sl.get("max_variance", config.STRAIGHT_LINE_MAX_VARIANCE), "straight_lining.max_variance", self.aid
            ),
            straight_line_min_items=int(sl.get("min_items", config.STRAIGHT_LINE_MIN_ITEMS)),
            flag_thresholds=_frozen(thresholds),
            score_weights=_frozen(weights),
            invalid=self._verdict_rule(d.get("invalid", config.VERDICT_INVALID)),
            questionable=self._verdict_rule(d.get("questionable", config.VERDICT_QUESTIONABLE)),
            cross_check=cross,
            component_weights=_frozen(components),
            time_awareness_item=ta_item,
            questionable_at=q_at,
            invalid_at=i_at,
        )

    def _answer_key(self, item: ItemSpec, value: Any) -> Any:
        if item.has_options:
            if str(value) not in item.options:
                raise self.fail(f"agree answer {value!r} is not an option of {item.id!r}")
            return str(value)
        return _as_float(value, f"agree answer for {item.id}", self.aid)

    def _verdict_rule(self, raw: Any) -> VerdictRule:
        raw = dict(raw or {})
        flags = tuple(str(f) for f in raw.pop("flags", ()) or ())
        unknown = set(flags) - set(VALIDITY_FLAGS)
        if unknown:
            raise self.fail(f"unknown validity flags {sorted(unknown)}")
        thresholds = {str(k): _as_float(v, f"verdict threshold {k}", self.aid) for k, v in raw.items()}
        bad = set(thresholds) - (set(COUNTER_FLAG) | {"total_flags"})
        if bad:
            raise self.fail(f"unknown verdict thresholds {sorted(bad)}")
        return VerdictRule(_frozen(thresholds), flags)

    # -- insights
    def insights(self, dims: Tuple[DimensionSpec, ...]) -> InsightSpec:
        d = dict(self.raw.get("insights") or {})
        high = _as_float(d.get("high", config.INSIGHT_HIGH), "insights.high", self.aid)
        low = _as_float(d.get("low", config.INSIGHT_LOW), "insights.low", self.aid)
        if not low < high:
            raise self.fail("insights.low must be below insights.high")
        basis = d.get("basis", "score")
        if basis not in ("score", "normalized"):
            raise self.fail("insights.basis must be score or normalized")
        tables = dict(d.get("dimensions") or {})
        unknown = set(tables) - {dim.id for dim in dims}
        if unknown:
            raise self.fail(f"insight tables for unknown dimensions {sorted(unknown)}")
        templates = dict(d.get("templates") or {})

        out: Dict[str, DimensionInsights] = {}
        for dim in dims:
            entry = dict(tables.get(dim.id) or {})
            statements = {}
            for key in ("strength", "challenge", "opportunity"):
                text = entry.get(key)
                if not text and templates.get(key):
                    text = str(templates[key]).format(label=dim.label, dimension=dim.id)
                if not text:
                    raise self.fail(f"insight table for {dim.id!r} has no {key} statement")
                statements[key] = str(text)
            recs_raw = entry.get("recommendations")
            if recs_raw is None:
                recs_raw = {
                    band: [str(t).format(label=dim.label, dimension=dim.id) for t in texts]
                    for band, texts in dict(templates.get("recommendations") or {}).items()
                }
            recs_raw = dict(recs_raw or {})
            missing = [b for b in INSIGHT_BANDS if b not in recs_raw]
            if missing:
                raise self.fail(f"recommendations for {dim.id!r} miss bands {missing}")
            extra = set(recs_raw) - set(INSIGHT_BANDS)
            if extra:
                raise self.fail(f"recommendations for {dim.id!r} have unknown bands {sorted(extra)}")
            recs = {band: tuple(str(t) for t in recs_raw[band] or ()) for band in INSIGHT_BANDS}
            out[dim.id] = DimensionInsights(recommendations=_frozen(recs), **statements)

        notes = {str(k): str(v) for k, v in dict(d.get("validity_notes") or {}).items()}
        if set(notes) - {"questionable", "invalid"}:
            raise self.fail("validity_notes may only hold questionable/invalid")
        return InsightSpec(high=high, low=low, basis=basis, dimensions=_frozen(out), validity_notes=_frozen(notes))

    # -- risk
    def risks(self, items: Tuple[ItemSpec, ...], dims: Tuple[DimensionSpec, ...]) -> Tuple[RiskSpec, ...]:
        dim_ids = {dim.id for dim in dims}
        indicator_ids = {it.id for it in items if it.kind == "indicator"}

        def _check(src: str, where: str) -> str:
            if src not in dim_ids and src not in indicator_ids:
                raise self.fail(f"{where}: {src!r} is neither a dimension nor an indicator item")
            return src

        out: List[RiskSpec] = []
        for name, rd in dict(self.raw.get("risk") or {}).items():
            where = f"risk {name!r}"
            terms = tuple(
                RiskTerm(_check(str(t["source"]), where), _as_float(t.get("weight"), where, self.aid), bool(t.get("invert", False)))
                for t in rd.get("terms") or []
            )
            if not terms:
                raise self.fail(f"{where} declares no terms")
            factors = tuple(
                RiskFactor(
                    _check(str(f["source"]), where),
                    str(f["label"]),
                    None if f.get("below") is None else _as_float(f["below"], where, self.aid),
                    None if f.get("above") is None else _as_float(f["above"], where, self.aid),
                )
                for f in rd.get("factors") or []
            )
            moderate = _as_float(rd.get("moderate", 40.0), where, self.aid)
            high = _as_float(rd.get("high", 70.0), where, self.aid)
            if not moderate < high:
                raise self.fail(f"{where}: moderate must be below high")
            out.append(RiskSpec(str(name), str(rd.get("label") or name), terms, moderate, high, factors))
        return tuple(out)

    def build(self) -> AssessmentDefinition:
        items = self.items()
        eff_raw = self.raw.get("effectiveness")
        effectiveness = EffectivenessTable.from_mapping(eff_raw) if eff_raw else None
        scoring = self.scoring()
        dims = self.dimensions(items, scoring, effectiveness)
        dim_ids = tuple(d.id for d in dims)
        return AssessmentDefinition(
            id=self.aid,
            title=str(self.raw.get("title") or self.aid),
            version=str(self.raw.get("version") or "1"),
            items=items,
            dimensions=dims,
            scoring=scoring,
            profile=self.profile(scoring, dim_ids),
            validity=self.validity(items),
            insights=self.insights(dims),
            risks=self.risks(items, dims),
            effectiveness=effectiveness,
        )


def parse_definition(raw: Mapping[str, Any], *, source: str = "<memory>") -> AssessmentDefinition:
    """Validate a raw mapping and build an immutable definition.

    Raises ``ConfigError`` on any inconsistency, including fields of the
    wrong shape (a string where a list belongs, a band without a profile).
    """
    parser = _Parser(raw, source)
    try:
        return parser.build()
    except (KeyError, TypeError, ValueError, AttributeError, IndexError) as e:
        raise parser.fail(f"{source}: malformed definition ({type(e).__name__}: {e})") from e


def _read_raw(path: Path) -> Mapping[str, Any]:
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() in (".yaml", ".yml"):
        import yaml

        try:
            return yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ConfigError(f"{path.name}: invalid YAML ({e})") from e
    try:
        return json.loads(text)
    except ValueError as e:
        raise ConfigError(f"{path.name}: invalid JSON ({e})") from e


def load_definition_file(path: str | Path) -> AssessmentDefinition:
    p = Path(path)
    return parse_definition(_read_raw(p), source=p.name)


_SUFFIXES = (".json", ".yaml", ".yml")


def definition_paths(directory: str | Path | None) -> Iterable[Path]:
    if directory is not None:
        base = Path(directory)
        return sorted(p for p in base.iterdir() if p.suffix.lower() in _SUFFIXES)
    pkg = ir.files(__package__).joinpath("data").joinpath("definitions")
    return sorted(
        (Path(str(entry)) for entry in pkg.iterdir() if entry.name.lower().endswith(_SUFFIXES)),
        key=lambda p: p.name,
    )


def load_definitions(directory: str | Path | None = None) -> Dict[str, AssessmentDefinition]:
    """Load every definition file in ``directory`` (packaged data when None)."""

    out: Dict[str, AssessmentDefinition] = {}
    for path in definition_paths(directory):
        d = load_definition_file(path)
        if d.id in out:
            raise ConfigError(f"{path.name}: duplicate assessment id", assessment_id=d.id)
        out[d.id] = d
    log.info("loaded %d assessment definitions", len(out))
    return out


class DefinitionRegistry:
    """Read-only arena of definitions, looked up by id.

    ``reload`` builds a complete new table before swapping it in, so readers
    see either the old table or the new one, never a partial mix.
    """

    def __init__(self, definitions: Mapping[str, AssessmentDefinition] | None = None):
        self._table: Mapping[str, AssessmentDefinition] = MappingProxyType(dict(definitions or {}))
        self._lock = threading.Lock()

    @classmethod
    def from_directory(cls, directory: str | Path | None = None) -> "DefinitionRegistry":
        return cls(load_definitions(directory))

    def get(self, assessment_id: str) -> AssessmentDefinition:
        try:
            return self._table[assessment_id]
        except KeyError:
            raise UnknownAssessmentError(assessment_id) from None

    def ids(self) -> List[str]:
        return sorted(self._table)

    def __contains__(self, assessment_id: object) -> bool:
        return assessment_id in self._table

    def __len__(self) -> int:
        return len(self._table)

    def reload(self, directory: str | Path | None = None) -> None:
        fresh = MappingProxyType(load_definitions(directory))
        with self._lock:
            self._table = fresh
        log.info("definition registry swapped (%d definitions)", len(fresh))


_DEFAULT_REGISTRY: Optional[DefinitionRegistry] = None
_DEFAULT_LOCK = threading.Lock()


def default_registry() -> DefinitionRegistry:
    """Process-wide registry, loaded once from ``config.definitions_dir()``."""

    global _DEFAULT_REGISTRY
    if _DEFAULT_REGISTRY is None:
        with _DEFAULT_LOCK:
            if _DEFAULT_REGISTRY is None:
                _DEFAULT_REGISTRY = DefinitionRegistry.from_directory(config.definitions_dir())
    return _DEFAULT_REGISTRY
