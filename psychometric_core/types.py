from __future__ import annotations
from dataclasses import dataclass, field, asdict
from typing import List, Dict, Optional, Literal, Tuple, Union, Iterator, Any
ResponseValue = Union[int, float, str]
Reliability = Literal["valid","questionable","invalid"]
TimeProfile = Literal["normal","too_fast","too_slow","not_measured"]
RiskLevel = Literal["low","moderate","high"]
@dataclass(frozen=True)
class Response:
    item_id: str; value: ResponseValue
    rt_ms: Optional[float] = None
    timestamp: Optional[float] = None
@dataclass(frozen=True)
class ResponseVector:
    """Answers aligned 1:1 with ``AssessmentDefinition.items``."""
    assessment_id: str
    responses: Tuple[Response, ...]
    def __len__(self) -> int:
        return len(self.responses)
    def __iter__(self) -> Iterator[Response]:
        return iter(self.responses)
    def __getitem__(self, idx: int) -> Response:
        return self.responses[idx]
    def response_times(self) -> List[float]:
        return [float(r.rt_ms) for r in self.responses if r.rt_ms is not None]
@dataclass(frozen=True)
class DimensionScore:
    dimension: str
    label: str
    raw: float
    score: float
    normalized: float
    level: str
    interpretation: str
    item_count: int
    style_mean: Optional[float] = None
    sources: Dict[str, float] = field(default_factory=dict)
@dataclass(frozen=True)
class ValidityVerdict:
    score: float
    score_max: float
    reliability: Reliability
    flags: List[str]
    fake_good: int
    fake_bad: int
    inconsistency: int
    random_check: int
    response_time_profile: TimeProfile
    mean_response_time_ms: Optional[float] = None
    trap_totals: Dict[str, int] = field(default_factory=dict)
    response_variance: Optional[float] = None
    divergence: Optional[float] = None
    components: Dict[str, float] = field(default_factory=dict)
    @property
    def total_flags(self) -> int:
        return self.fake_good + self.fake_bad + self.inconsistency + self.random_check
    @property
    def review_required(self) -> bool:
        return self.reliability != "valid"
@dataclass(frozen=True)
class ProfileResult:
    profile: str
    label: str
    confidence: float
    ranking: List[str]
    primary: Optional[str] = None
    secondary: Optional[str] = None
    distribution: Dict[str, float] = field(default_factory=dict)
    top: List[str] = field(default_factory=list)
    bottom: List[str] = field(default_factory=list)
@dataclass(frozen=True)
class Insights:
    strengths: List[str]
    challenges: List[str]
    opportunities: List[str]
    recommendations: List[str]
@dataclass(frozen=True)
class RiskIndex:
    name: str; label: str; score: float; level: RiskLevel
    factors: List[str] = field(default_factory=list)
@dataclass(frozen=True)
class ScoringResult:
    assessment_id: str
    version: str
    dimension_scores: Dict[str, DimensionScore]
    overall: DimensionScore
    profile: ProfileResult
    validity: ValidityVerdict
    insights: Insights
    risk: Dict[str, RiskIndex] = field(default_factory=dict)
    trace: List[Dict[str, object]] = field(default_factory=list)
    def to_dict(self) -> Dict[str, Any]:
        """Plain JSON-safe record for report generation and dashboards."""
        out = asdict(self)
        out["review_required"] = self.validity.review_required
        return out
