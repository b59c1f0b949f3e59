# psychometric_core/levels.py
from __future__ import annotations
from typing import Sequence, Tuple


def level_for(pct: float, bands: Sequence[Tuple[float, str]], default: str) -> str:
    """First band whose minimum the percentage reaches; ``bands`` run high to low."""
    p = float(pct)
    for lo, label in bands:
        if p >= lo: return label
    return default

def clamp_pct(x: float) -> float:
    return max(0.0, min(100.0, float(x)))

def risk_level(score: float, moderate: float, high: float) -> str:
    s = float(score)
    if s > high: return "high"
    if s > moderate: return "moderate"
    return "low"
