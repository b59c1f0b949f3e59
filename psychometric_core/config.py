from __future__ import annotations
import os, json, pathlib


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw.strip())
    except ValueError:
        return default


# Defaults copied into a definition at load time when it leaves a field out.
RT_TOO_FAST_MS: int = 3000
RT_TOO_SLOW_MS: int = 30000

STRAIGHT_LINE_MAX_VARIANCE: float = 0.25
STRAIGHT_LINE_MIN_ITEMS: int = 5

INSIGHT_HIGH: float = 4.0
INSIGHT_LOW: float = 2.5

DEFAULT_NEUTRAL: float = 50.0
WEIGHT_SUM_TOLERANCE: float = 1e-6

LEVEL_BANDS: tuple[tuple[float, str], ...] = ((80.0, "excellent"), (60.0, "good"), (40.0, "fair"))
LEVEL_DEFAULT: str = "poor"

VALIDITY_SCORE_MAX: float = 10.0
FLAG_THRESHOLDS: dict[str, int] = {
    "fake_good": 4,
    "fake_bad": 2,
    "random_check": 2,
    "inconsistency": 1,
}
VERDICT_INVALID: dict[str, object] = {"total_flags": 6, "fake_good": 5, "random_check": 2}
VERDICT_QUESTIONABLE: dict[str, object] = {
    "total_flags": 3,
    "flags": ["response_time_too_fast", "response_time_too_slow"],
}

DEFINITIONS_DIR: str | None = None

DEBUG_TRACE: bool = False
TRACE_FIELDS: tuple[str, ...] = (
    "assessment",
    "index",
    "item_id",
    "kind",
    "dimension",
    "raw",
    "effective",
    "rt_ms",
)
# // env overrides for staging/ops; defaults remain conservative.
RT_TOO_FAST_MS = _env_int("RT_TOO_FAST_MS", RT_TOO_FAST_MS)
RT_TOO_SLOW_MS = _env_int("RT_TOO_SLOW_MS", RT_TOO_SLOW_MS)
STRAIGHT_LINE_MAX_VARIANCE = _env_float("STRAIGHT_LINE_MAX_VARIANCE", STRAIGHT_LINE_MAX_VARIANCE)
DEFAULT_NEUTRAL = _env_float("DEFAULT_NEUTRAL", DEFAULT_NEUTRAL)
DEFINITIONS_DIR = os.getenv("DEFINITIONS_DIR") or None
DEBUG_TRACE = _env_bool("DEBUG_TRACE", False)


def _env_true(name: str) -> bool:
    return os.environ.get(name, "").lower() in ("1","true","yes","on")
def load_config() -> dict:
    cfg = {}
    p = pathlib.Path("config.json")
    if p.exists():
        try: cfg = json.loads(p.read_text(encoding="utf-8"))
        except (OSError, ValueError): cfg = {}
    e = os.environ
    if e.get("DEFINITIONS_DIR"): cfg["DEFINITIONS_DIR"] = e.get("DEFINITIONS_DIR")
    if e.get("DEBUG_TRACE"): cfg["DEBUG_TRACE"] = _env_true("DEBUG_TRACE")
    if e.get("INCLUDE_TRACE"): cfg["INCLUDE_TRACE"] = _env_true("INCLUDE_TRACE")
    return cfg
def definitions_dir(cfg: dict | None = None) -> str | None:
    cfg = cfg if cfg is not None else load_config()
    d = cfg.get("DEFINITIONS_DIR") or DEFINITIONS_DIR
    return str(d) if d else None
